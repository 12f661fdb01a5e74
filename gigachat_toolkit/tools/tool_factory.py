# gigachat_toolkit/gigachat_toolkit/tools/tool_factory.py
import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..api.models import FunctionDefinition, FunctionExample
from ..exceptions import ToolError
from .models import ToolExecutionResult

module_logger = logging.getLogger(__name__)


class ToolFactory:
    """
    Registry of the functions the model may call.

    Resolves enabled tool names to the function definitions attached to a
    request, dispatches calls by name with JSON-decoded arguments, injects
    execution context into tool calls, and tracks tool usage.
    """

    def __init__(self):
        self.tools: Dict[str, Callable] = {}
        self.tool_definitions: Dict[str, FunctionDefinition] = {}
        self._return_direct: Dict[str, bool] = {}
        self.tool_usage_counts: Dict[str, int] = defaultdict(int)
        module_logger.info("ToolFactory initialized.")

    def register_tool(
        self,
        function: Callable,
        name: str,
        description: str,
        parameters: Dict[str, Any] | None = None,
        *,
        return_direct: bool = False,
        few_shot_examples: Optional[List[Dict[str, Any]]] = None,
        return_parameters: Optional[Dict[str, Any]] = None,
    ):
        """
        Registers a tool function and its definition (schema).

        Args:
            function: The callable to execute. May be sync or async and should
                return a ``ToolExecutionResult``.
            name: The name the model uses to call the function. Should be unique.
            description: A description for the model explaining what the tool does.
            parameters: JSON Schema for the function's parameters.
            return_direct: If True, the tool's output is returned to the caller
                instead of being sent back to the model.
            few_shot_examples: Optional ``{"request": ..., "params": {...}}``
                examples attached to the definition.
            return_parameters: Optional JSON Schema of the tool's output.
        """
        if name in self.tools:
            module_logger.warning(f"Tool '{name}' is already registered. Overwriting.")
            if name in self.tool_usage_counts:
                del self.tool_usage_counts[name]

        if parameters and (
            not isinstance(parameters, dict) or parameters.get("type") != "object"
        ):
            module_logger.warning(
                "Tool '%s' parameters does not seem to be a valid JSON "
                "Schema object.",
                name,
            )

        self.tools[name] = function
        self.tool_definitions[name] = FunctionDefinition(
            name=name,
            description=description,
            # The API requires a parameters object even for argument-less tools.
            parameters=parameters or {"type": "object", "properties": {}},
            few_shot_examples=(
                [FunctionExample(**example) for example in few_shot_examples]
                if few_shot_examples
                else None
            ),
            return_parameters=return_parameters,
        )
        self._return_direct[name] = return_direct
        self.tool_usage_counts[name] = 0
        module_logger.info(f"Registered tool: {name}")

    def register_tool_class(
        self,
        tool_class: type,
        config: Optional[Dict[str, Any]] = None,
        name_override: Optional[str] = None,
        description_override: Optional[str] = None,
        parameters_override: Optional[Dict[str, Any]] = None,
    ):
        """Registers a tool class that inherits from BaseTool."""
        from .base_tool import BaseTool

        if not issubclass(tool_class, BaseTool):
            raise ToolError(f"{tool_class.__name__} must inherit from BaseTool.")

        name = name_override or getattr(tool_class, "NAME", None)
        description = description_override or getattr(tool_class, "DESCRIPTION", None)
        parameters = parameters_override or getattr(tool_class, "PARAMETERS", None)

        if not name or not description:
            raise ToolError(
                f"Tool class {tool_class.__name__} missing required NAME or DESCRIPTION."
            )

        def tool_wrapper(**kwargs: Any) -> ToolExecutionResult:
            attr = tool_class.__dict__.get("execute")
            if isinstance(attr, classmethod):
                return tool_class.execute(**kwargs)
            instance = tool_class.from_config(**(config or {}))
            return instance.execute(**kwargs)

        self.register_tool(
            function=tool_wrapper,
            name=name,
            description=description,
            parameters=parameters,
            return_direct=bool(getattr(tool_class, "RETURN_DIRECT", False)),
        )
        module_logger.info(f"Registered tool class: {tool_class.__name__} as '{name}'")

    def get_tool_definitions(
        self, filter_tool_names: Optional[Iterable[str]] = None
    ) -> List[FunctionDefinition]:
        """
        Returns function definitions, optionally filtered by name.

        Args:
            filter_tool_names: Names to include. ``None`` returns every
                registered definition; unknown names are logged and skipped.
        """
        if filter_tool_names is None:
            return list(self.tool_definitions.values())

        requested = list(dict.fromkeys(filter_tool_names))
        missing = [n for n in requested if n not in self.tool_definitions]
        if missing:
            module_logger.warning(
                f"Requested tools not found in factory: {missing}. They will be excluded."
            )
        return [self.tool_definitions[n] for n in requested if n in self.tool_definitions]

    # ToolResolver interface used by the request builder.
    resolve = get_tool_definitions

    def is_return_direct(self, name: str) -> bool:
        return self._return_direct.get(name, False)

    async def dispatch_tool(
        self,
        function_name: str,
        function_args_str: str,
        tool_execution_context: Optional[Dict[str, Any]] = None,
    ) -> ToolExecutionResult:
        """
        Executes the tool registered under ``function_name``.

        Arguments arrive as a JSON object string. Entries of
        ``tool_execution_context`` are passed to the tool when its signature
        declares a parameter of the same name and the model did not supply
        it. Failures are reported as a ``ToolExecutionResult`` with ``error``
        set so the model can see what went wrong.
        """
        if function_name not in self.tools:
            error_msg = f"Tool '{function_name}' not found."
            module_logger.error(error_msg)
            return ToolExecutionResult(
                content=json.dumps({"error": error_msg, "status": "tool_not_found"}),
                error=error_msg,
            )

        actual_args_to_parse = function_args_str if function_args_str else "{}"
        try:
            llm_provided_arguments = json.loads(actual_args_to_parse)
        except json.JSONDecodeError as e:
            error_msg = (
                f"Failed to decode JSON arguments for tool '{function_name}': {e}. "
                f"Args: '{actual_args_to_parse}'"
            )
            module_logger.error(error_msg)
            return ToolExecutionResult(
                content=json.dumps(
                    {"error": error_msg, "status": "argument_decode_error"}
                ),
                error=error_msg,
            )
        if not isinstance(llm_provided_arguments, dict):
            error_msg = (
                f"Expected JSON object for arguments of tool '{function_name}', "
                f"but got {type(llm_provided_arguments).__name__}"
            )
            module_logger.error(error_msg)
            return ToolExecutionResult(
                content=json.dumps({"error": error_msg, "status": "argument_type_error"}),
                error=error_msg,
            )

        tool_function = self.tools[function_name]
        final_arguments = dict(llm_provided_arguments)

        if tool_execution_context:
            target_callable = tool_function
            if not inspect.isroutine(tool_function) and inspect.isroutine(
                getattr(tool_function, "__call__", None)
            ):
                target_callable = tool_function.__call__
            try:
                sig = inspect.signature(target_callable)
                for param_name, param_value in tool_execution_context.items():
                    if param_name not in sig.parameters:
                        continue
                    if param_name in final_arguments:
                        module_logger.warning(
                            f"Context parameter '{param_name}' for tool '{function_name}' "
                            f"collides with a model-provided argument. Context will NOT override."
                        )
                    else:
                        final_arguments[param_name] = param_value
            except (ValueError, TypeError) as e:
                module_logger.error(
                    "Could not inspect signature for tool '%s': %s. "
                    "Context injection might be incomplete.",
                    function_name,
                    e,
                )

        try:
            module_logger.debug(
                f"Executing tool '{function_name}' with args: {list(final_arguments)}"
            )
            if asyncio.iscoroutinefunction(tool_function):
                result = await tool_function(**final_arguments)
            else:
                result = tool_function(**final_arguments)
                if asyncio.iscoroutine(result):
                    result = await result
        except Exception as e:
            error_msg = (
                f"Execution failed unexpectedly within tool '{function_name}': {e}"
            )
            module_logger.exception(f"Error during tool execution for {function_name}")
            return ToolExecutionResult(
                content=json.dumps({"error": error_msg, "status": "execution_error"}),
                error=error_msg,
            )

        if isinstance(result, ToolExecutionResult):
            return result

        module_logger.warning(
            "Tool function '%s' did not return a ToolExecutionResult (got %s); wrapping it.",
            function_name,
            type(result).__name__,
        )
        if isinstance(result, str):
            return ToolExecutionResult(content=result)
        try:
            return ToolExecutionResult(content=json.dumps(result, ensure_ascii=False))
        except TypeError:
            return ToolExecutionResult(content=json.dumps({"result": str(result)}))

    def increment_tool_usage(self, tool_name: str):
        """Increments the usage count for the given tool name."""
        if tool_name in self.tools:
            self.tool_usage_counts[tool_name] += 1
        else:
            module_logger.warning(
                f"Attempted to increment usage for unregistered tool: '{tool_name}'. Count not incremented."
            )

    def get_tool_usage_counts(self) -> Dict[str, int]:
        """Returns a dictionary of tool names and their usage counts."""
        return dict(self.tool_usage_counts)

    def reset_tool_usage_counts(self):
        """Resets all tool usage counts to zero."""
        for tool_name in self.tool_usage_counts:
            self.tool_usage_counts[tool_name] = 0
        module_logger.info("All tool usage counts have been reset.")

    @property
    def available_tool_names(self) -> List[str]:
        """Returns a list of all registered tool names."""
        return list(self.tools)
