"""Chat options and their field-by-field merge."""

from __future__ import annotations

from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, Field


class ChatOptions(BaseModel):
    """Generation and tool-calling options for a chat call.

    Every field is optional.  Runtime options passed to a call are merged over
    the client's default options with :func:`merge_options`; a field that is
    unset in both stays unset and is omitted from the request.

    Attributes:
        model: Model name, e.g. ``"GigaChat-Pro"``.
        temperature: Sampling temperature.
        top_p: Nucleus-sampling threshold.
        max_tokens: Maximum number of tokens to generate.
        repetition_penalty: Repetition (frequency) penalty.
        update_interval: Minimum interval, in seconds, between streamed
            frames.
        functions: Names of the tools enabled for the call.
        internal_tool_execution_enabled: ``False`` switches the engine into
            proxy mode, returning tool-call responses to the caller instead
            of executing them.  ``None`` means enabled.
        tool_context: Extra keyword arguments injected into tool functions
            whose signature declares them.
        max_tool_iterations: Per-call override of the engine's tool-loop
            guard.
    """

    model: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    repetition_penalty: Optional[float] = None
    update_interval: Optional[float] = None
    functions: Set[str] = Field(default_factory=set)
    internal_tool_execution_enabled: Optional[bool] = None
    tool_context: Optional[Dict[str, Any]] = None
    max_tool_iterations: Optional[int] = None


def _pick(runtime: Any, default: Any) -> Any:
    return runtime if runtime is not None else default


def merge_options(
    runtime: Optional[ChatOptions], defaults: Optional[ChatOptions]
) -> ChatOptions:
    """Merge *runtime* over *defaults* without mutating either.

    Scalar fields take the runtime value when it is set.  ``functions`` is the
    union of both sets and ``tool_context`` is a dict merge in which runtime
    keys win.
    """
    runtime = runtime or ChatOptions()
    defaults = defaults or ChatOptions()

    tool_context: Optional[Dict[str, Any]] = None
    if defaults.tool_context is not None or runtime.tool_context is not None:
        tool_context = {**(defaults.tool_context or {}), **(runtime.tool_context or {})}

    return ChatOptions(
        model=_pick(runtime.model, defaults.model),
        temperature=_pick(runtime.temperature, defaults.temperature),
        top_p=_pick(runtime.top_p, defaults.top_p),
        max_tokens=_pick(runtime.max_tokens, defaults.max_tokens),
        repetition_penalty=_pick(runtime.repetition_penalty, defaults.repetition_penalty),
        update_interval=_pick(runtime.update_interval, defaults.update_interval),
        functions=set(defaults.functions) | set(runtime.functions),
        internal_tool_execution_enabled=_pick(
            runtime.internal_tool_execution_enabled,
            defaults.internal_tool_execution_enabled,
        ),
        tool_context=tool_context,
        max_tool_iterations=_pick(
            runtime.max_tool_iterations, defaults.max_tool_iterations
        ),
    )


def is_internal_tool_execution_enabled(options: Optional[ChatOptions]) -> bool:
    """Return ``False`` only when the options explicitly select proxy mode."""
    if options is None or options.internal_tool_execution_enabled is None:
        return True
    return bool(options.internal_tool_execution_enabled)
