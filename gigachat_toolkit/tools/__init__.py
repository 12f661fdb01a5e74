from .base_tool import BaseTool
from .executor import DefaultToolExecutor, ToolExecutor
from .models import ToolExecutionOutcome, ToolExecutionResult
from .tool_factory import ToolFactory

__all__ = [
    "ToolFactory",
    "BaseTool",
    "DefaultToolExecutor",
    "ToolExecutor",
    "ToolExecutionOutcome",
    "ToolExecutionResult",
]
