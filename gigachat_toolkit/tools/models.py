# gigachat_toolkit/gigachat_toolkit/tools/models.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..messages import Message


class ToolExecutionResult(BaseModel):
    """Represents the outcome of a tool execution, separating model content from actionable payloads."""

    content: str  # The string fed back to the model as the function result
    payload: Any = None  # Data/instructions for the caller
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class ToolExecutionOutcome:
    """What the tool loop does next after executing a round of tool calls.

    ``conversation_history`` is the original conversation extended with the
    assistant's tool-call turn and the tool responses.  When
    ``return_direct`` is set the tool responses are handed to the caller
    instead of being sent back to the model.
    """

    conversation_history: List[Message]
    return_direct: bool = False
    payloads: List[Dict[str, Any]] = field(default_factory=list)
