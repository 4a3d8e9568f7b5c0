# Pydantic models shared across the tool bridge, the retrievers and the chat pipeline.

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Label keys starting with this prefix are reserved for the platform.
SYSTEM_LABEL_PREFIX = "system."


class Label(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="The label key")
    value: str = Field(..., description="The label value")

    def is_system(self) -> bool:
        return self.key.startswith(SYSTEM_LABEL_PREFIX)


def labels_from_map(labels: Optional[Dict[str, Any]], prefix: str = "") -> List[Label]:
    """Flatten a (possibly nested) label map into an ordered list of labels.

    Nested keys are joined with a dot, so ``{"system": {"correlationId": "x"}}``
    becomes ``system.correlationId=x``.
    """
    flattened: List[Label] = []
    for key, value in (labels or {}).items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flattened.extend(labels_from_map(value, prefix=f"{full_key}."))
        else:
            flattened.append(Label(key=full_key, value=str(value)))
    return flattened


class RetrievedContent(BaseModel):
    content: str = Field(description="Text content returned by a retrieval source")
    score: Optional[float] = Field(None, description="Relevance score assigned by the source")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Source specific metadata")


class ChatMessageType(str, Enum):
    SYSTEM = "SYSTEM"
    USER = "USER"
    AI = "AI"


class ChatMessage(BaseModel):
    type: ChatMessageType = Field(..., description="Author of the message")
    content: str = Field(..., description="Text of the message")


class ToolExecution(BaseModel):
    request_id: Optional[str] = Field(None, description="Identifier of the tool call")
    request_name: str = Field(..., description="Name of the called tool")
    request_arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments sent by the model")
    result: str = Field(..., description="Tool response returned to the model")


class InlineDocument(BaseModel):
    content: str = Field(..., min_length=1, description="Text of the document")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Metadata attached to every chunk of the document")
