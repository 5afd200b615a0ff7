"""Data models for the bridge."""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Chat Request Models
# ============================================================================

class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class CapabilityModelSettings(BaseModel):
    model: str

    @field_validator("model")
    @classmethod
    def _model_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model must not be empty")
        return value


class RemoteModelSettings(BaseModel):
    endpoint: str
    model: str

    @field_validator("endpoint")
    @classmethod
    def _endpoint_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("endpoint must not be empty")
        return value.strip()


class CapabilityChatSettings(BaseModel):
    provider: Literal["copilot"]
    copilot: CapabilityModelSettings


class AgentChatSettings(BaseModel):
    provider: Literal["copilot-agent"]
    copilot: CapabilityModelSettings


class RemoteChatSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: Literal["lm-studio"]
    lm_studio: RemoteModelSettings = Field(alias="lmStudio")


ChatSettings = Annotated[
    Union[CapabilityChatSettings, AgentChatSettings, RemoteChatSettings],
    Field(discriminator="provider"),
]


class ChatRequest(BaseModel):
    """One /chat call. Lives for the duration of the request."""
    model_config = ConfigDict(populate_by_name=True)

    settings: ChatSettings
    messages: List[ChatMessage]
    page_content: str = Field(alias="pageContent")
    screenshot: Optional[str] = None
    operation_mode: Optional[Literal["text", "hybrid", "screenshot"]] = Field(
        default=None, alias="operationMode"
    )


class ModelInfo(BaseModel):
    provider: str
    id: str
    name: str


# ============================================================================
# Tool Models
# ============================================================================

ToolParamValue = Union[str, int, float, bool, None, List[Any], Dict[str, Any]]


class ToolCall(BaseModel):
    call_id: str
    name: str
    parameters: Dict[str, ToolParamValue] = Field(default_factory=dict)


class ToolResult(BaseModel):
    success: bool
    result: str


class LoopState(str, Enum):
    """Tool loop state."""
    INVOKING_MODEL = "invoking-model"
    EXECUTING_TOOLS = "executing-tools"
    DONE = "done"


# ============================================================================
# File / Automation Route Models
# ============================================================================

class FileOperationRequest(BaseModel):
    action: Literal["create", "read", "append", "delete"]
    path: str
    content: Optional[str] = None


class PlaywrightRequest(BaseModel):
    action: str
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("action")
    @classmethod
    def _action_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("action must not be empty")
        return value.strip()
