"""Request/response models — the contract between the dashboard and the API.

The chat endpoint takes a ``ChatRequestBody`` and answers with a stream of
``StreamMessage`` objects, one per SSE ``data:`` line.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Wire protocol
# ---------------------------------------------------------------------------


class Connected(BaseModel):
    """First message of every stream."""

    type: Literal["connected"] = "connected"


class Token(BaseModel):
    """Incremental text fragment from the model."""

    type: Literal["token"] = "token"
    token: str


class ToolStart(BaseModel):
    type: Literal["tool_start"] = "tool_start"
    tool: str
    input: Any = None


class ToolEnd(BaseModel):
    type: Literal["tool_end"] = "tool_end"
    tool: str
    output: Any = None


class Done(BaseModel):
    """Terminal success."""

    type: Literal["done"] = "done"


class Error(BaseModel):
    """Terminal failure. The browser treats it as the end of the stream."""

    type: Literal["error"] = "error"
    error: str


StreamMessage = Annotated[
    Union[Connected, Token, ToolStart, ToolEnd, Done, Error],
    Field(discriminator="type"),
]

# ---------------------------------------------------------------------------
# Inbound request
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """One prior turn of the conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class UserFile(BaseModel):
    """Descriptor of a file the user uploaded to the dashboard.

    Only metadata travels with the chat request; contents stay in the
    backing store and are read on demand by the ``file_reader`` tool.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str
    type: str | None = None
    size: int | None = None
    storage_id: str | None = Field(default=None, alias="storageId")


class ChatRequestBody(BaseModel):
    """Incoming chat request.

    The new user message has already been persisted by the dashboard before
    this request is sent; the server only relays the agent's answer.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    messages: tuple[ChatMessage, ...] = ()
    new_message: str = Field(alias="newMessage")
    chat_id: str = Field(alias="chatId")
    org_id: str = Field(alias="orgId")
    user_files: tuple[UserFile, ...] | None = Field(default=None, alias="userFiles")


class AgentSummary(BaseModel):
    """Public description of a configured agent, shown in the dashboard."""

    type: str
    name: str
    title: str
