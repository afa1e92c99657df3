import itertools
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from kbsearch.models.common import CamelModel

_message_seq = itertools.count(1)


def new_message_id() -> str:
    """Time-ordered, process-unique message id."""
    return f"msg_{time.time_ns():x}_{next(_message_seq)}"


class Role(str, Enum):
    USER = "user"
    AGENT = "agent"


class Source(CamelModel):
    """A citation attached to an answer. Unknown fields are kept as extras."""

    model_config = ConfigDict(extra="allow", frozen=True)

    title: str | None = None
    document: str | None = None
    page: int | None = None
    content: str | None = None


class NormalizedAnswer(CamelModel):
    answer: str
    sources: list[Source] = Field(default_factory=list)
    # None means the service gave no confidence at all, which is not the same as 0.
    confidence: float | None = None
    follow_ups: list[str] = Field(default_factory=list)


class Message(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_message_id)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sources: tuple[Source, ...] = ()
    confidence: float | None = None
    follow_ups: tuple[str, ...] = ()
    is_error: bool = False

    @property
    def has_sources(self) -> bool:
        return len(self.sources) > 0

    @property
    def has_follow_ups(self) -> bool:
        return len(self.follow_ups) > 0

    @property
    def has_confidence(self) -> bool:
        return self.confidence is not None


class ConversationState(CamelModel):
    messages: tuple[Message, ...] = ()
    pending: bool = False
    last_error: str | None = None
    input: str = ""


class ChatRequest(BaseModel):
    message: str | None = None


class InputRequest(BaseModel):
    value: str


class KeyRequest(BaseModel):
    key: str
    shift: bool = False
