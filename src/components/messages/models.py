from dataclasses import dataclass, field

from src.domain.entities import Message
from src.domain.errors import ErrorCode
from src.domain.policy import Caller


@dataclass
class SendMessageInput:
    caller: Caller
    content: str
    # Display-only hint from the client; the stored profile name wins.
    user_name: str | None = None


@dataclass
class ListMessagesInput:
    caller: Caller


@dataclass
class ReplyMessageInput:
    caller: Caller
    message_id: str
    reply: str


@dataclass
class MarkReadInput:
    caller: Caller
    message_id: str


@dataclass
class UpdateMessageInput:
    caller: Caller
    message_id: str
    read: bool = False
    reply: str | None = None


@dataclass
class MessageOutput:
    message: Message | None = None
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None


@dataclass
class MessageListOutput:
    messages: list[Message] = field(default_factory=list)
    success: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None
