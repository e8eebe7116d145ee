"""
Messages component - Role-scoped message threads between users and administrators.
"""

from .component import (
    UNKNOWN_USER_NAME,
    run,
    run_list,
    run_mark_read,
    run_reply,
    run_send,
    run_update_message,
)
from .models import (
    ListMessagesInput,
    MarkReadInput,
    MessageListOutput,
    MessageOutput,
    ReplyMessageInput,
    SendMessageInput,
    UpdateMessageInput,
)
from .ports import KVStorePort, TimePort

__all__ = [
    # Entry points
    "run",
    "run_send",
    "run_list",
    "run_reply",
    "run_mark_read",
    "run_update_message",
    "UNKNOWN_USER_NAME",
    # Input models
    "SendMessageInput",
    "ListMessagesInput",
    "ReplyMessageInput",
    "MarkReadInput",
    "UpdateMessageInput",
    # Output models
    "MessageOutput",
    "MessageListOutput",
    # Ports
    "KVStorePort",
    "TimePort",
]
