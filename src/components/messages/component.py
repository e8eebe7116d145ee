"""
Messages component - user to administrator message threads.

Standard users open threads and only ever see their own. Administrators see
every message, mark messages read and reply. The author is always the verified
caller; nothing the client sends about identity is trusted.
"""

import logging
from typing import Any
from uuid import uuid4

from src.core.atomic import RecordNotFoundError, RetriesExhaustedError, atomic_update
from src.domain.entities import MESSAGE_PREFIX, Message, message_key
from src.domain.errors import ErrorCode
from src.domain.policy import PolicyEngine
from src.rules.models import MessageRules

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

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown User"


def _new_message_id(epoch_ms: int) -> str:
    return f"msg-{epoch_ms}-{uuid4().hex[:8]}"


def _check_text(text: str | None, limit: int, label: str) -> MessageOutput | None:
    """Blank or oversized text is rejected; accepted text is stored as written."""
    if not (text or "").strip():
        return MessageOutput(success=False, error=f"{label} is required", error_code=ErrorCode.VALIDATION)
    if len(text or "") > limit:
        return MessageOutput(
            success=False,
            error=f"{label} exceeds {limit} characters",
            error_code=ErrorCode.VALIDATION,
        )
    return None


def run_send(
    inp: SendMessageInput,
    store: KVStorePort,
    policy: PolicyEngine,
    time: TimePort,
    rules: MessageRules,
) -> MessageOutput:
    if inp.caller.profile is None:
        return MessageOutput(
            success=False, error="No provisioned profile for this account", error_code=ErrorCode.FORBIDDEN
        )
    if not policy.can_send_messages(inp.caller):
        return MessageOutput(
            success=False,
            error="Administrators reply to messages but cannot start a thread",
            error_code=ErrorCode.FORBIDDEN,
        )

    rejected = _check_text(inp.content, rules.max_content_length, "Message content")
    if rejected:
        return rejected

    hinted_name = (inp.user_name or "").strip()
    user_name = inp.caller.display_name or hinted_name or UNKNOWN_USER_NAME

    now = time.now_utc()
    message = Message(
        id=_new_message_id(int(now.timestamp() * 1000)),
        user_id=inp.caller.subject_id,
        user_name=user_name,
        content=inp.content,
        timestamp=now,
        read=False,
    )
    store.set(message_key(message.id), message.to_record())
    logger.info("Message %s sent by %s", message.id, message.user_id)
    return MessageOutput(message=message, success=True)


def run_list(inp: ListMessagesInput, store: KVStorePort, policy: PolicyEngine) -> MessageListOutput:
    """
    Role-filtered view of all messages.

    Administrators get every message; anyone else only messages they sent.
    Order is unspecified; callers sort by timestamp.
    """
    messages = [Message.model_validate(r) for r in store.get_by_prefix(MESSAGE_PREFIX)]
    if not policy.can_read_all_messages(inp.caller):
        messages = [m for m in messages if m.user_id == inp.caller.subject_id]
    return MessageListOutput(messages=messages, success=True)


def run_update_message(
    inp: UpdateMessageInput,
    store: KVStorePort,
    policy: PolicyEngine,
    time: TimePort | None,
    rules: MessageRules | None = None,
    max_attempts: int = 5,
) -> MessageOutput:
    """
    Apply an administrator's transitions to one message in a single write.

    ``read=True`` sets the read flag; a reply sets reply and replyTimestamp
    together. Every check runs before the write, so a rejected request leaves
    the stored message untouched. read=False is not a transition.
    """
    rules = rules or MessageRules()
    if not inp.read and inp.reply is None:
        return MessageOutput(
            success=False, error="Nothing to update: send read=true and/or reply", error_code=ErrorCode.VALIDATION
        )
    if inp.read and not policy.can_mark_read(inp.caller):
        return MessageOutput(
            success=False, error="Only administrators can mark messages read", error_code=ErrorCode.FORBIDDEN
        )
    if inp.reply is not None:
        if not policy.can_reply(inp.caller):
            return MessageOutput(
                success=False, error="Only administrators can reply", error_code=ErrorCode.FORBIDDEN
            )
        rejected = _check_text(inp.reply, rules.max_reply_length, "Reply text")
        if rejected:
            return rejected

    changes: dict[str, Any] = {}
    if inp.read:
        changes["read"] = True
    if inp.reply is not None:
        if time is None:
            raise ValueError("A clock is required to reply")
        changes["reply"] = inp.reply
        changes["reply_timestamp"] = time.now_utc()

    def _apply(record: dict[str, Any]) -> dict[str, Any]:
        return Message.model_validate(record).model_copy(update=changes).to_record()

    try:
        written = atomic_update(store, message_key(inp.message_id), _apply, max_attempts=max_attempts)
    except RecordNotFoundError:
        return MessageOutput(
            success=False, error=f"Message {inp.message_id} not found", error_code=ErrorCode.NOT_FOUND
        )
    except RetriesExhaustedError:
        return MessageOutput(
            success=False,
            error="Message is being updated concurrently, try again",
            error_code=ErrorCode.CONFLICT,
        )

    logger.info(
        "Message %s updated by %s (read=%s, reply=%s)",
        inp.message_id,
        inp.caller.subject_id,
        inp.read,
        inp.reply is not None,
    )
    return MessageOutput(message=Message.model_validate(written), success=True)


def run_reply(
    inp: ReplyMessageInput,
    store: KVStorePort,
    policy: PolicyEngine,
    time: TimePort,
    rules: MessageRules,
    max_attempts: int = 5,
) -> MessageOutput:
    """Set reply and replyTimestamp together. Does not touch the read flag."""
    return run_update_message(
        UpdateMessageInput(caller=inp.caller, message_id=inp.message_id, reply=inp.reply or ""),
        store,
        policy,
        time,
        rules,
        max_attempts,
    )


def run_mark_read(
    inp: MarkReadInput,
    store: KVStorePort,
    policy: PolicyEngine,
    max_attempts: int = 5,
) -> MessageOutput:
    """Set read=true. Repeating it is a no-op, not an error."""
    return run_update_message(
        UpdateMessageInput(caller=inp.caller, message_id=inp.message_id, read=True),
        store,
        policy,
        None,
        max_attempts=max_attempts,
    )


def run(
    inp: SendMessageInput | ListMessagesInput | ReplyMessageInput | MarkReadInput | UpdateMessageInput,
    *,
    store: KVStorePort,
    policy: PolicyEngine,
    time: TimePort | None = None,  # Only needed for send/reply/update
    rules: MessageRules | None = None,
) -> MessageOutput | MessageListOutput:
    rules = rules or MessageRules()

    if isinstance(inp, SendMessageInput):
        assert time
        return run_send(inp, store, policy, time, rules)

    elif isinstance(inp, ListMessagesInput):
        return run_list(inp, store, policy)

    elif isinstance(inp, ReplyMessageInput):
        assert time
        return run_reply(inp, store, policy, time, rules)

    elif isinstance(inp, MarkReadInput):
        return run_mark_read(inp, store, policy)

    elif isinstance(inp, UpdateMessageInput):
        assert time
        return run_update_message(inp, store, policy, time, rules)

    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
