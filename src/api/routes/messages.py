from typing import Any

from fastapi import APIRouter, Depends, status

from src.adapters.clock import SystemClock
from src.api.deps import get_caller, get_clock, get_kv_store, get_policy, get_rules
from src.api.errors import raise_for
from src.api.schemas import MessageCreateRequest, MessageUpdateRequest
from src.components.messages import (
    ListMessagesInput,
    SendMessageInput,
    UpdateMessageInput,
    run_list,
    run_send,
    run_update_message,
)
from src.core.ports.kv import KVStorePort
from src.domain.policy import Caller, PolicyEngine
from src.rules.models import Rules

router = APIRouter()


@router.get("")
def list_messages(
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
) -> list[dict[str, Any]]:
    """All messages for admins; the caller's own thread otherwise. Unordered."""
    result = run_list(ListMessagesInput(caller=caller), store, policy)
    return [m.to_record() for m in result.messages]


@router.post("", status_code=status.HTTP_201_CREATED)
def send_message(
    req: MessageCreateRequest,
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
    clock: SystemClock = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> dict[str, Any]:
    """Open a message to the administrators (standard users only)."""
    inp = SendMessageInput(caller=caller, content=req.content, user_name=req.user_name)
    result = run_send(inp, store, policy, clock, rules.messages)

    if not result.success or result.message is None:
        raise_for(result.error_code, result.error)

    return result.message.to_record()


@router.put("/{message_id}")
def update_message(
    message_id: str,
    req: MessageUpdateRequest,
    caller: Caller = Depends(get_caller),
    store: KVStorePort = Depends(get_kv_store),
    policy: PolicyEngine = Depends(get_policy),
    clock: SystemClock = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> dict[str, Any]:
    """
    Administrator transition on a message.

    ``{"read": true}`` marks it read, ``{"reply": "..."}`` sets the reply;
    both may be sent together and land in one write. read=false is ignored.
    """
    inp = UpdateMessageInput(caller=caller, message_id=message_id, read=bool(req.read), reply=req.reply)
    result = run_update_message(inp, store, policy, clock, rules.messages)

    if not result.success or result.message is None:
        raise_for(result.error_code, result.error)

    return result.message.to_record()
