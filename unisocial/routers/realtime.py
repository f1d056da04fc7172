# unisocial/routers/realtime.py

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from unisocial.common.deps import get_user_from_token
from unisocial.common.pagination import make_pagination
from unisocial.common.websocket import manager
from unisocial.core.exceptions import UniSocialError, InvalidArgumentError, InternalError
from unisocial.db.session import get_db
from unisocial.models.user import User, utcnow
from unisocial.services.relationship_service import RelationshipService

logger = logging.getLogger(__name__)

router = APIRouter()

Handler = Callable[[RelationshipService, int, Dict[str, Any]], Awaitable[Any]]


def _as_int(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


async def _send_friend_request(service: RelationshipService, user_id: int, data: Dict[str, Any]):
    outcome = await service.send_friend_request(user_id, data.get("recipientId"))
    return outcome.model_dump()


async def _accept_friend_request(service: RelationshipService, user_id: int, data: Dict[str, Any]):
    outcome = await service.accept_friend_request(user_id, data.get("senderId"))
    return {"userId": data.get("senderId"), **outcome.model_dump()}


async def _reject_friend_request(service: RelationshipService, user_id: int, data: Dict[str, Any]):
    outcome = await service.reject_friend_request(user_id, data.get("senderId"))
    return outcome.model_dump()


async def _get_friend_requests(service: RelationshipService, user_id: int, data: Dict[str, Any]):
    pagination = make_pagination(_as_int(data.get("page")), _as_int(data.get("limit")))
    return await run_in_threadpool(service.list_friend_requests, user_id, pagination)


# client event -> (reply event, handler)
CLIENT_EVENTS: Dict[str, Tuple[str, Handler]] = {
    "sendFriendRequest": ("friendRequestSent", _send_friend_request),
    "acceptFriendRequest": ("friendRequestAccepted", _accept_friend_request),
    "rejectFriendRequest": ("friendRequestRejected", _reject_friend_request),
    "getFriendRequests": ("friendRequests", _get_friend_requests),
}


def _error_reply(event: str, error: UniSocialError) -> Dict[str, Any]:
    return {"event": event, "success": False, "error": error.to_dict()}


async def handle_client_event(service: RelationshipService, user_id: int, raw: str) -> Dict[str, Any]:
    """Turn one client frame into the reply frame. Typed failures become error replies."""
    try:
        message = json.loads(raw)
    except ValueError:
        return _error_reply("error", InvalidArgumentError("Message must be valid JSON"))
    if not isinstance(message, dict):
        return _error_reply("error", InvalidArgumentError("Message must be a JSON object"))

    event = message.get("event")
    if event == "ping":
        return {"event": "pong", "success": True}

    if event not in CLIENT_EVENTS:
        return _error_reply("error", InvalidArgumentError(f"Unknown event: {event}", field="event"))
    reply_event, handler = CLIENT_EVENTS[event]

    data = message.get("data")
    if not isinstance(data, dict):
        data = {}

    try:
        result = await handler(service, user_id, data)
    except UniSocialError as e:
        logger.debug("Socket event %s from user %s failed: %s", event, user_id, e.message)
        return _error_reply(reply_event, e)
    except Exception:
        # keep the connection alive; the client only sees a generic failure
        logger.exception("Socket event %s from user %s crashed", event, user_id)
        return _error_reply(reply_event, InternalError(f"Failed to handle {event}"))
    return {"event": reply_event, "success": True, "data": result}


def _record_last_seen(db: Session, user_id: int):
    user = db.get(User, user_id)
    if user is None:
        return
    try:
        user.last_seen = utcnow()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not record last_seen for user %s", user_id, exc_info=True)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    user = await run_in_threadpool(get_user_from_token, token, db) if token else None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = user.id
    await websocket.accept()
    await manager.connect(user_id, websocket)
    service = RelationshipService(db=db, presence=manager)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            raw = message.get("text")
            if raw is None:
                reply = _error_reply("error", InvalidArgumentError("Only text frames are supported"))
            else:
                reply = await handle_client_event(service, user_id, raw)
            await websocket.send_json(jsonable_encoder(reply))
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(user_id, websocket)
        await run_in_threadpool(_record_last_seen, db, user_id)
