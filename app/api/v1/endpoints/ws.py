# app/api/v1/endpoints/ws.py
"""
即時通知通道：連線時只驗 access token（WebSocket 無法回寫 cookie，不做輪替），
通過後登記到 presence，之後由 NotificationAggregator 推播。
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.core.config import settings
from app.core.deps import build_session_manager
from app.core.errors import AppError
from app.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])


def _extract_ws_token(websocket: WebSocket) -> Optional[str]:
    # 瀏覽器帶 cookie；其他客戶端用 ?token=
    return websocket.cookies.get(settings.ACCESS_TOKEN_COOKIE) or websocket.query_params.get("token")


def _is_ping(message: str) -> bool:
    try:
        data = json.loads(message)
    except ValueError:
        return False
    return isinstance(data, dict) and data.get("type") == "ping"


async def _authorize_socket(websocket: WebSocket) -> Optional[str]:
    token = _extract_ws_token(websocket)
    async with AsyncSessionLocal() as db:
        sessions = build_session_manager(db, websocket.app.state.background)
        try:
            ctx = await sessions.authorize(token, None, allow_rotation=False)
        except AppError as exc:
            logger.info("Rejecting notification socket: %s", exc.message)
            return None
        return ctx.user.id


@router.websocket("/notifications")
async def notifications_socket(websocket: WebSocket):
    user_id = await _authorize_socket(websocket)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    presence = websocket.app.state.presence
    await presence.connect(user_id, websocket)
    try:
        while True:
            message = await websocket.receive_text()
            if _is_ping(message):
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("User %s disconnected from notifications", user_id)
    finally:
        presence.disconnect(user_id, websocket)
