# hlrcheck/app/routers/ws_batches.py
"""
Batch progress WebSocket
------------------------
batch runner -> ws_broker.publish_sync("batch:{kind}:{id}", {...})
FastAPI WS   -> forwards to the browser

Token: ?token=... query param, access_token cookie or Authorization: Bearer.
Owners see their own batches, admins see everything.
"""

from __future__ import annotations

import json
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, HTTPException, status

from hlrcheck.app.db import SessionLocal
from hlrcheck.app.repositories.batch_repository import batch_repository_for
from hlrcheck.app.services.auth_service import COOKIE_NAME, resolve_session
from hlrcheck.app.services.batch_processor import progress_payload
from hlrcheck.app.services.ws_broker import ws_broker, batch_channel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["ws"])


def _token_from(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token") or websocket.cookies.get(COOKIE_NAME)
    if token:
        return token
    auth = websocket.headers.get("authorization") or ""
    if auth.startswith("Bearer "):
        return auth[len("Bearer "):].strip()
    return None


def authorize(token: str | None, kind: str, batch_id: int):
    """Returns the initial progress payload, or None when access is denied."""
    if not token or kind not in ("hlr", "email"):
        return None
    db = SessionLocal()
    try:
        try:
            user, _ = resolve_session(db, token)
        except HTTPException:
            return None
        batch = batch_repository_for(kind, db).get(batch_id)
        if batch is None or (user.role != "admin" and batch.user_id != user.id):
            return None
        return progress_payload(batch, kind)
    finally:
        db.close()


@router.get("/stats")
def ws_stats():
    return ws_broker.stats()


@router.websocket("/batches/{kind}/{batch_id}")
async def batch_ws(websocket: WebSocket, kind: str, batch_id: int):
    await websocket.accept()

    snapshot = authorize(_token_from(websocket), kind, batch_id)
    if snapshot is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.send_text(json.dumps(snapshot, default=str))

    channel = batch_channel(kind, batch_id)
    logger.info("[WS] batch connected: %s", channel)

    async def forwarder():
        try:
            async for message in ws_broker.subscribe(channel):
                await websocket.send_text(json.dumps(message, default=str))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("batch forwarder stopped (%s): %s", channel, exc)

    forward_task = asyncio.create_task(forwarder())

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        forward_task.cancel()
        logger.info("[WS] batch closed: %s", channel)
