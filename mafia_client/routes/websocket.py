# mafia_client/routes/websocket.py
"""
WebSocket endpoint.

- /ws/game : flux pour la couche d'affichage.
  * pousse le snapshot complet à chaque changement (type=snapshot),
  * puis une erreur (type=error) si la session tombe sur une violation de protocole,
  * ou type=closed quand la session est fermée.
  * ping/pong pour heartbeat côté UI.
"""
from __future__ import annotations

import asyncio
import logging

import orjson as json
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mafia_client.models.game import GameSnapshot
from mafia_client.services.session import get_active_session

logger = logging.getLogger(__name__)

router = APIRouter()

# intervalle de vérification de l'état de session quand rien ne change
POLL_SECONDS = 1.0


@router.websocket("/ws/game")
async def game_stream(ws: WebSocket):
    await ws.accept()

    async def _send_json(payload: dict):
        await ws.send_text(json.dumps(payload).decode("utf-8"))

    session = get_active_session()
    if session is None:
        await _send_json({"type": "error", "error": "no_active_session"})
        await ws.close()
        return

    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[GameSnapshot]" = asyncio.Queue()

    def _on_change(previous: GameSnapshot, current: GameSnapshot) -> None:
        # le store peut notifier depuis un autre thread
        loop.call_soon_threadsafe(queue.put_nowait, current)

    async def _pump():
        while True:
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=POLL_SECONDS)
            except asyncio.TimeoutError:
                snapshot = None
            if snapshot is not None:
                await _send_json({"type": "snapshot", "payload": snapshot.to_public()})
            if session.error is not None:
                await _send_json({"type": "error", "error": str(session.error)})
                return
            if not session.active:
                await _send_json({"type": "closed"})
                return

    async def _listen():
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    # Message non JSON -> ignore
                    continue
                if isinstance(msg, dict) and msg.get("type") == "ping":
                    await _send_json({"type": "pong"})
        except WebSocketDisconnect:
            pass

    subscription = session.store.subscribe(_on_change)
    tasks = []
    try:
        await _send_json({"type": "snapshot", "payload": session.snapshot.to_public()})
        tasks = [asyncio.create_task(_pump()), asyncio.create_task(_listen())]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning("UI stream ended with error: %s", task.exception())
    finally:
        for task in tasks:
            task.cancel()
        subscription.unsubscribe()
        try:
            await ws.close()
        except Exception:
            pass
