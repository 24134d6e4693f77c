# mafia_client/services/transport.py
"""
Service: transport.py
- Abonnement par nom d'événement avec poignées explicites (`on()` → Subscription).
- Livraison strictement séquentielle : un événement à la fois, dans l'ordre de réception.
- `emit()` synchrone (appelable depuis un handler ou un timer) ; après `close()` c'est un no-op.
- WSTransport : enveloppes JSON {"type","payload"} sur une connexion exposant
  `send_text` / `receive_text` (API starlette) ; `connect_ws()` ouvre le flux amont
  avec le client `websockets`.
"""
from __future__ import annotations

import asyncio
import logging
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from starlette.websockets import WebSocketDisconnect
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from mafia_client.services.subscription import Subscription
from mafia_client.services.ws_codec import decode_envelope, encode_envelope

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]


class TransportClosed(ConnectionError):
    """La connexion amont est fermée."""


class Transport:
    """Base : registre des handlers + livraison ordonnée. `_send` est fourni par les sous-classes."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[str, List[Handler]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event: str, handler: Handler) -> Subscription:
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def _release() -> None:
            with self._lock:
                bucket = self._handlers.get(event)
                if bucket and handler in bucket:
                    bucket.remove(handler)
                    if not bucket:
                        self._handlers.pop(event, None)

        return Subscription(_release, label=event)

    def handler_count(self, event: Optional[str] = None) -> int:
        with self._lock:
            if event is not None:
                return len(self._handlers.get(event, []))
            return sum(len(b) for b in self._handlers.values())

    def deliver(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Appelle (synchrone) chaque handler abonné à `event`. Renvoie le nombre d'appels."""
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        if not handlers:
            logger.debug("no handler for inbound event '%s'", event)
        for handler in handlers:
            handler(payload or {})
        return len(handlers)

    def emit(self, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        if self._closed:
            logger.info("emit '%s' ignored: transport closed", event)
            return False
        self._send(event, payload or {})
        return True

    def _send(self, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        self._closed = True


class WSTransport(Transport):
    def __init__(self, connection: Any) -> None:
        super().__init__()
        self.connection = connection
        self._outbox: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    def _send(self, event: str, payload: Dict[str, Any]) -> None:
        self._outbox.put_nowait(encode_envelope(event, payload))

    async def _write_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            if text is None:
                return
            try:
                await self.connection.send_text(text)
            except (TransportClosed, WebSocketDisconnect):
                logger.warning("upstream closed while sending, dropping outbound frames")
                self._closed = True
                return

    async def run(self) -> None:
        """
        Boucle de réception : livre les événements un par un jusqu'à la déconnexion.
        Les trames non JSON sont ignorées. Une violation de protocole levée par un handler
        ferme le transport puis remonte à l'appelant.
        """
        self._writer = asyncio.create_task(self._write_loop())
        try:
            while not self._closed:
                try:
                    raw = await self.connection.receive_text()
                except (TransportClosed, WebSocketDisconnect):
                    logger.info("upstream disconnected")
                    break
                decoded = decode_envelope(raw)
                if decoded is None:
                    logger.debug("skipping non-JSON frame")
                    continue
                event, payload = decoded
                self.deliver(event, payload)
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed and self._writer is None:
            return
        self._closed = True
        writer, self._writer = self._writer, None
        if writer is not None and not writer.done():
            # vide la file avant de fermer
            self._outbox.put_nowait(None)
            try:
                await writer
            except asyncio.CancelledError:
                pass
        try:
            await self.connection.close()
        except Exception:
            pass


class _WebsocketsConnection:
    """Adapte une connexion `websockets` à l'API starlette (`send_text` / `receive_text`)."""

    def __init__(self, ws: Any) -> None:
        self._ws = ws

    async def send_text(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed as exc:
            raise TransportClosed(str(exc)) from exc

    async def receive_text(self) -> str:
        try:
            data = await self._ws.recv()
        except ConnectionClosed as exc:
            raise TransportClosed(str(exc)) from exc
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    async def close(self) -> None:
        await self._ws.close()


async def connect_ws(url: str) -> WSTransport:
    """Ouvre la connexion amont vers le serveur de jeu."""
    ws = await connect(url)
    logger.info("connected to game server %s", url)
    return WSTransport(_WebsocketsConnection(ws))
