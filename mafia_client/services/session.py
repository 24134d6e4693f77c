"""
Service: session.py
Rôle:
- Cycle de vie d'une partie côté client : store + adaptateur + transport, créés ensemble,
  libérés ensemble (une seule fois).
- Registre de la session active (au plus une par processus client).

API:
- GameSession(lobby, transport).open() / close()   (ou `async with GameSession(...)`)
- GameSession.run()                                 → boucle de réception (WSTransport)
- open_session(lobby, transport) / get_active_session() / close_active_session()
"""
from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Dict, Optional

from mafia_client.models.game import Action, ActionKind, GameSnapshot, LobbyContext
from mafia_client.services.dispatcher import GameEventAdapter
from mafia_client.services.errors import ProtocolViolationError
from mafia_client.services.game_state import GameStore
from mafia_client.services.transport import Transport

logger = logging.getLogger(__name__)


class GameSession:
    def __init__(
        self,
        lobby: LobbyContext,
        transport: Transport,
        *,
        advance_delay: Optional[float] = None,
        store: Optional[GameStore] = None,
    ) -> None:
        self.lobby = lobby
        self.transport = transport
        self.store = store or GameStore()
        self.adapter = GameEventAdapter(self.store, transport, lobby, advance_delay=advance_delay)
        self._opened = False
        self._closed = False

    @property
    def snapshot(self) -> GameSnapshot:
        return self.store.snapshot

    @property
    def error(self) -> Optional[ProtocolViolationError]:
        return self.adapter.fatal_error

    @property
    def active(self) -> bool:
        return self._opened and not self._closed

    def open(self) -> "GameSession":
        """Abonne l'adaptateur puis amorce le snapshot avec le contexte du lobby."""
        if self._opened:
            return self
        self._opened = True
        self.adapter.attach()
        self.store.dispatch(Action(
            kind=ActionKind.INIT.value,
            alive_players=self.lobby.players,
            role=self.lobby.role,
            nickname=self.lobby.nickname,
        ))
        logger.info("game session opened for %s (%s)", self.lobby.nickname, self.lobby.role)
        return self

    async def run(self) -> None:
        """Boucle de réception ; une violation de protocole ferme la session puis remonte."""
        runner = getattr(self.transport, "run", None)
        if runner is None:
            raise TypeError(f"{type(self.transport).__name__} has no receive loop")
        try:
            await runner()
        except ProtocolViolationError:
            logger.error("game session aborted: %s", self.error)
            raise
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.adapter.detach()
        await self.transport.close()
        logger.info("game session closed for %s", self.lobby.nickname)

    def status(self) -> Dict[str, Any]:
        s = self.snapshot
        return {
            "active": self.active,
            "nickname": self.lobby.nickname,
            "is_host": self.lobby.is_host,
            "phase": s.phase.value,
            "day_number": s.day_number,
            "error": str(self.error) if self.error else None,
            "pending_advance": self.adapter.pending_advance,
        }

    async def __aenter__(self) -> "GameSession":
        return self.open()

    async def __aexit__(self, *exc) -> None:
        await self.close()


# -----------------------------
# Registre de la session active
# -----------------------------
_ACTIVE: Optional[GameSession] = None
_LOCK = RLock()


def get_active_session() -> Optional[GameSession]:
    with _LOCK:
        return _ACTIVE


async def open_session(
    lobby: LobbyContext,
    transport: Transport,
    *,
    advance_delay: Optional[float] = None,
) -> GameSession:
    """Ouvre une nouvelle session (la précédente, s'il y en a une, est fermée d'abord)."""
    global _ACTIVE
    with _LOCK:
        previous, _ACTIVE = _ACTIVE, None
    if previous is not None:
        await previous.close()
    session = GameSession(lobby, transport, advance_delay=advance_delay).open()
    with _LOCK:
        _ACTIVE = session
    return session


async def close_active_session() -> bool:
    global _ACTIVE
    with _LOCK:
        session, _ACTIVE = _ACTIVE, None
    if session is None:
        return False
    await session.close()
    return True
