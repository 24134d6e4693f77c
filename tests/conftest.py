from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from mafia_client.models.game import LobbyContext
from mafia_client.services.session import GameSession
from mafia_client.services.transport import Transport


class FakeTransport(Transport):
    """Transport en mémoire : enregistre les émissions, les tests livrent les événements."""

    def __init__(self) -> None:
        super().__init__()
        self.emitted: List[Tuple[str, Dict[str, Any]]] = []
        self._stop: Optional[asyncio.Event] = None

    def _send(self, event: str, payload: Dict[str, Any]) -> None:
        self.emitted.append((event, payload))

    def emitted_names(self) -> List[str]:
        return [name for name, _ in self.emitted]

    async def run(self) -> None:
        self._stop = asyncio.Event()
        if self._closed:
            return
        await self._stop.wait()

    async def close(self) -> None:
        await super().close()
        if self._stop is not None:
            self._stop.set()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


def make_lobby(role: str = "mafia", nickname: str = "me", players=("A", "B", "C", "me"), is_host: bool = False):
    return LobbyContext(nickname=nickname, role=role, players=tuple(players), is_host=is_host)


def make_session(transport: Transport, advance_delay: float = 0.01, **lobby_kwargs) -> GameSession:
    return GameSession(make_lobby(**lobby_kwargs), transport, advance_delay=advance_delay).open()


@pytest.fixture
def lobby_factory():
    return make_lobby


@pytest.fixture
def session_factory(transport):
    def _factory(**kwargs) -> GameSession:
        return make_session(transport, **kwargs)

    return _factory


@pytest.fixture
def reach_day(transport):
    """Joue une nuit complète jusqu'à l'ouverture de la discussion du jour."""
    def _reach_day(killed: Optional[str] = None) -> None:
        transport.deliver("night-start", {"timeToVote": 30})
        transport.deliver("night-end", {"playerKilled": killed, "isGameOver": False})
        transport.deliver("day-start", {"timeToVote": 60})

    return _reach_day
