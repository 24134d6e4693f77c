"""
Module routes/game.py
Rôle:
- Surface HTTP locale du client mafia pour la couche d'affichage (navigateur / UI).
- Ouvre/ferme la session de jeu, expose le snapshot courant et relaie les votes du joueur local.

Intégrations:
- session (services/session.py): cycle de vie store + adaptateur + transport.
- connect_ws (services/transport.py): connexion amont vers le serveur de jeu.
- presentation: vues joueurs, règle d'abstention, bandeau de rôle.

Endpoints:
- POST   /game/session  → ouvre une session à partir du contexte de lobby
- DELETE /game/session  → ferme la session active
- GET    /game/state    → snapshot courant
- GET    /game/players  → vues joueurs (table) + abstention possible + bandeau
- POST   /game/vote     → vote local (résultat étiqueté ok/reason)
- POST   /game/abstain  → abstention au procès

Remarques:
- Un vote refusé n'est PAS une erreur HTTP : on renvoie {"ok": false, "reason": ...}.
- Une violation de protocole rend la session inutilisable : /game/state répond 500.
"""
import asyncio
import logging
from typing import Set

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from websockets.exceptions import WebSocketException

from mafia_client.config.settings import settings
from mafia_client.models.game import LobbyContext
from mafia_client.services.errors import VoteOutcome, VoteRejection
from mafia_client.services.presentation import can_abstain, players_view, role_banner
from mafia_client.services.session import (
    GameSession,
    close_active_session,
    get_active_session,
    open_session,
)
from mafia_client.services.transport import connect_ws

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/game", tags=["game"])

# tâches de réception en cours (référence forte jusqu'à leur fin)
_RUNNERS: Set[asyncio.Task] = set()


class VotePayload(BaseModel):
    target: str = Field(..., description="Pseudo du joueur visé")


def _require_session() -> GameSession:
    session = get_active_session()
    if session is None:
        raise HTTPException(404, "no_active_session")
    return session


def _on_runner_done(task: asyncio.Task) -> None:
    _RUNNERS.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("game session receive loop ended with error: %s", exc)


@router.post("/session")
async def start_session(lobby: LobbyContext):
    """
    Ouvre la session de jeu (fin du lobby) :
    - connexion au serveur de jeu (`SERVER_WS_URL`),
    - action `init` (vivants, rôle, pseudo),
    - démarrage de la boucle de réception en tâche de fond.
    """
    try:
        transport = await connect_ws(settings.SERVER_WS_URL)
    except (OSError, WebSocketException) as exc:
        logger.error("cannot reach game server %s: %s", settings.SERVER_WS_URL, exc)
        raise HTTPException(502, "game_server_unreachable")
    session = await open_session(lobby, transport)
    task = asyncio.create_task(session.run())
    _RUNNERS.add(task)
    task.add_done_callback(_on_runner_done)
    return {"ok": True, "session": session.status()}


@router.delete("/session")
async def end_session():
    """Ferme la session active (navigation hors de l'écran de jeu)."""
    closed = await close_active_session()
    return {"ok": True, "closed": closed}


@router.get("/state")
async def game_state():
    session = _require_session()
    if session.error is not None:
        return JSONResponse(status_code=500, content={"ok": False, "error": str(session.error)})
    return {"ok": True, "session": session.status(), "snapshot": session.snapshot.to_public()}


@router.get("/players")
async def game_players():
    """Vues joueurs dans l'ordre du lobby (placement autour de la table)."""
    session = _require_session()
    snapshot = session.snapshot
    return {
        "ok": True,
        "banner": role_banner(snapshot),
        "can_abstain": can_abstain(snapshot),
        "players": [v.to_dict() for v in players_view(snapshot, session.lobby.players)],
    }


@router.post("/vote")
async def vote(p: VotePayload):
    session = get_active_session()
    if session is None or not session.active:
        return VoteOutcome.rejected(VoteRejection.NO_SESSION).to_dict()
    return session.adapter.submit_vote(p.target).to_dict()


@router.post("/abstain")
async def abstain():
    session = get_active_session()
    if session is None or not session.active:
        return VoteOutcome.rejected(VoteRejection.NO_SESSION).to_dict()
    return session.adapter.submit_abstain().to_dict()
