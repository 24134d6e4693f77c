"""
Models / event.py
Rôle:
- Vocabulaire fermé des notifications échangées avec le serveur de jeu (entrantes / sortantes).
- Énumérations de jeu partagées (rôles, phases, écrans, type de vote).
- Modèles Pydantic des payloads entrants (clés camelCase côté fil).

Notes:
- Un payload invalide ou un nom d'événement hors vocabulaire = désaccord de protocole (fatal).
- `ABSTAIN_VOTE` est la cible réservée "abstention" : jamais un vrai joueur.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mafia_client.services.errors import InvalidPayloadError

# Cible de vote réservée (abstention au procès)
ABSTAIN_VOTE = "abstain Vote"


class Role(str, Enum):
    MAFIA = "mafia"
    DETECTIVE = "detective"
    MEDIC = "medic"
    CIVILIAN = "civilian"
    JESTER = "jester"


class Phase(str, Enum):
    PENDING = "pending"
    NIGHT_START = "night-start"
    NIGHT_END = "night-end"
    DAY_START = "day-start"
    DISCUSSION_END = "discussion-end"
    TRIAL_START = "trial-start"
    TRIAL_END = "trial-end"
    GAME_OVER = "game-over"


class Screen(str, Enum):
    ENTRY = "entry"
    CORE = "core"
    END = "end"


class DayPeriod(str, Enum):
    DAY = "day"
    NIGHT = "night"


class VoteType(str, Enum):
    NONE = ""
    ROLE = "role"
    DISCUSSION = "discussion"
    TRIAL = "trial"


class InboundEvent(str, Enum):
    NIGHT_START = "night-start"
    NIGHT_END = "night-end"
    DAY_START = "day-start"
    DISCUSSION_END = "discussion-end"
    TRIAL_START = "trial-start"
    TRIAL_END = "trial-end"
    GAME_OVER = "game-over"
    DAY_VOTE_UPDATE = "day-vote-update"
    TRIAL_VOTE_UPDATE = "trial-vote-update"
    SUSPECT_REVEAL = "suspect-reveal"


class OutboundEvent(str, Enum):
    DAY_VOTE = "day-vote"
    TRIAL_VOTE = "trial-vote"
    START_DAY = "start-day"
    START_NIGHT = "start-night"
    START_TRIAL = "start-trial"

    @staticmethod
    def role_vote(role: str) -> str:
        """Vote nocturne propre au rôle (`mafia-vote`, `detective-vote`, ...)."""
        return f"{role}-vote"


# -----------------------------
# Payloads entrants
# -----------------------------
class _Payload(BaseModel):
    # les clés inconnues sont tolérées (le serveur peut enrichir ses messages)
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class TimedPhasePayload(_Payload):
    """night-start / day-start / trial-start"""
    time_to_vote: Optional[int] = Field(default=None, alias="timeToVote")


class DeathPayload(_Payload):
    """night-end / trial-end"""
    player_killed: Optional[str] = Field(default=None, alias="playerKilled")
    is_game_over: bool = Field(default=False, alias="isGameOver")


class DiscussionEndPayload(_Payload):
    player_on_trial: Optional[str] = Field(default=None, alias="playerOnTrial")


class GameOverPayload(_Payload):
    winning_role: str = Field(alias="winningRole")
    winners: List[str] = Field(default_factory=list)


class VoteUpdatePayload(_Payload):
    # seul l'ensemble des clés (qui a voté) est consommé
    vote_map: Dict[str, Any] = Field(default_factory=dict, alias="voteMap")


class SuspectRevealPayload(_Payload):
    nickname: str
    is_mafia: bool = Field(alias="isMafia")


PAYLOAD_MODELS: Dict[InboundEvent, Type[_Payload]] = {
    InboundEvent.NIGHT_START: TimedPhasePayload,
    InboundEvent.NIGHT_END: DeathPayload,
    InboundEvent.DAY_START: TimedPhasePayload,
    InboundEvent.DISCUSSION_END: DiscussionEndPayload,
    InboundEvent.TRIAL_START: TimedPhasePayload,
    InboundEvent.TRIAL_END: DeathPayload,
    InboundEvent.GAME_OVER: GameOverPayload,
    InboundEvent.DAY_VOTE_UPDATE: VoteUpdatePayload,
    InboundEvent.TRIAL_VOTE_UPDATE: VoteUpdatePayload,
    InboundEvent.SUSPECT_REVEAL: SuspectRevealPayload,
}


def parse_payload(event: InboundEvent, payload: Optional[Dict[str, Any]]) -> _Payload:
    """Valide le payload brut d'un événement entrant (InvalidPayloadError si non conforme)."""
    model = PAYLOAD_MODELS[event]
    try:
        return model.model_validate(payload or {})
    except ValidationError as exc:
        raise InvalidPayloadError(f"Invalid payload for '{event.value}': {exc}") from exc


def is_real_kill(player_killed: Optional[str]) -> bool:
    """True si la cible annoncée désigne un vrai joueur (ni None, ni abstention)."""
    return bool(player_killed) and player_killed != ABSTAIN_VOTE
