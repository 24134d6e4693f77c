"""
Models / game.py
Rôle:
- Snapshot typé et immuable de l'état visible côté client (écran, phase, vivants, vote en cours...).
- Actions locales soumises au réducteur (`services/game_state.py`).
- Contexte de lobby (pseudo, rôle, joueurs, hôte) qui amorce la partie.

Notes:
- Les modèles sont `frozen` : chaque action acceptée produit une NOUVELLE instance
  (`model_copy(update=...)`), ce qui permet aux consommateurs de comparer par identité.
- Séquences en tuples pour éviter toute mutation en place.
"""
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mafia_client.models.event import DayPeriod, Phase, Role, Screen, VoteType


class CheckedPlayer(BaseModel):
    """Résultat d'une enquête du détective (jamais modifié une fois ajouté)."""
    model_config = ConfigDict(frozen=True)

    nickname: str
    is_mafia: bool


class VotingState(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: VoteType = VoteType.NONE  # role | discussion | trial | ''
    votable_players: Tuple[str, ...] = ()  # cibles éligibles (vide = pas de vote)
    vote: str = ""  # mon choix courant
    players_who_voted: Tuple[str, ...] = ()  # votants déclarés par le serveur
    # issue du vote ; toujours vide : night-end/trial-end remettent VotingState à zéro,
    # la victime n'est lisible que via `status` et `alive_players`
    killed_player: str = ""
    time_to_vote: Optional[int] = None  # durée fournie par le serveur
    is_on_trial: bool = False


class GameSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    screen: Screen = Screen.ENTRY
    day_period: DayPeriod = DayPeriod.DAY
    day_number: int = 1
    alive_players: Tuple[str, ...] = ()
    status: str = ""
    winning_role: str = ""
    winners: Tuple[str, ...] = ()
    phase: Phase = Phase.PENDING
    role: str = ""
    nickname: str = ""
    is_dead: bool = False
    checked_players: Tuple[CheckedPlayer, ...] = ()
    voting_state: VotingState = Field(default_factory=VotingState)

    def checked_nicknames(self) -> Tuple[str, ...]:
        return tuple(p.nickname for p in self.checked_players)

    def to_public(self) -> Dict[str, Any]:
        """Représentation JSON pour l'UI (enums → valeurs)."""
        return self.model_dump(mode="json")


INITIAL_SNAPSHOT = GameSnapshot()


class ActionKind(str, Enum):
    INIT = "init"
    NIGHT_START = "night-start"
    SHOW_SELECTED = "show-selected"
    ABSTAIN = "abstain"
    NIGHT_END = "night-end"
    DAY_START = "day-start"
    DISCUSSION_END = "discussion-end"
    SKIP_TRIAL = "skip-trial"
    TRIAL_START = "trial-start"
    TRIAL_END = "trial-end"
    GAME_OVER = "game-over"
    VOTE_UPDATE = "vote-update"
    SUSPECT_REVEAL = "suspect-reveal"


class Action(BaseModel):
    """
    Action locale soumise au réducteur.
    `kind` reste une chaîne brute : un type inconnu doit atteindre le réducteur
    pour y être signalé comme violation de protocole.
    Les champs dérivés (status, votable_players, is_dead...) sont calculés à la construction
    par l'adaptateur, le réducteur se contente de les appliquer.
    """
    model_config = ConfigDict(frozen=True)

    kind: str
    status: Optional[str] = None
    alive_players: Tuple[str, ...] = ()
    role: str = ""
    nickname: str = ""
    votable_players: Tuple[str, ...] = ()
    time_to_vote: Optional[int] = None
    vote: str = ""
    player_killed: Optional[str] = None
    is_dead: bool = False
    is_on_trial: bool = False
    winning_role: str = ""
    winners: Tuple[str, ...] = ()
    players_who_voted: Tuple[str, ...] = ()
    checked_player: Optional[CheckedPlayer] = None


class LobbyContext(BaseModel):
    """Contexte connu à la sortie du lobby (amorce l'action `init`)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    nickname: str
    role: str
    players: Tuple[str, ...]
    is_host: bool = Field(default=False, alias="isHost")

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        # ValueError pour un rôle hors de l'ensemble fermé (→ 422 côté route)
        return Role(value.strip().lower()).value
