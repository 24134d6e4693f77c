"""
Service: presentation.py
Rôle:
- Dérivations en lecture seule du snapshot pour les couches d'affichage
  (table de jeu, pastilles joueurs, bouton d'abstention, bandeau d'entrée).
- Les mêmes règles servent de garde-fou côté adaptateur avant d'émettre un vote.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from mafia_client.models.event import Phase, Role, VoteType
from mafia_client.models.game import GameSnapshot


@dataclass(frozen=True)
class PlayerView:
    name: str
    label: str
    is_self: bool
    is_dead: bool
    is_hoverable: bool
    has_voted: bool
    is_vote_target: bool
    on_trial: bool
    detective_note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_hoverable(snapshot: GameSnapshot, name: str) -> bool:
    """Un joueur est cliquable si je peux voter pour lui dans le tour courant."""
    voting = snapshot.voting_state
    return not voting.is_on_trial and not snapshot.is_dead and name in voting.votable_players


def detective_note(snapshot: GameSnapshot, name: str) -> Optional[str]:
    if snapshot.role != Role.DETECTIVE.value:
        return None
    for checked in snapshot.checked_players:
        if checked.nickname == name:
            return " (Mafia)" if checked.is_mafia else " (Not Mafia)"
    return None


def player_view(snapshot: GameSnapshot, name: str) -> PlayerView:
    voting = snapshot.voting_state
    # mort côté table != `is_dead` (qui ne concerne que le joueur local)
    dead = name not in snapshot.alive_players
    return PlayerView(
        name=name,
        label=name + (" (DEAD)" if dead else ""),
        is_self=name == snapshot.nickname,
        is_dead=dead,
        is_hoverable=is_hoverable(snapshot, name),
        has_voted=name in voting.players_who_voted,
        is_vote_target=voting.vote == name,
        on_trial=voting.type == VoteType.TRIAL and name in voting.votable_players,
        detective_note=detective_note(snapshot, name),
    )


def players_view(snapshot: GameSnapshot, roster: Iterable[str]) -> List[PlayerView]:
    """Vues joueurs dans l'ordre de placement autour de la table."""
    return [player_view(snapshot, name) for name in roster]


def can_abstain(snapshot: GameSnapshot) -> bool:
    return (
        snapshot.phase == Phase.TRIAL_START
        and not snapshot.is_dead
        and not snapshot.voting_state.is_on_trial
    )


def role_banner(snapshot: GameSnapshot) -> str:
    return f"You are a {snapshot.role}"
