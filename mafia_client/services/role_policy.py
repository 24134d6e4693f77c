"""
Service: role_policy.py
Rôle:
- Fonctions pures : rôle + vivants + déjà-enquêtés → cibles votables la nuit.
- Table statique des consignes nocturnes par rôle (affichées telles quelles en `status`).

Un rôle hors de l'ensemble fermé lève `UnknownRoleError` (désaccord de protocole, fatal).
"""
from __future__ import annotations

from typing import Dict, Iterable, Tuple

from mafia_client.models.event import Role
from mafia_client.services.errors import UnknownRoleError

DEAD_STATUS = "You are dead and cannot vote"

NIGHT_STATUS: Dict[Role, str] = {
    Role.MAFIA: "Choose someone to kill",
    Role.DETECTIVE: "Choose someone to investigate",
    Role.MEDIC: "Choose someone to save",
    Role.CIVILIAN: "Wait for the night to end",
    Role.JESTER: "Wait for the night to end",
}


def _as_role(role: str) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise UnknownRoleError(f"Invalid role: {role!r}") from None


def votable_players_for(
    role: str,
    alive_players: Iterable[str],
    nickname: str,
    checked_players: Iterable[str] = (),
) -> Tuple[str, ...]:
    """
    Cibles éligibles pour l'action nocturne du rôle.
    - mafia : tous les vivants sauf soi
    - detective : vivants sauf soi et sauf les joueurs déjà enquêtés
    - medic : tous les vivants (soi compris)
    - civilian / jester : aucune action
    `checked_players` = pseudos déjà enquêtés.
    """
    r = _as_role(role)
    alive = tuple(alive_players)

    if r is Role.MAFIA:
        return tuple(p for p in alive if p != nickname)
    if r is Role.DETECTIVE:
        checked = set(checked_players)
        return tuple(p for p in alive if p != nickname and p not in checked)
    if r is Role.MEDIC:
        return alive
    return ()


def idle_status_for(role: str) -> str:
    return NIGHT_STATUS[_as_role(role)]


def night_status_for(role: str, is_dead: bool) -> str:
    """Consigne nocturne, remplacée par l'avis de décès si le joueur local est mort."""
    if is_dead:
        # le rôle reste validé même mort
        _as_role(role)
        return DEAD_STATUS
    return idle_status_for(role)
