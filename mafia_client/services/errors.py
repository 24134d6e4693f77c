"""
Service: errors.py
Rôle:
- Distinguer les erreurs de protocole (fatales : client et serveur ne parlent pas la même version)
  des refus d'actions locales (récupérables, silencieux).

- ProtocolViolationError et sous-classes → on interrompt la session locale.
- VoteRejection / VoteOutcome → résultat étiqueté, jamais une exception.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ProtocolViolationError(RuntimeError):
    """Désaccord de protocole avec le serveur (action, rôle ou payload hors vocabulaire)."""


class UnknownActionError(ProtocolViolationError):
    """Type d'action inconnu du réducteur."""


class UnknownRoleError(ProtocolViolationError):
    """Rôle hors de l'ensemble fermé attribué par le serveur."""


class InvalidPayloadError(ProtocolViolationError):
    """Payload entrant non conforme au schéma attendu."""


class VoteRejection(str, Enum):
    NO_SESSION = "no_session"
    GAME_OVER = "game_over"
    NO_ACTIVE_VOTE = "no_active_vote"
    DEAD = "dead"
    ON_TRIAL = "on_trial"
    NOT_VOTABLE = "not_votable"
    ALREADY_SELECTED = "already_selected"
    DETECTIVE_LOCKED = "detective_locked"
    ABSTAIN_UNAVAILABLE = "abstain_unavailable"


@dataclass(frozen=True)
class VoteOutcome:
    ok: bool
    reason: Optional[VoteRejection] = None
    event: Optional[str] = None

    @classmethod
    def accepted(cls, event: str) -> "VoteOutcome":
        return cls(ok=True, event=event)

    @classmethod
    def rejected(cls, reason: VoteRejection) -> "VoteOutcome":
        return cls(ok=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "event": self.event}
        return {"ok": False, "reason": self.reason.value if self.reason else None}
