"""
Service: game_state.py
Rôle :
- Réducteur pur `apply(snapshot, action) -> snapshot'` : machine à états de la partie côté client.
- `GameStore` : propriétaire explicite du snapshot courant (pas de singleton de module),
  notifie les abonnés après chaque changement et garde un journal borné des actions appliquées.

Contrat :
- `apply` est synchrone, sans effet de bord et total sur l'ensemble fermé `ActionKind`.
  Un type inconnu lève `UnknownActionError` (violation de protocole, fatale).
- Chaque action acceptée renvoie une NOUVELLE instance ; une action sans effet
  (révélation déjà connue) renvoie l'instance reçue.
- Le transport livre au moins une fois : `GameStore.dispatch` ignore une action de
  changement de phase reçue hors de ses phases attendues (doublon ou événement périmé)
  et renvoie le snapshot courant. Les autres actions hors phase sont appliquées
  avec un avertissement.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from mafia_client.config.settings import settings
from mafia_client.models.event import DayPeriod, Phase, Screen, VoteType, is_real_kill
from mafia_client.models.game import INITIAL_SNAPSHOT, Action, ActionKind, GameSnapshot, VotingState
from mafia_client.services.errors import UnknownActionError
from mafia_client.services.subscription import Subscription

logger = logging.getLogger(__name__)

Listener = Callable[[GameSnapshot, GameSnapshot], None]

# Phases dans lesquelles chaque action est attendue (None = toute phase)
EXPECTED_PHASES: Dict[ActionKind, Optional[FrozenSet[Phase]]] = {
    ActionKind.INIT: frozenset({Phase.PENDING}),
    ActionKind.NIGHT_START: frozenset({Phase.PENDING, Phase.TRIAL_END, Phase.DAY_START}),
    ActionKind.SHOW_SELECTED: None,
    ActionKind.ABSTAIN: None,
    ActionKind.NIGHT_END: frozenset({Phase.NIGHT_START}),
    ActionKind.DAY_START: frozenset({Phase.NIGHT_END}),
    ActionKind.DISCUSSION_END: frozenset({Phase.DAY_START}),
    ActionKind.SKIP_TRIAL: frozenset({Phase.DAY_START}),
    ActionKind.TRIAL_START: frozenset({Phase.DISCUSSION_END}),
    ActionKind.TRIAL_END: frozenset({Phase.TRIAL_START}),
    ActionKind.GAME_OVER: frozenset(Phase) - {Phase.GAME_OVER},
    ActionKind.VOTE_UPDATE: frozenset({Phase.NIGHT_START, Phase.DAY_START, Phase.TRIAL_START}),
    ActionKind.SUSPECT_REVEAL: frozenset({Phase.NIGHT_START, Phase.NIGHT_END}),
}

# Actions qui changent de phase (invalident les tâches planifiées sur la phase précédente)
PHASE_CHANGING: FrozenSet[ActionKind] = frozenset({
    ActionKind.NIGHT_START,
    ActionKind.NIGHT_END,
    ActionKind.DAY_START,
    ActionKind.DISCUSSION_END,
    ActionKind.SKIP_TRIAL,
    ActionKind.TRIAL_START,
    ActionKind.TRIAL_END,
    ActionKind.GAME_OVER,
})


# -----------------------------
# Réducteur
# -----------------------------
def _without_killed(alive, player_killed: Optional[str]):
    if not is_real_kill(player_killed):
        return alive
    return tuple(p for p in alive if p != player_killed)


def _status(state: GameSnapshot, action: Action) -> str:
    return action.status if action.status is not None else state.status


def _init(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "alive_players": tuple(action.alive_players),
        "role": action.role.lower(),
        "nickname": action.nickname,
    })


def _night_start(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "phase": Phase.NIGHT_START,
        "status": _status(state, action),
        "day_period": DayPeriod.NIGHT,
        "screen": Screen.CORE,
        "voting_state": VotingState(
            type=VoteType.ROLE,
            votable_players=tuple(action.votable_players),
            time_to_vote=action.time_to_vote,
        ),
    })


def _show_selected(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "status": _status(state, action),
        "voting_state": state.voting_state.model_copy(update={"vote": action.vote}),
    })


def _abstain(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "status": _status(state, action),
        "voting_state": state.voting_state.model_copy(update={"vote": ""}),
    })


def _resolve_death(state: GameSnapshot, action: Action, phase: Phase) -> GameSnapshot:
    return state.model_copy(update={
        "phase": phase,
        "status": _status(state, action),
        "alive_players": _without_killed(state.alive_players, action.player_killed),
        "is_dead": state.is_dead or action.is_dead,
        "voting_state": VotingState(),
    })


def _night_end(state: GameSnapshot, action: Action) -> GameSnapshot:
    return _resolve_death(state, action, Phase.NIGHT_END)


def _trial_end(state: GameSnapshot, action: Action) -> GameSnapshot:
    return _resolve_death(state, action, Phase.TRIAL_END)


def _day_start(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "phase": Phase.DAY_START,
        "day_period": DayPeriod.DAY,
        "day_number": state.day_number + 1,
        "status": _status(state, action),
        "voting_state": VotingState(
            type=VoteType.DISCUSSION,
            votable_players=tuple(action.votable_players),
            time_to_vote=action.time_to_vote,
        ),
    })


def _discussion_end(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "phase": Phase.DISCUSSION_END,
        "status": _status(state, action),
        "voting_state": VotingState(
            type=VoteType.TRIAL,
            votable_players=tuple(action.votable_players),
            is_on_trial=action.is_on_trial,
        ),
    })


def _skip_trial(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "status": _status(state, action),
        "voting_state": VotingState(),
    })


def _trial_start(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "phase": Phase.TRIAL_START,
        "status": _status(state, action),
        "voting_state": state.voting_state.model_copy(update={"time_to_vote": action.time_to_vote}),
    })


def _game_over(state: GameSnapshot, action: Action) -> GameSnapshot:
    winning_role = action.winning_role.lower()
    return state.model_copy(update={
        "phase": Phase.GAME_OVER,
        "screen": Screen.END,
        "status": f"{winning_role} wins!",
        "winning_role": winning_role,
        "winners": tuple(action.winners),
    })


def _vote_update(state: GameSnapshot, action: Action) -> GameSnapshot:
    return state.model_copy(update={
        "voting_state": state.voting_state.model_copy(
            update={"players_who_voted": tuple(action.players_who_voted)}
        ),
    })


def _suspect_reveal(state: GameSnapshot, action: Action) -> GameSnapshot:
    checked = action.checked_player
    if checked is None or checked.nickname in state.checked_nicknames():
        return state
    return state.model_copy(update={"checked_players": state.checked_players + (checked,)})


_REDUCERS: Dict[ActionKind, Callable[[GameSnapshot, Action], GameSnapshot]] = {
    ActionKind.INIT: _init,
    ActionKind.NIGHT_START: _night_start,
    ActionKind.SHOW_SELECTED: _show_selected,
    ActionKind.ABSTAIN: _abstain,
    ActionKind.NIGHT_END: _night_end,
    ActionKind.DAY_START: _day_start,
    ActionKind.DISCUSSION_END: _discussion_end,
    ActionKind.SKIP_TRIAL: _skip_trial,
    ActionKind.TRIAL_START: _trial_start,
    ActionKind.TRIAL_END: _trial_end,
    ActionKind.GAME_OVER: _game_over,
    ActionKind.VOTE_UPDATE: _vote_update,
    ActionKind.SUSPECT_REVEAL: _suspect_reveal,
}


def _kind_of(action: Action) -> ActionKind:
    try:
        return ActionKind(action.kind)
    except ValueError:
        raise UnknownActionError(f"Invalid Game State reducer action: {action.kind}") from None


def apply(state: GameSnapshot, action: Action) -> GameSnapshot:
    """Fonction de transition : (snapshot courant, action) → nouveau snapshot."""
    return _REDUCERS[_kind_of(action)](state, action)


def is_expected(state: GameSnapshot, kind: ActionKind) -> bool:
    """Vrai si `kind` est attendu dans la phase courante de `state`."""
    expected = EXPECTED_PHASES[kind]
    if expected is not None and state.phase not in expected:
        return False
    if kind == ActionKind.SKIP_TRIAL:
        # un seul abandon de procès par vote de discussion
        return state.voting_state.type == VoteType.DISCUSSION
    if kind == ActionKind.NIGHT_START and state.phase == Phase.DAY_START:
        # la nuit ne suit le jour que si le procès a été abandonné
        return state.voting_state.type == VoteType.NONE
    return True


# -----------------------------
# Store
# -----------------------------
@dataclass
class GameStore:
    journal_limit: int = field(default_factory=lambda: settings.ACTION_JOURNAL_LIMIT)
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    _snapshot: GameSnapshot = field(default=INITIAL_SNAPSHOT, init=False)
    _listeners: List[Listener] = field(default_factory=list, init=False, repr=False)
    _journal: List[Dict[str, Any]] = field(default_factory=list, init=False, repr=False)
    _phase_token: int = field(default=0, init=False)

    @property
    def snapshot(self) -> GameSnapshot:
        return self._snapshot

    @property
    def phase_token(self) -> int:
        """Identité de la phase courante (incrémentée à chaque action qui change de phase)."""
        return self._phase_token

    def dispatch(self, action: Action) -> GameSnapshot:
        """
        Applique une action, notifie les abonnés si le snapshot a changé et le renvoie.
        Une action de changement de phase hors de ses phases attendues est ignorée
        (le snapshot courant est renvoyé tel quel, sans notification).
        """
        with self._lock:
            kind = _kind_of(action)
            previous = self._snapshot
            if not is_expected(previous, kind):
                if kind in PHASE_CHANGING:
                    logger.debug(
                        "action '%s' ignored in phase '%s' (duplicate or stale)",
                        kind.value, previous.phase.value,
                    )
                    return previous
                logger.warning(
                    "action '%s' received in unexpected phase '%s'", kind.value, previous.phase.value
                )

            current = apply(previous, action)
            if current is previous:
                logger.debug("action '%s' left the snapshot unchanged", kind.value)
                return current

            self._snapshot = current
            if kind in PHASE_CHANGING:
                self._phase_token += 1
            self._log_action_nolock(kind, current)
            listeners = list(self._listeners)

        for listener in listeners:
            listener(previous, current)
        return current

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            self._listeners.append(listener)

        def _release() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return Subscription(_release, label=getattr(listener, "__name__", "listener"))

    # -----------------------------
    # Journal d'actions (mémoire uniquement)
    # -----------------------------
    def _log_action_nolock(self, kind: ActionKind, current: GameSnapshot) -> None:
        self._journal.append({
            "kind": kind.value,
            "phase": current.phase.value,
            "phase_token": self._phase_token,
            "ts": time.time(),
        })
        overflow = len(self._journal) - self.journal_limit
        if overflow > 0:
            del self._journal[:overflow]

    def journal(self) -> List[Dict[str, Any]]:
        """Retourne une copie des entrées du journal courant."""
        with self._lock:
            return [entry.copy() for entry in self._journal]
