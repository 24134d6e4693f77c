"""
Service: dispatcher.py
Rôle:
- Pont entre le flux d'événements nommés du transport et le réducteur (`GameStore`).
- Traduit chaque événement entrant en action locale (avec la politique de rôle si besoin).
- Effets de bord hors réducteur :
  * relance automatique de la partie par l'hôte (une émission différée par phase résolue) ;
  * soumission du vote local (émission + mise à jour optimiste `show-selected` / `abstain`).

Relance automatique:
- Tâche asyncio liée à l'identité de phase (`store.phase_token`).
- Annulée dès qu'un événement de phase plus récent arrive, sur `game-over` et au `detach()`.
- Une tâche qui se réveille sur une phase périmée est ignorée (log debug).
- Un événement redélivré que le store ignore ne replanifie ni n'annule rien.

Votes:
- Une abstention vaut pour la phase courante : une seconde abstention est refusée
  (`already_selected`) tant que le joueur n'a pas voté entre-temps.

API:
- attach() / detach()           → abonnements explicites, libérés une seule fois
- submit_vote(target)           → VoteOutcome
- submit_abstain()              → VoteOutcome
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from mafia_client.config.settings import settings
from mafia_client.models.event import (
    ABSTAIN_VOTE,
    DeathPayload,
    DiscussionEndPayload,
    GameOverPayload,
    InboundEvent,
    OutboundEvent,
    Phase,
    Role,
    SuspectRevealPayload,
    TimedPhasePayload,
    VoteType,
    VoteUpdatePayload,
    is_real_kill,
    parse_payload,
)
from mafia_client.models.game import Action, ActionKind, CheckedPlayer, GameSnapshot, LobbyContext
from mafia_client.services.errors import ProtocolViolationError, VoteOutcome, VoteRejection
from mafia_client.services.game_state import GameStore
from mafia_client.services.presentation import can_abstain
from mafia_client.services.role_policy import DEAD_STATUS, night_status_for, votable_players_for
from mafia_client.services.subscription import Subscription
from mafia_client.services.transport import Transport

logger = logging.getLogger(__name__)

class GameEventAdapter:
    def __init__(
        self,
        store: GameStore,
        transport: Transport,
        lobby: LobbyContext,
        *,
        advance_delay: Optional[float] = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.lobby = lobby
        self.advance_delay = settings.AUTO_ADVANCE_DELAY if advance_delay is None else advance_delay
        self.fatal_error: Optional[ProtocolViolationError] = None
        self._subscriptions: List[Subscription] = []
        self._advance_task: Optional[asyncio.Task] = None
        self._advance_token: Optional[int] = None
        # identité de la phase dans laquelle le joueur local s'est abstenu
        self._abstained_token: Optional[int] = None

    # ---------------- abonnements ----------------
    def _handlers(self) -> Dict[InboundEvent, Callable[[Any], None]]:
        return {
            InboundEvent.NIGHT_START: self._on_night_start,
            InboundEvent.NIGHT_END: self._on_night_end,
            InboundEvent.DAY_START: self._on_day_start,
            InboundEvent.DISCUSSION_END: self._on_discussion_end,
            InboundEvent.TRIAL_START: self._on_trial_start,
            InboundEvent.TRIAL_END: self._on_trial_end,
            InboundEvent.GAME_OVER: self._on_game_over,
            InboundEvent.DAY_VOTE_UPDATE: self._on_vote_update,
            InboundEvent.TRIAL_VOTE_UPDATE: self._on_vote_update,
            InboundEvent.SUSPECT_REVEAL: self._on_suspect_reveal,
        }

    def attach(self) -> None:
        """Abonne chaque handler une seule fois (un second appel est sans effet)."""
        if self._subscriptions:
            return
        for event, handler in self._handlers().items():
            self._subscriptions.append(self.transport.on(event.value, self._guarded(event, handler)))

    def detach(self) -> None:
        self.cancel_advance()
        subs, self._subscriptions = self._subscriptions, []
        for sub in subs:
            sub.unsubscribe()

    def _guarded(self, event: InboundEvent, handler: Callable[[Any], None]) -> Callable[[Dict[str, Any]], None]:
        def _handle(raw: Dict[str, Any]) -> None:
            if self.fatal_error is not None:
                logger.debug("session failed, ignoring '%s'", event.value)
                return
            token = self.store.phase_token
            try:
                handler(parse_payload(event, raw))
            except ProtocolViolationError as exc:
                logger.error("protocol violation on '%s': %s", event.value, exc)
                self.cancel_advance()
                self.fatal_error = exc
                raise
            if self.store.phase_token != token and self._advance_token != self.store.phase_token:
                # une nouvelle phase rend caduque toute relance planifiée avant elle
                self.cancel_advance()

        _handle.__name__ = f"on_{event.name.lower()}"
        return _handle

    def _dispatch(self, kind: ActionKind, **fields: Any) -> GameSnapshot:
        return self.store.dispatch(Action(kind=kind.value, **fields))

    def _applied(self, kind: ActionKind, **fields: Any) -> bool:
        """Dispatch ; faux si le store a ignoré l'action (doublon ou événement périmé)."""
        before = self.store.snapshot
        return self._dispatch(kind, **fields) is not before

    # ---------------- événements entrants ----------------
    def _on_night_start(self, p: TimedPhasePayload) -> None:
        s = self.store.snapshot
        self._dispatch(
            ActionKind.NIGHT_START,
            status=night_status_for(s.role, s.is_dead),
            votable_players=votable_players_for(s.role, s.alive_players, s.nickname, s.checked_nicknames()),
            time_to_vote=p.time_to_vote,
        )

    def _on_night_end(self, p: DeathPayload) -> None:
        s = self.store.snapshot
        killed = p.player_killed
        if is_real_kill(killed):
            status = f"{killed} was killed in the night..."
        else:
            status = "Nobody died in the night!"
        applied = self._applied(
            ActionKind.NIGHT_END,
            status=status,
            player_killed=killed,
            is_dead=killed == s.nickname,
        )
        if applied and not p.is_game_over:
            self._schedule_advance(OutboundEvent.START_DAY)

    def _on_day_start(self, p: TimedPhasePayload) -> None:
        s = self.store.snapshot
        self._dispatch(
            ActionKind.DAY_START,
            status=DEAD_STATUS if s.is_dead else "Select someone to be on trial",
            votable_players=tuple(name for name in s.alive_players if name != s.nickname),
            time_to_vote=p.time_to_vote,
        )

    def _on_discussion_end(self, p: DiscussionEndPayload) -> None:
        target = p.player_on_trial
        if target is None:
            # personne n'est nominé : pas de procès, retour à la nuit
            if self._applied(ActionKind.SKIP_TRIAL, status="No one is on trial"):
                self._schedule_advance(OutboundEvent.START_NIGHT)
            return

        if self._applied(
            ActionKind.DISCUSSION_END,
            status=f"{target} is on trial",
            votable_players=(target,),
            is_on_trial=target == self.store.snapshot.nickname,
        ):
            self._schedule_advance(OutboundEvent.START_TRIAL)

    def _on_trial_start(self, p: TimedPhasePayload) -> None:
        s = self.store.snapshot
        if s.is_dead:
            status = DEAD_STATUS
        elif s.voting_state.is_on_trial:
            status = "You are on trial"
        else:
            status = "Vote for the player on trial to kill them"
        self._dispatch(ActionKind.TRIAL_START, status=status, time_to_vote=p.time_to_vote)

    def _on_trial_end(self, p: DeathPayload) -> None:
        s = self.store.snapshot
        killed = p.player_killed
        if is_real_kill(killed):
            status = f"The town voted to kill {killed}!"
        else:
            status = "Nobody was killed in the Trial!"
        applied = self._applied(
            ActionKind.TRIAL_END,
            status=status,
            player_killed=killed,
            is_dead=killed == s.nickname,
        )
        if applied and not p.is_game_over:
            self._schedule_advance(OutboundEvent.START_NIGHT)

    def _on_game_over(self, p: GameOverPayload) -> None:
        self._dispatch(
            ActionKind.GAME_OVER,
            winning_role=p.winning_role.lower(),
            winners=tuple(p.winners),
        )

    def _on_vote_update(self, p: VoteUpdatePayload) -> None:
        self._dispatch(ActionKind.VOTE_UPDATE, players_who_voted=tuple(p.vote_map.keys()))

    def _on_suspect_reveal(self, p: SuspectRevealPayload) -> None:
        if self.store.snapshot.role != Role.DETECTIVE.value:
            logger.warning("suspect-reveal received by a non-detective client, dropped")
            return
        self._dispatch(
            ActionKind.SUSPECT_REVEAL,
            checked_player=CheckedPlayer(nickname=p.nickname, is_mafia=p.is_mafia),
        )

    # ---------------- relance automatique (hôte) ----------------
    @property
    def pending_advance(self) -> bool:
        return self._advance_task is not None and not self._advance_task.done()

    def _schedule_advance(self, event: OutboundEvent) -> None:
        if not self.lobby.is_host:
            return
        self.cancel_advance()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("no running event loop, '%s' auto-advance skipped", event.value)
            return
        token = self.store.phase_token
        self._advance_token = token
        self._advance_task = loop.create_task(self._advance_after_delay(event, token))

    async def _advance_after_delay(self, event: OutboundEvent, token: int) -> None:
        try:
            await asyncio.sleep(self.advance_delay)
        except asyncio.CancelledError:
            return
        s = self.store.snapshot
        if self.store.phase_token != token or s.phase == Phase.GAME_OVER:
            logger.debug("stale auto-advance '%s' discarded", event.value)
            return
        logger.info("host auto-advance: %s", event.value)
        self.transport.emit(event.value)

    def cancel_advance(self) -> None:
        task, self._advance_task = self._advance_task, None
        self._advance_token = None
        if task is not None and not task.done():
            task.cancel()

    # ---------------- votes locaux ----------------
    def _vote_rejection(self, s: GameSnapshot, target: str) -> Optional[VoteRejection]:
        voting = s.voting_state
        if self.transport.closed or self.fatal_error is not None:
            return VoteRejection.NO_SESSION
        if s.phase == Phase.GAME_OVER:
            return VoteRejection.GAME_OVER
        if voting.type == VoteType.NONE or not voting.votable_players:
            return VoteRejection.NO_ACTIVE_VOTE
        if s.is_dead:
            return VoteRejection.DEAD
        if voting.is_on_trial:
            return VoteRejection.ON_TRIAL
        if target not in voting.votable_players:
            return VoteRejection.NOT_VOTABLE
        if voting.vote == target:
            return VoteRejection.ALREADY_SELECTED
        if s.role == Role.DETECTIVE.value and voting.type == VoteType.ROLE and voting.vote:
            # une enquête engagée ne se change pas avant le tour suivant
            return VoteRejection.DETECTIVE_LOCKED
        return None

    def submit_vote(self, target: str) -> VoteOutcome:
        s = self.store.snapshot
        reason = self._vote_rejection(s, target)
        if reason is not None:
            logger.debug("vote for %r rejected: %s", target, reason.value)
            return VoteOutcome.rejected(reason)

        vote_type = s.voting_state.type
        if vote_type == VoteType.ROLE:
            event, status = OutboundEvent.role_vote(s.role), f"Selected {target} for ability"
        elif vote_type == VoteType.DISCUSSION:
            event, status = OutboundEvent.DAY_VOTE.value, f"Voted {target} for trial"
        else:
            event, status = OutboundEvent.TRIAL_VOTE.value, f"Voted to kill {target}"

        self.transport.emit(event, {"votingFor": target})
        self._abstained_token = None
        self._dispatch(ActionKind.SHOW_SELECTED, status=status, vote=target)
        return VoteOutcome.accepted(event)

    def submit_abstain(self) -> VoteOutcome:
        s = self.store.snapshot
        if self.transport.closed or self.fatal_error is not None:
            return VoteOutcome.rejected(VoteRejection.NO_SESSION)
        if not can_abstain(s):
            logger.debug("abstain rejected in phase %s", s.phase.value)
            return VoteOutcome.rejected(VoteRejection.ABSTAIN_UNAVAILABLE)
        if self._abstained_token == self.store.phase_token:
            return VoteOutcome.rejected(VoteRejection.ALREADY_SELECTED)

        event = OutboundEvent.TRIAL_VOTE.value
        self.transport.emit(event, {"votingFor": ABSTAIN_VOTE})
        self._abstained_token = self.store.phase_token
        self._dispatch(ActionKind.ABSTAIN, status="Voted to Abstain")
        return VoteOutcome.accepted(event)
