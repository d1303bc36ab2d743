"""Client-side state for one remote match.

The server owns the turn lock and the confirmed scores. A session mirrors
them, lets the player whose turn it is enter darts, and shows a saved visit
immediately as a :class:`PendingVisit` overlay until the server confirms or
rejects it.

``service`` is anything with ``submit_visit(match_id, visit_id=..., darts=...,
score_before=...)`` and ``fetch_match(match_id)`` returning the match payload
(``RemoteMatch.to_dict()``); failures are raised as ``DartFreakError`` or
``ConnectionError``.
"""
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from dartfreak.errors import DartFreakError, MatchCancelled, MatchExpired
from .checkout import MAX_CHECKOUT, MIN_CHECKOUT, format_checkout, suggest_checkout
from .rules import score_countdown_visit
from .throws import Multiplier, Throw
from .turn import TurnAccumulator


class SessionState(str, Enum):
    WAITING = 'waiting'
    MY_TURN = 'my_turn'
    OPPONENT_TURN = 'opponent_turn'
    SUBMITTING = 'submitting'
    COMPLETED = 'completed'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'


TERMINAL_STATES = (SessionState.COMPLETED, SessionState.EXPIRED, SessionState.CANCELLED)


@dataclass(frozen=True)
class PendingVisit:
    visit_id: str
    player_id: str
    darts: Tuple[Throw, ...]
    score_before: int
    score_after: int
    is_bust: bool
    is_finish: bool
    created_at: float = field(default_factory=time.time)

    def to_request(self) -> Dict[str, Any]:
        return {
            'visit_id': self.visit_id,
            'darts': [d.to_dict() for d in self.darts],
            'score_before': self.score_before,
        }


class RemoteGameplaySession:

    def __init__(self, match: Dict[str, Any], user_id, service,
                 clock: Callable[[], float] = time.time,
                 on_event: Optional[Callable[[str, Dict[str, Any]], None]] = None):
        self.match_id = match['id']
        self.user_id = str(user_id)
        self.service = service
        self.clock = clock
        self.on_event = on_event
        self.turn = TurnAccumulator()
        self.pending: Optional[PendingVisit] = None
        self.last_error: Optional[str] = None
        self.revealed_visit: Optional[Dict[str, Any]] = None
        self._retry_visit_id: Optional[str] = None
        self._retry_darts: Tuple[Throw, ...] = ()
        self._seen_visit_id: Optional[str] = None
        self._expired_locally = False
        self.status = 'pending'
        self.confirmed_scores: Dict[str, int] = {}
        self.legs_won: Dict[str, int] = {}
        self.current_player_id: Optional[str] = None
        self.winner_id: Optional[str] = None
        self.deadline: Optional[float] = None
        self.game_type = str(match.get('game_type') or '501')
        self.match_format = int(match.get('match_format') or 1)
        last = match.get('last_visit') or {}
        # a visit already on the server when the session opens is history, not news
        self._seen_visit_id = last.get('visit_id')
        self.apply_match_update(match)

    # ---- observers ----

    @property
    def state(self) -> SessionState:
        if self.status == 'completed':
            return SessionState.COMPLETED
        if self.status == 'cancelled':
            return SessionState.CANCELLED
        if self.status == 'expired' or self._expired_locally:
            return SessionState.EXPIRED
        if self.pending is not None:
            return SessionState.SUBMITTING
        if self.status != 'in_progress':
            return SessionState.WAITING
        if self.current_player_id == self.user_id:
            return SessionState.MY_TURN
        return SessionState.OPPONENT_TURN

    @property
    def is_my_turn(self) -> bool:
        return self.state is SessionState.MY_TURN

    @property
    def is_over(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def displayed_scores(self) -> Dict[str, int]:
        """Confirmed scores with the in-flight visit applied on top."""
        scores = dict(self.confirmed_scores)
        if self.pending is not None:
            scores[self.pending.player_id] = self.pending.score_after
        return scores

    @property
    def confirmed_score(self) -> int:
        # no score yet means nothing has been thrown
        return self.confirmed_scores.get(self.user_id, int(self.game_type))

    @property
    def my_score(self) -> int:
        return self.displayed_scores.get(self.user_id, self.confirmed_score)

    @property
    def current_throw(self) -> List[Throw]:
        return self.turn.darts

    @property
    def current_throw_total(self) -> int:
        return self.turn.current_total()

    def _preview(self):
        if self.turn.is_empty:
            return None
        return score_countdown_visit(self.confirmed_score, self.turn.darts)

    @property
    def is_bust(self) -> bool:
        preview = self._preview()
        return bool(preview and preview[1])

    @property
    def is_winning_throw(self) -> bool:
        preview = self._preview()
        return bool(preview and preview[2])

    @property
    def suggested_checkout(self) -> Optional[List[str]]:
        if not self.is_my_turn:
            return None
        remaining = self.confirmed_score - self.current_throw_total
        darts_left = self.turn.darts_remaining
        if darts_left == 0 or not MIN_CHECKOUT <= remaining <= MAX_CHECKOUT:
            return None
        return suggest_checkout(remaining, darts_left)

    @property
    def suggested_checkout_text(self) -> Optional[str]:
        return format_checkout(self.suggested_checkout)

    # ---- dart entry, only while it is our turn ----

    def record_throw(self, base_value: int, multiplier: int = Multiplier.SINGLE) -> Optional[Throw]:
        dart = Throw(base_value, multiplier)
        if not self.is_my_turn:
            return None
        return self.turn.record(dart)

    def select_dart(self, index: int) -> Optional[int]:
        if not self.is_my_turn:
            return None
        return self.turn.select_dart(index)

    def undo(self) -> Optional[Throw]:
        if not self.is_my_turn:
            return None
        return self.turn.undo()

    def clear_throw(self) -> None:
        if self.is_my_turn:
            self.turn.clear()

    # ---- submission ----

    def begin_visit(self) -> Optional[PendingVisit]:
        """Move the entered darts into the pending overlay."""
        if not self.is_my_turn or self.turn.is_empty:
            return None
        darts = tuple(self.turn.darts)
        before = self.confirmed_score
        after, bust, finish = score_countdown_visit(before, darts)
        # resubmitting the same darts after a failure keeps the id so the server can dedupe
        if self._retry_visit_id and darts == self._retry_darts:
            visit_id = self._retry_visit_id
        else:
            visit_id = uuid.uuid4().hex
        self.pending = PendingVisit(visit_id, self.user_id, darts, before, after, bust, finish, self.clock())
        self.turn.clear()
        self.last_error = None
        return self.pending

    def save_visit(self) -> bool:
        """Submit the current darts. Returns True when the server accepted them."""
        pending = self.begin_visit()
        if pending is None:
            return False
        try:
            payload = self.service.submit_visit(self.match_id, **pending.to_request())
        except (DartFreakError, ConnectionError, TimeoutError) as exc:
            self.reject_visit(exc)
            return False
        self.confirm_visit(payload)
        return True

    def confirm_visit(self, payload: Dict[str, Any]) -> None:
        pending, self.pending = self.pending, None
        if pending is not None:
            self._seen_visit_id = pending.visit_id
            self.confirmed_scores[pending.player_id] = pending.score_after
        self._retry_visit_id = None
        self._retry_darts = ()
        if payload:
            self.apply_match_update(payload)
        self._emit('visit_confirmed', visit_id=pending.visit_id if pending else None)

    def reject_visit(self, error) -> None:
        """Roll the overlay back and put the darts back in the accumulator."""
        pending, self.pending = self.pending, None
        self.last_error = str(getattr(error, 'message', None) or error)
        if isinstance(error, MatchExpired):
            self.status = 'expired'
        elif isinstance(error, MatchCancelled):
            self.status = 'cancelled'
        if pending is not None:
            self._retry_visit_id = pending.visit_id
            self._retry_darts = pending.darts
            if not self.is_over:
                self.turn.restore(pending.darts)
        self._emit('visit_rejected', error=self.last_error)

    # ---- server updates ----

    def apply_match_update(self, payload: Dict[str, Any]) -> None:
        """Apply a realtime or polled match payload. Never raises on terminal states."""
        if not payload:
            return
        was_over = self.is_over
        if payload.get('status'):
            self.status = payload['status']
        current = payload.get('current_player_id')
        self.current_player_id = str(current) if current is not None else None
        if payload.get('scores'):
            self.confirmed_scores = {str(k): int(v) for k, v in payload['scores'].items()}
        if payload.get('legs_won') is not None:
            self.legs_won = {str(k): int(v) for k, v in payload['legs_won'].items()}
        winner = payload.get('winner_id')
        self.winner_id = str(winner) if winner is not None else None
        if self.status == 'pending':
            self.deadline = payload.get('challenge_expires_at')
        elif self.status in ('ready', 'lobby'):
            self.deadline = payload.get('join_window_expires_at')
        else:
            self.deadline = None

        last = payload.get('last_visit') or None
        if last and last.get('visit_id') != self._seen_visit_id:
            self._seen_visit_id = last.get('visit_id')
            if self.pending is not None and last.get('visit_id') == self.pending.visit_id:
                # our own visit came back over the socket before the HTTP response
                self.pending = None
                self._retry_visit_id = None
                self._retry_darts = ()
            elif str(last.get('player_id')) != self.user_id:
                self.revealed_visit = last
                self._emit('opponent_visit', visit=last)

        if self.is_over and not was_over:
            self.turn.clear()
            self.pending = None
            self._emit(self.state.value, winner_id=self.winner_id)

    def refresh(self) -> None:
        """Poll the server when realtime updates are unavailable."""
        try:
            payload = self.service.fetch_match(self.match_id)
        except (DartFreakError, ConnectionError, TimeoutError) as exc:
            self.last_error = str(getattr(exc, 'message', None) or exc)
            return
        self.apply_match_update(payload)

    def check_deadline(self, now: Optional[float] = None) -> bool:
        """Expire locally once the join window (or challenge) has run out."""
        if self.state is SessionState.EXPIRED:
            return True
        if self.is_over or self.deadline is None:
            return False
        now = self.clock() if now is None else now
        if now >= self.deadline:
            self._expired_locally = True
            self.turn.clear()
            self._emit('expired', match_id=self.match_id)
        return self._expired_locally

    def _emit(self, event: str, **payload) -> None:
        if self.on_event is not None:
            self.on_event(event, payload)
