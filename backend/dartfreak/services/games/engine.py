import copy
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from dartfreak.errors import InvalidGameSetup
from .checkout import MAX_CHECKOUT, MIN_CHECKOUT, format_checkout, suggest_checkout
from .rules import GameState, GameType, RulePolicy, TurnOutcome, create_policy
from .throws import Multiplier, Throw
from .turn import TurnAccumulator

MATCH_FORMATS = (1, 3, 5, 7)
MAX_VISIT = 180


class EngineState(str, Enum):
    AWAITING_THROW = 'awaiting_throw'
    TURN_COMPLETE = 'turn_complete'
    LEG_OVER = 'leg_over'
    GAME_OVER = 'game_over'
    EXPIRED = 'expired'


@dataclass(frozen=True)
class TurnRecord:
    outcome: TurnOutcome
    turn_number: int
    leg: int
    state_before: GameState
    timestamp: float

    @property
    def player_id(self):
        return self.outcome.player_id

    @property
    def darts(self):
        return self.outcome.darts

    @property
    def score_before(self) -> int:
        return self.outcome.score_before

    @property
    def score_after(self) -> int:
        return self.outcome.score_after

    @property
    def is_bust(self) -> bool:
        return self.outcome.is_bust

    @property
    def display_text(self) -> str:
        darts = ', '.join(d.display_text for d in self.darts)
        if self.is_bust:
            return f'{darts} - BUST'
        return f'{darts} = {self.outcome.total}'

    def to_dict(self) -> Dict[str, Any]:
        data = self.outcome.to_dict()
        data.update({'turn_number': self.turn_number, 'leg': self.leg})
        return data


class TurnEngine:
    """Turn-based scoring for one local game.

    Darts are entered into a :class:`TurnAccumulator` and only reach the
    player score ledger when the visit is committed with ``complete_turn``.
    Variant rules come from a :class:`RulePolicy`; the engine only orders
    turns, keeps history and tracks legs.
    """

    def __init__(self, players: Sequence, game_type='501', policy: Optional[RulePolicy] = None,
                 match_format: int = 1, deadline: Optional[float] = None,
                 on_event: Optional[Callable[[str, Dict[str, Any]], None]] = None,
                 shuffle: bool = False, rng=None, **policy_options):
        players = list(players)
        if len(players) < 2:
            raise InvalidGameSetup('At least 2 players are required')
        if len(set(players)) != len(players):
            raise InvalidGameSetup('Player ids must be unique')
        if shuffle:
            (rng or random).shuffle(players)
        self.policy = policy or create_policy(game_type, rng=rng, **policy_options)
        if match_format not in MATCH_FORMATS:
            raise InvalidGameSetup(f'match_format must be one of {MATCH_FORMATS}')
        if match_format > 1 and not self.policy.game_type.is_countdown:
            raise InvalidGameSetup('Only 301/501 support multi-leg matches')
        self.match_format = match_format
        self.deadline = deadline
        self.on_event = on_event
        self.turn = TurnAccumulator()
        self.game = GameState(player_ids=players)
        self.policy.setup(self.game)
        self.current_leg = 1
        self.legs_won: Dict[Any, int] = {p: 0 for p in players}
        self.turn_history: List[TurnRecord] = []
        self.winner = None
        self.leg_winner = None
        self.expired = False
        self._leg_history_start = 0

    # ---- observers ----

    @property
    def game_type(self) -> GameType:
        return self.policy.game_type

    @property
    def players(self) -> List[Any]:
        return list(self.game.player_ids)

    @property
    def current_player_index(self) -> int:
        return self.game.current_index

    @property
    def current_player(self):
        return self.game.current_player

    @property
    def current_throw(self) -> List[Throw]:
        return self.turn.darts

    @property
    def selected_dart_index(self) -> Optional[int]:
        return self.turn.selected_index

    @property
    def player_scores(self) -> Dict[Any, int]:
        return dict(self.game.scores)

    @property
    def lives(self) -> Dict[Any, int]:
        return dict(self.game.lives)

    @property
    def current_throw_total(self) -> int:
        return self.turn.current_total()

    @property
    def legs_needed(self) -> int:
        return self.match_format // 2 + 1

    @property
    def is_multi_leg(self) -> bool:
        return self.match_format > 1

    @property
    def last_turn(self) -> Optional[TurnRecord]:
        if len(self.turn_history) > self._leg_history_start:
            return self.turn_history[-1]
        return None

    @property
    def is_over(self) -> bool:
        # a finished game can end without a winner (Halve-It with everyone on 0)
        return self.winner is not None or self.expired or self.game.finished

    def _preview(self) -> Optional[TurnOutcome]:
        if self.turn.is_empty or self.is_over:
            return None
        return self.policy.validate_turn(self.game, self.current_player, self.turn.darts)

    @property
    def is_bust(self) -> bool:
        outcome = self._preview()
        return bool(outcome and outcome.is_bust)

    @property
    def is_winning_throw(self) -> bool:
        outcome = self._preview()
        return bool(outcome and outcome.is_finish)

    @property
    def is_turn_complete(self) -> bool:
        return self.turn.is_complete or self.is_bust or self.is_winning_throw

    @property
    def remaining_after_throw(self) -> int:
        return self.game.scores[self.current_player] - self.current_throw_total

    @property
    def can_bust(self) -> bool:
        """Whether the darts left could still bust this visit."""
        if not self.game_type.is_countdown or self.is_over:
            return False
        return self.remaining_after_throw - self.turn.darts_remaining * 60 <= 1

    @property
    def suggested_checkout(self) -> Optional[List[str]]:
        if not self.game_type.is_countdown or self.is_over:
            return None
        remaining = self.remaining_after_throw
        darts_left = self.turn.darts_remaining
        if darts_left == 0 or not MIN_CHECKOUT <= remaining <= MAX_CHECKOUT:
            return None
        return suggest_checkout(remaining, darts_left)

    @property
    def suggested_checkout_text(self) -> Optional[str]:
        return format_checkout(self.suggested_checkout)

    @property
    def current_target(self):
        target_for = getattr(self.policy, 'current_target', None)
        return target_for(self.game) if target_for else None

    @property
    def state(self) -> EngineState:
        if self.expired:
            return EngineState.EXPIRED
        if self.winner is not None or self.game.finished:
            return EngineState.GAME_OVER
        if self.leg_winner is not None:
            return EngineState.LEG_OVER
        if self.is_turn_complete:
            return EngineState.TURN_COMPLETE
        return EngineState.AWAITING_THROW

    # ---- dart entry ----

    def _accepting_input(self) -> bool:
        return self.state in (EngineState.AWAITING_THROW, EngineState.TURN_COMPLETE)

    def record_throw(self, base_value: int, multiplier: int = Multiplier.SINGLE) -> Optional[Throw]:
        dart = Throw(base_value, multiplier)
        if not self._accepting_input():
            return None
        recorded = self.turn.record(dart)
        if recorded is None:
            return None
        self._emit('miss' if recorded.is_miss else 'dart', dart=recorded.to_dict())
        if self.turn.is_complete and self.current_throw_total == MAX_VISIT:
            self._emit('180', player_id=self.current_player)
        return recorded

    def select_dart(self, index: int) -> Optional[int]:
        if not self._accepting_input():
            return None
        return self.turn.select_dart(index)

    def deselect_dart(self) -> None:
        self.turn.deselect()

    def undo(self) -> Optional[Throw]:
        if not self._accepting_input():
            return None
        return self.turn.undo()

    def clear_throw(self) -> None:
        self.turn.clear()

    # ---- commit ----

    def complete_turn(self) -> Optional[TurnOutcome]:
        """Commit the visit, rotate the turn and detect the end of the leg or game."""
        if not self._accepting_input():
            return None
        if self.turn.is_empty and not self.policy.allows_empty_turn:
            return None
        player = self.current_player
        snapshot = copy.deepcopy(self.game)
        outcome = self.policy.apply_turn(self.game, player, self.turn.darts)
        turn_number = sum(1 for r in self.turn_history if r.player_id == player and r.leg == self.current_leg) + 1
        self.turn_history.append(TurnRecord(outcome, turn_number, self.current_leg, snapshot, time.time()))
        self.turn.clear()
        if outcome.is_bust:
            self._emit('bust', player_id=player, score=outcome.score_after)
        self._resolve_winner()
        return outcome

    save_score = complete_turn

    def _resolve_winner(self) -> None:
        leader = self.policy.check_winner(self.game)
        if leader is None:
            return
        if not self.game_type.is_countdown:
            self.winner = leader
            self._emit('game_won', player_id=leader)
            return
        self.legs_won[leader] += 1
        self.leg_winner = leader
        if self.legs_won[leader] >= self.legs_needed:
            self.winner = leader
            self._emit('game_won', player_id=leader)
        else:
            self._emit('leg_won', player_id=leader, leg=self.current_leg)

    def start_next_leg(self) -> bool:
        if self.leg_winner is None or self.winner is not None or self.expired:
            return False
        self.policy.setup(self.game)
        self.current_leg += 1
        # the throw alternates each leg
        self.game.current_index = (self.current_leg - 1) % len(self.game.player_ids)
        self.leg_winner = None
        self.turn.clear()
        self._leg_history_start = len(self.turn_history)
        return True

    def undo_last_turn(self) -> Optional[TurnRecord]:
        """Restore the state from before the last committed visit of this leg."""
        if self.winner is not None or self.expired:
            return None
        record = self.last_turn
        if record is None:
            return None
        self.turn_history.pop()
        self.game = record.state_before
        if self.leg_winner is not None:
            self.legs_won[self.leg_winner] -= 1
            self.leg_winner = None
        self.turn.clear()
        return record

    def restart(self) -> None:
        self.policy.setup(self.game)
        self.game.round_index = 0
        self.game.round_scores = {}
        self.game.last_round_losers = []
        self.game.score_to_beat = None
        self.game.player_to_beat = None
        self.game.finished = False
        self.turn.clear()
        self.turn_history = []
        self._leg_history_start = 0
        self.legs_won = {p: 0 for p in self.game.player_ids}
        self.current_leg = 1
        self.winner = None
        self.leg_winner = None
        self.expired = False

    # ---- deadlines ----

    def check_deadline(self, now: Optional[float] = None) -> bool:
        """Expire the game once its deadline has passed. Returns True when expired."""
        if self.expired:
            return True
        if self.winner is not None or self.deadline is None:
            return False
        now = time.time() if now is None else now
        if now >= self.deadline:
            self.expire()
        return self.expired

    def expire(self) -> None:
        if self.winner is None:
            self.expired = True
            self.turn.clear()

    # ---- helpers ----

    def _emit(self, event: str, **payload) -> None:
        if self.on_event is not None:
            self.on_event(event, payload)

    def to_dict(self) -> Dict[str, Any]:
        target = self.current_target
        return {
            'game': self.policy.describe(),
            'state': self.state.value,
            'players': self.players,
            'current_player': None if self.is_over else self.current_player,
            'player_scores': {str(k): v for k, v in self.game.scores.items()},
            'lives': {str(k): v for k, v in self.game.lives.items()},
            'current_throw': [d.to_dict() for d in self.current_throw],
            'current_throw_total': self.current_throw_total,
            'is_bust': self.is_bust,
            'is_winning_throw': self.is_winning_throw,
            'suggested_checkout': self.suggested_checkout,
            'current_target': target.display_text if target else None,
            'current_leg': self.current_leg,
            'match_format': self.match_format,
            'legs_won': {str(k): v for k, v in self.legs_won.items()},
            'winner': self.winner,
            'turn_history': [r.to_dict() for r in self.turn_history],
        }
