"""Rule policies for each game variant.

Every policy exposes the same interface, so the turn engine never branches on
the game type:

- ``starting_score()``: value each player's ledger starts at
- ``validate_turn(state, player_id, darts)``: preview a visit without mutating
- ``apply_turn(state, player_id, darts)``: commit a visit and rotate the turn
- ``check_winner(state)``: winning player id, or None while play continues
"""
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from dartfreak.errors import InvalidGameSetup
from .throws import BULL, Multiplier, Throw, turn_total


class GameType(str, Enum):
    X301 = '301'
    X501 = '501'
    HALVE_IT = 'halve_it'
    SUDDEN_DEATH = 'sudden_death'
    KNOCKOUT = 'knockout'
    KILLER = 'killer'

    @classmethod
    def parse(cls, value) -> 'GameType':
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace(' ', '_').replace('-', '_')
        for member in cls:
            if member.value == text:
                return member
        raise InvalidGameSetup(f'Unknown game type: {value}')

    @property
    def is_countdown(self) -> bool:
        return self in (GameType.X301, GameType.X501)


@dataclass(frozen=True)
class TurnOutcome:
    player_id: Any
    darts: tuple
    score_before: int
    score_after: int
    is_bust: bool = False
    is_finish: bool = False
    life_lost: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return turn_total(self.darts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'player_id': self.player_id,
            'darts': [d.to_dict() for d in self.darts],
            'total': self.total,
            'score_before': self.score_before,
            'score_after': self.score_after,
            'is_bust': self.is_bust,
            'is_finish': self.is_finish,
            'life_lost': self.life_lost,
            'metadata': dict(self.metadata),
        }


@dataclass
class GameState:
    """Mutable per-game state shared by all policies.

    ``scores`` is the player score ledger. Only ``apply_turn`` writes to it.
    """
    player_ids: List[Any]
    scores: Dict[Any, int] = field(default_factory=dict)
    current_index: int = 0
    lives: Dict[Any, int] = field(default_factory=dict)
    round_index: int = 0
    round_scores: Dict[Any, int] = field(default_factory=dict)
    last_round_losers: List[Any] = field(default_factory=list)
    score_to_beat: Optional[int] = None
    player_to_beat: Any = None
    killers: List[Any] = field(default_factory=list)
    finished: bool = False

    @property
    def current_player(self):
        return self.player_ids[self.current_index]

    def is_active(self, player_id) -> bool:
        if not self.lives:
            return True
        return self.lives.get(player_id, 0) > 0

    @property
    def active_players(self) -> List[Any]:
        return [p for p in self.player_ids if self.is_active(p)]


class RulePolicy:
    game_type: GameType = None
    allows_empty_turn = False

    def starting_score(self) -> int:
        return 0

    def setup(self, state: GameState) -> None:
        state.scores = {p: self.starting_score() for p in state.player_ids}
        state.current_index = 0

    def validate_turn(self, state: GameState, player_id, darts: Sequence[Throw]) -> TurnOutcome:
        raise NotImplementedError

    def apply_turn(self, state: GameState, player_id, darts: Sequence[Throw]) -> TurnOutcome:
        raise NotImplementedError

    def check_winner(self, state: GameState):
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {'game_type': self.game_type.value}


# ---- 301 / 501 ----

def score_countdown_visit(score_before: int, darts: Sequence[Throw], double_out: bool = True):
    """Return ``(score_after, is_bust, is_finish)`` for a countdown visit.

    Bust when the visit would leave less than zero, exactly one, or zero
    without finishing on a double (the inner bull counts as a double).
    With ``double_out`` off only going below zero busts.
    """
    candidate = score_before - turn_total(darts)
    if candidate < 0:
        return score_before, True, False
    if double_out:
        if candidate == 1:
            return score_before, True, False
        if candidate == 0:
            last = darts[-1] if darts else None
            if last is None or not last.is_double:
                return score_before, True, False
            return 0, False, True
    elif candidate == 0:
        return 0, False, True
    return candidate, False, False


class CountdownPolicy(RulePolicy):
    def __init__(self, starting_score: int = 501, double_out: bool = True):
        if starting_score not in (301, 501):
            raise InvalidGameSetup(f'Countdown games start at 301 or 501, got {starting_score}')
        self._starting_score = starting_score
        self.double_out = double_out
        self.game_type = GameType.X301 if starting_score == 301 else GameType.X501

    def starting_score(self) -> int:
        return self._starting_score

    def validate_turn(self, state, player_id, darts):
        before = state.scores[player_id]
        after, bust, finish = score_countdown_visit(before, darts, self.double_out)
        return TurnOutcome(player_id, tuple(darts), before, after, is_bust=bust, is_finish=finish)

    def apply_turn(self, state, player_id, darts):
        outcome = self.validate_turn(state, player_id, darts)
        state.scores[player_id] = outcome.score_after
        if not outcome.is_finish:
            state.current_index = (state.current_index + 1) % len(state.player_ids)
        return outcome

    def check_winner(self, state):
        for player_id in state.player_ids:
            if state.scores.get(player_id) == 0:
                return player_id
        return None

    def describe(self):
        data = super().describe()
        data.update({'starting_score': self._starting_score, 'double_out': self.double_out})
        return data


# ---- Halve-It ----

@dataclass(frozen=True)
class HalveItTarget:
    kind: str  # single, double, triple, bull
    number: int = BULL

    def __post_init__(self):
        if self.kind not in ('single', 'double', 'triple', 'bull'):
            raise InvalidGameSetup(f'Unknown Halve-It target kind: {self.kind}')
        if self.kind != 'bull' and not 1 <= self.number <= 20:
            raise InvalidGameSetup(f'Halve-It target number must be 1-20, got {self.number}')

    @property
    def display_text(self) -> str:
        if self.kind == 'bull':
            return 'BULL'
        return {'single': '', 'double': 'D', 'triple': 'T'}[self.kind] + str(self.number)

    def is_hit(self, dart: Throw) -> bool:
        if self.kind == 'bull':
            return dart.base_value == BULL
        if dart.base_value != self.number:
            return False
        if self.kind == 'single':
            # Any bed of the number counts
            return True
        if self.kind == 'double':
            return dart.multiplier == Multiplier.DOUBLE
        return dart.multiplier == Multiplier.TRIPLE

    def points(self, dart: Throw) -> int:
        return dart.total_value if self.is_hit(dart) else 0

    @classmethod
    def parse(cls, text: str) -> 'HalveItTarget':
        token = str(text).strip().upper()
        if token == 'BULL':
            return cls('bull')
        if token[:1] == 'S' and token[1:].isdigit():
            token = token[1:]
        if token[:1] in ('D', 'T') and token[1:].isdigit():
            return cls('double' if token[0] == 'D' else 'triple', int(token[1:]))
        if token.isdigit():
            return cls('single', int(token))
        raise InvalidGameSetup(f'Cannot parse Halve-It target {text!r}')


class HalveItDifficulty(str, Enum):
    EASY = 'easy'
    MEDIUM = 'medium'
    HARD = 'hard'
    PRO = 'pro'

    def _random_target(self, rng) -> HalveItTarget:
        number = rng.randint(1, 20)
        roll = rng.randint(1, 10)
        if self is HalveItDifficulty.EASY:
            return HalveItTarget('single', number)
        if self is HalveItDifficulty.MEDIUM:
            return HalveItTarget('single' if roll <= 6 else 'double', number)
        if self is HalveItDifficulty.HARD:
            kind = 'single' if roll <= 4 else 'double' if roll <= 7 else 'triple'
            return HalveItTarget(kind, number)
        kind = 'single' if roll <= 2 else 'double' if roll <= 6 else 'triple'
        return HalveItTarget(kind, number)

    def generate_targets(self, rng=None, count: int = 5) -> List[HalveItTarget]:
        """``count`` distinct random targets followed by the bull."""
        rng = rng or random.Random()
        targets: List[HalveItTarget] = []
        while len(targets) < count:
            target = self._random_target(rng)
            if target not in targets:
                targets.append(target)
        targets.append(HalveItTarget('bull'))
        return targets


class HalveItPolicy(RulePolicy):
    game_type = GameType.HALVE_IT
    allows_empty_turn = True

    def __init__(self, targets: Optional[Sequence] = None, difficulty='easy', rng=None):
        try:
            self.difficulty = HalveItDifficulty(str(difficulty).lower())
        except ValueError:
            raise InvalidGameSetup(f'Unknown Halve-It difficulty: {difficulty}')
        if targets:
            self.targets = [t if isinstance(t, HalveItTarget) else HalveItTarget.parse(t) for t in targets]
        else:
            self.targets = self.difficulty.generate_targets(rng)

    def current_target(self, state) -> Optional[HalveItTarget]:
        if state.round_index >= len(self.targets):
            return None
        return self.targets[state.round_index]

    def validate_turn(self, state, player_id, darts):
        target = self.current_target(state)
        before = state.scores[player_id]
        points = sum(target.points(d) for d in darts)
        hit = any(target.is_hit(d) for d in darts)
        halved = not hit and (not darts or len(darts) == 3)
        after = math.ceil(before / 2) if halved else before + points
        return TurnOutcome(player_id, tuple(darts), before, after, metadata={
            'target': target.display_text,
            'points': points,
            'halved': halved,
        })

    def apply_turn(self, state, player_id, darts):
        outcome = self.validate_turn(state, player_id, darts)
        state.scores[player_id] = outcome.score_after
        if state.current_index < len(state.player_ids) - 1:
            state.current_index += 1
        else:
            state.current_index = 0
            state.round_index += 1
            if state.round_index >= len(self.targets):
                state.finished = True
        return outcome

    def check_winner(self, state):
        if not state.finished:
            return None
        best = max(state.scores[p] for p in state.player_ids)
        if best <= 0:
            return None
        return next(p for p in state.player_ids if state.scores[p] == best)

    def describe(self):
        data = super().describe()
        data.update({
            'difficulty': self.difficulty.value,
            'targets': [t.display_text for t in self.targets],
        })
        return data


# ---- Lives-based variants ----

class _LivesPolicy(RulePolicy):
    allows_empty_turn = True

    def __init__(self, starting_lives: int = 3):
        if starting_lives < 1:
            raise InvalidGameSetup('starting_lives must be at least 1')
        self.starting_lives = starting_lives

    def setup(self, state):
        super().setup(state)
        state.lives = {p: self.starting_lives for p in state.player_ids}

    def next_active_index(self, state, after: int, wrap: bool = True) -> Optional[int]:
        count = len(state.player_ids)
        for step in range(1, count + 1):
            idx = after + step
            if idx >= count:
                if not wrap:
                    return None
                idx %= count
            if state.is_active(state.player_ids[idx]):
                return idx
        return None

    def check_winner(self, state):
        active = state.active_players
        if len(active) == 1:
            state.finished = True
            return active[0]
        return None

    def describe(self):
        data = super().describe()
        data['starting_lives'] = self.starting_lives
        return data


class SuddenDeathPolicy(_LivesPolicy):
    """Lowest visit of each round loses a life."""
    game_type = GameType.SUDDEN_DEATH

    def validate_turn(self, state, player_id, darts):
        total = turn_total(darts)
        return TurnOutcome(player_id, tuple(darts), 0, total, metadata={'round': state.round_index + 1})

    def apply_turn(self, state, player_id, darts):
        outcome = self.validate_turn(state, player_id, darts)
        state.round_scores[player_id] = outcome.score_after
        state.scores[player_id] = outcome.score_after
        nxt = self.next_active_index(state, state.current_index, wrap=False)
        if nxt is not None:
            state.current_index = nxt
        else:
            self._end_round(state)
        return outcome

    def _end_round(self, state):
        active = state.active_players
        scored = {p: state.round_scores.get(p, 0) for p in active}
        low = min(scored.values())
        losers = [p for p, s in scored.items() if s == low]
        # Two players left on the same total both play on
        if len(active) == 2 and len(losers) == 2:
            losers = []
        # A round never knocks out every remaining player at once
        if all(state.lives[p] <= 1 for p in active) and len(losers) == len(active):
            losers = []
        for p in losers:
            state.lives[p] = max(0, state.lives[p] - 1)
        state.last_round_losers = losers
        state.round_index += 1
        state.round_scores = {}
        first = self.next_active_index(state, -1, wrap=False)
        state.current_index = first if first is not None else 0


class KnockoutPolicy(_LivesPolicy):
    """Beat the standing score or lose a life."""
    game_type = GameType.KNOCKOUT

    def validate_turn(self, state, player_id, darts):
        total = turn_total(darts)
        to_beat = state.score_to_beat
        beaten = to_beat is None or total > to_beat
        return TurnOutcome(player_id, tuple(darts), to_beat or 0, total, life_lost=not beaten,
                           metadata={'score_to_beat': to_beat})

    def apply_turn(self, state, player_id, darts):
        outcome = self.validate_turn(state, player_id, darts)
        if outcome.life_lost:
            state.lives[player_id] = max(0, state.lives[player_id] - 1)
        else:
            state.score_to_beat = outcome.score_after
            state.player_to_beat = player_id
        state.scores[player_id] = outcome.score_after
        if len(state.active_players) > 1:
            nxt = self.next_active_index(state, state.current_index)
            state.current_index = nxt if nxt is not None else state.current_index
        return outcome


class KillerPolicy(_LivesPolicy):
    """Each player owns a number. Hit its double to become a killer, then
    take lives off opponents by hitting their numbers.

    A killer hitting their own number loses lives instead. Every hit is
    worth its multiplier in lives.
    """
    game_type = GameType.KILLER

    def __init__(self, starting_lives: int = 3, numbers: Optional[Sequence[int]] = None, rng=None):
        super().__init__(starting_lives)
        self._requested = list(numbers) if numbers else None
        self._rng = rng or random.Random()
        self.numbers: Dict[Any, int] = {}

    def setup(self, state):
        super().setup(state)
        state.killers = []
        players = state.player_ids
        if set(self.numbers) == set(players):
            return
        if self._requested is not None:
            requested = self._requested
            if len(requested) != len(players):
                raise InvalidGameSetup('Killer needs one number per player')
            if len(set(requested)) != len(requested) or any(not 1 <= n <= 20 for n in requested):
                raise InvalidGameSetup('Killer numbers must be distinct and between 1 and 20')
        else:
            if len(players) > 20:
                raise InvalidGameSetup('Killer supports at most 20 players')
            requested = self._rng.sample(range(1, 21), len(players))
        self.numbers = dict(zip(players, requested))

    def _owner_of(self, number: int):
        for player_id, owned in self.numbers.items():
            if owned == number:
                return player_id
        return None

    def _resolve(self, state, player_id, darts):
        lives = dict(state.lives)
        killers = list(state.killers)
        hits = []
        for dart in darts:
            # nothing left to play for once a single player is standing
            if sum(1 for n in lives.values() if n > 0) <= 1:
                break
            owner = None if dart.base_value == BULL else self._owner_of(dart.base_value)
            hit = {'dart': dart.display_text, 'result': 'miss'}
            if owner == player_id and player_id not in killers:
                if dart.multiplier == Multiplier.DOUBLE:
                    killers.append(player_id)
                    hit['result'] = 'became_killer'
            elif owner is not None and player_id in killers:
                lost = min(int(dart.multiplier), lives[owner])
                lives[owner] -= lost
                hit.update(result='hit_own_number' if owner == player_id else 'hit_opponent',
                           player_id=owner, lives_lost=lost)
            hits.append(hit)
        before, after = state.lives[player_id], lives[player_id]
        outcome = TurnOutcome(player_id, tuple(darts), before, after, life_lost=after < before, metadata={
            'number': self.numbers[player_id],
            'is_killer': player_id in killers,
            'hits': hits,
        })
        return outcome, lives, killers

    def validate_turn(self, state, player_id, darts):
        return self._resolve(state, player_id, darts)[0]

    def apply_turn(self, state, player_id, darts):
        outcome, state.lives, state.killers = self._resolve(state, player_id, darts)
        if len(state.active_players) > 1:
            nxt = self.next_active_index(state, state.current_index)
            state.current_index = nxt if nxt is not None else state.current_index
        return outcome

    def describe(self):
        data = super().describe()
        data['numbers'] = {str(p): n for p, n in self.numbers.items()}
        return data


def create_policy(game_type, **options) -> RulePolicy:
    """Select the rule policy for ``game_type``.

    Options: ``double_out`` for 301/501, ``targets``/``difficulty``/``rng``
    for Halve-It, ``starting_lives`` for the lives games and
    ``numbers``/``rng`` for Killer.
    """
    kind = GameType.parse(game_type)
    if kind.is_countdown:
        return CountdownPolicy(int(kind.value), double_out=options.get('double_out', True))
    if kind is GameType.HALVE_IT:
        return HalveItPolicy(
            targets=options.get('targets'),
            difficulty=options.get('difficulty') or 'easy',
            rng=options.get('rng'),
        )
    lives = int(options.get('starting_lives') or 3)
    if kind is GameType.SUDDEN_DEATH:
        return SuddenDeathPolicy(lives)
    if kind is GameType.KNOCKOUT:
        return KnockoutPolicy(lives)
    return KillerPolicy(lives, numbers=options.get('numbers'), rng=options.get('rng'))
