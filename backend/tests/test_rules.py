import random

import pytest

from dartfreak.errors import InvalidGameSetup
from dartfreak.services.games.engine import EngineState, TurnEngine
from dartfreak.services.games.rules import (
    GameType,
    HalveItDifficulty,
    HalveItTarget,
    create_policy,
    score_countdown_visit,
)
from dartfreak.services.games.throws import BULL, Multiplier, Throw

S, D, T = Multiplier.SINGLE, Multiplier.DOUBLE, Multiplier.TRIPLE


def _visit(engine, *darts):
    for base, mult in darts:
        engine.record_throw(base, mult)
    return engine.complete_turn()


# ---- countdown ----

@pytest.mark.parametrize('before, darts, expected', [
    (40, [Throw(20, D)], (0, False, True)),
    (5, [Throw(5)], (5, True, False)),
    (3, [Throw(1), Throw(1), Throw(1)], (3, True, False)),
    (60, [Throw(20), Throw(19)], (21, False, False)),
    (20, [Throw(19)], (20, True, False)),
    (20, [Throw(20, T)], (20, True, False)),
])
def test_countdown_visit_scoring(before, darts, expected):
    assert score_countdown_visit(before, darts) == expected


def test_game_type_parse():
    assert GameType.parse('501') is GameType.X501
    assert GameType.parse(301) is GameType.X301
    assert GameType.parse('Halve-It') is GameType.HALVE_IT
    assert GameType.parse('Sudden Death') is GameType.SUDDEN_DEATH
    with pytest.raises(InvalidGameSetup):
        GameType.parse('around_the_clock')


# ---- Halve-It ----

def test_halve_it_target_hits():
    assert HalveItTarget('single', 20).is_hit(Throw(20, T))
    assert HalveItTarget('double', 20).is_hit(Throw(20, D))
    assert not HalveItTarget('double', 20).is_hit(Throw(20, T))
    assert not HalveItTarget('triple', 20).is_hit(Throw(20))
    assert HalveItTarget('bull').is_hit(Throw(BULL))
    assert HalveItTarget('bull').is_hit(Throw(BULL, D))
    assert HalveItTarget.parse('D16') == HalveItTarget('double', 16)
    assert HalveItTarget.parse('bull') == HalveItTarget('bull')
    with pytest.raises(InvalidGameSetup):
        HalveItTarget.parse('Q3')


def test_halve_it_generated_targets_end_with_bull():
    for difficulty in HalveItDifficulty:
        targets = difficulty.generate_targets(random.Random(7))
        assert len(targets) == 6
        assert len(set(targets)) == 6
        assert targets[-1] == HalveItTarget('bull')
    easy = HalveItDifficulty.EASY.generate_targets(random.Random(1))
    assert all(t.kind in ('single', 'bull') for t in easy)


def test_halve_it_scoring_and_halving():
    engine = TurnEngine(['a', 'b'], game_type='halve_it', targets=['20', 'D16', 'BULL'])
    assert engine.current_target.display_text == '20'
    assert engine.player_scores == {'a': 0, 'b': 0}

    # a hits 20 twice, b misses with all three darts
    out = _visit(engine, (20, T), (20, S), (5, S))
    assert out.score_after == 80
    assert out.metadata['points'] == 80
    _visit(engine, (1, S), (1, S), (1, S))
    assert engine.player_scores['b'] == 0

    assert engine.current_target.display_text == 'D16'
    # a misses the double: 80 halves to 40
    out = _visit(engine, (16, S), (16, T), (0, S))
    assert out.metadata['halved']
    assert engine.player_scores['a'] == 40
    _visit(engine, (16, D))
    assert engine.player_scores['b'] == 32

    # an empty visit counts as missing everything; 40 -> 20, 32 + 50
    engine.complete_turn()
    assert engine.player_scores['a'] == 20
    _visit(engine, (BULL, D))
    assert engine.player_scores['b'] == 82
    assert engine.winner == 'b'
    assert engine.state is EngineState.GAME_OVER


def test_halve_it_halving_rounds_up():
    engine = TurnEngine(['a', 'b'], game_type='halve_it', targets=['7', '19'])
    _visit(engine, (7, S), (0, S), (0, S))
    _visit(engine, (7, S))
    assert engine.player_scores == {'a': 7, 'b': 7}
    _visit(engine, (20, S), (0, S), (0, S))
    assert engine.player_scores['a'] == 4
    # fewer than three darts without a hit keeps the score
    _visit(engine, (20, S))
    assert engine.player_scores['b'] == 7


def test_halve_it_tie_goes_to_first_player():
    engine = TurnEngine(['a', 'b'], game_type='halve_it', targets=['10'])
    _visit(engine, (10, S))
    _visit(engine, (10, S))
    assert engine.winner == 'a'


def test_halve_it_everyone_on_zero_has_no_winner():
    engine = TurnEngine(['a', 'b'], game_type='halve_it', targets=['10'])
    _visit(engine)
    _visit(engine)
    assert engine.player_scores == {'a': 0, 'b': 0}
    assert engine.winner is None
    assert engine.state is EngineState.GAME_OVER
    assert engine.is_over
    assert engine.record_throw(10) is None


def test_unknown_difficulty():
    with pytest.raises(InvalidGameSetup):
        create_policy('halve_it', difficulty='impossible')
    assert create_policy('halve_it', difficulty='Hard').difficulty is HalveItDifficulty.HARD


# ---- Sudden Death ----

def test_sudden_death_lowest_loses_a_life():
    engine = TurnEngine(['a', 'b', 'c'], game_type='sudden_death', starting_lives=2)
    _visit(engine, (20, S))
    _visit(engine, (5, S))
    _visit(engine, (19, S))
    assert engine.lives == {'a': 2, 'b': 1, 'c': 2}
    assert engine.game.last_round_losers == ['b']
    assert engine.current_player == 'a'

    _visit(engine, (20, S))
    _visit(engine, (1, S))
    _visit(engine, (20, S))
    assert engine.lives['b'] == 0
    assert not engine.game.is_active('b')

    # b is skipped from now on
    _visit(engine, (20, S))
    assert engine.current_player == 'c'
    _visit(engine, (3, S))
    assert engine.lives == {'a': 2, 'b': 0, 'c': 1}
    assert engine.winner is None
    _visit(engine, (20, S))
    _visit(engine, (3, S))
    assert engine.winner == 'a'


def test_sudden_death_ties():
    engine = TurnEngine(['a', 'b', 'c'], game_type='sudden_death')
    for _ in range(3):
        _visit(engine, (5, S))
    # a three-way tie on the lowest total costs everyone a life
    assert engine.lives == {'a': 2, 'b': 2, 'c': 2}

    engine = TurnEngine(['a', 'b'], game_type='sudden_death')
    _visit(engine, (20, S))
    _visit(engine, (20, S))
    # two players on the same total both play on
    assert engine.lives == {'a': 3, 'b': 3}
    assert engine.game.last_round_losers == []


def test_sudden_death_never_eliminates_everyone():
    engine = TurnEngine(['a', 'b', 'c'], game_type='sudden_death', starting_lives=1)
    for _ in range(3):
        _visit(engine, (5, S))
    assert engine.lives == {'a': 1, 'b': 1, 'c': 1}
    assert engine.winner is None


def test_sudden_death_shared_lowest_both_lose():
    engine = TurnEngine(['a', 'b', 'c'], game_type='sudden_death')
    _visit(engine, (5, S))
    _visit(engine, (5, S))
    _visit(engine, (20, S))
    assert engine.lives == {'a': 2, 'b': 2, 'c': 3}


# ---- Knockout ----

def test_knockout_must_beat_the_standing_score():
    engine = TurnEngine(['a', 'b', 'c'], game_type='knockout', starting_lives=1)
    out = _visit(engine, (20, S))
    assert not out.life_lost
    assert engine.game.score_to_beat == 20
    out = _visit(engine, (20, S))
    # equalling is not beating
    assert out.life_lost
    assert engine.lives['b'] == 0
    _visit(engine, (20, T))
    assert engine.game.score_to_beat == 60
    # b is out, so a throws next
    assert engine.current_player == 'a'
    _visit(engine, (1, S))
    assert engine.winner == 'c'


# ---- Killer ----

def _killer(**options):
    options.setdefault('numbers', [1, 2, 3])
    return TurnEngine(['a', 'b', 'c'], game_type='killer', **options)


def test_killer_numbers():
    engine = TurnEngine(['a', 'b', 'c', 'd'], game_type='killer', rng=random.Random(3))
    numbers = engine.policy.numbers
    assert set(numbers) == {'a', 'b', 'c', 'd'}
    assert len(set(numbers.values())) == 4
    assert all(1 <= n <= 20 for n in numbers.values())
    assert engine.to_dict()['game']['numbers'] == {p: n for p, n in numbers.items()}

    for bad in ([1, 1, 2], [1, 2], [1, 2, 21]):
        with pytest.raises(InvalidGameSetup):
            _killer(numbers=bad)


def test_killer_needs_own_double_first():
    engine = _killer()
    out = _visit(engine, (1, S), (2, T), (1, D))
    assert [h['result'] for h in out.metadata['hits']] == ['miss', 'miss', 'became_killer']
    assert out.metadata['is_killer']
    assert engine.game.killers == ['a']
    assert engine.lives == {'a': 3, 'b': 3, 'c': 3}

    # b is not a killer yet, so hitting a's number does nothing
    out = _visit(engine, (1, T))
    assert out.metadata['hits'] == [{'dart': 'T1', 'result': 'miss'}]
    assert engine.lives['a'] == 3


def test_killer_takes_lives_by_multiplier():
    engine = _killer()
    _visit(engine, (1, D))
    _visit(engine)
    _visit(engine)
    out = _visit(engine, (2, T), (3, D), (1, S))
    assert [h['result'] for h in out.metadata['hits']] == ['hit_opponent', 'hit_opponent', 'hit_own_number']
    assert out.metadata['hits'][1] == {'dart': 'D3', 'result': 'hit_opponent', 'player_id': 'c', 'lives_lost': 2}
    assert engine.lives == {'a': 2, 'b': 0, 'c': 1}
    assert out.life_lost
    assert (out.score_before, out.score_after) == (3, 2)
    # b is out of lives and gets skipped
    assert engine.current_player == 'c'
    assert engine.winner is None


def test_killer_last_player_standing_wins():
    engine = _killer(starting_lives=1)
    _visit(engine, (1, D))
    _visit(engine, (25, D))
    _visit(engine)
    out = _visit(engine, (2, S), (3, S), (1, T))
    # the turn stops counting once a single player is left
    assert len(out.metadata['hits']) == 2
    assert engine.lives == {'a': 1, 'b': 0, 'c': 0}
    assert engine.winner == 'a'
    assert engine.state is EngineState.GAME_OVER


def test_killer_preview_and_undo_leave_state_alone():
    engine = _killer()
    _visit(engine, (1, D))
    _visit(engine)
    _visit(engine)
    before = (dict(engine.lives), list(engine.game.killers))
    outcome = engine.policy.validate_turn(engine.game, 'a', [Throw(2, T)])
    assert outcome.metadata['hits'][0]['lives_lost'] == 3
    assert (engine.lives, engine.game.killers) == before

    _visit(engine, (2, T))
    assert engine.lives['b'] == 0
    engine.undo_last_turn()
    assert engine.lives['b'] == 3

    engine.restart()
    assert engine.game.killers == []
    assert engine.policy.numbers == {'a': 1, 'b': 2, 'c': 3}


def test_killer_is_single_leg():
    with pytest.raises(InvalidGameSetup):
        _killer(match_format=3)
