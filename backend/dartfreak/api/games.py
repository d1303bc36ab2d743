from flask import Blueprint, jsonify, request, current_app

from dartfreak.errors import InvalidThrowInput
from dartfreak.services.games.checkout import (
    MAX_CHECKOUT,
    format_checkout,
    suggest_checkout,
)
from dartfreak.services.games.rules import GameState, create_policy
from dartfreak.services.games.throws import Throw
from dartfreak.services.games.turn import DARTS_PER_TURN


games = Blueprint('games', __name__)


@games.route('/checkout/<int:score>', methods=['GET'])
def checkout(score):
    try:
        darts = int(request.args.get('darts', DARTS_PER_TURN))
    except (TypeError, ValueError):
        darts = DARTS_PER_TURN
    darts = max(1, min(darts, DARTS_PER_TURN))
    route = suggest_checkout(score, darts)
    return jsonify({
        'score': score,
        'darts': darts,
        'reachable': route is not None,
        'route': route,
        'text': format_checkout(route),
    })


def _parse_darts(raw):
    if raw is None:
        return []
    if not isinstance(raw, list) or len(raw) > DARTS_PER_TURN:
        raise InvalidThrowInput(f'darts must be a list of at most {DARTS_PER_TURN}')
    return [Throw.parse(d) if isinstance(d, str) else Throw.from_dict(d) for d in raw]


@games.route('/preview', methods=['POST'])
def preview_turn():
    """Score a visit against a game's rules without storing anything."""
    data = request.get_json(silent=True) or {}
    darts = _parse_darts(data.get('darts'))
    target = data.get('target')
    double_out = data.get('double_out', True)
    if not isinstance(double_out, bool):
        raise InvalidThrowInput('double_out must be true or false')
    policy = create_policy(
        data.get('game_type') or current_app.config.get('DEFAULT_STARTING_SCORE', 301),
        double_out=double_out,
        targets=[target] if target else None,
        difficulty=data.get('difficulty'),
    )
    state = GameState(player_ids=['player'])
    policy.setup(state)
    try:
        if data.get('score') is not None:
            state.scores['player'] = int(data['score'])
        if data.get('score_to_beat') is not None:
            state.score_to_beat = int(data['score_to_beat'])
    except (TypeError, ValueError):
        raise InvalidThrowInput('score and score_to_beat must be numbers')

    outcome = policy.validate_turn(state, 'player', darts)
    body = outcome.to_dict()
    body.pop('player_id', None)
    body['game'] = policy.describe()
    body['suggested_checkout'] = None
    if policy.game_type.is_countdown and not outcome.is_finish and outcome.score_after <= MAX_CHECKOUT:
        body['suggested_checkout'] = suggest_checkout(outcome.score_after)
    return jsonify(body)
