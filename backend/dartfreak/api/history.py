from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from dartfreak.services import history as svc


history = Blueprint('history', __name__)


@history.route('/', methods=['POST'])
@login_required
def save_match():
    record = svc.save_match(current_user, request.get_json(silent=True) or {})
    return jsonify(record.to_dict()), 201


@history.route('/', methods=['GET'])
@login_required
def list_history():
    try:
        limit = max(1, min(int(request.args.get('limit', 50)), 200))
    except (TypeError, ValueError):
        limit = 50
    records = svc.list_history(current_user, limit=limit, game_type=request.args.get('game_type'))
    return jsonify([r.to_dict() for r in records])


@history.route('/stats', methods=['GET'])
@login_required
def stats():
    return jsonify(svc.player_stats(current_user))


@history.route('/<int:record_id>', methods=['GET'])
@login_required
def get_record(record_id):
    return jsonify(svc.get_record(current_user, record_id).to_dict(include_throws=True))
