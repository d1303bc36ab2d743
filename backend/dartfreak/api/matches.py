from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from dartfreak.services import matches as svc


matches = Blueprint('matches', __name__)


@matches.route('/', methods=['GET'])
@login_required
def list_matches():
    raw = request.args.get('status')
    statuses = [s.strip() for s in raw.split(',') if s.strip()] if raw else None
    return jsonify([m.to_dict() for m in svc.list_matches(current_user, statuses)])


@matches.route('/challenge', methods=['POST'])
@login_required
def create_challenge():
    data = request.get_json(silent=True) or {}
    match = svc.create_challenge(
        current_user,
        data.get('receiver_id'),
        game_type=data.get('game_type', '501'),
        match_format=data.get('match_format', 1),
    )
    return jsonify(match.to_dict()), 201


@matches.route('/<int:match_id>', methods=['GET'])
@login_required
def get_match(match_id):
    return jsonify(svc.get_match(current_user, match_id).to_dict())


@matches.route('/<int:match_id>/accept', methods=['POST'])
@login_required
def accept(match_id):
    return jsonify(svc.accept_challenge(current_user, match_id).to_dict())


@matches.route('/<int:match_id>/join', methods=['POST'])
@login_required
def join(match_id):
    return jsonify(svc.join_match(current_user, match_id).to_dict())


@matches.route('/<int:match_id>/visits', methods=['POST'])
@login_required
def submit_visit(match_id):
    data = request.get_json(silent=True) or {}
    match = svc.submit_visit(
        current_user,
        match_id,
        visit_id=data.get('visit_id'),
        darts=data.get('darts'),
        score_before=data.get('score_before'),
    )
    return jsonify(match.to_dict())


@matches.route('/<int:match_id>/visits', methods=['GET'])
@login_required
def list_visits(match_id):
    return jsonify([v.to_dict() for v in svc.list_visits(current_user, match_id)])


@matches.route('/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel(match_id):
    return jsonify(svc.cancel_match(current_user, match_id).to_dict())


@matches.route('/<int:match_id>/abort', methods=['POST'])
@login_required
def abort(match_id):
    return jsonify(svc.abort_match(current_user, match_id).to_dict())


@matches.route('/<int:match_id>/expire', methods=['POST'])
@login_required
def expire(match_id):
    return jsonify(svc.expire_match(current_user, match_id).to_dict())
