from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from dartfreak.services import friends as svc


friends = Blueprint('friends', __name__)


@friends.route('/', methods=['GET'])
@login_required
def list_friends():
    return jsonify([u.to_dict() for u in svc.list_friends(current_user)])


@friends.route('/<int:user_id>', methods=['DELETE'])
@login_required
def remove_friend(user_id):
    svc.remove_friend(current_user, user_id)
    return jsonify({'success': True})


@friends.route('/requests', methods=['GET'])
@login_required
def list_requests():
    received, sent = svc.pending_requests(current_user)
    return jsonify({
        'received': [r.to_dict() for r in received],
        'sent': [r.to_dict() for r in sent],
    })


@friends.route('/requests', methods=['POST'])
@login_required
def send_request():
    data = request.get_json(silent=True) or {}
    row = svc.send_request(current_user, data.get('user_id'))
    return jsonify(row.to_dict()), 201


@friends.route('/requests/<int:request_id>/accept', methods=['POST'])
@login_required
def accept_request(request_id):
    return jsonify(svc.accept_request(current_user, request_id).to_dict())


@friends.route('/requests/<int:request_id>/deny', methods=['POST'])
@login_required
def deny_request(request_id):
    svc.deny_request(current_user, request_id)
    return jsonify({'success': True})


@friends.route('/requests/<int:request_id>', methods=['DELETE'])
@login_required
def withdraw_request(request_id):
    svc.withdraw_request(current_user, request_id)
    return jsonify({'success': True})


@friends.route('/blocked', methods=['GET'])
@login_required
def list_blocked():
    return jsonify([u.to_dict() for u in svc.blocked_users(current_user)])


@friends.route('/block', methods=['POST'])
@login_required
def block():
    data = request.get_json(silent=True) or {}
    svc.block_user(current_user, data.get('user_id'))
    return jsonify({'success': True}), 201


@friends.route('/block/<int:user_id>', methods=['DELETE'])
@login_required
def unblock(user_id):
    svc.unblock_user(current_user, user_id)
    return jsonify({'success': True})


@friends.route('/invites', methods=['POST'])
@login_required
def create_invite():
    invite = svc.create_invite(current_user)
    data = invite.to_dict()
    data['url'] = svc.invite_url(invite)
    return jsonify(data), 201


@friends.route('/invites/<string:token>/claim', methods=['POST'])
@login_required
def claim_invite(token):
    result = svc.claim_invite(current_user, token)
    return jsonify({'success': True, 'result': result})
