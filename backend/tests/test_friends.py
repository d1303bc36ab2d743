def _send(client, user_id):
    return client.post('/api/friends/requests', json={'user_id': user_id})


def test_request_accept_and_list(alice_client, bob_client):
    res = _send(alice_client, bob_client.user['id'])
    assert res.status_code == 201
    request_id = res.get_json()['id']

    received = bob_client.get('/api/friends/requests').get_json()['received']
    assert [r['requester']['username'] for r in received] == ['alice']
    sent = alice_client.get('/api/friends/requests').get_json()['sent']
    assert len(sent) == 1

    # only the addressee can accept
    assert alice_client.post(f'/api/friends/requests/{request_id}/accept').status_code == 404
    res = bob_client.post(f'/api/friends/requests/{request_id}/accept')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'accepted'

    assert [u['username'] for u in alice_client.get('/api/friends/').get_json()] == ['bob']
    assert [u['username'] for u in bob_client.get('/api/friends/').get_json()] == ['alice']


def test_duplicate_and_reverse_requests(alice_client, bob_client):
    bob_id = bob_client.user['id']
    _send(alice_client, bob_id)
    res = _send(alice_client, bob_id)
    assert res.status_code == 409
    res = _send(bob_client, alice_client.user['id'])
    assert res.status_code == 409
    assert res.get_json()['error'] == 'A friend request is already pending'


def test_already_friends(alice_client, bob_client):
    rid = _send(alice_client, bob_client.user['id']).get_json()['id']
    bob_client.post(f'/api/friends/requests/{rid}/accept')
    res = _send(bob_client, alice_client.user['id'])
    assert res.status_code == 409
    assert res.get_json()['error'] == 'You are already friends'


def test_request_to_unknown_or_self(alice_client):
    assert _send(alice_client, 9999).status_code == 404
    assert _send(alice_client, alice_client.user['id']).status_code == 404


def test_deny_and_withdraw_delete_the_request(alice_client, bob_client):
    rid = _send(alice_client, bob_client.user['id']).get_json()['id']
    assert bob_client.post(f'/api/friends/requests/{rid}/deny').status_code == 200
    assert bob_client.get('/api/friends/requests').get_json()['received'] == []

    rid = _send(alice_client, bob_client.user['id']).get_json()['id']
    assert bob_client.delete(f'/api/friends/requests/{rid}').status_code == 404
    assert alice_client.delete(f'/api/friends/requests/{rid}').status_code == 200
    assert alice_client.get('/api/friends/requests').get_json()['sent'] == []


def test_remove_friend(alice_client, bob_client):
    rid = _send(alice_client, bob_client.user['id']).get_json()['id']
    bob_client.post(f'/api/friends/requests/{rid}/accept')
    assert alice_client.delete(f"/api/friends/{bob_client.user['id']}").status_code == 200
    assert bob_client.get('/api/friends/').get_json() == []
    assert alice_client.delete(f"/api/friends/{bob_client.user['id']}").status_code == 404


def test_block_replaces_friendship_and_stops_requests(alice_client, bob_client):
    bob_id = bob_client.user['id']
    rid = _send(alice_client, bob_id).get_json()['id']
    bob_client.post(f'/api/friends/requests/{rid}/accept')

    assert bob_client.post('/api/friends/block', json={'user_id': alice_client.user['id']}).status_code == 201
    assert alice_client.get('/api/friends/').get_json() == []
    assert [u['username'] for u in bob_client.get('/api/friends/blocked').get_json()] == ['alice']

    res = _send(alice_client, bob_id)
    assert res.status_code == 403

    assert bob_client.delete(f"/api/friends/block/{alice_client.user['id']}").status_code == 200
    assert _send(alice_client, bob_id).status_code == 201


def test_each_side_keeps_its_own_block(alice_client, bob_client):
    alice_id, bob_id = alice_client.user['id'], bob_client.user['id']
    assert bob_client.post('/api/friends/block', json={'user_id': alice_id}).status_code == 201
    assert alice_client.post('/api/friends/block', json={'user_id': bob_id}).status_code == 201
    assert [u['username'] for u in alice_client.get('/api/friends/blocked').get_json()] == ['bob']
    assert [u['username'] for u in bob_client.get('/api/friends/blocked').get_json()] == ['alice']

    assert alice_client.delete(f'/api/friends/block/{bob_id}').status_code == 200
    assert alice_client.get('/api/friends/blocked').get_json() == []
    # bob's block still stands
    assert _send(alice_client, bob_id).status_code == 403
    assert [u['username'] for u in bob_client.get('/api/friends/blocked').get_json()] == ['alice']
    assert alice_client.delete(f'/api/friends/block/{bob_id}').status_code == 404


def test_invite_claim_befriends_inviter(alice_client, bob_client):
    res = alice_client.post('/api/friends/invites')
    assert res.status_code == 201
    invite = res.get_json()
    assert invite['url'].endswith('/' + invite['token'])

    res = bob_client.post(f"/api/friends/invites/{invite['token']}/claim")
    assert res.get_json()['result'] == 'claimed'
    assert [u['username'] for u in bob_client.get('/api/friends/').get_json()] == ['alice']

    res = bob_client.post(f"/api/friends/invites/{invite['token']}/claim")
    assert res.status_code == 400
    assert res.get_json()['result'] == 'already_used'


def test_invite_edge_cases(flask_app, alice_client, bob_client, cara_client):
    token = alice_client.post('/api/friends/invites').get_json()['token']
    res = alice_client.post(f'/api/friends/invites/{token}/claim')
    assert res.get_json()['result'] == 'self_invite'

    res = bob_client.post('/api/friends/invites/not-a-token/claim')
    assert res.get_json()['result'] == 'invalid'

    # an existing pending request is reported rather than duplicated
    _send(cara_client, alice_client.user['id'])
    res = cara_client.post(f'/api/friends/invites/{token}/claim')
    assert res.get_json()['result'] == 'pending_exists'

    from dartfreak import db
    from dartfreak.models import Invite
    expired_token = alice_client.post('/api/friends/invites').get_json()['token']
    with flask_app.app_context():
        invite = Invite.query.filter_by(token=expired_token).first()
        invite.expires_at = 0
        db.session.commit()
    res = bob_client.post(f'/api/friends/invites/{expired_token}/claim')
    assert res.status_code == 400
    assert res.get_json()['result'] == 'expired'
