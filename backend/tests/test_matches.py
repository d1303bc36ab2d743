import uuid

import pytest

from dartfreak.services.games.remote import RemoteGameplaySession, SessionState


def _darts(*codes):
    from dartfreak.services.games.throws import Throw
    return [Throw.parse(c).to_dict() for c in codes]


def _challenge(client, receiver_id, **extra):
    body = {'receiver_id': receiver_id, 'game_type': '301', 'match_format': 1}
    body.update(extra)
    return client.post('/api/matches/challenge', json=body)


def _start_match(challenger, receiver, **extra):
    match = _challenge(challenger, receiver.user['id'], **extra).get_json()
    receiver.post(f"/api/matches/{match['id']}/accept")
    challenger.post(f"/api/matches/{match['id']}/join")
    return receiver.post(f"/api/matches/{match['id']}/join").get_json()


def _visit(client, match_id, darts, score_before=None, visit_id=None):
    return client.post(f'/api/matches/{match_id}/visits', json={
        'visit_id': visit_id or uuid.uuid4().hex,
        'darts': darts,
        'score_before': score_before,
    })


def _set_scores(flask_app, match_id, scores):
    from dartfreak import db
    from dartfreak.models import RemoteMatch
    with flask_app.app_context():
        match = db.session.get(RemoteMatch, match_id)
        match.set_scores(scores)
        db.session.commit()


def test_challenge_lifecycle(alice_client, bob_client):
    res = _challenge(alice_client, bob_client.user['id'])
    assert res.status_code == 201
    match = res.get_json()
    assert match['status'] == 'pending'
    assert match['challenge_expires_at'] is not None

    listed = bob_client.get('/api/matches/?status=pending').get_json()
    assert [m['id'] for m in listed] == [match['id']]

    # only the receiver accepts
    assert alice_client.post(f"/api/matches/{match['id']}/accept").status_code == 403
    res = bob_client.post(f"/api/matches/{match['id']}/accept")
    assert res.get_json()['status'] == 'ready'
    assert res.get_json()['join_window_expires_at'] is not None

    res = bob_client.post(f"/api/matches/{match['id']}/join")
    assert res.get_json()['status'] == 'lobby'
    # joining twice does not start the match
    res = bob_client.post(f"/api/matches/{match['id']}/join")
    assert res.get_json()['status'] == 'lobby'

    res = alice_client.post(f"/api/matches/{match['id']}/join")
    started = res.get_json()
    assert started['status'] == 'in_progress'
    assert started['current_player_id'] == alice_client.user['id']
    assert started['scores'] == {str(alice_client.user['id']): 301, str(bob_client.user['id']): 301}


def test_challenge_validation(alice_client, bob_client):
    assert _challenge(alice_client, alice_client.user['id']).status_code == 400
    assert _challenge(alice_client, 9999).status_code == 404
    assert _challenge(alice_client, bob_client.user['id'], game_type='halve_it').status_code == 400
    assert _challenge(alice_client, bob_client.user['id'], match_format=4).status_code == 400


def test_blocked_users_cannot_challenge(alice_client, bob_client):
    bob_client.post('/api/friends/block', json={'user_id': alice_client.user['id']})
    assert _challenge(alice_client, bob_client.user['id']).status_code == 403


def test_one_active_match_per_user(alice_client, bob_client, cara_client):
    _start_match(alice_client, bob_client)
    res = _challenge(alice_client, cara_client.user['id'])
    assert res.status_code == 409
    assert 'active match' in res.get_json()['error']

    # cara can challenge bob, but bob cannot accept while busy
    match = _challenge(cara_client, bob_client.user['id']).get_json()
    res = bob_client.post(f"/api/matches/{match['id']}/accept")
    assert res.status_code == 409


def test_turn_ownership(alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    res = _visit(bob_client, match['id'], _darts('T20'))
    assert res.status_code == 409
    assert res.get_json()['error'] == 'Not your turn'

    res = _visit(alice_client, match['id'], _darts('T20', 'T20', 'T20'), score_before=301)
    body = res.get_json()
    assert res.status_code == 200
    assert body['scores'][str(alice_client.user['id'])] == 121
    assert body['current_player_id'] == bob_client.user['id']
    assert body['last_visit']['score_after'] == 121
    assert body['last_visit']['total'] == 180

    # alice has passed the turn
    assert _visit(alice_client, match['id'], _darts('T20')).status_code == 409


def test_stale_score_is_rejected(alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    res = _visit(alice_client, match['id'], _darts('20'), score_before=250)
    assert res.status_code == 409
    assert res.get_json()['score'] == 301


def test_score_before_must_be_a_number(alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    res = _visit(alice_client, match['id'], _darts('20'), score_before='abc')
    assert res.status_code == 400
    assert res.get_json()['error'] == 'score_before must be a number'
    assert alice_client.get(f"/api/matches/{match['id']}/visits").get_json() == []


def test_visit_submission_is_idempotent(alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    first = _visit(alice_client, match['id'], _darts('T20'), visit_id='v-1').get_json()
    again = _visit(alice_client, match['id'], _darts('T20'), visit_id='v-1')
    assert again.status_code == 200
    assert again.get_json()['scores'] == first['scores']
    visits = alice_client.get(f"/api/matches/{match['id']}/visits").get_json()
    assert len(visits) == 1
    assert visits[0]['visit_id'] == 'v-1'


def test_server_recomputes_busts(flask_app, alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    alice_id = alice_client.user['id']
    _set_scores(flask_app, match['id'], {alice_id: 5, bob_client.user['id']: 301})
    body = _visit(alice_client, match['id'], _darts('5')).get_json()
    assert body['scores'][str(alice_id)] == 5
    assert body['last_visit']['is_bust']
    assert body['current_player_id'] == bob_client.user['id']


def test_bad_darts(alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    assert _visit(alice_client, match['id'], []).status_code == 400
    assert _visit(alice_client, match['id'], _darts('1', '1', '1', '1')).status_code == 400
    assert _visit(alice_client, match['id'], [{'base_value': 30}]).status_code == 400


def test_finishing_completes_match_and_updates_stats(flask_app, alice_client, bob_client):
    match = _start_match(alice_client, bob_client)
    alice_id, bob_id = alice_client.user['id'], bob_client.user['id']
    _set_scores(flask_app, match['id'], {alice_id: 40, bob_id: 301})
    body = _visit(alice_client, match['id'], _darts('D20')).get_json()
    assert body['status'] == 'completed'
    assert body['winner_id'] == alice_id
    assert body['ended_reason'] == 'completed'
    assert body['current_player_id'] is None

    assert alice_client.get('/check_login').get_json()['user']['total_wins'] == 1
    assert bob_client.get('/check_login').get_json()['user']['total_losses'] == 1
    # locks are released
    assert _challenge(alice_client, bob_id).status_code == 201


def test_multi_leg_alternates_the_throw(flask_app, alice_client, bob_client):
    match = _start_match(alice_client, bob_client, match_format=3)
    alice_id, bob_id = alice_client.user['id'], bob_client.user['id']
    _set_scores(flask_app, match['id'], {alice_id: 40, bob_id: 301})
    body = _visit(alice_client, match['id'], _darts('D20')).get_json()
    assert body['status'] == 'in_progress'
    assert body['current_leg'] == 2
    assert body['legs_won'] == {str(alice_id): 1, str(bob_id): 0}
    assert body['scores'] == {str(alice_id): 301, str(bob_id): 301}
    assert body['current_player_id'] == bob_id


def test_cancel_and_abort(alice_client, bob_client, cara_client):
    match = _challenge(alice_client, bob_client.user['id']).get_json()
    assert cara_client.post(f"/api/matches/{match['id']}/cancel").status_code == 403
    res = bob_client.post(f"/api/matches/{match['id']}/cancel")
    assert res.get_json()['status'] == 'cancelled'
    assert res.get_json()['ended_by'] == bob_client.user['id']
    res = bob_client.post(f"/api/matches/{match['id']}/accept")
    assert res.status_code == 410

    match = _start_match(alice_client, bob_client)
    assert alice_client.post(f"/api/matches/{match['id']}/cancel").status_code == 409
    res = alice_client.post(f"/api/matches/{match['id']}/abort")
    body = res.get_json()
    assert body['status'] == 'cancelled'
    assert body['ended_reason'] == 'aborted'
    # idempotent
    assert bob_client.post(f"/api/matches/{match['id']}/abort").get_json()['ended_reason'] == 'aborted'
    assert _visit(bob_client, match['id'], _darts('20')).status_code == 410


def test_expire_requires_passed_deadline(flask_app, alice_client, bob_client):
    match = _challenge(alice_client, bob_client.user['id']).get_json()
    assert alice_client.post(f"/api/matches/{match['id']}/expire").status_code == 409

    from dartfreak import db
    from dartfreak.models import RemoteMatch
    with flask_app.app_context():
        m = db.session.get(RemoteMatch, match['id'])
        m.challenge_expires_at = 1.0
        db.session.commit()

    res = alice_client.post(f"/api/matches/{match['id']}/expire")
    assert res.get_json()['status'] == 'expired'
    assert alice_client.post(f"/api/matches/{match['id']}/expire").get_json()['status'] == 'expired'
    assert bob_client.post(f"/api/matches/{match['id']}/accept").status_code == 410


def test_overdue_matches_expire_lazily_and_by_sweep(flask_app, alice_client, bob_client):
    match = _challenge(alice_client, bob_client.user['id']).get_json()
    bob_client.post(f"/api/matches/{match['id']}/accept")

    from dartfreak import db
    from dartfreak.models import RemoteMatch, RemoteMatchLock
    from dartfreak.services.matches import expire_overdue_matches
    with flask_app.app_context():
        m = db.session.get(RemoteMatch, match['id'])
        m.join_window_expires_at = 1.0
        db.session.commit()
        assert expire_overdue_matches() == [match['id']]
        assert RemoteMatchLock.query.count() == 0
        assert expire_overdue_matches() == []

    res = alice_client.get(f"/api/matches/{match['id']}")
    assert res.get_json()['status'] == 'expired'
    assert res.get_json()['ended_reason'] == 'expired'


def test_expire_cli(flask_app, alice_client, bob_client):
    match = _challenge(alice_client, bob_client.user['id']).get_json()
    from dartfreak import db
    from dartfreak.models import RemoteMatch
    with flask_app.app_context():
        db.session.get(RemoteMatch, match['id']).challenge_expires_at = 1.0
        db.session.commit()
    result = flask_app.test_cli_runner().invoke(args=['expire-matches'])
    assert 'Expired 1 match(es).' in result.output


def test_inline_scheduler_expires_at_deadline(flask_app, alice_client, bob_client):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    flask_app.config['CHALLENGE_EXPIRY_SEC'] = 0
    res = _challenge(alice_client, bob_client.user['id'])
    assert res.status_code == 201
    assert res.get_json()['status'] == 'expired'


def test_match_not_found_and_not_participant(alice_client, bob_client, cara_client):
    assert alice_client.get('/api/matches/999').status_code == 404
    match = _challenge(alice_client, bob_client.user['id']).get_json()
    assert cara_client.get(f"/api/matches/{match['id']}").status_code == 403


def test_remote_sessions_play_a_full_leg(flask_app, alice_client, bob_client, api_service):
    match = _start_match(alice_client, bob_client)
    alice = RemoteGameplaySession(match, alice_client.user['id'], api_service(alice_client))
    bob = RemoteGameplaySession(match, bob_client.user['id'], api_service(bob_client))
    assert alice.is_my_turn and not bob.is_my_turn

    for base, mult in ((20, 3), (20, 3), (20, 3)):
        alice.record_throw(base, mult)
    assert alice.save_visit()
    assert alice.displayed_scores[str(alice_client.user['id'])] == 121

    bob.refresh()
    assert bob.is_my_turn
    assert bob.revealed_visit['score_after'] == 121

    # a stale update makes alice think she still holds the turn; the server says otherwise
    alice.apply_match_update(match)
    assert alice.is_my_turn
    alice.record_throw(20)
    assert not alice.save_visit()
    assert alice.last_error == 'Not your turn'
    assert alice.pending is None
    alice.refresh()
    assert alice.state is SessionState.OPPONENT_TURN
    assert alice.displayed_scores[str(alice_client.user['id'])] == 121

    bob.record_throw(1)
    assert bob.save_visit()
    _set_scores(flask_app, match['id'], {alice_client.user['id']: 40, bob_client.user['id']: 300})
    alice.refresh()
    assert alice.is_my_turn
    alice.clear_throw()
    alice.record_throw(20, 2)
    assert alice.is_winning_throw
    assert alice.save_visit()
    assert alice.state is SessionState.COMPLETED
    bob.refresh()
    assert bob.state is SessionState.COMPLETED
    assert bob.winner_id == str(alice_client.user['id'])


@pytest.mark.parametrize('status', ['lobby', 'ready'])
def test_abort_before_start(alice_client, bob_client, status):
    match = _challenge(alice_client, bob_client.user['id']).get_json()
    bob_client.post(f"/api/matches/{match['id']}/accept")
    if status == 'lobby':
        bob_client.post(f"/api/matches/{match['id']}/join")
    res = alice_client.post(f"/api/matches/{match['id']}/abort")
    assert res.get_json()['ended_reason'] == 'aborted'
