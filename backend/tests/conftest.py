import os
import sys
import pytest

# Ensure the backend root (containing the `dartfreak` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from dartfreak import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'INFO'
    CHALLENGE_EXPIRY_SEC = 86400
    JOIN_WINDOW_SEC = 300
    INVITE_EXPIRY_DAYS = 7
    INVITE_URL_BASE = 'https://www.dartfreak.com/invite'
    DEFAULT_STARTING_SCORE = 301
    EXPIRY_SWEEP_SEC = 0
    TIMER_HEARTBEAT_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import dartfreak.models  # noqa: F401
        db.create_all()
    # Not held open: each request gets its own app context, so the logged-in
    # user cached on `g` never leaks between test clients.
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def register(test_client, username, password='password'):
    res = test_client.post('/register', json={'username': username, 'password': password})
    assert res.status_code == 201, res.get_json()
    return res.get_json()['user']


@pytest.fixture()
def alice_client(flask_app):
    c = flask_app.test_client()
    c.user = register(c, 'alice')
    return c


@pytest.fixture()
def bob_client(flask_app):
    c = flask_app.test_client()
    c.user = register(c, 'bob')
    return c


@pytest.fixture()
def cara_client(flask_app):
    c = flask_app.test_client()
    c.user = register(c, 'cara')
    return c


class ApiMatchService:
    """Adapts the HTTP API to the service interface RemoteGameplaySession expects."""

    def __init__(self, test_client):
        self.client = test_client
        self.fail_next = None

    def submit_visit(self, match_id, visit_id, darts, score_before):
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        res = self.client.post(f'/api/matches/{match_id}/visits', json={
            'visit_id': visit_id,
            'darts': darts,
            'score_before': score_before,
        })
        return _raise_for_error(res)

    def fetch_match(self, match_id):
        return _raise_for_error(self.client.get(f'/api/matches/{match_id}'))


def _raise_for_error(res):
    from dartfreak import errors

    body = res.get_json()
    if res.status_code < 400:
        return body
    for exc_cls in (errors.TurnNotOwned, errors.StaleTurn, errors.MatchExpired, errors.MatchCancelled,
                    errors.NotAuthorized, errors.MatchNotFound):
        if body['error'] == exc_cls().message:
            raise exc_cls()
    raise errors.DartFreakError(body['error'])


@pytest.fixture()
def api_service():
    return ApiMatchService
