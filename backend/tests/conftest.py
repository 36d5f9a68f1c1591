import os
import sys
import pytest

# Ensure the backend root (containing the `squares` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from squares import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    DENOMINATIONS = (1, 5, 10, 25, 50, 100)
    DEFAULT_TIP_PCT = 10
    DEFAULT_MAX_PER_PLAYER = 10
    DEFAULT_APPROVAL_THRESHOLD = 100
    SCORE_FEED_BASE_URL = 'https://feed.test/apis/site/v2/sports'
    SCORE_FEED_TIMEOUT_SEC = 1
    SCORE_SYNC_INTERVAL_SEC = 0
    FRONTEND_URL = 'http://frontend.test'
    CORS_ORIGINS = ['http://frontend.test']


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import squares.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def admin_client(flask_app):
    test_client = flask_app.test_client()
    res = test_client.post('/register', json={'email': 'host@example.com', 'password': 'pw', 'name': 'Host'})
    assert res.status_code == 201
    test_client.admin_id = res.get_json()['user']['id']
    return test_client


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


@pytest.fixture()
def admin(flask_app):
    from squares.models import Admin
    row = Admin(email='admin@example.com', name='Admin')
    row.set_password('password')
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture()
def make_player(flask_app):
    from squares.models import Player
    from squares.services.pools.grid import add_member

    def _make(name='Alice', *pools, **fields):
        """Create a player and put them on the roster of each pool given."""
        player = Player(name=name, **fields)
        db.session.add(player)
        db.session.commit()
        for pool in pools:
            add_member(pool.id, player.id, 'admin')
        return player
    return _make


@pytest.fixture()
def make_pool(flask_app, admin):
    from squares.services.pools.grid import create_pool

    def _make(**settings):
        params = {
            'name': 'Big Game',
            'away_team': 'KC',
            'home_team': 'PHI',
            'denomination': 10,
        }
        params.update(settings)
        return create_pool(admin.id, **params)
    return _make


@pytest.fixture()
def fill_squares(flask_app):
    """Claim ``count`` squares in row-major order, cycling through players."""
    from squares.services.pools.claims import claim_square

    def _fill(pool, players, count, start=0):
        for i in range(start, start + count):
            player = players[i % len(players)]
            claim_square(pool.id, i // 10, i % 10, player.id, 'admin', 'admin')
    return _fill
