import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `economy` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from economy import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    LOCK_TIMEOUT_SEC = 2.0
    UNIT_UPGRADE_COST_CURVE = 'flat'
    UNIT_UPGRADE_BASE_COST = 20.0


def _make_app(config_class):
    application = create_app(config_class)
    with application.app_context():
        # Ensure models are imported so tables are created
        import economy.models  # noqa: F401
        db.create_all()
    return application


@pytest.fixture()
def flask_app():
    application = _make_app(TestConfig)
    with application.app_context():
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, for tests that use real threads."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'economy.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30}}

    application = _make_app(FileConfig)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


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


@pytest.fixture()
def services(flask_app):
    from economy.services import build_services
    return build_services(flask_app)


def seed_world(services):
    """One realm: alice owns it, bob and dave are members, carol is not.

    alice starts with 1000 currency / 100 wood and a population cap of 5;
    bob and dave hold 50 currency each; carol has a balance but no membership.
    """
    from economy.models import Army, City, Realm, RealmMember, User

    users = {}
    for name in ('alice', 'bob', 'carol', 'dave'):
        user = User(username=name)
        user.set_password('password')
        db.session.add(user)
        users[name] = user
    db.session.flush()

    realm = Realm(name='Westmarch', owner_id=users['alice'].id)
    db.session.add(realm)
    db.session.flush()
    for name in ('bob', 'dave'):
        db.session.add(RealmMember(realm_id=realm.id, user_id=users[name].id))
    # alice: tier 1 + tier 2 cities -> cap 5
    db.session.add(City(name='Ashford', realm_id=realm.id, owner_id=users['alice'].id, upgrade_tier=1))
    db.session.add(City(name='Brightwater', realm_id=realm.id, owner_id=users['alice'].id, upgrade_tier=2))
    army = Army(name='First Host', realm_id=realm.id, owner_id=users['alice'].id)
    db.session.add(army)
    db.session.commit()

    ledger = services.ledger
    ledger.open_account(realm.id, users['alice'].id, currency=1000, wood=100, stone=50, metal=40, livestock=10)
    ledger.open_account(realm.id, users['bob'].id, currency=50)
    ledger.open_account(realm.id, users['carol'].id, currency=500, wood=50)
    ledger.open_account(realm.id, users['dave'].id, currency=50)

    return SimpleNamespace(
        realm_id=realm.id,
        army_id=army.id,
        alice=users['alice'].id,
        bob=users['bob'].id,
        carol=users['carol'].id,
        dave=users['dave'].id,
    )


@pytest.fixture()
def world(flask_app, services):
    return seed_world(services)


@pytest.fixture()
def login(client):
    def _login(username, password='password'):
        res = client.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200
        return res.get_json()['user']
    return _login


@pytest.fixture()
def seed():
    return seed_world
