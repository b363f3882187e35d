from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Per-process registry of record locks shared by every request thread
    from economy.services.transactions import RecordLocks
    flask_app.extensions['record_locks'] = RecordLocks()

    from economy.errors import register_error_handlers
    register_error_handlers(flask_app)

    # Import and register blueprints here
    from economy.routes import main
    flask_app.register_blueprint(main)

    from economy.api.trade_offers import trade_offers
    flask_app.register_blueprint(trade_offers, url_prefix='/api/trade-offers')

    from economy.api.armies import armies
    flask_app.register_blueprint(armies, url_prefix='/api/armies')

    from economy.api.realms import realms
    flask_app.register_blueprint(realms, url_prefix='/api/realms')

    # Register Socket.IO event handlers
    from economy.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from economy.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required', 'code': 'unauthenticated'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from economy.models import Realm, RealmMember, City
        from economy.services import build_services
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users, one realm owned by the first, everyone a member
            users = []
            for name in ['testuser1', 'testuser2', 'testuser3']:
                user = User(username=name)
                user.set_password('password')
                db.session.add(user)
                users.append(user)
            db.session.flush()

            realm = Realm(name='Demo Realm', owner_id=users[0].id)
            db.session.add(realm)
            db.session.flush()
            for user in users[1:]:
                db.session.add(RealmMember(realm_id=realm.id, user_id=user.id))
            for user in users:
                db.session.add(City(realm_id=realm.id, owner_id=user.id, name=f"{user.username} keep", upgrade_tier=2))
            db.session.commit()

            ledger = build_services().ledger
            for user in users:
                ledger.open_account(realm.id, user.id, currency=1000, wood=100, stone=100, metal=50, food=50, livestock=10)

            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
