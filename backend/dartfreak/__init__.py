from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import logging
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
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from dartfreak.main import main
    flask_app.register_blueprint(main)

    from dartfreak.api.games import games
    from dartfreak.api.friends import friends
    from dartfreak.api.matches import matches
    from dartfreak.api.history import history
    flask_app.register_blueprint(games, url_prefix='/api/games')
    flask_app.register_blueprint(friends, url_prefix='/api/friends')
    flask_app.register_blueprint(matches, url_prefix='/api/matches')
    flask_app.register_blueprint(history, url_prefix='/api/history')

    from dartfreak.errors import DartFreakError

    @flask_app.errorhandler(DartFreakError)
    def handle_domain_error(exc):
        db.session.rollback()
        try:
            flask_app.logger.info(f"[error] {exc.__class__.__name__} status={exc.status_code}: {exc.message}")
        except Exception:
            pass
        return jsonify(exc.to_dict()), exc.status_code

    # Register Socket.IO event handlers
    from dartfreak.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from dartfreak.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('expire-matches')
    def expire_matches_command():
        """Expires remote matches whose challenge or join window has run out."""
        from dartfreak.services.matches import expire_overdue_matches
        with flask_app.app_context():
            expired = expire_overdue_matches()
            print(f'Expired {len(expired)} match(es).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(expire_matches_command)

    return flask_app
