from flask import Flask
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
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from squares.main import main
    flask_app.register_blueprint(main)

    from squares.api import register_error_handlers
    from squares.api.pools import pools
    from squares.api.squares import squares
    from squares.api.portal import portal
    from squares.api.players import players
    # Mount routes under /api to match frontend API client
    flask_app.register_blueprint(pools, url_prefix='/api/pools')
    flask_app.register_blueprint(squares, url_prefix='/api/pools/<int:pool_id>/squares')
    flask_app.register_blueprint(players, url_prefix='/api/players')
    flask_app.register_blueprint(portal, url_prefix='/api/portal')
    register_error_handlers(flask_app)

    # Register Socket.IO event handlers on the initialized socketio instance
    from squares.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login admin loader
    from squares.models import Admin

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Admin, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return {'error': 'unauthorized', 'message': 'Admin login required'}, 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from squares.models import Player
        from squares.services.pools.grid import create_pool
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            admin = Admin(email='admin@example.com', name='Admin')
            admin.set_password('password')
            db.session.add(admin)

            for name in ['Alice', 'Bob', 'Cara']:
                db.session.add(Player(name=name, email=f'{name.lower()}@example.com'))
            db.session.commit()

            create_pool(
                admin.id,
                name='Demo Pool',
                sport='nfl',
                away_team='KC',
                home_team='PHI',
                denomination=5,
            )
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
