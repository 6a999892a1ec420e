"""Session Attendance & Deposit Settlement - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from attendance_engine.config import get_config
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Attendance view cache (disabled without REDIS_URL)
    from attendance_engine.services.attendance_cache import AttendanceCache, EXTENSION_KEY
    app.extensions[EXTENSION_KEY] = AttendanceCache.from_config(app.config)

    setup_logging(app)
    register_blueprints(app)
    register_error_handlers(app)
    setup_database(app)
    register_commands(app)

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Session Attendance',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from flask_swagger_ui import get_swaggerui_blueprint
    from attendance_engine.api.tokens import tokens_bp
    from attendance_engine.api.attendance import attendance_bp
    from attendance_engine.api.absences import absences_bp
    from attendance_engine.api.deposits import deposits_bp
    from attendance_engine.utils.swagger import API_URL, SWAGGER_URL, SWAGGER_UI_CONFIG, generate_swagger_spec

    app.register_blueprint(tokens_bp, url_prefix='/api/sessions')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(absences_bp, url_prefix='/api/absences')
    app.register_blueprint(deposits_bp, url_prefix='/api/programs')

    @app.route(API_URL)
    def swagger_spec():
        """Serve Swagger/OpenAPI specification."""
        return jsonify(generate_swagger_spec())

    swaggerui_bp = get_swaggerui_blueprint(SWAGGER_URL, API_URL, config=SWAGGER_UI_CONFIG)
    app.register_blueprint(swaggerui_bp, url_prefix=SWAGGER_URL)


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from attendance_engine.utils.helpers import handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(400)
    def bad_request(error):
        return handle_error(error, 400)

    @app.errorhandler(401)
    def unauthorized(error):
        return handle_error(error, 401)

    @app.errorhandler(403)
    def forbidden(error):
        return handle_error(error, 403)

    @app.errorhandler(404)
    def not_found(error):
        return handle_error(error, 404)

    @app.errorhandler(429)
    def rate_limited(error):
        return handle_error(error, 429)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    if not app.debug and not app.testing:
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = logging.FileHandler('logs/app.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Session Attendance startup')


def setup_database(app: Flask) -> None:
    """Make every model known to the metadata."""
    with app.app_context():
        from attendance_engine.models import (  # noqa: F401
            User, Program, ProgramStaff, ProgramSession, Participant,
            CheckInToken, AttendanceRecord, AbsenceRequest,
            DepositPolicy, RefundTier, Deposit
        )


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('create-admin')
    @click.option('--email', prompt='Admin email')
    @click.option('--name', prompt='Admin name')
    def create_admin(email, name):
        """Create admin user."""
        from sqlalchemy.exc import SQLAlchemyError
        from attendance_engine.models.user import User, UserRole

        if User.query.filter_by(email=email).first():
            raise click.ClickException(f'User already exists: {email}')

        admin = User(email=email, name=name, role=UserRole.ADMIN)
        try:
            admin.save()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise click.ClickException(f'Error creating admin: {e}')
        click.echo(f'Admin user created: {email} (id {admin.id})')

    @app.cli.command('settle-program')
    @click.argument('program_id', type=int)
    @click.option('--admin-email', required=True, help='Administrator the settlement is recorded under')
    def settle_program(program_id, admin_email):
        """Settle every paid deposit of a program."""
        from attendance_engine.models.user import User
        from attendance_engine.services.deposit_service import DepositService

        actor = User.query.filter_by(email=admin_email).first()
        if not actor:
            raise click.ClickException(f'No user with email {admin_email}')

        report, error = DepositService.settle_all(program_id, actor)
        if error:
            raise click.ClickException(error.message)

        for entry in report['results']:
            if entry['success']:
                deposit = entry['deposit']
                click.echo(
                    f"participant {entry['participant_id']}: {deposit['status']} "
                    f"rate={deposit['final_attendance_rate']} returned={deposit['return_amount']} "
                    f"kept={deposit['forfeit_amount']}"
                )
            else:
                click.echo(f"participant {entry['participant_id']}: FAILED {entry['error']['code']}")
        click.echo(f"Settled {report['settled']}, failed {report['failed']}.")
