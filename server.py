import json
import logging
import click
import redis
from datetime import datetime, timezone, timedelta
from flask import Flask, jsonify, current_app
from flask_cors import CORS
from flask_migrate import Migrate
from flask_mailman import Mail
from flask_jwt_extended import JWTManager, get_jwt, create_access_token, get_jwt_identity
from sqlalchemy import text
from models import db, check_db, User
from config import Config

logger = logging.getLogger(__name__)

mail = Mail()
migrate = Migrate()
jwt = JWTManager()


def initialize_redis(app):
    """Initialize Redis and attach it to the app."""
    redis_client = redis.StrictRedis(
        host=app.config['REDIS_HOST'],
        port=app.config['REDIS_PORT'],
        db=app.config['REDIS_DB'],
        decode_responses=True
    )
    app.redis_client = redis_client


def initialize_db(app):
    """Initialize the database and check table creation."""
    db.init_app(app)
    check_db(app.config['SQLALCHEMY_DATABASE_URI'])

    with app.app_context():
        db.create_all()


def register_jwt_callbacks(jwt_manager):

    @jwt_manager.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        return current_app.redis_client.get(f"blocklist:{jwt_payload['jti']}") is not None

    @jwt_manager.unauthorized_loader
    def missing_token(reason):
        return jsonify({"error": "Access denied. No token provided."}), 401

    @jwt_manager.invalid_token_loader
    def invalid_token(reason):
        return jsonify({"error": "Invalid token."}), 401

    @jwt_manager.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({"error": "Token expired."}), 401

    @jwt_manager.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return jsonify({"error": "Token has been revoked."}), 401


def register_blueprints(app):
    from routes.auth import auth
    from routes.users import users
    from routes.research import research
    from routes.papers import papers
    from routes.events import events
    from routes.contact import contact
    from routes.files import files
    from routes.jobs import jobs
    from routes.attendance import attendance
    from routes.employee import employee
    from routes.notifications import notifications
    from routes.collaborations import collaborations
    from routes.reports import reports
    from routes.admin import admin

    app.register_blueprint(auth, url_prefix='/api/auth')
    app.register_blueprint(users, url_prefix='/api/users')
    app.register_blueprint(research, url_prefix='/api/research')
    app.register_blueprint(papers, url_prefix='/api/papers')
    app.register_blueprint(events, url_prefix='/api/events')
    app.register_blueprint(contact, url_prefix='/api/contact')
    app.register_blueprint(files, url_prefix='/api/files')
    app.register_blueprint(jobs, url_prefix='/api/jobs')
    app.register_blueprint(attendance, url_prefix='/api/attendance')
    app.register_blueprint(employee, url_prefix='/api/employee')
    app.register_blueprint(notifications, url_prefix='/api/notifications')
    app.register_blueprint(collaborations, url_prefix='/api/collaborations')
    app.register_blueprint(reports, url_prefix='/api/reports')
    app.register_blueprint(admin, url_prefix='/api/admin')


def register_commands(app):

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option('--first-name', default='Admin')
    @click.option('--last-name', default='User')
    def create_admin(email, password, first_name, last_name):
        """Create an approved admin account."""
        from services import user_srv
        from services.auth_services import validate_password
        from services.errors import APIError

        password_error = validate_password(password)
        if password_error:
            raise click.ClickException(password_error)
        try:
            user = user_srv.add_new_user(
                {"first_name": first_name, "last_name": last_name,
                 "email": email, "password": password},
                role='admin'
            )
            user.approve(user.user_id)
            user.email_verified = True
            db.session.commit()
        except APIError as e:
            db.session.rollback()
            raise click.ClickException(e.message)
        click.echo(f"Admin {user.email} created with id {user.user_id}")

    @app.cli.command('approve-all-users')
    def approve_all_users():
        """Approve every pending account."""
        pending = User.query.filter_by(approval_status='pending').all()
        for user in pending:
            user.approve(None)
        db.session.commit()
        click.echo(f"Approved {len(pending)} users")


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    CORS(app, resources={
        r"/api/*": {
            "origins": app.config['CORS_ORIGINS'],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "Accept"],
            "supports_credentials": True,
            "expose_headers": ["Content-Type", "Authorization", "Content-Disposition"]
        }
    })

    initialize_db(app)
    mail.init_app(app)
    migrate.init_app(app, db)
    initialize_redis(app)
    jwt.init_app(app)
    register_jwt_callbacks(jwt)

    from services.errors import configure_error_handlers
    configure_error_handlers(app)
    register_blueprints(app)
    register_commands(app)

    @app.route('/')
    def index():
        return jsonify({"message": "API is running"})

    @app.route('/api/health')
    def health():
        try:
            db.session.execute(text('SELECT 1'))
            database = 'connected'
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            database = 'unavailable'
        return jsonify({
            "status": "OK" if database == 'connected' else "DEGRADED",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": database
        }), 200 if database == 'connected' else 503

    @app.after_request
    def refresh_expiring_jwts(response):
        try:
            exp_timestamp = get_jwt()["exp"]
            now = datetime.now(timezone.utc)
            target_timestamp = datetime.timestamp(now + timedelta(minutes=30))

            if target_timestamp > exp_timestamp > datetime.timestamp(now):
                access_token = create_access_token(identity=get_jwt_identity())
                data = response.get_json(silent=True)
                if type(data) is dict:
                    data["token"] = access_token
                    response.data = json.dumps(data)
            return response
        except (RuntimeError, KeyError):
            return response

    return app


if __name__ == "__main__":
    import threading
    from services.scheduler import register_jobs, run_scheduler

    app = create_app()
    register_jobs(app)
    scheduler_thread = threading.Thread(target=run_scheduler, daemon=True)
    scheduler_thread.start()
    app.run(host="0.0.0.0", debug=True, port=5000)
