import datetime
import logging
import re
from functools import wraps
from flask import jsonify, g
from flask_jwt_extended import (
    create_access_token,
    jwt_required,
    get_jwt_identity,
    verify_jwt_in_request
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from models import db
from models.audit_trail import AuditTrail
from models.user import User

logger = logging.getLogger(__name__)

EMAIL_REGEX = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

# Tables that grow fast enough to need a five-digit daily sequence
LONG_SEQUENCE_INDICATORS = ('AUD', 'NT')


def formatting_id(indicator, model_class, id_field, sequence_length=None):
    """
    Generate a new ID based on the current date and last entry.

    Format is 'indicator-YYYYMMDD-NNNN'; 'AUD' and 'NT' use a five-digit
    sequence.
    """
    current_date_str = datetime.datetime.now().strftime('%Y%m%d')

    if sequence_length is None:
        sequence_length = 5 if indicator in LONG_SEQUENCE_INDICATORS else 4

    column = getattr(model_class, id_field)
    last_entry = model_class.query.filter(column.like(f'{indicator}-{current_date_str}-%')) \
                                  .order_by(column.desc()) \
                                  .first()

    if last_entry:
        last_sequence = int(getattr(last_entry, id_field).split('-')[-1])
        next_sequence = f"{last_sequence + 1:0{sequence_length}d}"
    else:
        next_sequence = f"{1:0{sequence_length}d}"

    return f"{indicator}-{current_date_str}-{next_sequence}"


def log_audit_trail(email, role, table_name, record_id, operation, action_desc):
    try:
        audit_id = formatting_id('AUD', AuditTrail, 'audit_id')

        new_audit = AuditTrail(
            audit_id=audit_id,
            email=email,
            role=role,
            table_name=table_name,
            record_id=record_id,
            operation=operation,
            change_datetime=datetime.datetime.now(),
            action_desc=action_desc
        )
        db.session.add(new_audit)
        db.session.commit()

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error logging audit trail: {e}")


def audit(user, table_name, record_id, operation, action_desc):
    """log_audit_trail for an acting User."""
    log_audit_trail(
        email=user.email if user else None,
        role=user.role if user else None,
        table_name=table_name,
        record_id=record_id,
        operation=operation,
        action_desc=action_desc
    )


def validate_password(password):
    if not password or len(password) < 6:
        return "Password must be at least 6 characters long."
    if not re.search(r'[A-Z]', password):
        return "Password must contain at least one uppercase letter."
    if not re.search(r'[a-z]', password):
        return "Password must contain at least one lowercase letter."
    if not re.search(r'[0-9]', password):
        return "Password must contain at least one number."
    return None


def validate_email(email):
    return bool(email) and re.match(EMAIL_REGEX, email) is not None


def generate_token(user_id):
    """Generate access token for the user."""
    return create_access_token(identity=user_id)


def get_current_user():
    """The authenticated User for this request, loaded once and cached on g."""
    if 'current_user' not in g:
        user_id = get_jwt_identity()
        g.current_user = User.get(user_id) if user_id else None
    return g.current_user


def role_required(*roles):
    """
    Require a valid token for an active user. When roles are given the user
    must hold one of them.
    """
    def decorator(f):
        @wraps(f)
        @jwt_required()
        def decorated_function(*args, **kwargs):
            user = get_current_user()

            if not user:
                return jsonify({"error": "User not found"}), 401
            if not user.is_active:
                return jsonify({"error": "Account is deactivated"}), 401
            if roles and user.role not in roles:
                return jsonify({"error": "Access denied. Insufficient permissions."}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


login_required = role_required()
admin_required = role_required('admin')


def optional_auth(f):
    """
    Load the user when a valid token is sent. Requests without a token, or with
    an expired or invalid one, are served anonymously.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            verify_jwt_in_request(optional=True)
            user = get_current_user()
        except (JWTExtendedException, PyJWTError):
            g.current_user = user = None
        if user is not None and not user.is_active:
            g.current_user = None
        return f(*args, **kwargs)
    return decorated_function
