# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every order and status change must be attributable. Uses bcrypt for
secure password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Emails are normalized (trimmed, lowercased) before every lookup
"""

import bcrypt
import re
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from ..models import User
from ..models.auth import ROLE_STUDENT, VALID_ROLES
from .permission_service import require_permission
from .session_service import revoke_user_sessions
from canteen.time_utils import utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    kind = "weak_password"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = ROLE_STUDENT,
    phone: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing name, malformed email, unknown role
        PasswordValidationError: password doesn't meet requirements
        ConflictError: email already registered
    """
    name = (name or "").strip()
    email = normalize_email(email)

    if not name:
        raise ValidationError("name is required")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(VALID_ROLES)}")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("User with this email already exists")

    user = User(
        name=name,
        email=email,
        phone=(phone or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
    )

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User with this email already exists")
    return user


def register_student(name: str, email: str, password: str, phone: str | None = None) -> User:
    """Self-registration always produces a student account."""
    return create_user(name=name, email=email, password=password, role=ROLE_STUDENT, phone=phone)


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


# =============================================================================
# User administration
# =============================================================================

USER_ADMIN_FIELDS = {"name", "phone", "role", "is_active"}
PROFILE_FIELDS = {"name", "phone"}
MAX_NAME_LENGTH = 128
MAX_PHONE_LENGTH = 32


def _clean_contact_fields(payload: dict) -> dict:
    """Validate the name/phone keys of a payload without touching the user."""
    cleaned = {}
    if "name" in payload:
        name = payload["name"].strip() if isinstance(payload["name"], str) else ""
        if not name:
            raise ValidationError("name cannot be blank")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"name exceeds max length {MAX_NAME_LENGTH}")
        cleaned["name"] = name

    if "phone" in payload:
        if payload["phone"] is not None and not isinstance(payload["phone"], str):
            raise ValidationError("phone must be a string")
        phone = (payload["phone"] or "").strip() or None
        if phone and len(phone) > MAX_PHONE_LENGTH:
            raise ValidationError(f"phone exceeds max length {MAX_PHONE_LENGTH}")
        cleaned["phone"] = phone
    return cleaned


def update_profile(actor: User, payload: dict) -> User:
    """
    Let any signed-in user change their own name and phone.

    Orders and invoices placed afterwards snapshot the new values; earlier
    ones keep what they captured.
    """
    if actor is None:
        raise UnauthorizedError("Authentication required")
    if not isinstance(payload, dict) or not payload:
        raise ValidationError("Nothing to update")
    unknown = sorted(set(payload) - PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    for key, value in _clean_contact_fields(payload).items():
        setattr(actor, key, value)
    db.session.commit()
    return actor


def list_users(actor: User, role: str | None = None) -> list[User]:
    require_permission(actor, "MANAGE_USERS", resource="users")

    q = db.session.query(User)
    if role:
        if role not in VALID_ROLES:
            raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(VALID_ROLES)}")
        q = q.filter(User.role == role)
    return q.order_by(User.id.asc()).all()


def update_user(actor: User, user_id: int, payload: dict) -> User:
    """
    Change a user's name, phone, role or active flag (admin).

    Deactivating a user revokes every live session immediately. Admins
    cannot demote or deactivate themselves.
    """
    require_permission(actor, "MANAGE_USERS", resource=f"user:{user_id}")

    if not isinstance(payload, dict) or not payload:
        raise ValidationError("Nothing to update")
    unknown = sorted(set(payload) - USER_ADMIN_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    contact = _clean_contact_fields(payload)

    if "role" in payload:
        if payload["role"] not in VALID_ROLES:
            raise ValidationError(f"Invalid role '{payload['role']}'. Must be one of: {', '.join(VALID_ROLES)}")
        if user.id == actor.id and payload["role"] != user.role:
            raise ValidationError("You cannot change your own role")
        user.role = payload["role"]

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        if user.id == actor.id and not payload["is_active"]:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = payload["is_active"]
        if not user.is_active:
            revoke_user_sessions(user.id, reason="User account deactivated")

    for key, value in contact.items():
        setattr(user, key, value)

    db.session.commit()
    return user
