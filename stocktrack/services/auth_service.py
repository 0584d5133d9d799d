import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from stocktrack.config import settings
from stocktrack.errors import AuthError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from stocktrack.models.user import User, UserRole, UserStatus
from stocktrack.services import metadata_service

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_access_token(user_id: str) -> str:
    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError):
        return None


def get_user_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == (email or "").strip().lower()).first()


def register(db: Session, name: str, email: str, password: str) -> User:
    """New accounts start out pending until an admin approves them."""
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise ValidationError("Name is required", field="name")
    if not email or "@" not in email:
        raise ValidationError("A valid email is required", field="email")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password")
    if get_user_by_email(db, email):
        raise ConflictError("User already exists")

    user = User(name=name, email=email, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s (pending approval)", email)
    return user


def login(db: Session, email: str, password: str) -> tuple[str, User]:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password or "", user.password_hash):
        raise ValidationError("Invalid credentials")
    if user.status != UserStatus.APPROVED.value:
        raise AuthorizationError(f"Account is {user.status}. Please wait for admin approval.", status=user.status)
    return create_access_token(user.id), user


def user_from_token(db: Session, token: str) -> User:
    payload = decode_token(token)
    if not payload:
        raise AuthError("Invalid or expired token")
    user = get_user_by_id(db, payload.get("sub", ""))
    if not user:
        raise AuthError("User not found")
    if user.status != UserStatus.APPROVED.value:
        raise AuthorizationError("Account is not approved")
    return user


# User administration

def list_users_by_status(db: Session, status: UserStatus) -> list[User]:
    return db.query(User).filter(User.status == status.value).order_by(User.created_at.desc()).all()


def _get_or_404(db: Session, user_id: str) -> User:
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def set_status(db: Session, user_id: str, status: UserStatus) -> User:
    user = _get_or_404(db, user_id)
    user.status = status.value
    db.commit()
    db.refresh(user)
    logger.info("User %s %s", user.email, status.value)
    return user


def delete_user(db: Session, user_id: str, acting_user: User | None = None) -> None:
    user = _get_or_404(db, user_id)
    if acting_user is not None and acting_user.id == user.id:
        raise ValidationError("Cannot delete yourself")
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s", user_id)


def toggle_role(db: Session, user_id: str, acting_user: User | None = None) -> User:
    user = _get_or_404(db, user_id)
    if acting_user is not None and acting_user.id == user.id:
        raise ValidationError("Cannot change your own role")
    user.role = UserRole.USER.value if user.role == UserRole.ADMIN.value else UserRole.ADMIN.value
    db.commit()
    db.refresh(user)
    logger.info("User %s role is now %s", user.email, user.role)
    return user


def ensure_default_admin(db: Session) -> User | None:
    """Create the configured admin if no admin exists, and seed default metadata."""
    if db.query(User).filter(User.role == UserRole.ADMIN.value).first():
        return None
    email = settings.DEFAULT_ADMIN_EMAIL.strip().lower()
    admin = get_user_by_email(db, email)
    if admin:
        admin.role = UserRole.ADMIN.value
        admin.status = UserStatus.APPROVED.value
    else:
        admin = User(
            name=settings.DEFAULT_ADMIN_NAME,
            email=email,
            password_hash=hash_password(settings.DEFAULT_ADMIN_PASSWORD),
            role=UserRole.ADMIN.value,
            status=UserStatus.APPROVED.value,
        )
        db.add(admin)
    db.commit()
    db.refresh(admin)
    metadata_service.seed_defaults(db, admin.id)
    logger.info("Default admin %s created", email)
    return admin
