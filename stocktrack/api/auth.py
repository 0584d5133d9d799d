from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from stocktrack.database import get_db
from stocktrack.errors import AuthError, AuthorizationError
from stocktrack.models.user import User, UserRole
from stocktrack.schemas.user import LoginRequest, RegisterRequest, TokenOut, UserOut
from stocktrack.services import auth_service

router = APIRouter(prefix="/auth", tags=["Auth"])

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: approved user from the bearer token."""
    if not credentials:
        raise AuthError("No token, authorization denied")
    return auth_service.user_from_token(db, credentials.credentials)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        raise AuthorizationError("Admin access required")
    return user


@router.post("/register", response_model=UserOut, status_code=201)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    return auth_service.register(db, data.name, data.email, data.password)


@router.post("/login", response_model=TokenOut)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    token, user = auth_service.login(db, data.email, data.password)
    return {"token": token, "user": user}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user
