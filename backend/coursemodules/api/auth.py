"""Auth API — bearer tokens for site accounts, plus admin-only account creation."""
from __future__ import annotations
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from jose import JWTError, jwt

from coursemodules.container import get_user_repo
from coursemodules.core import config
from coursemodules.domain.account.models import SiteRole, User
from coursemodules.persistence.interfaces.module_repository import RepositoryError
from coursemodules.persistence.interfaces.user_repository import UserRepository

router = APIRouter(prefix="/auth", tags=["auth"])

_bearer = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash.
        return False


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class LoginRequest(BaseModel):
    username: str
    password: str


class UserCreateRequest(BaseModel):
    username: str
    password: str
    role: SiteRole = SiteRole.STUDENT
    display_name: Optional[str] = None
    email: Optional[str] = None


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "display_name": user.display_name,
        "email": user.email,
    }


# ------------------------------------------------------------------
# Tokens
# ------------------------------------------------------------------
def issue_token(user: User) -> str:
    """The token carries the site role; course roles are looked up per request."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": user.id, "username": user.username, "role": user.role.value, "exp": expire}
    return jwt.encode(claims, config.SECRET_KEY, algorithm=config.ALGORITHM)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> dict:
    """Resolve the bearer token into its claims: ``sub``, ``username`` and ``role``."""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return jwt.decode(credentials.credentials, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------
@router.post("/login")
def login(body: LoginRequest, users: UserRepository = Depends(get_user_repo)):
    user = users.get_by_username(body.username)
    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return {"token": issue_token(user), "user": serialize_user(user)}


@router.get("/profile")
def get_profile(current_user: dict = Depends(get_current_user), users: UserRepository = Depends(get_user_repo)):
    user = users.get_by_id(current_user["sub"])
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return serialize_user(user)


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    body: UserCreateRequest,
    current_user: dict = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repo),
):
    if current_user.get("role") != SiteRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only site admins can create users")

    user = User(
        id=str(uuid.uuid4()),
        username=body.username,
        password_hash=hash_password(body.password),
        role=body.role,
        display_name=body.display_name,
        email=body.email,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    try:
        users.insert(user)
    except RepositoryError:
        raise HTTPException(status_code=400, detail=f"Username '{body.username}' is already taken")
    return serialize_user(user)
