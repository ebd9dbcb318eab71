from fastapi import APIRouter, status, Depends, Path, Query
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from typing import Optional
import logging

from ....core.config import Settings
from ....core.exceptions import UnauthenticatedError
from ....core.security import create_access_token, decode_access_token
from ....schemas.user import (
    RegisterResponse,
    Token,
    UserCreate,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from ....services.user_service import UserService, public_view
from ..deps import get_app_settings, get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/users/login",
    description="Enter the access token directly (without 'Bearer' prefix)",
    scheme_name="JWT",
    auto_error=False,
)

async def _resolve_token(token: str, users: UserService, settings: Settings) -> Optional[dict]:
    user_id = decode_access_token(token, settings)
    if not user_id:
        return None
    user = await users.store.get_user(user_id)
    return public_view(user) if user else None

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    users: UserService = Depends(get_user_service),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """Get the current authenticated user."""
    if not token:
        raise UnauthenticatedError("Not authenticated")
    user = await _resolve_token(token, users, settings)
    if not user:
        raise UnauthenticatedError("Could not validate credentials")
    return user

async def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    users: UserService = Depends(get_user_service),
    settings: Settings = Depends(get_app_settings),
) -> Optional[dict]:
    """Like get_current_user, but anonymous callers (or stale tokens) yield None."""
    if not token:
        return None
    return await _resolve_token(token, users, settings)

# Routes
@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    users: UserService = Depends(get_user_service),
):
    """Register a new user."""
    return await users.register(user_data)

@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    users: UserService = Depends(get_user_service),
    settings: Settings = Depends(get_app_settings),
):
    """Log in with email (as ``username``) and password and return an access token."""
    user = await users.authenticate(form_data.username, form_data.password)
    if not user:
        raise UnauthenticatedError("Invalid credentials")
    access_token = create_access_token(user["id"], settings)
    logger.info("Issued access token for user %s", user["id"])
    return {"access_token": access_token, "token_type": "bearer"}

@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(current_user: dict = Depends(get_current_user)):
    """Get the current user's profile."""
    return current_user

@router.get("", response_model=UserListResponse)
async def get_users(
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    users: UserService = Depends(get_user_service),
):
    """Browse public profiles, optionally filtered by name or skill."""
    return await users.list_users(search, page, limit)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: str = Path(...),
    viewer: Optional[dict] = Depends(get_optional_user),
    users: UserService = Depends(get_user_service),
):
    """Get a user's profile. Private profiles are only visible to their owner."""
    return await users.get_visible_user(user_id, viewer["id"] if viewer else None)

@router.put("/{user_id}", response_model=UserResponse)
async def update_user_profile(
    user_update: UserUpdate,
    user_id: str = Path(...),
    current_user: dict = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    """Update your own profile. Only the supplied fields change."""
    return await users.update_user(user_id, current_user["id"], user_update)
