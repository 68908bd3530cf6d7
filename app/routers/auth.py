"""
Authentication router: owner registration and login.
"""
import time

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_owner
from app.models.user import User
from app.schemas.user import Token, UserCreate, UserLogin, UserResponse
from app.services.auth import AuthService
from app.utils.prometheus_metrics import login_duration_seconds

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Register a new owner account.

    - **email**: Valid email address (must be unique)
    - **username**: Username (3-100 characters, must be unique)
    - **password**: Password (8-72 characters)
    """
    try:
        user = await AuthService(db).register(user_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=Token,
    summary="Login to get access token",
)
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """
    Exchange email and password for a JWT. Send it as `Authorization: Bearer <token>`.
    """
    start = time.perf_counter()
    token = await AuthService(db).login(login_data.email, login_data.password)
    login_duration_seconds.labels(result="success" if token else "failure").observe(time.perf_counter() - start)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user profile",
)
async def get_me(
    current_user: User = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Profile plus share and export totals."""
    profile = UserResponse.model_validate(current_user)
    profile.stats = await AuthService(db).get_owner_stats(current_user)
    return profile
