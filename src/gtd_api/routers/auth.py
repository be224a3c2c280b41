from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import get_current_user
from ..models import UserEntity
from ..repositories import Repository, get_repository
from ..schemas import AuthResponse, CurrentUserOut, LoginRequest, RegisterRequest
from ..services import AuthService
from ..settings import Settings, get_settings

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def _get_service(
    repo: Repository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(repo, settings)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    responses={
        201: {"description": "Account created; token issued"},
        400: {"description": "Validation error"},
        409: {"description": "Email already registered"},
    },
)
def register(payload: RegisterRequest, service: AuthService = Depends(_get_service)) -> AuthResponse:
    return service.register(payload)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login",
    responses={401: {"description": "Invalid email or password"}},
)
def login(payload: LoginRequest, service: AuthService = Depends(_get_service)) -> AuthResponse:
    return service.login(payload)


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=CurrentUserOut,
    summary="Current User",
    responses={401: {"description": "Not authenticated"}},
)
def me(user: UserEntity = Depends(get_current_user)) -> CurrentUserOut:
    return AuthService.current_user(user)
