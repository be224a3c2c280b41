from __future__ import annotations

import logging

from ..errors import Unauthorized
from ..models import UserEntity, new_user
from ..repositories import Repository
from ..schemas import AuthResponse, CurrentUserOut, LoginRequest, RegisterRequest, UserOut
from ..security import create_access_token, hash_password, verify_password
from ..settings import Settings

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."


class AuthService:
    """Registration, login and token issuance."""

    def __init__(self, repository: Repository, settings: Settings):
        self.repository = repository
        self.settings = settings

    def _auth_response(self, user: UserEntity) -> AuthResponse:
        return AuthResponse(
            token=create_access_token(user, self.settings),
            user=UserOut(id=user["id"], email=user["email"], display_name=user["display_name"]),
        )

    def register(self, payload: RegisterRequest) -> AuthResponse:
        """Create an account. Raises Conflict when the email is taken."""
        password_hash = hash_password(payload.password, rounds=self.settings.bcrypt_rounds)
        user = self.repository.add_user(new_user(payload.email, password_hash, payload.display_name))
        logger.info("Registered user %s", user["id"])
        return self._auth_response(user)

    def login(self, payload: LoginRequest) -> AuthResponse:
        """
        Check credentials. Unknown email and wrong password give the same error.
        """
        user = self.repository.get_user_by_email(payload.email)
        if user is None or not verify_password(payload.password, user["password_hash"]):
            logger.warning("Failed login attempt")
            raise Unauthorized(INVALID_CREDENTIALS)
        return self._auth_response(user)

    @staticmethod
    def current_user(user: UserEntity) -> CurrentUserOut:
        return CurrentUserOut(
            id=user["id"],
            email=user["email"],
            display_name=user["display_name"],
            created_at=user["created_at"],
        )
