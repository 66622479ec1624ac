import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

import bcrypt

from ..config import settings
from ..exceptions import AuthenticationError, ValidationError
from ..models.schemas import RegisterUserRequest, LoginUserRequest
from .database_service import DatabaseService

logger = logging.getLogger(__name__)

SESSION_TOKEN_BYTES = 32


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


class AuthService:
    """Registration, login and opaque session tokens"""

    def __init__(self, db_service: DatabaseService):
        self.db = db_service

    def _start_session(self, user_id: int) -> Dict[str, Any]:
        token = secrets.token_hex(SESSION_TOKEN_BYTES)
        expires_at = datetime.utcnow() + timedelta(days=settings.SESSION_TTL_DAYS)
        return self.db.create_session(token, user_id, expires_at)

    def register(self, request: RegisterUserRequest) -> Dict[str, Any]:
        """
        Create an account with the sign-up credit bonus and log it in

        Returns:
            dict: {"user": ..., "session": ...}

        Raises:
            ValidationError: the email is already registered
        """
        email = request.email.lower()
        if self.db.get_user_by_email(email):
            raise ValidationError("An account with this email already exists", details={"field": "email"})

        user = self.db.create_user(
            email=email,
            password_hash=hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            initial_credits=settings.DEFAULT_NEW_USER_CREDITS,
        )
        session = self._start_session(user["id"])
        logger.info(f"Registered user {user['id']}")
        return {"user": user, "session": session}

    def login(self, request: LoginUserRequest) -> Dict[str, Any]:
        user = self.db.get_user_by_email(request.email.lower(), include_password=True)
        if not user or not verify_password(request.password, user.pop("passwordHash")):
            logger.warning(f"Failed login attempt for {request.email}")
            raise AuthenticationError("Invalid email or password")

        session = self._start_session(user["id"])
        logger.info(f"User {user['id']} logged in")
        return {"user": user, "session": session}

    def logout(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return self.db.delete_session(token)

    def resolve_session(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """User behind a session token, or None. Stale sessions are deleted on sight."""
        if not token:
            return None

        session = self.db.get_session_record(token)
        if not session:
            return None

        if session["expiresAt"] <= datetime.utcnow():
            self.db.delete_session(token)
            return None

        user = self.db.get_user(session["userId"])
        if not user:
            self.db.delete_session(token)
            return None
        return user
