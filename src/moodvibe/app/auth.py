import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import PyMongoError

from ..agents.config import JWT_EXPIRES_DAYS, JWT_SECRET
from ..agents.errors import AuthenticationError, UserExistsError
from .schemas import AuthUser
from .users import UserStore, to_auth_user

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
INVALID_CREDENTIALS = "Invalid email or password"
# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72

AUTH_POLICIES = ("required", "optional", "none")


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class AuthService:
    """Registers and logs in users, and issues/verifies their bearer tokens."""

    def __init__(
        self,
        users: UserStore,
        secret: str = JWT_SECRET,
        expires_days: int = JWT_EXPIRES_DAYS,
        bcrypt_rounds: int = 12,
    ):
        self.users = users
        self._secret = secret
        self._expires = timedelta(days=expires_days)
        self._bcrypt_rounds = bcrypt_rounds

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._bcrypt_rounds)
        return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")

    def verify_password(self, password: str, hashed_password: str) -> bool:
        return bcrypt.checkpw(_password_bytes(password), hashed_password.encode("utf-8"))

    def generate_token(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": user_id, "iat": now, "exp": now + self._expires}
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> Optional[str]:
        """Returns the user id carried by a valid token, or None."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError:
            return None
        return payload.get("sub")

    def _session_for(self, doc: dict) -> tuple[AuthUser, str]:
        user = to_auth_user(doc)
        return user, self.generate_token(user.id)

    def register_user(self, email: str, name: str, password: str) -> tuple[AuthUser, str]:
        if self.users.find_by_email(email):
            raise UserExistsError("User already exists with this email")

        doc = self.users.create_user(
            email=email,
            name=name,
            password_hash=self.hash_password(password),
            provider="email",
        )
        logger.info(f"Registered user {doc['_id']}")
        return self._session_for(doc)

    def login_user(self, email: str, password: str) -> tuple[AuthUser, str]:
        doc = self.users.find_by_email(email)
        # Same message whether the email is unknown or the password is wrong.
        if not doc or not doc.get("password"):
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not self.verify_password(password, doc["password"]):
            raise AuthenticationError(INVALID_CREDENTIALS)
        return self._session_for(doc)

    def handle_google_user(self, profile: dict) -> tuple[AuthUser, str]:
        """
        Logs in a Google user, creating or linking an account as needed.

        Args:
            profile (dict): OpenID userinfo with `sub`, `email`, `name` and
                            optionally `picture`.
        """
        google_id = profile["sub"]
        email = profile["email"]
        avatar = profile.get("picture")

        doc = self.users.find_by_google_id(google_id)
        if not doc:
            existing = self.users.find_by_email(email)
            if existing:
                doc = self.users.link_google_account(existing, google_id, avatar)
                logger.info(f"Linked Google account to user {doc['_id']}")
            else:
                doc = self.users.create_user(
                    email=email,
                    name=profile.get("name") or email.split("@")[0],
                    google_id=google_id,
                    avatar=avatar,
                    provider="google",
                )
                logger.info(f"Created Google user {doc['_id']}")
        return self._session_for(doc)

    def get_user_from_token(self, token: str) -> AuthUser:
        user_id = self.verify_token(token)
        if not user_id:
            raise AuthenticationError("Invalid or expired token")
        doc = self.users.find_by_id(user_id)
        if not doc:
            raise AuthenticationError("Invalid or expired token")
        return to_auth_user(doc)


_auth_service = None

def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        if JWT_SECRET.startswith("change-me"):
            logger.warning("JWT_SECRET is not set; using the development placeholder")
        _auth_service = AuthService(UserStore())
    return _auth_service


bearer_scheme = HTTPBearer(auto_error=False)


def auth_gate(policy: str):
    """
    Builds the FastAPI dependency that resolves the caller for a route.

    Policies:
        required: 401 without a bearer token, 403 for an invalid one.
        optional: attach the user when the token is valid, else anonymous.
        none:     never look at the Authorization header.
    """
    if policy not in AUTH_POLICIES:
        raise ValueError(f"Unknown auth policy '{policy}', expected one of {AUTH_POLICIES}")

    if policy == "none":
        def no_user() -> Optional[AuthUser]:
            return None
        return no_user

    def resolve_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        auth_service: AuthService = Depends(get_auth_service),
    ) -> Optional[AuthUser]:
        if credentials is None:
            if policy == "required":
                raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Access token required")
            return None

        try:
            return auth_service.get_user_from_token(credentials.credentials)
        except AuthenticationError:
            if policy == "required":
                raise HTTPException(status.HTTP_403_FORBIDDEN, "Invalid or expired token")
            return None
        except PyMongoError as e:
            if policy == "required":
                raise
            logger.warning(f"Could not resolve user from token, continuing anonymously: {e}")
            return None

    return resolve_user


require_user = auth_gate("required")
