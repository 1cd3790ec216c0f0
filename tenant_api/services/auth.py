"""
Credential & Session Service

Login, refresh-token rotation and user creation against one tenant store.

The service is built per request around a session already bound to the
request's tenant store; it never chooses a store itself.

Outcomes are returned, not raised: LoginSuccess / TokenPair on success,
AuthFailure(kind) otherwise. The HTTP layer maps every AuthFailure to the
same 401 so callers cannot probe which accounts exist.

CONCURRENCY:
- Failed attempts are counted with `SET access_failed_count = access_failed_count + 1`,
  so parallel failures never lose an increment.
- A refresh token is revoked with a conditional UPDATE (`WHERE revoked_at IS NULL`)
  in the same transaction that issues its replacement. Of two concurrent
  refreshes with the same token, exactly one changes a row; the other fails.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple, Union
from sqlalchemy import func, update
from sqlalchemy.orm import Session
from tenant_api.config import Settings, get_settings
from tenant_api.core.exceptions import ErrorKind
from tenant_api.core.security import (
    TENANT_CLAIM,
    create_access_token,
    generate_refresh_token,
    get_password_hash,
    verify_password,
)
from tenant_api.database import utcnow
from tenant_api.models.refresh_token import RefreshToken
from tenant_api.models.user import Role, User
import logging

logger = logging.getLogger(__name__)

REPLACED_REASON = "Replaced"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class LoginSuccess:
    user_id: str
    email: str
    full_name: str
    roles: List[str]
    tokens: TokenPair


@dataclass(frozen=True)
class AuthFailure:
    kind: ErrorKind
    user_id: Optional[str] = field(default=None, compare=False)


LoginResult = Union[LoginSuccess, AuthFailure]
RefreshResult = Union[TokenPair, AuthFailure]


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class AuthService:
    def __init__(self, db: Session, tenant_code: str, settings: Optional[Settings] = None):
        self.db = db
        self.tenant_code = tenant_code
        self.settings = settings or get_settings()

    @property
    def lockout_enabled(self) -> bool:
        return self.settings.MAX_FAILED_LOGIN_ATTEMPTS > 0

    def login(self, email: str, password: str) -> LoginResult:
        normalized = normalize_email(email)
        if not normalized or not password:
            return AuthFailure(ErrorKind.INVALID_CREDENTIALS)

        user = self.db.query(User).filter(func.lower(User.email) == normalized).first()
        if not user:
            return AuthFailure(ErrorKind.INVALID_CREDENTIALS)

        if not user.is_active:
            return AuthFailure(ErrorKind.ACCOUNT_INACTIVE, user.id)

        now = utcnow()

        # A locked account is rejected before the password is looked at
        if self.lockout_enabled and user.is_locked_out(now):
            return AuthFailure(ErrorKind.ACCOUNT_LOCKED_OUT, user.id)

        if not verify_password(password, user.password_hash):
            self._record_failed_attempt(user, now)
            return AuthFailure(ErrorKind.INVALID_CREDENTIALS, user.id)

        self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(access_failed_count=0, lockout_end_at=None, last_login_at=now)
        )
        tokens = self._issue_tokens(user, now)
        self.db.commit()

        logger.info(
            f"User logged in: {user.email}",
            extra={"tenant_code": self.tenant_code, "user_id": user.id}
        )

        return LoginSuccess(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            roles=user.role_names,
            tokens=tokens,
        )

    def refresh(self, token_value: str) -> RefreshResult:
        if not token_value:
            return AuthFailure(ErrorKind.INVALID_TOKEN)

        now = utcnow()
        stored = self.db.query(RefreshToken).filter(
            RefreshToken.token == token_value,
            RefreshToken.revoked_at.is_(None)
        ).first()

        if not stored or not stored.is_usable(now):
            return AuthFailure(ErrorKind.INVALID_TOKEN)

        user = stored.user
        if not user or not user.is_active:
            return AuthFailure(ErrorKind.ACCOUNT_INACTIVE, stored.user_id)

        # CRITICAL: revoke only if still unrevoked; losing a race means failure
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == stored.id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now, revoked_reason=REPLACED_REASON)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return AuthFailure(ErrorKind.INVALID_TOKEN, stored.user_id)

        tokens = self._issue_tokens(user, now)
        self.db.commit()

        logger.info(
            f"Refresh token rotated for user {user.id}",
            extra={"tenant_code": self.tenant_code, "user_id": user.id}
        )
        return tokens

    def hash_password(self, password: str) -> str:
        return get_password_hash(password, self.settings.PASSWORD_HASH_SCHEME)

    def create_user(
        self,
        email: str,
        password: str,
        full_name: str = "",
        role_names: Sequence[str] = (),
    ) -> User:
        """
        Create a credential with a normalized email.

        Roles that do not exist yet are created. Raises IntegrityError when
        the email is already taken.
        """
        user = User(
            email=normalize_email(email),
            password_hash=self.hash_password(password),
            full_name=full_name,
            is_active=True,
        )

        for role_name in role_names:
            role = self.db.query(Role).filter(Role.name == role_name).first()
            if not role:
                role = Role(name=role_name)
                self.db.add(role)
            user.roles.append(role)

        self.db.add(user)
        self.db.commit()

        logger.info(
            f"User created: {user.email}",
            extra={"tenant_code": self.tenant_code, "user_id": user.id}
        )
        return user

    def _record_failed_attempt(self, user: User, now: datetime):
        self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(access_failed_count=User.access_failed_count + 1)
        )

        if self.lockout_enabled:
            self.db.execute(
                update(User)
                .where(
                    User.id == user.id,
                    User.access_failed_count >= self.settings.MAX_FAILED_LOGIN_ATTEMPTS
                )
                .values(lockout_end_at=now + timedelta(minutes=self.settings.LOCKOUT_MINUTES))
            )

        self.db.commit()

    def _issue_tokens(self, user: User, now: datetime) -> TokenPair:
        """Create an access token and persist a new refresh token (uncommitted)."""
        access_token, expires_at = self._create_access_token(user)

        refresh_token = RefreshToken(
            user_id=user.id,
            token=generate_refresh_token(),
            created_at=now,
            expires_at=now + timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )
        self.db.add(refresh_token)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token.token,
            expires_at=expires_at,
        )

    def _create_access_token(self, user: User) -> Tuple[str, datetime]:
        claims = {
            "sub": user.id,
            "userId": user.id,
            "email": user.email,
            "name": user.full_name,
            "roles": user.role_names,
            TENANT_CLAIM: self.tenant_code,
        }
        return create_access_token(
            claims,
            expires_delta=timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
