"""
============================================================================
RaceFi Backend v1.0.0
User Store - Account Persistence
============================================================================

Reliability Level: L6 Critical
Input Constraints: Lower-cased emails, bcrypt password hashes
Side Effects: Database writes (committed per call)

Password hashes and reset tokens never leave this module through
User.to_public().

============================================================================
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import uuid

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.schemas.common import parse_timestamp
from app.schemas.user import UserRole

logger = logging.getLogger(__name__)


_USER_COLUMNS = """
    id, name, email, password_hash, role, reset_password_token,
    reset_password_expire, created_at, updated_at
"""

_UPDATABLE_FIELDS = ("name", "email", "password_hash", "role")


@dataclass
class User:
    id: str
    name: str
    email: str
    password_hash: str
    role: str
    created_at: datetime
    updated_at: datetime
    reset_password_token: Optional[str] = None
    reset_password_expire: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "created_at": self.created_at.isoformat(),
        }


class UserStore:
    """Raw SQL repository for the users table."""

    def __init__(self, db_session: Session) -> None:
        self._db = db_session

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: str = UserRole.USER.value,
    ) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email.lower(),
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self._db.execute(text("""
            INSERT INTO users (id, name, email, password_hash, role, created_at, updated_at)
            VALUES (:id, :name, :email, :password_hash, :role, :created_at, :updated_at)
        """), {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "password_hash": user.password_hash,
            "role": user.role,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        })
        self._db.commit()

        logger.info(f"[USER-STORE] User created | user_id={user.id} | role={user.role}")
        return user

    def get(self, user_id: str) -> Optional[User]:
        row = self._db.execute(
            text(f"SELECT {_USER_COLUMNS} FROM users WHERE id = :id"),
            {"id": user_id},
        ).mappings().fetchone()
        return _to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        row = self._db.execute(
            text(f"SELECT {_USER_COLUMNS} FROM users WHERE email = :email"),
            {"email": email.lower()},
        ).mappings().fetchone()
        return _to_user(row) if row else None

    def list(self) -> List[User]:
        rows = self._db.execute(
            text(f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at ASC")
        ).mappings().fetchall()
        return [_to_user(row) for row in rows]

    def update(self, user_id: str, **fields: Any) -> Optional[User]:
        """
        Update the given fields. Unknown or None-valued fields are ignored.

        Raises:
            sqlalchemy.exc.IntegrityError: If the new email is taken
        """
        changes = {
            key: value for key, value in fields.items()
            if key in _UPDATABLE_FIELDS and value is not None
        }
        if "email" in changes:
            changes["email"] = changes["email"].lower()

        if changes:
            assignments = ", ".join(f"{key} = :{key}" for key in changes)
            params = dict(changes)
            params["id"] = user_id
            params["updated_at"] = datetime.now(timezone.utc).isoformat()
            try:
                self._db.execute(
                    text(f"UPDATE users SET {assignments}, updated_at = :updated_at WHERE id = :id"),
                    params,
                )
                self._db.commit()
            except Exception:
                self._db.rollback()
                raise
            logger.info(
                f"[USER-STORE] User updated | user_id={user_id} | "
                f"fields={sorted(changes)}"
            )
        return self.get(user_id)

    def delete(self, user_id: str) -> bool:
        result = self._db.execute(text("DELETE FROM users WHERE id = :id"), {"id": user_id})
        self._db.commit()
        return result.rowcount > 0

    # =========================================================================
    # Password reset
    # =========================================================================

    def set_reset_token(self, user_id: str, token_hash: str, expires_at: datetime) -> None:
        self._db.execute(text("""
            UPDATE users
            SET reset_password_token = :token, reset_password_expire = :expire
            WHERE id = :id
        """), {
            "id": user_id,
            "token": token_hash,
            "expire": expires_at.isoformat(),
        })
        self._db.commit()

    def get_by_reset_token(self, token_hash: str, now: datetime) -> Optional[User]:
        """Return the user owning an unexpired reset token."""
        row = self._db.execute(
            text(f"SELECT {_USER_COLUMNS} FROM users WHERE reset_password_token = :token"),
            {"token": token_hash},
        ).mappings().fetchone()
        if row is None:
            return None
        user = _to_user(row)
        if user.reset_password_expire is None or user.reset_password_expire <= now:
            return None
        return user

    def complete_password_reset(self, user_id: str, password_hash: str) -> None:
        self._db.execute(text("""
            UPDATE users
            SET password_hash = :password_hash,
                reset_password_token = NULL,
                reset_password_expire = NULL,
                updated_at = :updated_at
            WHERE id = :id
        """), {
            "id": user_id,
            "password_hash": password_hash,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })
        self._db.commit()


def _to_user(row: Any) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=row["role"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
        reset_password_token=row["reset_password_token"],
        reset_password_expire=parse_timestamp(row["reset_password_expire"]),
    )
