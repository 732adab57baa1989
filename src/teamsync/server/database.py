"""Server database using SQLAlchemy with SQLite.

This module provides:
- User registration and team membership
- Token-based authentication
- Per-team synchronized buckets (one JSON array per field)
"""

from __future__ import annotations

import hashlib
import secrets
import string
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, delete, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamsync.core.fields import DataField
from teamsync.server.models import Base, Team, TeamData, Token, User

if TYPE_CHECKING:
    from sqlalchemy import Engine

TEAM_CODE_ALPHABET = string.ascii_uppercase + string.digits
TEAM_CODE_LENGTH = 8


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def generate_team_code() -> str:
    """Generate a random join code for a team."""
    return "".join(secrets.choice(TEAM_CODE_ALPHABET) for _ in range(TEAM_CODE_LENGTH))


def personal_team_name(username: str) -> str:
    """Name of the team created automatically at registration."""
    return f"{username}'s team"


class EmailAlreadyRegisteredError(Exception):
    """Raised when registering with an email that is already in use."""


class Database:
    """SQLAlchemy database for users, teams and synchronized buckets.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        # Enable WAL mode
        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === User operations ===

    def create_user(self, username: str, email: str, password_hash: str) -> User:
        """Register a user together with a personal team.

        The team, its empty data row and the user are created in one
        transaction. The user becomes the team owner.

        Args:
            username: Display name.
            email: Unique login email.
            password_hash: Hashed password.

        Returns:
            Created User object.

        Raises:
            EmailAlreadyRegisteredError: If the email is already in use.
        """
        with self._session() as session:
            existing = session.execute(
                select(User.id).where(User.email == email)
            ).scalar_one_or_none()
            if existing is not None:
                raise EmailAlreadyRegisteredError(email)

            team_name = personal_team_name(username)
            team = Team(name=team_name, code=self._unique_team_code(session), members=[])
            session.add(team)
            session.flush()

            user = User(
                username=username,
                email=email,
                password_hash=password_hash,
                team_id=team.id,
                team_name=team_name,
                role="owner",
            )
            session.add(user)
            session.flush()

            team.owner_id = user.id
            team.members = [user.id]
            session.add(TeamData(team_id=team.id))

            try:
                session.commit()
            except IntegrityError as e:
                raise EmailAlreadyRegisteredError(email) from e
            session.refresh(user)
            session.expunge(user)
            return user

    def get_user(self, user_id: int) -> User | None:
        """Get a user by ID.

        Args:
            user_id: User ID.

        Returns:
            User if found, None otherwise.
        """
        with self._session() as session:
            user = session.get(User, user_id)
            if user:
                session.expunge(user)
            return user

    def get_user_by_email(self, email: str) -> User | None:
        """Get a user by email.

        Args:
            email: Login email.

        Returns:
            User if found, None otherwise.
        """
        with self._session() as session:
            stmt = select(User).where(User.email == email)
            user = session.execute(stmt).scalar_one_or_none()
            if user:
                session.expunge(user)
            return user

    # === Team operations ===

    def _unique_team_code(self, session: Session) -> str:
        """Generate a team code not used by any existing team."""
        while True:
            code = generate_team_code()
            taken = session.execute(
                select(Team.id).where(Team.code == code)
            ).scalar_one_or_none()
            if taken is None:
                return code

    def create_team(self, name: str, owner_id: int | None = None) -> Team:
        """Create a team with an empty data row.

        Args:
            name: Display name.
            owner_id: Optional owner user ID (added to members).

        Returns:
            Created Team object.
        """
        with self._session() as session:
            team = Team(
                name=name,
                code=self._unique_team_code(session),
                owner_id=owner_id,
                members=[owner_id] if owner_id is not None else [],
            )
            session.add(team)
            session.flush()
            session.add(TeamData(team_id=team.id))
            session.commit()
            session.refresh(team)
            session.expunge(team)
            return team

    def get_team(self, team_id: int) -> Team | None:
        """Get a team by ID."""
        with self._session() as session:
            team = session.get(Team, team_id)
            if team:
                session.expunge(team)
            return team

    def get_team_by_code(self, code: str) -> Team | None:
        """Get a team by its join code (case-insensitive)."""
        with self._session() as session:
            stmt = select(Team).where(Team.code == code.strip().upper())
            team = session.execute(stmt).scalar_one_or_none()
            if team:
                session.expunge(team)
            return team

    def join_team(self, user_id: int, code: str) -> Team | None:
        """Move a user into the team identified by a join code.

        The user's team reference is replaced, the user is removed from
        the previous team's member list and appended to the new one (once).

        Args:
            user_id: User joining.
            code: Team join code.

        Returns:
            The joined Team, or None if the code or user is unknown.
        """
        with self._session() as session:
            team = session.execute(
                select(Team).where(Team.code == code.strip().upper())
            ).scalar_one_or_none()
            user = session.get(User, user_id)
            if team is None or user is None:
                return None

            previous_id = user.team_id
            user.team_id = team.id
            user.team_name = team.name

            if previous_id is not None and previous_id != team.id:
                previous = session.get(Team, previous_id)
                if previous is not None and user_id in (previous.members or []):
                    previous.members = [m for m in previous.members if m != user_id]

            members = list(team.members or [])
            if user_id not in members:
                members.append(user_id)
                # Reassign so SQLAlchemy detects the JSON change
                team.members = members

            session.commit()
            session.refresh(team)
            session.expunge(team)
            return team

    def is_team_member(self, user_id: int, team_id: int) -> bool:
        """Check whether a user may access a team's buckets.

        Only the user's current team counts. Leaving a team by joining
        another revokes access to it.
        """
        with self._session() as session:
            user = session.get(User, user_id)
            return user is not None and user.team_id == team_id

    # === Token operations ===

    def create_token(
        self,
        user_id: int,
        expires_in: timedelta | None = None,
    ) -> tuple[str, Token]:
        """Create a new authentication token.

        Args:
            user_id: User ID to associate with token.
            expires_in: Optional expiration duration.

        Returns:
            Tuple of (raw_token, Token object).
        """
        raw_token = "ts_" + secrets.token_urlsafe(32)
        token_hash = hash_token(raw_token)
        now = datetime.now(UTC)
        expires_at = (now + expires_in) if expires_in else None

        with self._session() as session:
            token = Token(
                user_id=user_id,
                token_hash=token_hash,
                created_at=now,
                expires_at=expires_at,
            )
            session.add(token)
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return raw_token, token

    def validate_token(self, raw_token: str) -> Token | None:
        """Validate a token and return it if valid.

        Args:
            raw_token: Raw token string.

        Returns:
            Token if valid, None otherwise.
        """
        token_hash = hash_token(raw_token)
        with self._session() as session:
            stmt = select(Token).where(Token.token_hash == token_hash, Token.revoked == False)  # noqa: E712
            token = session.execute(stmt).scalar_one_or_none()

            if token is None:
                return None

            # Check expiration (handle both naive and aware datetimes)
            if token.expires_at:
                now = datetime.now(UTC)
                expires_at = token.expires_at
                # If expires_at is naive, assume UTC
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=UTC)
                if expires_at < now:
                    return None

            session.expunge(token)
            return token

    def revoke_token(self, token_id: int) -> None:
        """Revoke a token.

        Args:
            token_id: Token ID to revoke.
        """
        with self._session() as session:
            token = session.get(Token, token_id)
            if token:
                token.revoked = True
                session.commit()

    def purge_expired_tokens(self, now: datetime | None = None) -> int:
        """Delete expired and revoked tokens.

        Args:
            now: Reference time (defaults to current UTC time).

        Returns:
            Number of tokens deleted.
        """
        now = now or datetime.now(UTC)
        with self._session() as session:
            stmt = delete(Token).where(
                or_(
                    Token.revoked == True,  # noqa: E712
                    Token.expires_at < now,
                )
            )
            result = session.execute(stmt)
            session.commit()
            return int(result.rowcount or 0)

    # === Bucket operations ===

    def read_bucket(self, team_id: int, field: DataField) -> list[Any]:
        """Read one bucket of a team.

        Args:
            team_id: Team ID.
            field: Bucket to read.

        Returns:
            Stored JSON array, or an empty list if the team has no data row.
        """
        column = getattr(TeamData, field.column)
        with self._session() as session:
            value = session.execute(
                select(column).where(TeamData.team_id == team_id)
            ).scalar_one_or_none()
            return list(value) if value else []

    def read_fields(
        self, team_id: int, fields: Iterable[DataField]
    ) -> dict[str, list[Any]]:
        """Read several buckets of a team in one query.

        Args:
            team_id: Team ID.
            fields: Buckets to read.

        Returns:
            Mapping of field name to stored array (empty list by default).
        """
        fields = list(fields)
        with self._session() as session:
            row = session.get(TeamData, team_id)
            return {
                field.value: list(getattr(row, field.column) or []) if row else []
                for field in fields
            }

    def upsert_field(self, team_id: int, field: DataField, payload: list[Any]) -> None:
        """Replace one bucket of a team, creating the data row if needed.

        Runs as a single INSERT ... ON CONFLICT DO UPDATE statement that
        only touches the target column, so concurrent writes to different
        fields of the same team never overwrite each other. Concurrent
        writes to the same field are last-write-wins.

        Args:
            team_id: Team ID.
            field: Bucket to replace.
            payload: New full value of the bucket.
        """
        now = datetime.now(UTC)
        stmt = sqlite_insert(TeamData).values(
            {"team_id": team_id, field.column: payload, "updated_at": now}
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TeamData.team_id],
            set_={
                field.column: stmt.excluded[field.column],
                "updated_at": stmt.excluded.updated_at,
            },
        )
        with self._session() as session:
            session.execute(stmt)
            session.commit()
