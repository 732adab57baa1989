"""HTTP client for TeamSync server API.

This module provides:
- APIClient: async HTTP client for communicating with the server
- Auth operations (register, login, join team, current user)
- Bucket operations (read one, read all, write)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from teamsync.core.config import ServerConfig
from teamsync.core.fields import DataField, parse_field

logger = logging.getLogger(__name__)

CLIENT_ID_HEADER = "X-Client-Id"


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


class ValidationError(APIError):
    """Request rejected by the server (unknown field, bad payload)."""


@dataclass
class UserInfo:
    """User info from server."""

    id: int
    username: str
    email: str
    team_id: int | None
    team_name: str | None
    role: str
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserInfo:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            username=data["username"],
            email=data["email"],
            team_id=data.get("team_id"),
            team_name=data.get("team_name"),
            role=data.get("role", "owner"),
            created_at=(
                datetime.fromisoformat(data["created_at"])
                if data.get("created_at")
                else None
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class TeamInfo:
    """Team info from server."""

    id: int
    name: str
    code: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TeamInfo:
        """Create from API response dictionary."""
        return cls(id=data["id"], name=data["name"], code=data["code"])


@dataclass
class AuthResult:
    """Result of register/login."""

    token: str
    user: UserInfo


class APIClient:
    """Async HTTP client for the TeamSync server API."""

    def __init__(
        self,
        config: ServerConfig,
        client_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the API client.

        Args:
            config: Server configuration with URL and token.
            client_id: Client instance ID sent with writes.
            transport: Optional transport (used for testing against an app).
        """
        self._config = config
        self._client_id = client_id
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )
        if config.token:
            self.set_token(config.token)

    @property
    def config(self) -> ServerConfig:
        """Server configuration in use."""
        return self._config

    def set_token(self, token: str) -> None:
        """Use a new bearer token for subsequent requests."""
        self._config.token = token
        self._client.headers["Authorization"] = f"Bearer {token}"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> APIClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response
        try:
            detail = response.json().get("detail", "Unknown error")
        except ValueError:
            detail = response.text or "Unknown error"
        if response.status_code == 401:
            raise AuthenticationError(str(detail), 401)
        if response.status_code == 404:
            raise NotFoundError(str(detail), 404)
        if response.status_code in (400, 422):
            raise ValidationError(str(detail), response.status_code)
        raise APIError(str(detail), response.status_code)

    def _json_body(self, response: httpx.Response) -> dict[str, Any]:
        """Decode a successful response that must be a JSON object."""
        try:
            body = self._handle_response(response).json()
        except ValueError as e:
            raise APIError(f"Invalid JSON response: {e}", response.status_code) from e
        if not isinstance(body, dict):
            raise APIError("Unexpected response body", response.status_code)
        return body

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = await self._client.get("/api/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Auth operations ===

    async def register(self, username: str, email: str, password: str) -> AuthResult:
        """Register a new user. The returned token is used from now on.

        Returns:
            AuthResult with token and user.
        """
        response = await self._client.post(
            "/api/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        data = self._handle_response(response).json()
        self.set_token(data["token"])
        return AuthResult(token=data["token"], user=UserInfo.from_dict(data["user"]))

    async def login(self, email: str, password: str) -> AuthResult:
        """Log in. The returned token is used from now on.

        Returns:
            AuthResult with token and user.
        """
        response = await self._client.post(
            "/api/auth/login",
            json={"email": email, "password": password},
        )
        data = self._handle_response(response).json()
        self.set_token(data["token"])
        return AuthResult(token=data["token"], user=UserInfo.from_dict(data["user"]))

    async def join_team(self, team_code: str) -> TeamInfo:
        """Join a team by its code.

        Returns:
            The joined team.
        """
        response = await self._client.post(
            "/api/auth/join-team", json={"team_code": team_code}
        )
        data = self._handle_response(response).json()
        return TeamInfo.from_dict(data["team"])

    async def me(self) -> UserInfo:
        """Get the authenticated user."""
        response = await self._client.get("/api/auth/me")
        data = self._handle_response(response).json()
        return UserInfo.from_dict(data["user"])

    async def logout(self) -> None:
        """Revoke the current token on the server."""
        response = await self._client.post("/api/auth/logout")
        self._handle_response(response)

    # === Bucket operations ===

    async def get_data(self, field: DataField | str) -> list[Any]:
        """Read one bucket of the user's team.

        Args:
            field: Bucket to read.

        Returns:
            Stored array (empty if unset).
        """
        field = parse_field(field)
        response = await self._client.get(f"/api/data/{field.value}")
        value = self._json_body(response).get("data") or []
        if not isinstance(value, list):
            raise APIError(
                f"Bucket {field.value} is not an array", response.status_code
            )
        return list(value)

    async def get_all_data(self) -> dict[str, list[Any]]:
        """Read the aggregate subset of buckets."""
        response = await self._client.get("/api/data/all")
        value = self._json_body(response).get("data") or {}
        if not isinstance(value, dict):
            raise APIError("Aggregate data is not an object", response.status_code)
        return dict(value)

    async def save_data(self, field: DataField | str, payload: list[Any]) -> None:
        """Replace one bucket of the user's team.

        Args:
            field: Bucket to write.
            payload: New full value.
        """
        field = parse_field(field)
        headers = {CLIENT_ID_HEADER: self._client_id} if self._client_id else None
        response = await self._client.post(
            f"/api/data/{field.value}", json=payload, headers=headers
        )
        self._handle_response(response)
        logger.debug("Saved %s (%d items)", field.value, len(payload))
