"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from teamsync.server.models import Team, User

# === Auth schemas ===


class RegisterRequest(BaseModel):
    """Request body for user registration."""

    username: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    """Request body for login."""

    email: str
    password: str


class JoinTeamRequest(BaseModel):
    """Request body for joining a team by code."""

    team_code: str = Field(min_length=1)


class UserResponse(BaseModel):
    """User data in responses."""

    id: int
    username: str
    email: str
    team_id: int | None
    team_name: str | None
    role: str
    created_at: str


class TeamResponse(BaseModel):
    """Team data in responses."""

    id: int
    name: str
    code: str


class AuthResponse(BaseModel):
    """Response for register and login."""

    success: bool = True
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    """Response for the current user endpoint."""

    success: bool = True
    user: UserResponse


class JoinTeamResponse(BaseModel):
    """Response for joining a team."""

    success: bool = True
    message: str
    team: TeamResponse


class LogoutResponse(BaseModel):
    """Response for token revocation."""

    success: bool = True


# === Data schemas ===


class BucketResponse(BaseModel):
    """Single bucket read."""

    data: list[Any]


class AllDataResponse(BaseModel):
    """Aggregate bucket read."""

    data: dict[str, list[Any]]


class WriteResponse(BaseModel):
    """Bucket write acknowledgement."""

    success: bool = True


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def user_to_response(user: User) -> UserResponse:
    """Convert User to response model."""
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        team_id=user.team_id,
        team_name=user.team_name,
        role=user.role,
        created_at=user.created_at.isoformat(),
    )


def team_to_response(team: Team) -> TeamResponse:
    """Convert Team to response model."""
    return TeamResponse(id=team.id, name=team.name, code=team.code)
