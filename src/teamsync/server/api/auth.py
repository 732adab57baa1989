"""Authentication and team membership API routes."""

from __future__ import annotations

import logging
from datetime import timedelta

import argon2
from fastapi import APIRouter, Depends, HTTPException, Request, status

from teamsync.server.api.deps import get_current_token, get_current_user, get_db
from teamsync.server.database import Database, EmailAlreadyRegisteredError
from teamsync.server.models import Token, User
from teamsync.server.schemas import (
    AuthResponse,
    JoinTeamRequest,
    JoinTeamResponse,
    LoginRequest,
    LogoutResponse,
    MeResponse,
    RegisterRequest,
    team_to_response,
    user_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

ph = argon2.PasswordHasher()

DEFAULT_TOKEN_TTL = timedelta(hours=24)


def _token_ttl(request: Request) -> timedelta:
    """Token lifetime configured on the app."""
    return getattr(request.app.state, "token_ttl", DEFAULT_TOKEN_TTL)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
def register(
    body: RegisterRequest,
    request: Request,
    db: Database = Depends(get_db),
) -> AuthResponse:
    """Register a user with a personal team and return a token."""
    try:
        user = db.create_user(body.username, body.email, ph.hash(body.password))
    except EmailAlreadyRegisteredError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This email address is already registered",
        ) from e

    raw_token, _ = db.create_token(user.id, expires_in=_token_ttl(request))
    logger.info("User registered: id=%d team_id=%s", user.id, user.team_id)
    return AuthResponse(token=raw_token, user=user_to_response(user))


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    request: Request,
    db: Database = Depends(get_db),
) -> AuthResponse:
    """Authenticate with email and password and return a token."""
    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid email or password",
    )
    user = db.get_user_by_email(body.email)
    if user is None:
        raise invalid
    try:
        ph.verify(user.password_hash, body.password)
    except (argon2.exceptions.VerificationError, argon2.exceptions.InvalidHashError) as e:
        raise invalid from e

    raw_token, _ = db.create_token(user.id, expires_in=_token_ttl(request))
    logger.info("User logged in: id=%d", user.id)
    return AuthResponse(token=raw_token, user=user_to_response(user))


@router.post("/join-team", response_model=JoinTeamResponse)
def join_team(
    body: JoinTeamRequest,
    db: Database = Depends(get_db),
    user: User = Depends(get_current_user),
) -> JoinTeamResponse:
    """Join the team identified by a join code."""
    team = db.join_team(user.id, body.team_code)
    if team is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Team not found",
        )
    logger.info("User %d joined team %d", user.id, team.id)
    return JoinTeamResponse(message="Joined team", team=team_to_response(team))


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)) -> MeResponse:
    """Return the authenticated user."""
    return MeResponse(user=user_to_response(user))


@router.post("/logout", response_model=LogoutResponse)
def logout(
    db: Database = Depends(get_db),
    token: Token = Depends(get_current_token),
) -> LogoutResponse:
    """Revoke the bearer token used for this request."""
    db.revoke_token(token.id)
    logger.info("User %d logged out (token %d revoked)", token.user_id, token.id)
    return LogoutResponse()
