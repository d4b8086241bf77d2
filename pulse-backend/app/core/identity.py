from dataclasses import dataclass, field
from typing import Protocol

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings

bearer_scheme = HTTPBearer(auto_error=False, description="Google ID token, or any token with IDENTITY_PROVIDER=static")


@dataclass(frozen=True)
class Identity:
    id: str
    display_name: str | None
    emails: list[str] = field(default_factory=list)

    @property
    def primary_email(self) -> str | None:
        return self.emails[0] if self.emails else None


class IdentityProvider(Protocol):
    name: str

    def authenticate(self, token: str) -> Identity:
        """Return the caller's identity or raise ValueError for a rejected token."""
        ...


class GoogleIdentityProvider:
    name = "google"

    def __init__(self, client_id: str | None):
        self.client_id = client_id

    def authenticate(self, token: str) -> Identity:
        if not self.client_id:
            raise ValueError("GOOGLE_CLIENT_ID is not configured")

        try:
            from google.auth.transport import requests as google_requests
            from google.oauth2 import id_token as google_id_token
        except ImportError as exc:
            raise ValueError("google-auth dependency is not installed") from exc

        try:
            token_info = google_id_token.verify_oauth2_token(
                token,
                google_requests.Request(),
                self.client_id,
            )
        except Exception as exc:
            raise ValueError("Invalid Google ID token") from exc

        sub = token_info.get("sub")
        email = token_info.get("email")
        if not sub:
            raise ValueError("Google token missing subject")
        if not email:
            raise ValueError("Google token missing email")
        if token_info.get("email_verified") is not True:
            raise ValueError("Google email is not verified")

        full_name = token_info.get("name")
        return Identity(
            id=str(sub),
            display_name=str(full_name) if full_name else None,
            emails=[str(email).lower()],
        )


class StaticIdentityProvider:
    """Development provider: every bearer token maps to one fixed identity."""

    name = "static"

    def __init__(self, email: str):
        self.email = email.strip().lower()

    def authenticate(self, token: str) -> Identity:
        if not token.strip():
            raise ValueError("Missing token")
        return Identity(id=f"static:{self.email}", display_name="Developer", emails=[self.email])


def get_identity_provider() -> IdentityProvider:
    if settings.identity_provider == "static":
        return StaticIdentityProvider(settings.static_identity_email)
    return GoogleIdentityProvider(settings.google_client_id)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity | None:
    if credentials is None:
        return None
    try:
        return provider.authenticate(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def require_identity(identity: Identity | None = Depends(get_current_identity)) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
