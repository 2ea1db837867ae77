from __future__ import annotations

from datetime import timezone
from typing import Any, Callable, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials

from .config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_TOKEN_URI
from .credentials import CredentialStore
from .errors import AuthError
from .models import Credential
from .utils import _log_debug


class TokenRefresher:
  """Exchanges a stored refresh token for a new access token and persists it."""

  def __init__(self,
               store: CredentialStore,
               client_id: Optional[str] = GOOGLE_CLIENT_ID,
               client_secret: Optional[str] = GOOGLE_CLIENT_SECRET,
               token_uri: str = GOOGLE_TOKEN_URI,
               request_factory: Callable[[], Any] = GoogleRequest) -> None:
    self.store = store
    self.client_id = client_id
    self.client_secret = client_secret
    self.token_uri = token_uri
    self.request_factory = request_factory

  def refresh(self, credential: Credential) -> str:
    if not credential.refresh_token:
      raise AuthError("No refresh token available. Please sign in with Google again.")
    if not self.client_id or not self.client_secret:
      raise AuthError("Google OAuth client credentials are not configured.")

    creds = Credentials(
        token=None,
        refresh_token=credential.refresh_token,
        client_id=self.client_id,
        client_secret=self.client_secret,
        token_uri=self.token_uri,
    )
    _log_debug(f"[TOKEN] refreshing access token for provider={credential.provider}")
    try:
      creds.refresh(self.request_factory())
    except (RefreshError, TransportError) as exc:
      _log_debug(f"[TOKEN] refresh rejected: {exc}")
      raise AuthError(f"Failed to refresh Google access token: {exc}") from exc

    if not creds.token:
      raise AuthError("Token endpoint returned no access token.")

    expires_at: Optional[int] = None
    if creds.expiry is not None:
      # google-auth reports expiry as naive UTC
      expires_at = int(creds.expiry.replace(tzinfo=timezone.utc).timestamp())

    self.store.update_tokens(credential.user_id,
                             access_token=creds.token,
                             expires_at=expires_at,
                             refresh_token=creds.refresh_token)
    return creds.token
