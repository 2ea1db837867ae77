from __future__ import annotations

import hashlib
import json
import os
import pathlib
import tempfile
from threading import Lock
from typing import Optional

from .config import CREDENTIAL_DIR, CREDENTIAL_PROVIDER
from .models import Credential
from .utils import _log_debug


def _user_key(user_id: str, provider: str) -> str:
  return hashlib.sha256(f"{provider}:{user_id}".encode("utf-8")).hexdigest()


class CredentialStore:
  """Per-user OAuth tokens, one JSON file per user and provider.

  Writes go through a temp file and ``os.replace`` so concurrent refreshes for
  the same user never leave a torn file behind; the last writer wins.
  """

  def __init__(self, directory: Optional[pathlib.Path] = None,
               provider: str = CREDENTIAL_PROVIDER) -> None:
    self.directory = pathlib.Path(directory or CREDENTIAL_DIR)
    self.provider = provider
    self._lock = Lock()

  def _path(self, user_id: str) -> pathlib.Path:
    return self.directory / f"token_{_user_key(user_id, self.provider)}.json"

  def get(self, user_id: str) -> Optional[Credential]:
    if not user_id:
      return None
    path = self._path(user_id)
    if not path.exists():
      return None
    try:
      with path.open("r", encoding="utf-8") as f:
        return Credential.model_validate(json.load(f))
    except (OSError, ValueError) as exc:
      _log_debug(f"[CREDENTIALS] unreadable token file for user: {exc}")
      return None

  def save(self, credential: Credential) -> None:
    self.directory.mkdir(parents=True, exist_ok=True)
    path = self._path(credential.user_id)
    payload = json.dumps(credential.model_dump(by_alias=True),
                         ensure_ascii=False, indent=2)
    with self._lock:
      fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
      try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
          f.write(payload)
        os.replace(tmp_name, path)
      except BaseException:
        pathlib.Path(tmp_name).unlink(missing_ok=True)
        raise

  def update_tokens(self, user_id: str, access_token: str,
                    expires_at: Optional[int],
                    refresh_token: Optional[str] = None) -> Credential:
    current = self.get(user_id) or Credential(user_id=user_id,
                                              provider=self.provider)
    updated = current.model_copy(update={
        "access_token": access_token,
        "expires_at": expires_at,
        "refresh_token": refresh_token or current.refresh_token,
    })
    self.save(updated)
    _log_debug(f"[CREDENTIALS] stored refreshed token, expires_at={expires_at}")
    return updated
