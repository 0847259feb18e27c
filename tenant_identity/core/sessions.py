from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional

from tenant_identity.utils.hashing import random_hex


SESSION_TOKEN_PREFIX = "dev."


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str
    issued_at: float


class SessionStore:
    """
    Bearer tokens for human users during local development.

    Each instance owns its sessions; pass the instance to whatever needs to
    issue or verify tokens.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def issue(self, user_id: str) -> str:
        token = f"{SESSION_TOKEN_PREFIX}{random_hex(24)}"
        with self._lock:
            self._sessions[token] = Session(token=token, user_id=user_id, issued_at=time.time())
        return token

    def verify(self, token: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(token or "")

    def revoke(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def active_sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())
