"""
Session Management
Keeps one TransferWorkflow (and its bank client) per front-end session.

Sessions are kept in memory. An idle session expires after
SESSION_TIMEOUT_MINUTES; expiring or ending a session closes its workflow so
no debounced lookup or submission outlives the page it belonged to.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..authorization import PinHintStore
from ..clients.bank_client import BankApiClient
from ..config import SESSION_TIMEOUT_MINUTES
from ..workflow import TransferWorkflow

logger = logging.getLogger("trustpay.app")


class SessionManager:
    """
    Manages transfer sessions.

    Notes:
    - Each session dict holds ``workflow``, ``client``, ``created_at`` and
      ``last_activity``.
    - PIN hints outlive sessions (they play the role of the browser's
      storage) and are shared through ``hint_store``.
    """

    def __init__(self, session_timeout_minutes: int = 30, storage: Optional[Any] = None):
        self.sessions: Any = storage if storage is not None else {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)
        self.hint_store = PinHintStore()
        self._orphan_clients: list = []

    def create_session(self, workflow: TransferWorkflow, client: BankApiClient) -> str:
        """
        Register a workflow under a generated session_id.
        """
        session_id = str(uuid.uuid4())
        now = datetime.now()
        self.sessions[session_id] = {
            "session_id": session_id,
            "workflow": workflow,
            "client": client,
            "created_at": now,
            "last_activity": now,
        }
        logger.info("Transfer session %s created", session_id)
        return session_id

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Get session data, or None if not found/expired.
        """
        session = self.sessions.get(session_id)
        if not session:
            return None
        now = datetime.now()
        if now - session.get("last_activity", now) > self.session_timeout:
            logger.info("Transfer session %s expired", session_id)
            self._drop(session_id)
            return None
        session["last_activity"] = now
        return session

    def get_workflow(self, session_id: str) -> Optional[TransferWorkflow]:
        session = self.get_session(session_id)
        return session["workflow"] if session else None

    async def end_session(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if not session:
            return False
        session["workflow"].close()
        await session["client"].close()
        logger.info("Transfer session %s ended", session_id)
        return True

    async def purge_expired(self) -> int:
        now = datetime.now()
        expired = [
            sid
            for sid, sess in list(self.sessions.items())
            if now - sess.get("last_activity", now) > self.session_timeout
        ]
        for sid in expired:
            await self.end_session(sid)
        await self.close_orphans()
        return len(expired)

    async def close_all(self) -> None:
        for sid in list(self.sessions.keys()):
            await self.end_session(sid)
        await self.close_orphans()

    def _drop(self, session_id: str) -> None:
        session = self.sessions.pop(session_id, None)
        if session:
            session["workflow"].close()
            # get_session is sync; the client is closed by close_orphans()
            self._orphan_clients.append(session["client"])

    async def close_orphans(self) -> None:
        while self._orphan_clients:
            await self._orphan_clients.pop().close()


_SESSION_MANAGER_SINGLETON: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """
    Build (and cache) the global SessionManager instance.
    """
    global _SESSION_MANAGER_SINGLETON
    if _SESSION_MANAGER_SINGLETON is None:
        _SESSION_MANAGER_SINGLETON = SessionManager(session_timeout_minutes=SESSION_TIMEOUT_MINUTES)
    return _SESSION_MANAGER_SINGLETON
