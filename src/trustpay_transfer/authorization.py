"""
Authorization gate for transaction PINs.

Tracks whether the user has a PIN, forces setup when the backend says one is
required, and demands the literal PIN digits for every submission. The
"has PIN" hint only decides whether to prompt for setup; it is never proof
that a PIN is correct, and the digits themselves are never stored.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from .config import PIN_MAX_LEN, PIN_MIN_LEN
from .errors import FormatError, IllegalTransitionError, PinLockedError, TransferError
from .schemas.models import Account

logger = logging.getLogger("trustpay.transfer")

PIN_FORMAT_MESSAGE = f"PIN must be {PIN_MIN_LEN} to {PIN_MAX_LEN} digits."
PIN_MISMATCH_MESSAGE = "PINs do not match."

SetPinFn = Callable[[str, str, Optional[str]], Awaitable[None]]


class GateState(Enum):
    NO_PIN_SET = "no_pin_set"
    PIN_SETUP_PROMPTED = "pin_setup_prompted"
    PIN_SET = "pin_set"
    PIN_ENTRY_REQUIRED = "pin_entry_required"
    AUTHORIZED = "authorized"
    DENIED = "denied"


_TRANSITIONS = {
    GateState.NO_PIN_SET: {GateState.PIN_SETUP_PROMPTED, GateState.PIN_SET},
    GateState.PIN_SETUP_PROMPTED: {GateState.PIN_SET, GateState.NO_PIN_SET},
    GateState.PIN_SET: {GateState.PIN_ENTRY_REQUIRED, GateState.PIN_SETUP_PROMPTED, GateState.NO_PIN_SET},
    GateState.PIN_ENTRY_REQUIRED: {
        GateState.AUTHORIZED,
        GateState.DENIED,
        GateState.PIN_SET,
        GateState.PIN_SETUP_PROMPTED,
    },
    GateState.AUTHORIZED: {GateState.PIN_SET, GateState.PIN_ENTRY_REQUIRED},
    GateState.DENIED: {GateState.PIN_ENTRY_REQUIRED, GateState.PIN_SET, GateState.PIN_SETUP_PROMPTED},
}


def is_valid_pin(pin: Optional[str]) -> bool:
    return bool(pin) and pin.isdigit() and PIN_MIN_LEN <= len(pin) <= PIN_MAX_LEN


class PinHintStore:
    """
    Client-side "a PIN exists" hints, keyed per user. Backed by any dict-like
    storage so a caller can persist it between page loads.
    """

    def __init__(self, storage: Optional[Any] = None) -> None:
        self._storage: Any = storage if storage is not None else {}

    def get(self, key: str) -> Optional[bool]:
        return self._storage.get(key)

    def set(self, key: str, has_pin: bool) -> None:
        self._storage[key] = has_pin

    def clear(self, key: str) -> None:
        self._storage.pop(key, None)


class AuthorizationGate:
    def __init__(
        self,
        set_pin: SetPinFn,
        hint_store: Optional[PinHintStore] = None,
        hint_key: str = "default",
    ) -> None:
        self._set_pin = set_pin
        self.hint_store = hint_store or PinHintStore()
        self.hint_key = hint_key
        self.state = GateState.NO_PIN_SET
        self.last_error: Optional[TransferError] = None
        self._pin_accounts: list = []

    @property
    def has_pin(self) -> bool:
        return bool(self.hint_store.get(self.hint_key))

    @property
    def setup_prompted(self) -> bool:
        return self.state is GateState.PIN_SETUP_PROMPTED

    def _move(self, target: GateState) -> None:
        if target is self.state:
            return
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransitionError(self.state, target)
        logger.debug("Gate %s -> %s", self.state.value, target.value)
        self.state = target

    # ------------------------------------------------------------------
    # Load / setup
    # ------------------------------------------------------------------
    def initialize(self, accounts: Iterable[Account]) -> None:
        """
        Recompute the hint from a full profile load. Accounts flagged
        ``pin_required`` force the setup prompt before any review can open.
        """
        accounts = list(accounts)
        self._pin_accounts = [a.id for a in accounts if a.pin_required]
        self.last_error = None
        if self._pin_accounts:
            self.hint_store.set(self.hint_key, False)
            self.state = GateState.PIN_SETUP_PROMPTED
        elif accounts and all(a.pin_required is False for a in accounts):
            self.hint_store.set(self.hint_key, True)
            self.state = GateState.PIN_SET
        else:
            self.state = GateState.PIN_SET if self.has_pin else GateState.NO_PIN_SET
        logger.info(
            "Authorization gate initialized: state=%s pin_required_accounts=%d",
            self.state.value,
            len(self._pin_accounts),
        )

    def prompt_setup(self) -> None:
        self._move(GateState.PIN_SETUP_PROMPTED)

    def dismiss_setup(self) -> None:
        if self.state is GateState.PIN_SETUP_PROMPTED:
            self._move(GateState.PIN_SET if self.has_pin else GateState.NO_PIN_SET)

    async def setup_pin(
        self,
        pin: str,
        confirm_pin: str,
        fallback_account_id: Optional[str] = None,
        current_pin: Optional[str] = None,
    ) -> None:
        """
        Validate and register a new PIN with the backend.

        Raises FormatError for a malformed or unconfirmed PIN; backend
        failures propagate as TransferError and leave the state unchanged.
        """
        if self.state in (GateState.PIN_ENTRY_REQUIRED, GateState.AUTHORIZED):
            raise IllegalTransitionError(self.state, GateState.PIN_SET)
        pin = (pin or "").strip()
        confirm_pin = (confirm_pin or "").strip()
        if not is_valid_pin(pin):
            raise FormatError(PIN_FORMAT_MESSAGE, field="pin")
        if pin != confirm_pin:
            raise FormatError(PIN_MISMATCH_MESSAGE, field="confirm_pin")

        account_ids = list(self._pin_accounts) or ([fallback_account_id] if fallback_account_id else [])
        if not account_ids:
            raise FormatError("Select an account before setting a PIN.", field="from_account_id")

        for account_id in account_ids:
            await self._set_pin(account_id, pin, current_pin)

        self._pin_accounts = []
        self.hint_store.set(self.hint_key, True)
        self.last_error = None
        self._move(GateState.PIN_SET)
        logger.info("Transaction PIN set up for %d account(s)", len(account_ids))

    # ------------------------------------------------------------------
    # Per-submission entry
    # ------------------------------------------------------------------
    def require_entry(self) -> None:
        if self.state is GateState.PIN_SETUP_PROMPTED:
            raise IllegalTransitionError(self.state, GateState.PIN_ENTRY_REQUIRED)
        # the hint may have been set by another session sharing the store
        if self.state is GateState.NO_PIN_SET and self.has_pin:
            self._move(GateState.PIN_SET)
        self.last_error = None
        self._move(GateState.PIN_ENTRY_REQUIRED)

    def take_pin(self, pin: Optional[str]) -> str:
        """Validate the entered digits and hand them over for a single request."""
        if self.state is not GateState.PIN_ENTRY_REQUIRED:
            raise IllegalTransitionError(self.state, GateState.AUTHORIZED)
        pin = (pin or "").strip()
        if not is_valid_pin(pin):
            raise FormatError(PIN_FORMAT_MESSAGE, field="pin")
        return pin

    def mark_authorized(self) -> None:
        self._move(GateState.AUTHORIZED)
        self.hint_store.set(self.hint_key, True)
        self.last_error = None

    def mark_denied(self, error: TransferError) -> None:
        self._move(GateState.DENIED)
        self.last_error = error
        if isinstance(error, PinLockedError):
            logger.warning("Transaction PIN locked by backend")

    def release(self) -> None:
        """Back to idle after a finished, failed or cancelled attempt."""
        if self.state in (GateState.PIN_ENTRY_REQUIRED, GateState.AUTHORIZED, GateState.DENIED):
            self._move(GateState.PIN_SET)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "has_pin": self.has_pin,
            "error": self.last_error.to_dict() if self.last_error else None,
        }
