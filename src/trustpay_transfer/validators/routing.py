"""
Bank routing resolver

Resolves a routing code to a bank name through the routing directory once the
user has stopped typing. Structurally invalid codes are rejected locally.
"""

import logging
from typing import Awaitable, Callable, Optional

from ..debounce import Debouncer
from ..errors import FormatError, NetworkError, ResolutionError, TransferError
from ..schemas.models import RoutingLookupResult

logger = logging.getLogger("trustpay.transfer")

ROUTING_LENGTH = 9
ROUTING_FORMAT_MESSAGE = "Routing number must be a valid 9-digit code."
ROUTING_NOT_FOUND_MESSAGE = "No bank was found for this routing number."
ROUTING_UNREACHABLE_MESSAGE = "The bank directory is unreachable right now. Please try again."

# ABA prefixes: Federal Reserve districts, thrifts, electronic and traveler's cheques
_ABA_PREFIXES = set(range(1, 13)) | set(range(21, 33)) | set(range(61, 73)) | {80}
_ABA_WEIGHTS = (3, 7, 1, 3, 7, 1, 3, 7, 1)

LookupFn = Callable[[str], Awaitable[RoutingLookupResult]]
ResolvedCallback = Callable[[Optional[str]], None]


def is_valid_routing_number(code: str) -> bool:
    if len(code) != ROUTING_LENGTH or not code.isdigit():
        return False
    if int(code[:2]) not in _ABA_PREFIXES:
        return False
    checksum = sum(int(d) * w for d, w in zip(code, _ABA_WEIGHTS))
    return checksum % 10 == 0


class BankRoutingResolver:
    def __init__(
        self,
        lookup: LookupFn,
        debounce: float = 0.5,
        on_resolved: Optional[ResolvedCallback] = None,
    ) -> None:
        self.lookup = lookup
        self.on_resolved = on_resolved
        self.debouncer = Debouncer(debounce, name="routing")
        self.code = ""
        self.bank_name: Optional[str] = None
        self.error: Optional[TransferError] = None
        self.is_loading = False
        self.lookups_issued = 0

    @property
    def resolved(self) -> bool:
        return bool(self.bank_name) and self.error is None

    @property
    def unreachable(self) -> bool:
        """The last lookup failed in transport; the same code may be retried."""
        return isinstance(self.error, ResolutionError) and self.error.message == ROUTING_UNREACHABLE_MESSAGE

    def update(self, code: str) -> None:
        code = (code or "").strip()
        if code == self.code and not self.unreachable and (self.pending or self.resolved or self.error is not None):
            return
        self.code = code
        self.debouncer.cancel()
        self.is_loading = False
        self._apply(None, None)
        if not code:
            return
        self.debouncer.schedule(lambda token: self._resolve(code, token))

    @property
    def pending(self) -> bool:
        return self.debouncer.pending

    async def _resolve(self, code: str, token: int) -> None:
        if not is_valid_routing_number(code):
            logger.info("Routing code %r rejected locally (format)", code)
            self._apply(None, FormatError(ROUTING_FORMAT_MESSAGE, field="routing_code"))
            return

        self.is_loading = True
        self.lookups_issued += 1
        try:
            result = await self.lookup(code)
        except NetworkError as e:
            if self._is_stale(code, token):
                return
            logger.warning("Routing lookup for %s failed: %s", code, e.message)
            self._apply(None, ResolutionError(ROUTING_UNREACHABLE_MESSAGE, field="routing_code"))
            return
        except TransferError as e:
            if self._is_stale(code, token):
                return
            self._apply(None, ResolutionError(e.message, field="routing_code"))
            return
        finally:
            if self.debouncer.is_current(token):
                self.is_loading = False

        if self._is_stale(code, token):
            logger.debug("Discarding routing result for superseded code %s", code)
            return
        if result.valid and result.bank_name:
            self._apply(result.bank_name, None)
        else:
            self._apply(None, ResolutionError(result.error or ROUTING_NOT_FOUND_MESSAGE, field="routing_code"))

    def _is_stale(self, code: str, token: int) -> bool:
        return code != self.code or not self.debouncer.is_current(token)

    def _apply(self, bank_name: Optional[str], error: Optional[TransferError]) -> None:
        changed = bank_name != self.bank_name
        self.bank_name = bank_name
        self.error = error
        if changed and self.on_resolved is not None:
            self.on_resolved(bank_name)

    def reset(self) -> None:
        """Forget everything (used when the transfer stops being external)."""
        self.debouncer.cancel()
        self.code = ""
        self.is_loading = False
        self._apply(None, None)

    async def settle(self) -> None:
        await self.debouncer.flush()

    def close(self) -> None:
        self.debouncer.cancel()
        self.is_loading = False

    def status(self) -> dict:
        return {
            "code": self.code,
            "bank_name": self.bank_name,
            "is_loading": self.is_loading,
            "error": self.error.to_dict() if self.error else None,
        }
