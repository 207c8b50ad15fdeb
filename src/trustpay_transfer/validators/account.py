"""
Destination account verifier

Turns (bank, account number) into a VerifiedAccount once the bank has been
identified and the account number is long enough. Any edit to either field
drops the previous VerifiedAccount immediately.
"""

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..debounce import Debouncer
from ..errors import FormatError, ResolutionError, TransferError
from ..logging_config import mask_account
from ..schemas.models import VerifiedAccount

logger = logging.getLogger("trustpay.transfer")

ACCOUNT_NUMBER_MAX_LEN = 17
ACCOUNT_FORMAT_MESSAGE = "Account number must be 6 to 17 letters or digits."
ACCOUNT_UNVERIFIED_MESSAGE = "We couldn't verify this account. Check the number and try again."

_ACCOUNT_NUMBER = re.compile(r"^[A-Za-z0-9]+$")


@dataclass(frozen=True)
class PayeeQuery:
    account_number: str
    bank_name: str
    routing_number: str
    holder_name: str
    currency: str


PayeeResolver = Callable[[PayeeQuery], Awaitable[VerifiedAccount]]


async def sandbox_payee_resolver(query: PayeeQuery) -> VerifiedAccount:
    """Accept the entered payee details as-is (sandbox directory)."""
    return VerifiedAccount(
        full_name=query.holder_name,
        email="",
        account_number=query.account_number,
        bank_name=query.bank_name,
        currency=query.currency,
        routing_number=query.routing_number,
    )


class DestinationAccountVerifier:
    def __init__(
        self,
        resolve_payee: PayeeResolver = sandbox_payee_resolver,
        debounce: float = 0.4,
        min_length: int = 6,
    ) -> None:
        self.resolve_payee = resolve_payee
        self.min_length = min_length
        self.debouncer = Debouncer(debounce, name="account-verify")
        self.account_number = ""
        self.bank_name = ""
        self.holder_name = ""
        self.verified: Optional[VerifiedAccount] = None
        self.error: Optional[TransferError] = None
        self.is_verifying = False

    def update(
        self,
        account_number: str,
        bank_name: Optional[str],
        routing_number: str = "",
        holder_name: str = "",
        currency: str = "USD",
    ) -> None:
        account_number = (account_number or "").strip()
        bank_name = (bank_name or "").strip()
        holder_name = (holder_name or "").strip()
        if (account_number, bank_name, holder_name) == (self.account_number, self.bank_name, self.holder_name):
            return

        self.account_number = account_number
        self.bank_name = bank_name
        self.holder_name = holder_name
        self.verified = None
        self.error = None
        self.is_verifying = False
        self.debouncer.cancel()

        query = PayeeQuery(
            account_number=account_number,
            bank_name=bank_name,
            routing_number=routing_number,
            holder_name=holder_name,
            currency=currency,
        )
        self.debouncer.schedule(lambda token: self._verify(query, token))

    async def _verify(self, query: PayeeQuery, token: int) -> None:
        if not query.bank_name or len(query.account_number) < self.min_length:
            return
        if len(query.account_number) > ACCOUNT_NUMBER_MAX_LEN or not _ACCOUNT_NUMBER.match(query.account_number):
            self.error = FormatError(ACCOUNT_FORMAT_MESSAGE, field="account_number")
            return

        self.is_verifying = True
        try:
            verified = await self.resolve_payee(query)
        except TransferError as e:
            if self._is_stale(query, token):
                return
            logger.info("Account %s not verifiable: %s", mask_account(query.account_number), e.message)
            self.error = ResolutionError(e.message or ACCOUNT_UNVERIFIED_MESSAGE, field="account_number")
            return
        finally:
            if self.debouncer.is_current(token):
                self.is_verifying = False

        if self._is_stale(query, token):
            logger.debug("Discarding verification for superseded account %s", mask_account(query.account_number))
            return
        if verified.account_number != query.account_number:
            self.error = ResolutionError(ACCOUNT_UNVERIFIED_MESSAGE, field="account_number")
            return
        self.verified = verified
        self.error = None
        logger.info("Destination account %s verified at %s", mask_account(query.account_number), query.bank_name)

    def _is_stale(self, query: PayeeQuery, token: int) -> bool:
        return (
            not self.debouncer.is_current(token)
            or query.account_number != self.account_number
            or query.bank_name != self.bank_name
            or query.holder_name != self.holder_name
        )

    def matches(self, account_number: str) -> bool:
        return self.verified is not None and self.verified.account_number == (account_number or "").strip()

    def reset(self) -> None:
        self.debouncer.cancel()
        self.account_number = ""
        self.bank_name = ""
        self.holder_name = ""
        self.verified = None
        self.error = None
        self.is_verifying = False

    async def settle(self) -> None:
        await self.debouncer.flush()

    def close(self) -> None:
        self.debouncer.cancel()
        self.is_verifying = False

    def status(self) -> dict:
        return {
            "is_verifying": self.is_verifying,
            "verified": self.verified.model_dump() if self.verified else None,
            "error": self.error.to_dict() if self.error else None,
        }
