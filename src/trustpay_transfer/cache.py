"""
Limits / balance cache.

A read-mostly replica of the backend ledger for the current session. It is
replaced wholesale by ``refresh`` and otherwise only mutated by
``apply_transfer`` after the backend confirmed a transfer. Optimistic values
stay the visible truth until the next full reload.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .schemas.models import Account, TransferLimits, UserProfile

logger = logging.getLogger("trustpay.transfer")

ZERO = Decimal("0")


class BalanceCache:
    def __init__(
        self,
        default_daily_limit: Decimal = Decimal("10000"),
        per_transaction_limit: Decimal = Decimal("5000"),
        currency: str = "USD",
    ) -> None:
        self.default_daily_limit = default_daily_limit
        self.per_transaction_limit = per_transaction_limit
        self.currency = currency
        self._accounts: Dict[str, Account] = {}
        self._limits = TransferLimits(
            daily_limit=default_daily_limit,
            per_transaction_limit=per_transaction_limit,
            remaining_today=default_daily_limit,
            currency=currency,
        )
        self.loaded = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def accounts(self) -> List[Account]:
        return [a.model_copy() for a in self._accounts.values()]

    @property
    def limits(self) -> TransferLimits:
        return self._limits.model_copy()

    def get_account(self, account_id: Optional[str]) -> Optional[Account]:
        if account_id is None:
            return None
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    def balance_of(self, account_id: Optional[str]) -> Decimal:
        account = self._accounts.get(account_id) if account_id else None
        return account.balance if account else ZERO

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def refresh(self, accounts: List[Account], profile: Optional[UserProfile] = None) -> None:
        """Replace accounts and limits from an authoritative load."""
        self._accounts = {a.id: a.model_copy() for a in accounts}

        daily = self.default_daily_limit
        spent = ZERO
        remaining: Optional[Decimal] = None
        if profile is not None:
            if profile.daily_transfer_limit is not None:
                daily = profile.daily_transfer_limit
            if profile.daily_transfer_spent is not None:
                spent = profile.daily_transfer_spent
            remaining = profile.daily_transfer_remaining
        if remaining is None:
            remaining = max(daily - spent, ZERO)

        first = next(iter(self._accounts.values()), None)
        self._limits = TransferLimits(
            daily_limit=daily,
            per_transaction_limit=self.per_transaction_limit,
            remaining_today=remaining,
            spent_today=spent,
            available_balance=first.balance if first else ZERO,
            currency=self.currency,
        )
        self.loaded = True
        logger.info(
            "Cache refreshed: %d accounts, daily_limit=%s spent=%s remaining=%s",
            len(self._accounts),
            daily,
            spent,
            remaining,
        )

    def select_source(self, account_id: str) -> None:
        """Point ``available_balance`` at the chosen source account."""
        self._limits.available_balance = self.balance_of(account_id)

    def apply_transfer(
        self,
        source_id: str,
        destination_id: Optional[str],
        amount: Decimal,
        total: Decimal,
    ) -> None:
        """
        Optimistically book a confirmed transfer: the source pays ``total``,
        an owned destination receives ``amount`` and the daily counters move.
        """
        source = self._accounts.get(source_id)
        if source is not None:
            source.balance = max(source.balance - total, ZERO)
        if destination_id is not None:
            destination = self._accounts.get(destination_id)
            if destination is not None:
                destination.balance = destination.balance + amount

        limits = self._limits
        limits.spent_today = limits.spent_today + amount
        limits.remaining_today = max(limits.daily_limit - limits.spent_today, ZERO)
        limits.available_balance = self.balance_of(source_id)
        logger.info(
            "Optimistic update: source=%s -%s destination=%s +%s remaining_today=%s",
            source_id,
            total,
            destination_id or "external",
            amount if destination_id else ZERO,
            limits.remaining_today,
        )
