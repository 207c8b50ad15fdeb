"""
Limit & fee calculator.

Pure functions: they run on every keystroke, so nothing here touches the
network, the cache or the workflow state.
"""

import re
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple

from .schemas.models import TransferSummary

CENT = Decimal("0.01")
ZERO = Decimal("0")

PROCESSING_TIMES = {
    "internal": "Instant",
    "external": "1-2 business days",
}
QUICK_AMOUNTS = (100, 500, 1000, 5000)
# integer digits an amount may carry; keeps fee arithmetic inside the decimal context
MAX_AMOUNT_DIGITS = 15

_NON_AMOUNT_CHARS = re.compile(r"[^0-9.]")


def _to_decimal(text: Optional[str]) -> Optional[Decimal]:
    if text is None:
        return None
    cleaned = str(text).strip().replace(",", "")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def is_oversized_amount(text: Optional[str]) -> bool:
    value = _to_decimal(text)
    return value is not None and value.adjusted() >= MAX_AMOUNT_DIGITS


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """Parse user-entered amount text; None when it is not a finite number of sane size."""
    value = _to_decimal(text)
    if value is None or value.adjusted() >= MAX_AMOUNT_DIGITS:
        return None
    return value


def has_sub_cent_precision(amount: Decimal) -> bool:
    return amount != amount.quantize(CENT, rounding=ROUND_DOWN)


def compute_fee(amount: Decimal, rate: Decimal) -> Decimal:
    return (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_summary(
    amount_text: Optional[str],
    transfer_type: str,
    fee_rates: Dict[str, Decimal],
) -> TransferSummary:
    """
    Build the transfer summary for the current amount/type.

    Empty, non-numeric, oversized, zero or negative input yields a zero summary.
    """
    processing_time = PROCESSING_TIMES.get(transfer_type, PROCESSING_TIMES["internal"])
    amount = parse_amount(amount_text)
    if amount is None or amount <= ZERO:
        return TransferSummary(processing_time=processing_time)

    try:
        fee = compute_fee(amount, fee_rates.get(transfer_type, ZERO))
    except InvalidOperation:
        return TransferSummary(processing_time=processing_time)
    return TransferSummary(
        amount=amount,
        fee=fee,
        total=amount + fee,
        processing_time=processing_time,
    )


def max_transferable(
    balance: Decimal,
    remaining_daily_limit: Decimal,
    fee_rate: Decimal,
    per_transaction_limit: Optional[Decimal] = None,
) -> Decimal:
    """
    Ceiling for quick-amount shortcuts: the daily remaining limit, capped by
    what the balance covers once the fee is added.
    """
    by_balance = balance / (Decimal("1") + fee_rate)
    ceiling = min(remaining_daily_limit, by_balance)
    if per_transaction_limit is not None:
        ceiling = min(ceiling, per_transaction_limit)
    ceiling = ceiling.quantize(CENT, rounding=ROUND_DOWN)
    return max(ceiling, ZERO)


def sanitize_amount_input(previous: str, raw: str) -> str:
    """
    Filter an amount keystroke: drop anything but digits and '.', and keep the
    previous value when the result has two dots or more than two decimals.
    """
    value = _NON_AMOUNT_CHARS.sub("", raw or "")
    parts = value.split(".")
    if len(parts) > 2:
        return previous
    if len(parts) == 2 and len(parts[1]) > 2:
        return previous
    return value


def quick_amounts(max_amount: Decimal, presets: Sequence[int] = QUICK_AMOUNTS) -> List[Tuple[Decimal, bool]]:
    return [(Decimal(p), Decimal(p) <= max_amount) for p in presets]


def format_money(amount: Decimal) -> str:
    return f"${amount.quantize(CENT, rounding=ROUND_HALF_UP):,.2f}"
