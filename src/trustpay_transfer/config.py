"""
Configuration
Reads transfer workflow settings from the environment (optionally a .env file).

Environment:
  TRUSTPAY_API_BASE_URL       (default: http://localhost:5001)
  TRUSTPAY_HTTP_TIMEOUT       (default: 30 seconds, lookups and profile calls)
  ROUTING_DEBOUNCE_MS         (default: 500)
  ACCOUNT_VERIFY_DEBOUNCE_MS  (default: 400)
  INTERNAL_FEE_RATE           (default: 0)
  EXTERNAL_FEE_RATE           (default: 0.01)
  DEFAULT_DAILY_LIMIT         (default: 10000)
  PER_TRANSACTION_LIMIT       (default: 5000)
  DEFAULT_INTERNAL_ROUTING    (default: 103219840)
  INTERNAL_BANK_NAME          (default: TrustPay (internal))
  DEFAULT_CURRENCY            (default: USD)
  SESSION_TIMEOUT_MINUTES     (default: 30)
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True), override=False)

API_BASE_URL = os.getenv("TRUSTPAY_API_BASE_URL", "http://localhost:5001").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("TRUSTPAY_HTTP_TIMEOUT", "30"))

ROUTING_DEBOUNCE_MS = int(os.getenv("ROUTING_DEBOUNCE_MS", "500"))
ACCOUNT_VERIFY_DEBOUNCE_MS = int(os.getenv("ACCOUNT_VERIFY_DEBOUNCE_MS", "400"))

INTERNAL_FEE_RATE = Decimal(os.getenv("INTERNAL_FEE_RATE", "0"))
EXTERNAL_FEE_RATE = Decimal(os.getenv("EXTERNAL_FEE_RATE", "0.01"))

DEFAULT_DAILY_LIMIT = Decimal(os.getenv("DEFAULT_DAILY_LIMIT", "10000"))
PER_TRANSACTION_LIMIT = Decimal(os.getenv("PER_TRANSACTION_LIMIT", "5000"))

DEFAULT_INTERNAL_ROUTING = os.getenv("DEFAULT_INTERNAL_ROUTING", "103219840")
INTERNAL_BANK_NAME = os.getenv("INTERNAL_BANK_NAME", "TrustPay (internal)")
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

SESSION_TIMEOUT_MINUTES = int(os.getenv("SESSION_TIMEOUT_MINUTES", "30"))

ACCOUNT_NUMBER_MIN_LEN = 6
PIN_MIN_LEN = 4
PIN_MAX_LEN = 6


@dataclass(frozen=True)
class WorkflowSettings:
    """Knobs a single TransferWorkflow needs. Tests build this directly."""

    routing_debounce: float = ROUTING_DEBOUNCE_MS / 1000
    account_verify_debounce: float = ACCOUNT_VERIFY_DEBOUNCE_MS / 1000
    fee_rates: Dict[str, Decimal] = field(
        default_factory=lambda: {"internal": INTERNAL_FEE_RATE, "external": EXTERNAL_FEE_RATE}
    )
    default_daily_limit: Decimal = DEFAULT_DAILY_LIMIT
    per_transaction_limit: Decimal = PER_TRANSACTION_LIMIT
    default_internal_routing: str = DEFAULT_INTERNAL_ROUTING
    internal_bank_name: str = INTERNAL_BANK_NAME
    currency: str = DEFAULT_CURRENCY
    account_number_min_len: int = ACCOUNT_NUMBER_MIN_LEN

    @classmethod
    def from_env(cls) -> "WorkflowSettings":
        return cls()

    def fee_rate(self, transfer_type: str) -> Decimal:
        return self.fee_rates.get(transfer_type, Decimal("0"))
