from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


TransferType = Literal["internal", "external"]
AccountType = Literal["checking", "savings"]


class Account(BaseModel):
    id: str
    account_number: str
    balance: Decimal = Field(default=Decimal("0"), ge=0)
    account_type: str = "checking"
    routing_number: Optional[str] = None
    # None when the backend did not say
    pin_required: Optional[bool] = None


class TransferFormData(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    transfer_type: TransferType = "internal"
    amount: str = ""
    from_account_id: Optional[str] = None
    # internal only
    to_internal_account_id: Optional[str] = None
    # external only
    account_holder_name: str = ""
    routing_code: str = ""
    bank_name: str = ""
    account_number: str = ""
    account_type: Optional[AccountType] = None
    memo: str = ""


class VerifiedAccount(BaseModel):
    full_name: str
    email: str = ""
    account_number: str
    bank_name: str
    currency: str = "USD"
    routing_number: Optional[str] = None


class TransferLimits(BaseModel):
    daily_limit: Decimal
    per_transaction_limit: Decimal
    remaining_today: Decimal
    spent_today: Decimal = Decimal("0")
    available_balance: Decimal = Decimal("0")
    currency: str = "USD"


class TransferSummary(BaseModel):
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    processing_time: str = "Instant"


class UserProfile(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    daily_transfer_limit: Optional[Decimal] = None
    daily_transfer_remaining: Optional[Decimal] = None
    daily_transfer_spent: Optional[Decimal] = None


class RoutingLookupResult(BaseModel):
    valid: bool
    routing_number: str
    bank_name: Optional[str] = None
    internal: bool = False
    source: Optional[str] = None
    error: Optional[str] = None


class TransferRequest(BaseModel):
    from_account_id: str
    to_account_number: str
    to_routing_number: str
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    pin: str


class TransferOutcome(BaseModel):
    status: Literal["submitted", "step_up_required"]
    message: str
    redirect_to: str = "/dashboard"
    transfer_id: Optional[str] = None
