from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel


class FormUpdateRequest(BaseModel):
    transfer_type: Optional[str] = None
    amount: Optional[str] = None
    from_account_id: Optional[str] = None
    to_internal_account_id: Optional[str] = None
    account_holder_name: Optional[str] = None
    routing_code: Optional[str] = None
    account_number: Optional[str] = None
    account_type: Optional[str] = None
    memo: Optional[str] = None


class QuickAmountRequest(BaseModel):
    amount: Decimal


class AuthorizeRequest(BaseModel):
    pin: str


class PinSetupRequest(BaseModel):
    pin: str
    confirm_pin: str
    current_pin: Optional[str] = None


class SessionResponse(BaseModel):
    session_id: str
    snapshot: Dict[str, Any]


class ActionResponse(BaseModel):
    ok: bool
    snapshot: Dict[str, Any]
    outcome: Optional[Dict[str, Any]] = None
