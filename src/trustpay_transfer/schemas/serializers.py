from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .models import Account, RoutingLookupResult, TransferRequest, UserProfile


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _optional_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _first(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def deserialize_account(payload: Dict[str, Any]) -> Account:
    balance = _decimal(_first(payload, "available_balance", "posted_balance", "balance")) or Decimal("0")
    return Account(
        id=str(payload.get("id")),
        account_number=str(_first(payload, "account_number", "accountNumber") or ""),
        balance=max(balance, Decimal("0")),
        account_type=_first(payload, "type", "account_type", "accountType") or "checking",
        routing_number=_first(payload, "routing_number", "routingNumber"),
        pin_required=_optional_bool(_first(payload, "pin_required", "pinRequired")),
    )


def deserialize_profile(payload: Dict[str, Any]) -> UserProfile:
    return UserProfile(
        full_name=_first(payload, "fullName", "full_name") or payload.get("email"),
        email=payload.get("email"),
        daily_transfer_limit=_decimal(_first(payload, "dailyTransferLimit", "daily_transfer_limit")),
        daily_transfer_remaining=_decimal(_first(payload, "dailyTransferRemaining", "daily_transfer_remaining")),
        daily_transfer_spent=_decimal(_first(payload, "dailyTransferSpent", "daily_transfer_spent")),
    )


def deserialize_routing_lookup(payload: Dict[str, Any], routing_number: str) -> RoutingLookupResult:
    return RoutingLookupResult(
        valid=bool(payload.get("valid")),
        routing_number=str(payload.get("routingNumber") or routing_number),
        bank_name=payload.get("bankName"),
        internal=bool(payload.get("internal")),
        source=payload.get("source"),
        error=payload.get("error"),
    )


def serialize_transfer_request(req: TransferRequest) -> Dict[str, Any]:
    return {
        "from_account_id": req.from_account_id,
        "to_account_number": req.to_account_number,
        "to_routing_number": req.to_routing_number,
        "amount": float(req.amount),
        "description": req.description,
        "pin": req.pin,
    }


def extract_error_message(payload: Any, default: str = "Unable to complete transfer.") -> str:
    if isinstance(payload, dict):
        for key in ("errors", "message", "detail", "error"):
            value = payload.get(key)
            if not value:
                continue
            if isinstance(value, list):
                return "; ".join(str(v.get("msg", v)) if isinstance(v, dict) else str(v) for v in value)
            return str(value)
    return default
