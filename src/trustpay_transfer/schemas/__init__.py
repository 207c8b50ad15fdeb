from .models import (
    Account,
    RoutingLookupResult,
    TransferFormData,
    TransferLimits,
    TransferOutcome,
    TransferRequest,
    TransferSummary,
    UserProfile,
    VerifiedAccount,
)

__all__ = [
    "Account",
    "RoutingLookupResult",
    "TransferFormData",
    "TransferLimits",
    "TransferOutcome",
    "TransferRequest",
    "TransferSummary",
    "UserProfile",
    "VerifiedAccount",
]
