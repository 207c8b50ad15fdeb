from .account import DestinationAccountVerifier, PayeeQuery, sandbox_payee_resolver  # noqa: F401
from .routing import BankRoutingResolver, is_valid_routing_number  # noqa: F401
