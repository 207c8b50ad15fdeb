from .bank_client import BankApiClient  # noqa: F401
