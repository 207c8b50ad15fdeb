"""
TrustPay Bank Client
Client for the account, profile, routing-directory, PIN and transfer endpoints

Every failure is converted into the transfer error taxonomy here so callers
only ever see TransferError subclasses.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import API_BASE_URL, HTTP_TIMEOUT
from ..errors import (
    AuthorizationError,
    BackendError,
    NetworkError,
    PinLockedError,
    SessionExpiredError,
)
from ..logging_config import mask_account
from ..schemas.models import Account, RoutingLookupResult, TransferRequest, UserProfile
from ..schemas.serializers import (
    deserialize_account,
    deserialize_profile,
    deserialize_routing_lookup,
    extract_error_message,
    serialize_transfer_request,
)

logger = logging.getLogger("trustpay.bank_client")

PIN_LOCKED_STATUS = 423
SESSION_EXPIRED_STATUSES = (401, 501)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class BankApiClient:
    """
    HTTP client for the TrustPay REST API, authenticated with a bearer token
    """

    def __init__(
        self,
        token: str,
        base_url: str = API_BASE_URL,
        timeout: float = HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except Exception:
            logger.exception("Error closing bank API client")

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise NetworkError("Unable to reach TrustPay. Check your connection and try again.") from e
        if response.status_code in SESSION_EXPIRED_STATUSES:
            logger.warning("%s %s -> %s; session token rejected", method, path, response.status_code)
            raise SessionExpiredError("Your session has expired. Please sign in again.")
        return response

    async def get_accounts(self) -> List[Account]:
        """
        List the authenticated user's accounts
        """
        response = await self._request("GET", "/accounts")
        payload = _json_or_none(response)
        if response.is_error:
            raise BackendError(extract_error_message(payload, "Unable to load accounts."), response.status_code)
        accounts = [deserialize_account(item) for item in (payload if isinstance(payload, list) else [])]
        logger.info("Loaded %d accounts", len(accounts))
        return accounts

    async def get_profile(self) -> UserProfile:
        """
        Fetch the profile carrying the daily transfer limit counters
        """
        response = await self._request("GET", "/me")
        payload = _json_or_none(response)
        if response.is_error or not isinstance(payload, dict):
            raise BackendError(extract_error_message(payload, "Unable to load profile."), response.status_code)
        return deserialize_profile(payload)

    async def lookup_routing(self, routing_number: str) -> RoutingLookupResult:
        response = await self._request(
            "GET", "/api/v1/routing/lookup", params={"routingNumber": routing_number}
        )
        payload = _json_or_none(response)
        if response.status_code == 404:
            return RoutingLookupResult(
                valid=False,
                routing_number=routing_number,
                error=extract_error_message(payload, "Routing number not found."),
            )
        if response.is_error or not isinstance(payload, dict):
            raise BackendError(
                extract_error_message(payload, "Bank directory is unavailable."), response.status_code
            )
        result = deserialize_routing_lookup(payload, routing_number)
        logger.info("Routing lookup %s -> valid=%s bank=%s", routing_number, result.valid, result.bank_name)
        return result

    async def set_pin(self, account_id: str, pin: str, current_pin: Optional[str] = None) -> None:
        body: Dict[str, Any] = {"pin": pin}
        if current_pin:
            body["currentPin"] = current_pin
        response = await self._request("POST", f"/accounts/{account_id}/set-pin", json=body)
        if response.is_error:
            payload = _json_or_none(response)
            message = extract_error_message(payload, "Unable to set transaction PIN.")
            if response.status_code == PIN_LOCKED_STATUS:
                raise PinLockedError(message, field="pin")
            if response.status_code in (400, 403, 422):
                raise AuthorizationError(message, field="pin")
            raise BackendError(message, response.status_code)
        logger.info("Transaction PIN set for account %s", account_id)

    async def submit_transfer(self, request: TransferRequest) -> Dict[str, Any]:
        """
        Submit a transfer. Returns the (possibly empty) success payload.
        """
        logger.info(
            "Submitting transfer from=%s to=%s amount=%s",
            request.from_account_id,
            mask_account(request.to_account_number),
            request.amount,
        )
        # no client-side timeout: a stuck submission keeps the workflow guard engaged
        response = await self._request(
            "POST", "/transfers", json=serialize_transfer_request(request), timeout=None
        )
        payload = _json_or_none(response)
        if response.status_code == PIN_LOCKED_STATUS:
            message = extract_error_message(payload, "Your transaction PIN is locked after too many attempts.")
            logger.warning("Transfer rejected: PIN locked")
            raise PinLockedError(message, field="pin")
        if response.status_code == 403:
            raise AuthorizationError(extract_error_message(payload, "Incorrect transaction PIN."), field="pin")
        if response.is_error:
            message = extract_error_message(payload)
            logger.warning("Transfer rejected status=%s message=%s", response.status_code, message)
            if response.status_code in (400, 422) and "pin" in message.lower():
                raise AuthorizationError(message, field="pin")
            raise BackendError(message, response.status_code)
        return payload if isinstance(payload, dict) else {}
