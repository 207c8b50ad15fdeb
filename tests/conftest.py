"""
Shared fixtures: an in-process TrustPay backend served through
httpx.MockTransport, a bank client bound to it, and fast-debounce settings.
"""

import asyncio
import copy
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from trustpay_transfer.clients.bank_client import BankApiClient
from trustpay_transfer.config import WorkflowSettings
from trustpay_transfer.workflow import TransferWorkflow

DEFAULT_ACCOUNTS = [
    {
        "id": "acc-1",
        "account_number": "100200300",
        "available_balance": 500,
        "posted_balance": 520,
        "type": "checking",
        "routing_number": "103219840",
        "pin_required": False,
    },
    {
        "id": "acc-2",
        "account_number": "100200301",
        "available_balance": 1000,
        "type": "savings",
        "pin_required": False,
    },
]

DEFAULT_PROFILE = {
    "fullName": "Jordan Lee",
    "email": "jordan@example.com",
    "dailyTransferLimit": 1000,
    "dailyTransferRemaining": 1000,
    "dailyTransferSpent": 0,
}

ROUTING_DIRECTORY = {
    "021000021": "JPMorgan Chase Bank",
    "011000015": "Federal Reserve Bank of Boston",
    "121000358": "Bank of America",
}


class FakeBank:
    """Scriptable stand-in for the TrustPay REST API."""

    def __init__(self) -> None:
        self.accounts: List[Dict[str, Any]] = copy.deepcopy(DEFAULT_ACCOUNTS)
        self.profile: Dict[str, Any] = dict(DEFAULT_PROFILE)
        self.routing = dict(ROUTING_DIRECTORY)
        self.accounts_status = 200
        self.profile_status = 200
        self.set_pin_status = 200
        self.transfer_status = 200
        self.transfer_payload: Dict[str, Any] = {"id": "TRF-1001"}
        self.transfer_error_body: Dict[str, Any] = {"errors": "Transfer could not be processed"}
        self.network_down: set = set()
        self.holds: Dict[str, asyncio.Event] = {}
        self.requests: List[httpx.Request] = []

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def transfer_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls("POST", "/transfers")]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.network_down:
            raise httpx.ConnectError("connection refused", request=request)
        hold = self.holds.get(path)
        if hold is not None:
            await hold.wait()

        if request.method == "GET" and path == "/accounts":
            if self.accounts_status != 200:
                return httpx.Response(self.accounts_status, json={"message": "Accounts unavailable"})
            return httpx.Response(200, json=self.accounts)

        if request.method == "GET" and path == "/me":
            if self.profile_status != 200:
                return httpx.Response(self.profile_status, json={"message": "Profile unavailable"})
            return httpx.Response(200, json=self.profile)

        if request.method == "GET" and path == "/api/v1/routing/lookup":
            code = request.url.params.get("routingNumber", "")
            bank_name = self.routing.get(code)
            if bank_name is None:
                return httpx.Response(404, json={"valid": False, "routingNumber": code, "error": "Routing number not found"})
            return httpx.Response(
                200,
                json={"valid": True, "routingNumber": code, "bankName": bank_name, "internal": False, "source": "fedach"},
            )

        if request.method == "POST" and path.startswith("/accounts/") and path.endswith("/set-pin"):
            if self.set_pin_status != 200:
                return httpx.Response(self.set_pin_status, json={"message": "Current PIN is incorrect"})
            return httpx.Response(200, json={"ok": True})

        if request.method == "POST" and path == "/transfers":
            if self.transfer_status == 423:
                return httpx.Response(423, json={"message": "PIN locked after too many attempts. Try again in 30 minutes."})
            if self.transfer_status != 200:
                return httpx.Response(self.transfer_status, json=self.transfer_error_body)
            return httpx.Response(200, json=self.transfer_payload)

        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def bank() -> FakeBank:
    return FakeBank()


@pytest.fixture
def settings() -> WorkflowSettings:
    return WorkflowSettings(
        routing_debounce=0.01,
        account_verify_debounce=0.01,
        fee_rates={"internal": Decimal("0"), "external": Decimal("0.01")},
        default_daily_limit=Decimal("10000"),
        per_transaction_limit=Decimal("5000"),
    )


def make_client(bank: FakeBank, token: str = "test-token") -> BankApiClient:
    return BankApiClient(token, base_url="https://api.trustpay.test", transport=httpx.MockTransport(bank.handler))


@pytest.fixture
def client_factory(bank):
    return lambda token: make_client(bank, token)


@pytest_asyncio.fixture
async def client(bank):
    c = make_client(bank)
    yield c
    await c.close()


@pytest_asyncio.fixture
async def workflow(client, settings):
    wf = TransferWorkflow(client, settings=settings)
    yield wf
    wf.close()


@pytest_asyncio.fixture
async def loaded_workflow(workflow):
    assert await workflow.load() is True
    return workflow


async def fill_external(
    wf: TransferWorkflow,
    amount: str = "100",
    routing: str = "021000021",
    account_number: str = "987654321",
    holder: Optional[str] = "Ada Lovelace",
) -> None:
    wf.set_transfer_type("external")
    if holder is not None:
        wf.set_account_holder_name(holder)
    wf.set_routing_code(routing)
    wf.set_account_number(account_number)
    wf.set_account_type("checking")
    wf.set_amount(amount)
    await wf.settle()
