"""
Tests for the transaction PIN authorization gate
"""

from decimal import Decimal

import pytest

from trustpay_transfer.authorization import (
    PIN_FORMAT_MESSAGE,
    PIN_MISMATCH_MESSAGE,
    AuthorizationGate,
    GateState,
    PinHintStore,
    is_valid_pin,
)
from trustpay_transfer.errors import AuthorizationError, FormatError, IllegalTransitionError, PinLockedError
from trustpay_transfer.schemas.models import Account


class PinRecorder:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def __call__(self, account_id, pin, current_pin=None):
        self.calls.append((account_id, pin, current_pin))
        if self.error is not None:
            raise self.error


def _accounts(*flags):
    return [
        Account(id=f"acc-{i}", account_number=f"10020030{i}", balance=Decimal("100"), pin_required=flag)
        for i, flag in enumerate(flags, start=1)
    ]


@pytest.fixture
def store():
    return PinHintStore()


@pytest.mark.parametrize(
    "pin,valid",
    [("1234", True), ("123456", True), ("123", False), ("1234567", False), ("12a4", False), ("", False), (None, False)],
)
def test_pin_format(pin, valid):
    assert is_valid_pin(pin) is valid


class TestInitialize:
    def test_pin_required_forces_setup(self, store):
        store.set("u1", True)
        gate = AuthorizationGate(PinRecorder(), store, "u1")
        gate.initialize(_accounts(True, False))

        assert gate.state is GateState.PIN_SETUP_PROMPTED
        assert gate.setup_prompted
        assert gate.has_pin is False

    def test_backend_says_no_setup_needed(self, store):
        gate = AuthorizationGate(PinRecorder(), store, "u1")
        gate.initialize(_accounts(False, False))

        assert gate.state is GateState.PIN_SET
        assert store.get("u1") is True

    def test_unknown_falls_back_to_stored_hint(self, store):
        store.set("u1", True)
        with_hint = AuthorizationGate(PinRecorder(), store, "u1")
        with_hint.initialize(_accounts(None))
        without_hint = AuthorizationGate(PinRecorder(), store, "u2")
        without_hint.initialize(_accounts(None))

        assert with_hint.state is GateState.PIN_SET
        assert without_hint.state is GateState.NO_PIN_SET


class TestSetup:
    @pytest.mark.asyncio
    async def test_sets_pin_on_every_flagged_account(self, store):
        recorder = PinRecorder()
        gate = AuthorizationGate(recorder, store, "u1")
        gate.initialize(_accounts(True, False, True))

        await gate.setup_pin("2468", "2468")

        assert recorder.calls == [("acc-1", "2468", None), ("acc-3", "2468", None)]
        assert gate.state is GateState.PIN_SET
        assert gate.has_pin

    @pytest.mark.asyncio
    async def test_falls_back_to_selected_account(self, store):
        recorder = PinRecorder()
        gate = AuthorizationGate(recorder, store, "u1")
        gate.initialize(_accounts(None))
        gate.prompt_setup()

        await gate.setup_pin("2468", "2468", fallback_account_id="acc-1", current_pin="1357")

        assert recorder.calls == [("acc-1", "2468", "1357")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "pin,confirm,field,message",
        [
            ("12", "12", "pin", PIN_FORMAT_MESSAGE),
            ("12ab", "12ab", "pin", PIN_FORMAT_MESSAGE),
            ("1234", "4321", "confirm_pin", PIN_MISMATCH_MESSAGE),
        ],
    )
    async def test_rejects_bad_input_locally(self, store, pin, confirm, field, message):
        recorder = PinRecorder()
        gate = AuthorizationGate(recorder, store, "u1")
        gate.initialize(_accounts(True))

        with pytest.raises(FormatError) as exc:
            await gate.setup_pin(pin, confirm)

        assert exc.value.field == field
        assert exc.value.message == message
        assert recorder.calls == []
        assert gate.setup_prompted

    @pytest.mark.asyncio
    async def test_backend_rejection_keeps_prompt(self, store):
        gate = AuthorizationGate(PinRecorder(AuthorizationError("Current PIN is incorrect")), store, "u1")
        gate.initialize(_accounts(True))

        with pytest.raises(AuthorizationError):
            await gate.setup_pin("2468", "2468")

        assert gate.setup_prompted
        assert gate.has_pin is False

    def test_dismiss(self, store):
        gate = AuthorizationGate(PinRecorder(), store, "u1")
        gate.initialize(_accounts(True))
        gate.dismiss_setup()
        assert gate.state is GateState.NO_PIN_SET


class TestEntry:
    """Per-submission PIN entry"""

    def _ready_gate(self, store):
        gate = AuthorizationGate(PinRecorder(), store, "u1")
        gate.initialize(_accounts(False))
        return gate

    def test_pin_is_required_for_every_submission(self, store):
        gate = self._ready_gate(store)

        gate.require_entry()
        assert gate.take_pin(" 1234 ") == "1234"
        gate.mark_authorized()
        gate.release()

        assert gate.state is GateState.PIN_SET
        with pytest.raises(IllegalTransitionError):
            gate.take_pin("1234")

    def test_malformed_entry(self, store):
        gate = self._ready_gate(store)
        gate.require_entry()
        with pytest.raises(FormatError):
            gate.take_pin("12")
        assert gate.state is GateState.PIN_ENTRY_REQUIRED

    def test_locked_pin_keeps_hint(self, store):
        gate = self._ready_gate(store)
        gate.require_entry()

        gate.mark_denied(PinLockedError("PIN locked"))

        assert gate.state is GateState.DENIED
        assert gate.has_pin
        assert gate.snapshot()["error"]["kind"] == "authorization"
        gate.require_entry()
        assert gate.last_error is None

    def test_cannot_enter_while_setup_prompted(self, store):
        gate = AuthorizationGate(PinRecorder(), store, "u1")
        gate.initialize(_accounts(True))
        with pytest.raises(IllegalTransitionError):
            gate.require_entry()

    def test_hint_set_by_another_session(self, store):
        gate = AuthorizationGate(PinRecorder(), store, "u1")
        gate.initialize(_accounts(True))
        gate.dismiss_setup()
        assert gate.state is GateState.NO_PIN_SET

        store.set("u1", True)
        gate.require_entry()

        assert gate.state is GateState.PIN_ENTRY_REQUIRED
        assert gate.take_pin("2468") == "2468"
