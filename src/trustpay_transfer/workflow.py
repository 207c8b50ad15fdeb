"""
workflow.py

TransferWorkflow:
- Owns the form, the summary and the field-scoped validation errors.
- Drives EDITING -> REVIEW -> AUTHORIZING -> SUBMITTING -> SUCCESS | FAILED
  through an explicit transition table.
- Coordinates the routing resolver, the account verifier, the authorization
  gate and the balance cache.

One workflow corresponds to one mounted transfer page. ``close()`` is the
unmount: every timer and in-flight request is cancelled and nothing that
resolves afterwards touches the state.
"""

import asyncio
import logging
from enum import Enum
from decimal import Decimal
from typing import Any, Dict, Optional

from .authorization import AuthorizationGate, PinHintStore
from .cache import BalanceCache
from .calculator import (
    compute_summary,
    format_money,
    has_sub_cent_precision,
    is_oversized_amount,
    max_transferable,
    parse_amount,
    quick_amounts,
    sanitize_amount_input,
)
from .clients.bank_client import BankApiClient
from .config import WorkflowSettings
from .errors import (
    AuthorizationError,
    FormatError,
    IllegalTransitionError,
    LimitError,
    ResolutionError,
    SessionExpiredError,
    TransferError,
)
from .logging_config import mask_account
from .schemas.models import (
    Account,
    TransferFormData,
    TransferOutcome,
    TransferRequest,
    TransferSummary,
    UserProfile,
    VerifiedAccount,
)
from .validators.account import DestinationAccountVerifier, PayeeResolver, sandbox_payee_resolver
from .validators.routing import ROUTING_FORMAT_MESSAGE, BankRoutingResolver, is_valid_routing_number

logger = logging.getLogger("trustpay.transfer")

TRANSFER_TYPES = ("internal", "external")
ACCOUNT_TYPES = ("checking", "savings")
EXTERNAL_FIELDS = ("account_holder_name", "routing_code", "bank_name", "account_number", "account_type")
SUBMITTED_MESSAGE = "Transfer submitted successfully"
STEP_UP_MESSAGE = "Transfer submitted. Additional verification is required before it completes."


class WorkflowState(Enum):
    EDITING = "editing"
    REVIEW = "review"
    AUTHORIZING = "authorizing"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"
    CLOSED = "closed"


_TRANSITIONS = {
    WorkflowState.EDITING: {WorkflowState.REVIEW, WorkflowState.CLOSED},
    WorkflowState.REVIEW: {WorkflowState.EDITING, WorkflowState.AUTHORIZING, WorkflowState.CLOSED},
    WorkflowState.AUTHORIZING: {
        WorkflowState.SUBMITTING,
        WorkflowState.REVIEW,
        WorkflowState.EDITING,
        WorkflowState.CLOSED,
    },
    WorkflowState.SUBMITTING: {
        WorkflowState.SUCCESS,
        WorkflowState.FAILED,
        WorkflowState.REVIEW,
        WorkflowState.EDITING,
        WorkflowState.CLOSED,
    },
    WorkflowState.SUCCESS: {WorkflowState.EDITING, WorkflowState.CLOSED},
    WorkflowState.FAILED: {
        WorkflowState.AUTHORIZING,
        WorkflowState.REVIEW,
        WorkflowState.EDITING,
        WorkflowState.CLOSED,
    },
    WorkflowState.CLOSED: set(),
}

REVIEW_OPEN_STATES = (
    WorkflowState.REVIEW,
    WorkflowState.AUTHORIZING,
    WorkflowState.SUBMITTING,
    WorkflowState.FAILED,
)


class TransferWorkflow:
    def __init__(
        self,
        client: BankApiClient,
        settings: Optional[WorkflowSettings] = None,
        resolve_payee: PayeeResolver = sandbox_payee_resolver,
        hint_store: Optional[PinHintStore] = None,
        hint_key: str = "default",
    ) -> None:
        self.client = client
        self.settings = settings or WorkflowSettings.from_env()
        self.cache = BalanceCache(
            default_daily_limit=self.settings.default_daily_limit,
            per_transaction_limit=self.settings.per_transaction_limit,
            currency=self.settings.currency,
        )
        self.resolver = BankRoutingResolver(
            client.lookup_routing,
            debounce=self.settings.routing_debounce,
            on_resolved=self._on_bank_resolved,
        )
        self.verifier = DestinationAccountVerifier(
            resolve_payee,
            debounce=self.settings.account_verify_debounce,
            min_length=self.settings.account_number_min_len,
        )
        self.gate = AuthorizationGate(client.set_pin, hint_store=hint_store, hint_key=hint_key)

        self.state = WorkflowState.EDITING
        self.form = TransferFormData()
        self.profile: Optional[UserProfile] = None
        self.summary = compute_summary("", self.form.transfer_type, self.settings.fee_rates)
        self.errors: Dict[str, str] = {}
        self.verified_account: Optional[VerifiedAccount] = None
        self.transfer_error: Optional[TransferError] = None
        self.load_error: Optional[TransferError] = None
        self.outcome: Optional[TransferOutcome] = None
        self.session_expired = False

        self._load_task: Optional[asyncio.Task] = None
        self._submission: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------
    def _move(self, target: WorkflowState) -> None:
        if target is self.state:
            return
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransitionError(self.state, target)
        logger.info("Workflow %s -> %s", self.state.value, target.value)
        self.state = target

    @property
    def loaded(self) -> bool:
        return self.cache.loaded

    @property
    def closed(self) -> bool:
        return self.state is WorkflowState.CLOSED

    @property
    def review_open(self) -> bool:
        return self.state in REVIEW_OPEN_STATES

    @property
    def is_submitting(self) -> bool:
        return self._submission is not None and not self._submission.done()

    def _editable(self) -> None:
        """Field edits are allowed while editing; a finished attempt drops back to editing."""
        if self.state in (WorkflowState.FAILED, WorkflowState.SUCCESS):
            self.transfer_error = None
            self.verified_account = None
            self.gate.release()
            self._move(WorkflowState.EDITING)
        if self.state is not WorkflowState.EDITING:
            raise IllegalTransitionError(self.state, WorkflowState.EDITING)

    def _recompute_summary(self) -> None:
        self.summary = compute_summary(self.form.amount, self.form.transfer_type, self.settings.fee_rates)

    # ------------------------------------------------------------------
    # Mount
    # ------------------------------------------------------------------
    async def load(self) -> bool:
        """
        Fetch accounts and profile concurrently and seed the cache, the
        default account selection and the authorization gate.

        Returns True when accounts were loaded.
        """
        if self.closed:
            return False
        self._load_task = asyncio.get_running_loop().create_task(self._fetch_dashboard())
        try:
            accounts, profile = await self._load_task
        except asyncio.CancelledError:
            if self.closed:
                logger.debug("Load cancelled by close()")
                return False
            raise
        except TransferError as e:
            self.load_error = e
            if isinstance(e, SessionExpiredError):
                self.session_expired = True
            logger.warning("Initial load failed: %s", e.message)
            return False
        finally:
            self._load_task = None

        if self.closed:
            return False
        self.profile = profile
        self.cache.refresh(accounts, profile)
        self.gate.initialize(accounts)
        self.load_error = None
        if accounts:
            primary = accounts[0]
            self.form.from_account_id = primary.id
            self.cache.select_source(primary.id)
            alt = next((a for a in accounts if a.id != primary.id), None)
            if alt is not None and self.form.transfer_type == "internal":
                self.form.to_internal_account_id = alt.id
        self._recompute_summary()
        return True

    async def _fetch_dashboard(self):
        accounts_result, profile_result = await asyncio.gather(
            self.client.get_accounts(),
            self.client.get_profile(),
            return_exceptions=True,
        )
        for result in (accounts_result, profile_result):
            if isinstance(result, SessionExpiredError):
                raise result
        if isinstance(accounts_result, BaseException):
            raise accounts_result
        profile: Optional[UserProfile] = None
        if isinstance(profile_result, BaseException):
            logger.warning("Profile fetch failed; using default limits: %s", profile_result)
        else:
            profile = profile_result
        return accounts_result, profile

    # ------------------------------------------------------------------
    # Form edits
    # ------------------------------------------------------------------
    def set_transfer_type(self, transfer_type: str) -> None:
        self._editable()
        if transfer_type not in TRANSFER_TYPES:
            raise FormatError("Choose an internal or external transfer.", field="transfer_type")
        if transfer_type == self.form.transfer_type:
            return
        self.form.transfer_type = transfer_type
        if transfer_type == "internal":
            self.form.account_holder_name = ""
            self.form.routing_code = ""
            self.form.bank_name = ""
            self.form.account_number = ""
            self.form.account_type = None
            self.resolver.reset()
            self.verifier.reset()
            for field in EXTERNAL_FIELDS:
                self.errors.pop(field, None)
        else:
            self.form.to_internal_account_id = None
            self.errors.pop("to_internal_account_id", None)
        self._recompute_summary()
        logger.info("Transfer type -> %s", transfer_type)

    def set_amount(self, text: str, sanitize: bool = False) -> None:
        """Set the amount text; ``sanitize`` applies keystroke filtering first."""
        self._editable()
        value = sanitize_amount_input(self.form.amount, text) if sanitize else (text or "")
        self.form.amount = value
        self.errors.pop("amount", None)
        self._recompute_summary()

    def apply_quick_amount(self, amount: Any) -> None:
        value = Decimal(str(amount))
        ceiling = self.max_transferable
        if value > ceiling:
            raise LimitError(f"Quick amount exceeds the maximum transferable of {format_money(ceiling)}", field="amount")
        self.set_amount(str(value))

    def set_from_account(self, account_id: str) -> None:
        self._editable()
        if self.cache.get_account(account_id) is None:
            raise FormatError("Select a source account.", field="from_account_id")
        self.form.from_account_id = account_id
        self.cache.select_source(account_id)
        if self.form.transfer_type == "internal":
            alt = next((a for a in self.cache.accounts if a.id != account_id), None)
            if self.form.to_internal_account_id in (None, account_id) and alt is not None:
                self.form.to_internal_account_id = alt.id
        self.errors.pop("from_account_id", None)
        self.errors.pop("amount", None)

    def set_to_internal_account(self, account_id: Optional[str]) -> None:
        self._editable()
        if self.form.transfer_type != "internal":
            raise FormatError("Switch to an internal transfer to pick one of your accounts.", field="to_internal_account_id")
        self.form.to_internal_account_id = account_id or None
        self.errors.pop("to_internal_account_id", None)

    def _external_only(self, field: str) -> None:
        self._editable()
        if self.form.transfer_type != "external":
            raise FormatError("This field only applies to external transfers.", field=field)

    def set_account_holder_name(self, name: str) -> None:
        self._external_only("account_holder_name")
        self.form.account_holder_name = name or ""
        self.errors.pop("account_holder_name", None)
        self._rearm_verifier()

    def set_routing_code(self, code: str) -> None:
        self._external_only("routing_code")
        self.form.routing_code = code or ""
        self.errors.pop("routing_code", None)
        self.errors.pop("bank_name", None)
        self.resolver.update(self.form.routing_code)

    def set_account_number(self, account_number: str) -> None:
        self._external_only("account_number")
        self.form.account_number = account_number or ""
        self.errors.pop("account_number", None)
        self._rearm_verifier()

    def set_account_type(self, account_type: Optional[str]) -> None:
        self._external_only("account_type")
        if account_type and account_type not in ACCOUNT_TYPES:
            raise FormatError("Select account type.", field="account_type")
        self.form.account_type = account_type or None
        self.errors.pop("account_type", None)

    def set_memo(self, memo: str) -> None:
        self._editable()
        self.form.memo = memo or ""

    def update_form(self, changes: Dict[str, Any]) -> None:
        """Apply several field edits; the transfer type is applied first."""
        setters = {
            "transfer_type": self.set_transfer_type,
            "amount": self.set_amount,
            "from_account_id": self.set_from_account,
            "to_internal_account_id": self.set_to_internal_account,
            "account_holder_name": self.set_account_holder_name,
            "routing_code": self.set_routing_code,
            "account_number": self.set_account_number,
            "account_type": self.set_account_type,
            "memo": self.set_memo,
        }
        ordered = sorted(changes.items(), key=lambda item: item[0] != "transfer_type")
        for field, value in ordered:
            setter = setters.get(field)
            if setter is None:
                raise FormatError(f"Unknown field: {field}", field=field)
            setter(value)

    def _on_bank_resolved(self, bank_name: Optional[str]) -> None:
        if self.closed:
            return
        self.form.bank_name = bank_name or ""
        self._rearm_verifier()

    def _rearm_verifier(self) -> None:
        if self.form.transfer_type != "external":
            return
        self.verifier.update(
            self.form.account_number,
            self.form.bank_name if self.resolver.resolved else "",
            routing_number=self.resolver.code,
            holder_name=self.form.account_holder_name,
            currency=self.cache.currency,
        )

    async def settle(self) -> None:
        """Wait for debounced validators (resolver first, it re-arms the verifier)."""
        await self.resolver.settle()
        await self.verifier.settle()

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------
    @property
    def source_account(self) -> Optional[Account]:
        return self.cache.get_account(self.form.from_account_id)

    @property
    def current_verified_account(self) -> Optional[VerifiedAccount]:
        """The verifier's result, but only if it matches the current account number."""
        if self.verifier.matches(self.form.account_number):
            return self.verifier.verified
        return None

    @property
    def max_transferable(self) -> Decimal:
        limits = self.cache.limits
        return max_transferable(
            self.cache.balance_of(self.form.from_account_id),
            limits.remaining_today,
            self.settings.fee_rate(self.form.transfer_type),
            limits.per_transaction_limit,
        )

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        source = self.source_account

        if not self.loaded:
            errors["from_account_id"] = "Accounts are still loading."
        elif source is None:
            errors["from_account_id"] = "Select a source account."

        if self.form.transfer_type == "internal":
            destination_id = self.form.to_internal_account_id
            if not destination_id or self.cache.get_account(destination_id) is None:
                errors["to_internal_account_id"] = "Select a destination account."
            elif destination_id == self.form.from_account_id:
                errors["to_internal_account_id"] = "Choose a different destination account."
        else:
            errors.update(self._validate_external())

        amount_error = self._validate_amount(source)
        if amount_error:
            errors["amount"] = amount_error

        self.errors = errors
        return errors

    def _validate_external(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        form = self.form
        if not form.account_holder_name.strip():
            errors["account_holder_name"] = "Account holder name is required."

        code = form.routing_code.strip()
        if not code:
            errors["routing_code"] = "Routing number is required."
        elif not is_valid_routing_number(code):
            errors["routing_code"] = ROUTING_FORMAT_MESSAGE
        elif self.resolver.error is not None:
            errors["routing_code"] = self.resolver.error.message

        if not form.bank_name.strip() or not self.resolver.resolved:
            if self.resolver.pending or self.resolver.is_loading:
                errors["bank_name"] = "Bank lookup is still in progress."
            else:
                errors["bank_name"] = "Look up the bank with a valid routing number first."

        if not form.account_number.strip():
            errors["account_number"] = "Enter a destination account number."
        elif self.verifier.error is not None:
            errors["account_number"] = self.verifier.error.message
        elif self.current_verified_account is None:
            errors["account_number"] = "Please verify the account number before proceeding."

        if not form.account_type:
            errors["account_type"] = "Select account type."
        return errors

    def _validate_amount(self, source: Optional[Account]) -> Optional[str]:
        if not (self.form.amount or "").strip():
            return "Please enter transfer amount."
        amount = parse_amount(self.form.amount)
        if amount is None:
            if is_oversized_amount(self.form.amount):
                return "Amount is too large."
            return "Amount must be a number."
        if amount <= 0:
            return "Amount must be greater than zero."
        if has_sub_cent_precision(amount):
            return "Amount can have at most two decimal places."
        limits = self.cache.limits
        if source is not None and self.summary.total > source.balance:
            return "Insufficient balance."
        if amount > limits.per_transaction_limit:
            return f"Amount exceeds per transaction limit of {format_money(limits.per_transaction_limit)}"
        if amount > limits.remaining_today:
            return f"Amount exceeds daily remaining limit of {format_money(limits.remaining_today)}"
        return None

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------
    def open_review(self) -> bool:
        """
        Validate and open the review step. Returns False (with ``errors``
        populated) when anything blocks it.
        """
        if self.state is not WorkflowState.EDITING:
            raise IllegalTransitionError(self.state, WorkflowState.REVIEW)
        if self.gate.setup_prompted:
            self.errors = {"pin": "Set up your transaction PIN before making a transfer."}
            return False
        if self.validate():
            logger.info("Review blocked: %s", ", ".join(sorted(self.errors)))
            return False

        if self.form.transfer_type == "internal":
            verified = self._internal_destination()
        else:
            verified = self.current_verified_account
        if verified is None:
            self.errors = {"account_number": "Please verify the account number before proceeding."}
            return False

        self.verified_account = verified
        self.transfer_error = None
        self._move(WorkflowState.REVIEW)
        return True

    def _internal_destination(self) -> Optional[VerifiedAccount]:
        destination = self.cache.get_account(self.form.to_internal_account_id)
        if destination is None:
            return None
        source = self.source_account
        profile = self.profile or UserProfile()
        routing = (
            destination.routing_number
            or (source.routing_number if source else None)
            or self.settings.default_internal_routing
        )
        return VerifiedAccount(
            full_name=profile.full_name or "Your account",
            email=profile.email or "",
            account_number=destination.account_number,
            bank_name=self.settings.internal_bank_name,
            currency=self.cache.currency,
            routing_number=routing,
        )

    def cancel_review(self) -> None:
        if self.state is WorkflowState.SUBMITTING:
            raise IllegalTransitionError(self.state, WorkflowState.EDITING)
        if self.state not in REVIEW_OPEN_STATES:
            raise IllegalTransitionError(self.state, WorkflowState.EDITING)
        self.gate.release()
        self.verified_account = None
        self.transfer_error = None
        self._move(WorkflowState.EDITING)

    # ------------------------------------------------------------------
    # Authorization & submission
    # ------------------------------------------------------------------
    def confirm(self) -> bool:
        """
        Move from review (or a failed attempt) to PIN entry. Without a PIN the
        setup prompt is re-opened instead and the review stays open.
        """
        if self.state not in (WorkflowState.REVIEW, WorkflowState.FAILED):
            raise IllegalTransitionError(self.state, WorkflowState.AUTHORIZING)
        if not self.loaded or not self.form.from_account_id:
            self.transfer_error = FormatError("Accounts are still loading.", field="from_account_id")
            return False
        if not self.gate.has_pin:
            self.transfer_error = AuthorizationError(
                "Set up a transaction PIN before confirming this transfer.", field="pin"
            )
            if not self.gate.setup_prompted:
                self.gate.prompt_setup()
            self._move(WorkflowState.REVIEW)
            return False
        self.gate.require_entry()
        self.transfer_error = None
        self._move(WorkflowState.AUTHORIZING)
        return True

    async def setup_pin(self, pin: str, confirm_pin: str, current_pin: Optional[str] = None) -> bool:
        """Run the gate's setup flow; errors are kept on ``errors`` / ``transfer_error``."""
        try:
            await self.gate.setup_pin(pin, confirm_pin, self.form.from_account_id, current_pin)
        except FormatError as e:
            self.errors[e.field or "pin"] = e.message
            return False
        except TransferError as e:
            if isinstance(e, SessionExpiredError):
                self.session_expired = True
            self.gate.last_error = e
            self.transfer_error = e
            return False
        self.errors.pop("pin", None)
        self.errors.pop("confirm_pin", None)
        if isinstance(self.transfer_error, AuthorizationError):
            self.transfer_error = None
        return True

    def dismiss_pin_setup(self) -> None:
        self.gate.dismiss_setup()

    async def authorize(self, pin: str) -> Optional[TransferOutcome]:
        """
        Submit the reviewed transfer with the entered PIN.

        Returns the outcome on success, None otherwise (the reason is on
        ``transfer_error``). A call made while a submission is outstanding is
        ignored and makes no request.
        """
        if self.is_submitting:
            logger.warning("Duplicate submission ignored while a transfer is in flight")
            return None
        if self.state is not WorkflowState.AUTHORIZING:
            raise IllegalTransitionError(self.state, WorkflowState.SUBMITTING)

        try:
            digits = self.gate.take_pin(pin)
            request = self._build_request(digits)
        except FormatError as e:
            self.transfer_error = e
            return None
        except ResolutionError as e:
            self.transfer_error = e
            self.gate.release()
            self.verified_account = None
            self._move(WorkflowState.EDITING)
            return None

        self._move(WorkflowState.SUBMITTING)
        summary = self.summary
        self._submission = asyncio.get_running_loop().create_task(self.client.submit_transfer(request))
        try:
            payload = await self._submission
        except asyncio.CancelledError:
            if self.closed:
                logger.info("Submission abandoned by close()")
                return None
            raise
        except TransferError as e:
            if self.closed:
                return None
            self._fail(e)
            return None
        finally:
            self._submission = None

        if self.closed:
            logger.info("Transfer accepted after close(); result not applied")
            return None
        return self._complete(payload, summary)

    def _fail(self, error: TransferError) -> None:
        if isinstance(error, AuthorizationError):
            # wrong or locked PIN: keep the review open for another attempt
            self.gate.mark_denied(error)
            self.transfer_error = error
            self._move(WorkflowState.REVIEW)
            return
        if isinstance(error, SessionExpiredError):
            self.session_expired = True
        logger.warning("Transfer failed: %s", error.message)
        self.gate.release()
        self.transfer_error = error
        self._move(WorkflowState.FAILED)

    def _build_request(self, pin: str) -> TransferRequest:
        form = self.form
        source = self.source_account
        if source is None:
            raise FormatError("Select a source account.", field="from_account_id")
        if form.transfer_type == "internal":
            destination = self.verified_account
            if destination is None:
                raise ResolutionError("Select a destination account.", field="to_internal_account_id")
            routing = destination.routing_number or self.settings.default_internal_routing
        else:
            destination = self.current_verified_account
            if (
                destination is None
                or self.verified_account is None
                or self.verified_account.account_number != form.account_number.strip()
            ):
                raise ResolutionError("Please verify the account number before proceeding.", field="account_number")
            routing = self.resolver.code
            if not routing:
                raise ResolutionError("Missing routing number for destination account.", field="routing_code")

        default_description = "Transfer to your account" if form.transfer_type == "internal" else "Transfer to beneficiary"
        return TransferRequest(
            from_account_id=source.id,
            to_account_number=destination.account_number,
            to_routing_number=routing,
            amount=self.summary.amount,
            description=form.memo.strip() or default_description,
            pin=pin,
        )

    def _complete(self, payload: Dict[str, Any], summary: TransferSummary) -> TransferOutcome:
        self.gate.mark_authorized()
        destination_id = self.form.to_internal_account_id if self.form.transfer_type == "internal" else None
        self.cache.apply_transfer(self.form.from_account_id, destination_id, summary.amount, summary.total)

        step_up = bool(payload.get("step_up_required") or payload.get("stepUpRequired"))
        transfer_id = payload.get("id") or payload.get("transfer_id") or payload.get("reference")
        outcome = TransferOutcome(
            status="step_up_required" if step_up else "submitted",
            message=STEP_UP_MESSAGE if step_up else SUBMITTED_MESSAGE,
            transfer_id=str(transfer_id) if transfer_id is not None else None,
        )
        logger.info(
            "Transfer %s: amount=%s to=%s",
            outcome.status,
            summary.amount,
            mask_account(self.verified_account.account_number if self.verified_account else ""),
        )

        self.outcome = outcome
        self.transfer_error = None
        self.verified_account = None
        self.verifier.reset()
        self.gate.release()
        self._move(WorkflowState.SUCCESS)
        self._reset_form()
        return outcome

    def _reset_form(self) -> None:
        previous = self.form
        self.form = TransferFormData(
            transfer_type=previous.transfer_type,
            from_account_id=previous.from_account_id,
            to_internal_account_id=previous.to_internal_account_id if previous.transfer_type == "internal" else None,
        )
        self.resolver.reset()
        self.errors = {}
        self._recompute_summary()

    # ------------------------------------------------------------------
    # Unmount
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Cancel all outstanding work; nothing resolving later may touch the state."""
        if self.closed:
            return
        self._move(WorkflowState.CLOSED)
        for task in (self._load_task, self._submission):
            if task is not None and not task.done():
                task.cancel()
        self.resolver.close()
        self.verifier.close()
        self.verified_account = None
        logger.info("Workflow closed")

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        limits = self.cache.limits
        ceiling = self.max_transferable
        return {
            "state": self.state.value,
            "loaded": self.loaded,
            "review_open": self.review_open,
            "form": self.form.model_dump(mode="json"),
            "summary": self.summary.model_dump(mode="json"),
            "limits": limits.model_dump(mode="json"),
            "accounts": [a.model_dump(mode="json") for a in self.cache.accounts],
            "errors": dict(self.errors),
            "verified_account": self.verified_account.model_dump() if self.verified_account else None,
            "routing": self.resolver.status(),
            "account_verification": self.verifier.status(),
            "authorization": self.gate.snapshot(),
            "max_transferable": str(ceiling),
            "quick_amounts": [{"amount": str(a), "enabled": enabled} for a, enabled in quick_amounts(ceiling)],
            "transfer_error": self.transfer_error.to_dict() if self.transfer_error else None,
            "load_error": self.load_error.to_dict() if self.load_error else None,
            "session_expired": self.session_expired,
            "outcome": self.outcome.model_dump() if self.outcome else None,
        }
