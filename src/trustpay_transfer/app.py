"""
trustpay_transfer/app.py

FastAPI application hosting one transfer workflow per front-end session.
The page mounts a session, streams field edits, then drives review,
PIN entry and submission; deleting the session is the unmount.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from .clients.bank_client import BankApiClient
from .config import WorkflowSettings
from .context.session_manager import SessionManager, get_session_manager
from .errors import IllegalTransitionError, SessionExpiredError, TransferError
from .logging_config import get_logger, setup_logging
from .schemas.api_models import (
    ActionResponse,
    AuthorizeRequest,
    FormUpdateRequest,
    PinSetupRequest,
    QuickAmountRequest,
    SessionResponse,
)
from .workflow import TransferWorkflow

setup_logging()
logger = get_logger("trustpay.app")

ClientFactory = Callable[[str], BankApiClient]


def get_manager() -> SessionManager:
    return get_session_manager()


def get_client_factory() -> ClientFactory:
    return lambda token: BankApiClient(token)


def get_settings() -> WorkflowSettings:
    return WorkflowSettings.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_session_manager().close_all()


app = FastAPI(title="TrustPay Transfer Orchestrator", lifespan=lifespan)


@app.exception_handler(IllegalTransitionError)
async def illegal_transition_handler(request: Request, exc: IllegalTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(TransferError)
async def transfer_error_handler(request: Request, exc: TransferError):
    status = 401 if isinstance(exc, SessionExpiredError) else 400
    return JSONResponse(status_code=status, content={"detail": exc.message, "error": exc.to_dict()})


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def _workflow(session_id: str, manager: SessionManager) -> TransferWorkflow:
    workflow = manager.get_workflow(session_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Transfer session not found")
    return workflow


@app.post("/api/transfer-sessions", response_model=SessionResponse, status_code=201)
async def create_transfer_session(
    authorization: Optional[str] = Header(default=None),
    manager: SessionManager = Depends(get_manager),
    client_factory: ClientFactory = Depends(get_client_factory),
    settings: WorkflowSettings = Depends(get_settings),
):
    """
    Mount a transfer page: load accounts and limits for the bearer token.
    """
    token = _bearer_token(authorization)
    client = client_factory(token)
    workflow = TransferWorkflow(client, settings=settings, hint_store=manager.hint_store, hint_key=token)
    session_id = manager.create_session(workflow, client)
    await workflow.load()
    if workflow.session_expired:
        await manager.end_session(session_id)
        raise HTTPException(status_code=401, detail="Session expired")
    return SessionResponse(session_id=session_id, snapshot=workflow.snapshot())


@app.get("/api/transfer-sessions/{session_id}", response_model=SessionResponse)
async def get_transfer_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    workflow = _workflow(session_id, manager)
    return SessionResponse(session_id=session_id, snapshot=workflow.snapshot())


@app.patch("/api/transfer-sessions/{session_id}/form", response_model=SessionResponse)
async def update_transfer_form(
    session_id: str,
    body: FormUpdateRequest,
    manager: SessionManager = Depends(get_manager),
):
    """
    Apply field edits, then wait for debounced lookups to settle so the
    response reflects routing and account verification.
    """
    workflow = _workflow(session_id, manager)
    workflow.update_form(body.model_dump(exclude_unset=True))
    await workflow.settle()
    return SessionResponse(session_id=session_id, snapshot=workflow.snapshot())


@app.post("/api/transfer-sessions/{session_id}/quick-amount", response_model=SessionResponse)
async def apply_quick_amount(
    session_id: str,
    body: QuickAmountRequest,
    manager: SessionManager = Depends(get_manager),
):
    workflow = _workflow(session_id, manager)
    workflow.apply_quick_amount(body.amount)
    return SessionResponse(session_id=session_id, snapshot=workflow.snapshot())


@app.post("/api/transfer-sessions/{session_id}/review", response_model=ActionResponse)
async def open_review(session_id: str, manager: SessionManager = Depends(get_manager)):
    workflow = _workflow(session_id, manager)
    opened = workflow.open_review()
    return ActionResponse(ok=opened, snapshot=workflow.snapshot())


@app.post("/api/transfer-sessions/{session_id}/review/cancel", response_model=ActionResponse)
async def cancel_review(session_id: str, manager: SessionManager = Depends(get_manager)):
    workflow = _workflow(session_id, manager)
    workflow.cancel_review()
    return ActionResponse(ok=True, snapshot=workflow.snapshot())


@app.post("/api/transfer-sessions/{session_id}/confirm", response_model=ActionResponse)
async def confirm_transfer(session_id: str, manager: SessionManager = Depends(get_manager)):
    workflow = _workflow(session_id, manager)
    ok = workflow.confirm()
    return ActionResponse(ok=ok, snapshot=workflow.snapshot())


@app.post("/api/transfer-sessions/{session_id}/authorize", response_model=ActionResponse)
async def authorize_transfer(
    session_id: str,
    body: AuthorizeRequest,
    manager: SessionManager = Depends(get_manager),
):
    workflow = _workflow(session_id, manager)
    outcome = await workflow.authorize(body.pin)
    return ActionResponse(
        ok=outcome is not None,
        snapshot=workflow.snapshot(),
        outcome=outcome.model_dump() if outcome else None,
    )


@app.post("/api/transfer-sessions/{session_id}/pin", response_model=ActionResponse)
async def set_up_pin(
    session_id: str,
    body: PinSetupRequest,
    manager: SessionManager = Depends(get_manager),
):
    workflow = _workflow(session_id, manager)
    ok = await workflow.setup_pin(body.pin, body.confirm_pin, body.current_pin)
    return ActionResponse(ok=ok, snapshot=workflow.snapshot())


@app.post("/api/transfer-sessions/{session_id}/pin/dismiss", response_model=ActionResponse)
async def dismiss_pin_setup(session_id: str, manager: SessionManager = Depends(get_manager)):
    workflow = _workflow(session_id, manager)
    workflow.dismiss_pin_setup()
    return ActionResponse(ok=True, snapshot=workflow.snapshot())


@app.delete("/api/transfer-sessions/{session_id}", status_code=204)
async def end_transfer_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    if not await manager.end_session(session_id):
        raise HTTPException(status_code=404, detail="Transfer session not found")


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8010)
