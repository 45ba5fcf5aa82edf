"""
Webhook router: certificate update trigger from cert-manager.

Parses the trigger, runs the Sync Orchestrator and maps its result to an
HTTP status. No retries happen at this layer.
"""
import asyncio
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator

from certsync import (
    ClusterUnavailableError,
    PushRejectedError,
    PushRetriesExhaustedError,
    SecretMalformedError,
    SecretNotFoundError,
    SyncOrchestrator,
    SyncResult,
    SyncStage,
    TriggerRequest,
)
from dependencies import get_orchestrator
from metrics import record_sync

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_PATH = "/update-nodebalancer-cert"

# Most specific first; the first isinstance match wins
_ERROR_STATUS = (
    (SecretNotFoundError, 404),
    (SecretMalformedError, 422),
    (ClusterUnavailableError, 503),
    (PushRejectedError, 502),
    (PushRetriesExhaustedError, 504),
)

# Runs that outlive a dropped connection are kept referenced here
_inflight: set = set()


class SecretRef(BaseModel):
    """cert-manager style reference to a Secret."""

    name: str
    namespace: str


class TriggerPayload(BaseModel):
    """
    Trigger body.

    Accepts either ``{"secretRef": {"name": ..., "namespace": ...}}`` or
    the flat ``{"namespace": ..., "secret_name": ...}`` form.
    """

    model_config = ConfigDict(populate_by_name=True)

    secret_ref: Optional[SecretRef] = Field(default=None, alias="secretRef")
    namespace: Optional[str] = None
    secret_name: Optional[str] = None
    issuer: Optional[str] = None

    @model_validator(mode="after")
    def check_secret_identified(self) -> "TriggerPayload":
        if self.secret_ref is None and (self.namespace is None or self.secret_name is None):
            raise ValueError("body must contain secretRef or namespace and secret_name")
        return self

    def to_trigger(self) -> TriggerRequest:
        if self.secret_ref is not None:
            return TriggerRequest(
                secret_name=self.secret_ref.name,
                secret_namespace=self.secret_ref.namespace,
                issuer=self.issuer,
            )
        return TriggerRequest(
            secret_name=self.secret_name,
            secret_namespace=self.namespace,
            issuer=self.issuer,
        )


def status_for_result(result: SyncResult) -> int:
    """HTTP status code for a sync outcome."""
    if result.success:
        return 200
    if result.stage == SyncStage.VALIDATION:
        return 400
    for error_type, code in _ERROR_STATUS:
        if isinstance(result.error, error_type):
            return code
    return 500


def result_body(result: SyncResult) -> dict:
    if result.success:
        return {"status": "success", "message": result.message}
    return {
        "status": "error",
        "stage": result.stage.value if result.stage else None,
        "message": result.message,
    }


async def _run_detached(orchestrator: SyncOrchestrator, trigger: TriggerRequest) -> SyncResult:
    """
    Run the sync so that a cancelled request does not abort it.

    The run is counted in the metrics when it finishes, whether or not the
    client is still waiting for the response.
    """
    started = time.monotonic()
    task = asyncio.ensure_future(orchestrator.sync(trigger))
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)
    task.add_done_callback(lambda t: _record_finished(t, started))
    return await asyncio.shield(task)


def _record_finished(task: asyncio.Future, started: float) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    record_sync(task.result(), time.monotonic() - started)


async def update_nodebalancer_cert(
    payload: TriggerPayload,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Sync the certificate held in the referenced Secret to the NodeBalancer."""
    trigger = payload.to_trigger()
    result = await _run_detached(orchestrator, trigger)

    status_code = status_for_result(result)
    logger.info(
        "[WEBHOOK] Sync of %s finished with %s (%s)",
        trigger.ref, status_code, result.message,
    )
    return JSONResponse(status_code=status_code, content=result_body(result))


def create_router(path: str = DEFAULT_WEBHOOK_PATH) -> APIRouter:
    """Build the webhook router serving the trigger on ``path``."""
    router = APIRouter(tags=["Webhook"])
    router.add_api_route(path, update_nodebalancer_cert, methods=["POST"])
    return router
