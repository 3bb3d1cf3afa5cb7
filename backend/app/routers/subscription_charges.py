"""Internal endpoints driven by the scheduler: run a charge batch, inspect what is due."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.auth import require_internal_service
from app.core.database import get_db
from app.core.errors import InvalidStateError
from app.models.shared import utc_now
from app.schemas.batch import (
    BatchEnqueuedResponse,
    BatchError,
    BatchRunResponse,
    ChargeStatusResponse,
    DueSubscriptionSummary,
)
from app.services.batch_runner import BatchRunner
from app.tasks import enqueue_subscription_charges

router = APIRouter(dependencies=[Depends(require_internal_service)])

_INTERNAL_RESPONSES: dict[int | str, dict[str, str]] = {
    401: {"description": "Unauthorized - internal service only"},
}


@router.post(
    "/charge",
    response_model=BatchRunResponse,
    summary="Process due subscription charges",
    responses={
        **_INTERNAL_RESPONSES,
        202: {"model": BatchEnqueuedResponse},
        409: {"description": "A charge batch is already queued"},
    },
)
async def run_charge_batch(
    background: bool = Query(default=False, description="Enqueue on the worker instead"),
    db: Session = Depends(get_db),
) -> BatchRunResponse | JSONResponse:
    """Charge every subscription that is currently due."""
    if background:
        job = await enqueue_subscription_charges()
        if job is None:
            raise InvalidStateError("A subscription charge batch is already queued")
        body = BatchEnqueuedResponse(message="Subscription charge batch enqueued", job_id=job.job_id)
        return JSONResponse(status_code=202, content=body.model_dump())

    result = BatchRunner(db).run_batch(utc_now())
    if result.processed == 0 and result.skipped == 0:
        return BatchRunResponse(message="No subscriptions due for charging")
    return BatchRunResponse(
        message="Subscription charges processed",
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        errors=[BatchError(subscription_id=sid, error=err) for sid, err in result.errors],
    )


@router.get(
    "/charge",
    response_model=ChargeStatusResponse,
    summary="List subscriptions due for charging",
    responses=_INTERNAL_RESPONSES,
)
async def get_charge_status(db: Session = Depends(get_db)) -> ChargeStatusResponse:
    """Monitoring view of what the next batch would attempt."""
    due = BatchRunner(db).select(utc_now())
    return ChargeStatusResponse(
        due_subscriptions=len(due),
        subscriptions=[
            DueSubscriptionSummary(
                id=sub.id,
                merchant_id=sub.merchant_id,
                amount=sub.amount,
                status=sub.status,
                next_charge_at=sub.next_charge_at,
                retry_at=sub.retry_at,
            )
            for sub in due
        ],
    )
