from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from smsgate.api import deps
from smsgate.models.domain import SmsStatus
from smsgate.schemas.sms_queue import (
    DeleteResult,
    EngineState,
    EnqueueRequest,
    EnqueueResponse,
    SmsQueueItem,
    SmsQueueList,
)
from smsgate.services.dispatch_engine import DispatchEngine

router = APIRouter(
    prefix="/sms-queue",
    tags=["sms-queue"],
    dependencies=[Depends(deps.require_admin)],
)


@router.get("", response_model=SmsQueueList)
def list_queue(
    status: SmsStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    engine: DispatchEngine = Depends(deps.get_dispatch_engine),
):
    status_value = status.value if status else None
    records = engine.list(status_value, limit=limit, offset=offset)
    return SmsQueueList(
        items=[SmsQueueItem.model_validate(record) for record in records],
        total=engine.store.count(status_value),
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=EnqueueResponse, status_code=201)
def enqueue_sms(
    payload: EnqueueRequest,
    engine: DispatchEngine = Depends(deps.get_dispatch_engine),
):
    try:
        result = engine.enqueue(
            payload.message_id,
            payload.phones,
            communication_id=payload.communication_id,
            forced=payload.forced,
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return EnqueueResponse(
        sms_ids=result.sms_ids,
        blocked_phones=result.blocked_phones,
        invalid_phones=result.invalid_phones,
    )


@router.get("/engine", response_model=EngineState)
def engine_state(engine: DispatchEngine = Depends(deps.get_dispatch_engine)):
    return EngineState(**engine.state())


@router.delete("", response_model=DeleteResult)
def clear_queue(
    status: SmsStatus | None = None,
    engine: DispatchEngine = Depends(deps.get_dispatch_engine),
):
    return DeleteResult(deleted=engine.delete_all(status.value if status else None))


@router.delete("/{sms_id}", response_model=DeleteResult)
def delete_sms(
    sms_id: int,
    engine: DispatchEngine = Depends(deps.get_dispatch_engine),
):
    if not engine.delete(sms_id):
        raise HTTPException(status_code=404, detail="SMS queue item not found")
    return DeleteResult(deleted=1)


@router.post("/{sms_id}/requeue", response_model=SmsQueueItem)
def requeue_sms(
    sms_id: int,
    engine: DispatchEngine = Depends(deps.get_dispatch_engine),
):
    record = engine.force_requeue(sms_id)
    if record is None:
        raise HTTPException(status_code=404, detail="SMS queue item not found")
    return SmsQueueItem.model_validate(record)
