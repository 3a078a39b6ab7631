from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from smsgate.core.config import Settings
from smsgate.core.phone import mask_phone
from smsgate.services.gateway_client import (
    GatewayAPIError,
    GatewayClient,
    SmsRecipient,
)
from smsgate.services.queue_store import DispatchRecord, EnqueueResult, QueueStore

logger = logging.getLogger(__name__)

DELIVERED_CODES = {"2", "4"}
FAILED_CODES = {"3", "5"}
NON_RETRYABLE_REASONS = frozenset(
    {
        "Internal error: Timeout",
        "Internal error: Invalid message",
        "Internal error: Unknown",
        "Internal error: REJECTED",
        "External error: Enroute",
        "External error: Expired",
        "External error: Deleted",
        "External error: Undeliverable",
        "External error: Rejected",
        "External error: Unknown",
    }
)
MISSING_TEXT_REASON = "message text missing"


class EngineJob(str, Enum):
    ADMISSION = "sms_admission"
    DISPATCH = "sms_dispatch"
    RECONCILIATION = "sms_reconciliation"


class StatusOutcome(str, Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"
    PENDING = "pending"


def classify_status(code: str | None, reason: str | None) -> StatusOutcome:
    normalized = (code or "").strip()
    if normalized in DELIVERED_CODES:
        return StatusOutcome.DELIVERED
    # unknown reasons under 3/5 are re-polled until the dead-letter bound
    if normalized in FAILED_CODES and (reason or "").strip() in NON_RETRYABLE_REASONS:
        return StatusOutcome.REJECTED
    return StatusOutcome.PENDING


class PendingQueue:
    """Ordered send queue: forced first, then newest first."""

    def __init__(self, records: Iterable[DispatchRecord] = ()) -> None:
        self._items: List[DispatchRecord] = []
        self.merge(records)

    def merge(self, records: Iterable[DispatchRecord]) -> None:
        by_id: Dict[int, DispatchRecord] = {record.sms_id: record for record in self._items}
        for record in records:
            by_id[record.sms_id] = record
        self._items = sorted(by_id.values(), key=_queue_order, reverse=True)

    def pop_front(self, count: int) -> List[DispatchRecord]:
        chunk = self._items[:count]
        del self._items[:count]
        return chunk

    def discard(self, sms_id: int) -> bool:
        before = len(self._items)
        self._items = [record for record in self._items if record.sms_id != sms_id]
        return len(self._items) != before

    def clear(self) -> None:
        self._items.clear()

    def ids(self) -> List[int]:
        return [record.sms_id for record in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))


def _queue_order(record: DispatchRecord):
    return (record.forced, record.created_at, record.sms_id)


@dataclass
class AdmissionSummary:
    recovered: int = 0
    admitted: int = 0
    pending: int = 0


@dataclass
class DispatchSummary:
    sent: int = 0
    rejected: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ReconciliationSummary:
    polled: int = 0
    delivered: int = 0
    rejected: int = 0
    expired: int = 0
    pending: int = 0
    error: Optional[str] = None


@dataclass
class EngineConfig:
    messages_count_tick: int = 100
    admission_limit: int = 600
    max_attempts: int = 720
    max_sent_age: Optional[timedelta] = timedelta(days=3)
    country_code: str = "380"
    blacklist: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        max_age = None
        if settings.sms_sent_max_age_minutes > 0:
            max_age = timedelta(minutes=settings.sms_sent_max_age_minutes)
        return cls(
            messages_count_tick=settings.sms_messages_count_tick,
            admission_limit=settings.sms_admission_limit,
            max_attempts=settings.sms_reconcile_max_attempts,
            max_sent_age=max_age,
            country_code=settings.sms_phone_country_code,
            blacklist=list(settings.sms_blacklist),
        )


ToggleCallback = Callable[[EngineJob, bool], None]


class DispatchEngine:
    """
    Bulk SMS dispatch pipeline.

    Three ticks move a record through the pipeline::

        admission_tick       sms_queue(waiting) -> pending queue
        dispatch_tick        pending queue -> gateway, ids -> awaiting set
        reconciliation_tick  awaiting set -> GETSTATUS -> delete / reject / re-poll

    Each tick switches itself off when its input is empty and switches on the
    stage it feeds. ``on_toggle`` receives those switches so a scheduler can
    pause and resume the matching job.

    The working-set lock is never held across a gateway call.
    """

    def __init__(
        self,
        store: QueueStore,
        gateway: GatewayClient,
        config: EngineConfig | None = None,
        *,
        on_toggle: ToggleCallback | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.config = config or EngineConfig()
        self.on_toggle = on_toggle
        self.pending = PendingQueue()
        self.awaiting: Set[int] = set()
        self._lock = threading.RLock()
        self._admission_wakeup = False
        self._active: Dict[EngineJob, bool] = {
            EngineJob.ADMISSION: True,
            EngineJob.DISPATCH: False,
            EngineJob.RECONCILIATION: False,
        }

    # ----------------------------------------------------------------------- #
    # Activation

    def is_active(self, job: EngineJob) -> bool:
        with self._lock:
            return self._active[job]

    def activate(self, job: EngineJob) -> None:
        with self._lock:
            if job is EngineJob.ADMISSION:
                self._admission_wakeup = True
            self._set_active(job, True)

    def deactivate(self, job: EngineJob) -> None:
        self._set_active(job, False)

    def _set_active(self, job: EngineJob, active: bool) -> None:
        # forwarded under the lock so pause/resume keep the order of the flag changes
        with self._lock:
            changed = self._active[job] != active
            self._active[job] = active
            if changed:
                logger.debug("%s %s", job.value, "activated" if active else "deactivated")
            if self.on_toggle is not None and (changed or active):
                self.on_toggle(job, active)

    # ----------------------------------------------------------------------- #
    # Ticks

    def admission_tick(self) -> AdmissionSummary:
        summary = AdmissionSummary()
        with self._lock:
            self._admission_wakeup = False

        in_flight = self.store.find_sent()
        if in_flight:
            with self._lock:
                self.awaiting.update(record.sms_id for record in in_flight)
            summary.recovered = len(in_flight)
            self.activate(EngineJob.RECONCILIATION)

        waiting = self.store.find_waiting(self.config.admission_limit)
        with self._lock:
            self.pending.merge(waiting)
            summary.admitted = len(waiting)
            summary.pending = len(self.pending)

        if summary.pending:
            self.activate(EngineJob.DISPATCH)
            return summary

        with self._lock:
            # work enqueued after find_waiting ran keeps admission awake
            if self._admission_wakeup:
                logger.debug("sms_admission woken during tick, staying active")
            else:
                self.deactivate(EngineJob.ADMISSION)
        return summary

    def dispatch_tick(self) -> DispatchSummary:
        summary = DispatchSummary()
        with self._lock:
            chunk = self.pending.pop_front(self.config.messages_count_tick)
        if not chunk:
            self.deactivate(EngineJob.DISPATCH)
            return summary

        recipients: List[SmsRecipient] = []
        for record in chunk:
            if not record.text:
                logger.warning("sms_id=%s has no message text, rejecting", record.sms_id)
                self.store.mark_rejected(record.sms_id, MISSING_TEXT_REASON)
                summary.rejected += 1
                continue
            recipients.append(SmsRecipient(sms_id=record.sms_id, phone=record.phone, text=record.text))
        if not recipients:
            return summary

        sms_ids = [recipient.sms_id for recipient in recipients]
        self.store.mark_sent(sms_ids)
        summary.sent = len(sms_ids)

        try:
            result = self.gateway.send_sms(recipients)
            summary.status_code = result.status_code
            if not result.ok:
                logger.warning(
                    "SEND_SMS answered HTTP %s for %s recipients: %s",
                    result.status_code,
                    len(recipients),
                    result.body[:200],
                )
            else:
                logger.info(
                    "SEND_SMS accepted %s recipients (first=%s)",
                    len(recipients),
                    mask_phone(recipients[0].phone),
                )
        except GatewayAPIError as exc:
            summary.error = str(exc)
            logger.exception("SEND_SMS failed for sms_ids=%s", sms_ids)

        with self._lock:
            self.awaiting.update(sms_ids)
        self.activate(EngineJob.RECONCILIATION)
        return summary

    def reconciliation_tick(self) -> ReconciliationSummary:
        summary = ReconciliationSummary()
        with self._lock:
            snapshot = set(self.awaiting)
            self.awaiting.clear()
        if not snapshot:
            self.deactivate(EngineJob.RECONCILIATION)
            return summary

        summary.polled = len(snapshot)
        unresolved = set(snapshot)
        try:
            self._apply_statuses(snapshot, unresolved, summary)
            if unresolved:
                self.store.increment_attempts(unresolved)
                expired = self.store.expire_stale(
                    unresolved,
                    max_attempts=self.config.max_attempts,
                    max_age=self.config.max_sent_age,
                )
                if expired:
                    logger.warning("dead-lettered %s sms without delivery status: %s", len(expired), expired)
                    unresolved.difference_update(expired)
                    summary.expired = len(expired)
        except GatewayAPIError as exc:
            summary.error = str(exc)
            logger.exception("GETSTATUS failed for %s ids, re-queued", len(snapshot))
        finally:
            # unresolved ids are polled again, also when the tick raised
            with self._lock:
                self.awaiting.update(unresolved)
            summary.pending = len(unresolved)
        return summary

    def _apply_statuses(self, snapshot: Set[int], unresolved: Set[int], summary: ReconciliationSummary) -> None:
        for item in self.gateway.get_status(sorted(snapshot)):
            try:
                sms_id = int(item.msg_id)
            except ValueError:
                logger.warning("GETSTATUS returned unknown MSGID=%r", item.msg_id)
                continue

            outcome = classify_status(item.code, item.reason)
            if outcome is StatusOutcome.DELIVERED:
                self.store.delete(sms_id)
                unresolved.discard(sms_id)
                summary.delivered += 1
            elif outcome is StatusOutcome.REJECTED:
                self.store.mark_rejected(sms_id, item.reason)
                unresolved.discard(sms_id)
                summary.rejected += 1
            elif sms_id not in snapshot:
                logger.debug("GETSTATUS returned sms_id=%s that was not polled", sms_id)

    # ----------------------------------------------------------------------- #
    # Administration

    def list(self, status: str | None = None, *, limit: int = 50, offset: int = 0) -> List[DispatchRecord]:
        return self.store.list(status, limit=limit, offset=offset)

    def delete(self, sms_id: int) -> bool:
        with self._lock:
            self.pending.discard(sms_id)
            self.awaiting.discard(sms_id)
        return self.store.delete(sms_id)

    def delete_all(self, status: str | None = None) -> int:
        with self._lock:
            if status is None:
                self.pending.clear()
                self.awaiting.clear()
        removed = self.store.delete_all(status)
        if status is not None:
            self._forget_missing()
        return removed

    def force_requeue(self, sms_id: int) -> Optional[DispatchRecord]:
        record = self.store.force_requeue(sms_id)
        if record is None:
            return None
        with self._lock:
            self.awaiting.discard(sms_id)
            self.pending.discard(sms_id)
        self.activate(EngineJob.ADMISSION)
        return record

    def enqueue(
        self,
        message_id: int,
        phones: Iterable[str],
        *,
        communication_id: int | None = None,
        forced: bool = False,
    ) -> EnqueueResult:
        result = self.store.enqueue(
            message_id,
            phones,
            communication_id=communication_id,
            forced=forced,
            country_code=self.config.country_code,
            blacklist=self.config.blacklist,
        )
        if result.blocked_phones:
            logger.info(
                "sms blacklist blocked %s phones for message_id=%s",
                len(result.blocked_phones),
                message_id,
            )
        if result.sms_ids:
            self.activate(EngineJob.ADMISSION)
        return result

    def state(self) -> dict:
        with self._lock:
            return {
                "active": {job.value: active for job, active in self._active.items()},
                "pending": len(self.pending),
                "awaiting": len(self.awaiting),
            }

    def _forget_missing(self) -> None:
        with self._lock:
            tracked = set(self.pending.ids()) | set(self.awaiting)
        gone = {sms_id for sms_id in tracked if self.store.get(sms_id) is None}
        if not gone:
            return
        with self._lock:
            for sms_id in gone:
                self.pending.discard(sms_id)
            self.awaiting.difference_update(gone)
