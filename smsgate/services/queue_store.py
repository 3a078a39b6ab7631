from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from smsgate.core.phone import is_blacklisted, normalize_phone
from smsgate.models.domain import IncomingMessage, SmsQueue, SmsStatus


@dataclass(frozen=True)
class DispatchRecord:
    sms_id: int
    message_id: int
    phone: str
    communication_id: Optional[int]
    status: str
    forced: bool
    created_at: datetime
    text: Optional[str] = None
    attempts: int = 0
    first_sent_at: Optional[datetime] = None
    reason: Optional[str] = None


@dataclass
class EnqueueResult:
    sms_ids: List[int]
    blocked_phones: List[str]
    invalid_phones: List[str]


class QueueStore:
    """
    Durable sms_queue access.

    Every method runs in its own session and commits before returning, so each
    call is atomic on its own; nothing spans calls.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def find_waiting(self, limit: int) -> List[DispatchRecord]:
        stmt = (
            select(SmsQueue)
            .where(SmsQueue.status == SmsStatus.WAITING.value)
            .order_by(SmsQueue.forced.desc(), SmsQueue.created_at.desc(), SmsQueue.sms_id.desc())
            .limit(limit)
        )
        return self._fetch(stmt)

    def find_sent(self) -> List[DispatchRecord]:
        stmt = select(SmsQueue).where(SmsQueue.status == SmsStatus.SENT.value)
        return self._fetch(stmt)

    def get(self, sms_id: int) -> Optional[DispatchRecord]:
        session = self._session_factory()
        try:
            row = session.get(SmsQueue, sms_id)
            return _to_record(row) if row else None
        finally:
            session.close()

    def mark_sent(self, sms_ids: Iterable[int]) -> int:
        ids = list(sms_ids)
        if not ids:
            return 0
        now = datetime.now(timezone.utc)
        session = self._session_factory()
        try:
            result = session.execute(
                update(SmsQueue)
                .where(
                    SmsQueue.sms_id.in_(ids),
                    SmsQueue.status == SmsStatus.WAITING.value,
                )
                .values(
                    status=SmsStatus.SENT.value,
                    first_sent_at=func.coalesce(SmsQueue.first_sent_at, now),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount
        finally:
            session.close()

    def mark_rejected(self, sms_id: int, reason: str | None = None) -> bool:
        session = self._session_factory()
        try:
            result = session.execute(
                update(SmsQueue)
                .where(
                    SmsQueue.sms_id == sms_id,
                    SmsQueue.status.in_([SmsStatus.WAITING.value, SmsStatus.SENT.value]),
                )
                .values(
                    status=SmsStatus.REJECTED.value,
                    reason=_truncate(reason),
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount > 0
        finally:
            session.close()

    def delete(self, sms_id: int) -> bool:
        """Remove a record. Deleting an id that no longer exists is a no-op."""
        session = self._session_factory()
        try:
            result = session.execute(
                delete(SmsQueue)
                .where(SmsQueue.sms_id == sms_id)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount > 0
        finally:
            session.close()

    def delete_all(self, status: str | None = None) -> int:
        stmt = delete(SmsQueue).execution_options(synchronize_session=False)
        if status:
            stmt = stmt.where(SmsQueue.status == status)
        session = self._session_factory()
        try:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount
        finally:
            session.close()

    def increment_attempts(self, sms_ids: Iterable[int]) -> int:
        ids = list(sms_ids)
        if not ids:
            return 0
        session = self._session_factory()
        try:
            result = session.execute(
                update(SmsQueue)
                .where(
                    SmsQueue.sms_id.in_(ids),
                    SmsQueue.status == SmsStatus.SENT.value,
                )
                .values(attempts=SmsQueue.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount
        finally:
            session.close()

    def expire_stale(
        self,
        sms_ids: Iterable[int],
        *,
        max_attempts: int,
        max_age: timedelta | None,
    ) -> List[int]:
        """Dead-letter sent records that stayed unresolved for too long."""
        ids = list(sms_ids)
        conditions = []
        if max_attempts > 0:
            conditions.append(SmsQueue.attempts >= max_attempts)
        if max_age is not None:
            cutoff = datetime.now(timezone.utc) - max_age
            conditions.append(SmsQueue.first_sent_at < cutoff)
        if not ids or not conditions:
            return []

        session = self._session_factory()
        try:
            expired = session.scalars(
                select(SmsQueue.sms_id).where(
                    SmsQueue.sms_id.in_(ids),
                    SmsQueue.status == SmsStatus.SENT.value,
                    or_(*conditions),
                )
            ).all()
            if expired:
                session.execute(
                    update(SmsQueue)
                    .where(SmsQueue.sms_id.in_(expired))
                    .values(
                        status=SmsStatus.EXPIRED.value,
                        reason="no delivery status from gateway",
                        updated_at=datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                )
            session.commit()
            return list(expired)
        finally:
            session.close()

    def force_requeue(self, sms_id: int) -> Optional[DispatchRecord]:
        """Start a new dispatch attempt for a record with top priority."""
        session = self._session_factory()
        try:
            row = session.get(SmsQueue, sms_id)
            if not row:
                return None
            row.status = SmsStatus.WAITING.value
            row.forced = True
            row.attempts = 0
            row.first_sent_at = None
            row.reason = None
            session.commit()
            session.refresh(row)
            return _to_record(row)
        finally:
            session.close()

    def list(
        self,
        status: str | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DispatchRecord]:
        stmt = select(SmsQueue).order_by(SmsQueue.sms_id.desc()).limit(limit).offset(offset)
        if status:
            stmt = stmt.where(SmsQueue.status == status)
        return self._fetch(stmt)

    def count(self, status: str | None = None) -> int:
        stmt = select(func.count()).select_from(SmsQueue)
        if status:
            stmt = stmt.where(SmsQueue.status == status)
        session = self._session_factory()
        try:
            return session.scalar(stmt) or 0
        finally:
            session.close()

    def enqueue(
        self,
        message_id: int,
        phones: Iterable[str],
        *,
        communication_id: int | None = None,
        forced: bool = False,
        country_code: str = "380",
        blacklist: Iterable[str] = (),
    ) -> EnqueueResult:
        blacklist = list(blacklist)
        result = EnqueueResult(sms_ids=[], blocked_phones=[], invalid_phones=[])
        session = self._session_factory()
        try:
            if session.get(IncomingMessage, message_id) is None:
                raise ValueError(f"message {message_id} not found")

            rows: List[SmsQueue] = []
            for raw_phone in phones:
                phone = normalize_phone(raw_phone, country_code)
                if not phone:
                    result.invalid_phones.append(raw_phone)
                    continue
                if is_blacklisted(phone, blacklist):
                    result.blocked_phones.append(phone)
                    continue
                row = SmsQueue(
                    message_id=message_id,
                    communication_id=communication_id,
                    phone=phone,
                    forced=forced,
                    status=SmsStatus.WAITING.value,
                    attempts=0,
                )
                session.add(row)
                rows.append(row)
            session.commit()
            result.sms_ids = [row.sms_id for row in rows]
            return result
        finally:
            session.close()

    def _fetch(self, stmt) -> List[DispatchRecord]:
        session = self._session_factory()
        try:
            return [_to_record(row) for row in session.scalars(stmt).unique().all()]
        finally:
            session.close()


def _to_record(row: SmsQueue) -> DispatchRecord:
    return DispatchRecord(
        sms_id=row.sms_id,
        message_id=row.message_id,
        phone=row.phone,
        communication_id=row.communication_id,
        status=row.status,
        forced=bool(row.forced),
        created_at=row.created_at,
        text=row.message.sms_text if row.message else None,
        attempts=row.attempts or 0,
        first_sent_at=row.first_sent_at,
        reason=row.reason,
    )


def _truncate(value: str | None, length: int = 255) -> str | None:
    if value is None:
        return None
    return value[:length]
