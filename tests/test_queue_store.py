from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import BigInteger

from smsgate.models.domain import SmsQueue, SmsStatus

from tests.utils_fakes import BASE_TIME


def test_enqueue_normalizes_and_filters_phones(store, make_message):
    message_id = make_message("Test")

    result = store.enqueue(
        message_id,
        ["067 111 22 33", "+7 916 123 45 67", "---"],
        communication_id=2,
        blacklist=["7"],
    )

    assert len(result.sms_ids) == 1
    assert result.blocked_phones == ["79161234567"]
    assert result.invalid_phones == ["---"]
    record = store.get(result.sms_ids[0])
    assert record.phone == "380671112233"
    assert record.status == SmsStatus.WAITING.value
    assert record.communication_id == 2
    assert record.text == "Test"


def test_enqueue_unknown_message_raises(store):
    with pytest.raises(ValueError):
        store.enqueue(424242, ["0671112233"])


def test_find_waiting_orders_forced_then_newest(store, add_sms):
    old_normal = add_sms(start=BASE_TIME)
    new_normal = add_sms(start=BASE_TIME + timedelta(minutes=5))
    old_forced = add_sms(forced=True, start=BASE_TIME - timedelta(days=1))
    add_sms(status=SmsStatus.SENT.value)

    records = store.find_waiting(10)

    assert [r.sms_id for r in records] == old_forced + new_normal + old_normal


def test_find_waiting_limit(store, add_sms):
    add_sms(7)

    assert len(store.find_waiting(4)) == 4


def test_mark_sent_only_moves_waiting_records(store, add_sms):
    (waiting_id,) = add_sms()
    (rejected_id,) = add_sms(status=SmsStatus.REJECTED.value)

    assert store.mark_sent([waiting_id, rejected_id]) == 1

    sent = store.get(waiting_id)
    assert sent.status == SmsStatus.SENT.value
    assert sent.first_sent_at is not None
    assert store.get(rejected_id).status == SmsStatus.REJECTED.value


def test_rejected_record_is_terminal(store, add_sms):
    (sms_id,) = add_sms(status=SmsStatus.SENT.value)

    assert store.mark_rejected(sms_id, "External error: Expired") is True
    assert store.mark_rejected(sms_id, "again") is False
    assert store.mark_sent([sms_id]) == 0
    assert store.get(sms_id).reason == "External error: Expired"


def test_delete_is_idempotent(store, add_sms):
    (sms_id,) = add_sms()

    assert store.delete(sms_id) is True
    assert store.delete(sms_id) is False
    assert store.mark_rejected(sms_id) is False


def test_expire_stale_by_age(store, add_sms):
    now = datetime.now(timezone.utc)
    (old_id,) = add_sms(status=SmsStatus.SENT.value, first_sent_at=now - timedelta(days=2))
    (fresh_id,) = add_sms(status=SmsStatus.SENT.value, first_sent_at=now)

    expired = store.expire_stale(
        [old_id, fresh_id],
        max_attempts=0,
        max_age=timedelta(hours=1),
    )

    assert expired == [old_id]
    assert store.get(old_id).status == SmsStatus.EXPIRED.value
    assert store.get(fresh_id).status == SmsStatus.SENT.value


def test_list_count_and_delete_all(store, add_sms):
    add_sms(3)
    add_sms(2, status=SmsStatus.REJECTED.value)

    assert store.count() == 5
    assert store.count(SmsStatus.REJECTED.value) == 2
    assert len(store.list(SmsStatus.WAITING.value, limit=2)) == 2

    assert store.delete_all(SmsStatus.REJECTED.value) == 2
    assert store.count() == 3


def test_message_id_column_matches_message_primary_key():
    columns = SmsQueue.__table__.c

    assert isinstance(columns.message_id.type, BigInteger)
    assert type(columns.message_id.type) is type(columns.sms_id.type)