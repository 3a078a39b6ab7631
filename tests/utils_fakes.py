from __future__ import annotations

from datetime import datetime, timezone

from smsgate.services.gateway_client import DeliveryStatus, SendResult

BASE_TIME = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


class FakeGateway:
    """In-memory stand-in for GatewayClient."""

    def __init__(self):
        self.sent_batches = []
        self.status_calls = []
        self.statuses = {}
        self.send_status_code = 200
        self.send_error = None
        self.status_error = None

    def send_sms(self, recipients):
        self.sent_batches.append(list(recipients))
        if self.send_error is not None:
            raise self.send_error
        return SendResult(status_code=self.send_status_code, body="<RESPONSE/>")

    def get_status(self, sms_ids):
        ids = list(sms_ids)
        self.status_calls.append(ids)
        if self.status_error is not None:
            raise self.status_error
        for sms_id in ids:
            if sms_id in self.statuses:
                code, reason = self.statuses[sms_id]
                yield DeliveryStatus(msg_id=str(sms_id), code=code, reason=reason)
