from __future__ import annotations

import logging

from smsgate.services.dispatch_engine import DispatchEngine

logger = logging.getLogger(__name__)


def run_sms_dispatch_job(engine: DispatchEngine) -> None:
    try:
        summary = engine.dispatch_tick()
        if summary.sent or summary.rejected:
            logger.info(
                "SMS dispatch done (sent=%s, rejected=%s, http_status=%s)",
                summary.sent,
                summary.rejected,
                summary.status_code,
            )
    except Exception:  # noqa: BLE001
        logger.exception("SMS dispatch failed")
