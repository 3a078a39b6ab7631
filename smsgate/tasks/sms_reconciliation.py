from __future__ import annotations

import logging

from smsgate.services.dispatch_engine import DispatchEngine

logger = logging.getLogger(__name__)


def run_sms_reconciliation_job(engine: DispatchEngine) -> None:
    try:
        summary = engine.reconciliation_tick()
        if summary.polled:
            logger.info(
                "SMS status sync done (polled=%s, delivered=%s, rejected=%s, expired=%s, pending=%s)",
                summary.polled,
                summary.delivered,
                summary.rejected,
                summary.expired,
                summary.pending,
            )
    except Exception:  # noqa: BLE001
        logger.exception("SMS status sync failed")
