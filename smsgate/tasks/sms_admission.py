from __future__ import annotations

import logging

from smsgate.services.dispatch_engine import DispatchEngine

logger = logging.getLogger(__name__)


def run_sms_admission_job(engine: DispatchEngine) -> None:
    try:
        summary = engine.admission_tick()
        logger.debug(
            "SMS admission done (recovered=%s, admitted=%s, pending=%s)",
            summary.recovered,
            summary.admitted,
            summary.pending,
        )
    except Exception:  # noqa: BLE001
        logger.exception("SMS admission failed")
