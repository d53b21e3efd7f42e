from __future__ import annotations

import logging
from datetime import datetime

from catering.extensions import db
from catering.models import JobRun

logger = logging.getLogger(__name__)


def record_job_run(
    *,
    job_name: str,
    ok: bool,
    started_at: datetime,
    order_id: str | None = None,
    outcome: str = "",
    error: str | None = None,
) -> JobRun | None:
    duration_ms = max(0, int((datetime.utcnow() - started_at).total_seconds() * 1000))
    try:
        row = JobRun(
            job_name=(job_name or "unknown").strip()[:64],
            order_id=(order_id or None),
            outcome=(outcome or "")[:32] or None,
            ran_at=datetime.utcnow(),
            ok=bool(ok),
            duration_ms=duration_ms,
            error=(error or "")[:1000] or None,
        )
        db.session.add(row)
        db.session.commit()
        return row
    except Exception:
        db.session.rollback()
        logger.exception("job_run_record_failed job=%s order_id=%s", job_name, order_id)
        return None
