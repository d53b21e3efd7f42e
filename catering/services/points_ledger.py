from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from catering.errors import ExternalServiceTimeout
from catering.extensions import db
from catering.models import PointLedgerEntry, User

logger = logging.getLogger(__name__)

ENTRY_USED = "used"
USED_REASON = "주문 결제 시 포인트 사용"


@dataclass
class LedgerResult:
    applied: bool
    duplicate: bool = False
    entry_id: int | None = None


def debit(uid: str, order_id: str, payment_id: str, amount: int) -> LedgerResult:
    """Deduct ``amount`` points from ``uid`` for one order payment.

    The balance update and the ledger append are separate commits. Both are
    logged with order_id/payment_id so a half-applied debit can be repaired.
    """
    amount = int(amount or 0)
    if amount <= 0:
        raise ValueError("invalid_point_amount")

    existing = PointLedgerEntry.query.filter_by(
        order_id=order_id, payment_id=payment_id, entry_type=ENTRY_USED
    ).first()
    if existing is not None:
        logger.info("points_debit_duplicate order_id=%s payment_id=%s", order_id, payment_id)
        return LedgerResult(applied=False, duplicate=True, entry_id=int(existing.id))

    try:
        res = db.session.execute(
            update(User)
            .where(User.id == uid)
            .values(point=User.point - amount)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        raise ExternalServiceTimeout("points_balance", str(exc)[:200]) from exc
    if int(res.rowcount or 0) == 0:
        raise LookupError(f"user_not_found {uid}")
    logger.info("points_balance_debited uid=%s order_id=%s payment_id=%s amount=%s", uid, order_id, payment_id, amount)

    entry = PointLedgerEntry(
        uid=uid,
        amount=-amount,
        entry_type=ENTRY_USED,
        reason=USED_REASON,
        order_id=order_id,
        payment_id=payment_id,
    )
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.error(
            "points_ledger_duplicate_after_debit uid=%s order_id=%s payment_id=%s amount=%s repair_required=true",
            uid,
            order_id,
            payment_id,
            amount,
        )
        return LedgerResult(applied=True, duplicate=True)
    except OperationalError as exc:
        db.session.rollback()
        logger.error(
            "points_ledger_append_failed uid=%s order_id=%s payment_id=%s amount=%s repair_required=true",
            uid,
            order_id,
            payment_id,
            amount,
        )
        raise ExternalServiceTimeout("points_ledger", str(exc)[:200]) from exc
    logger.info("points_ledger_appended uid=%s order_id=%s payment_id=%s entry_id=%s", uid, order_id, payment_id, entry.id)
    return LedgerResult(applied=True, entry_id=int(entry.id))


def balance(uid: str) -> int:
    user = db.session.get(User, uid)
    return int(user.point or 0) if user else 0
