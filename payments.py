from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from billing import Subscription, env_int, next_charge_date

logger = logging.getLogger(__name__)

PAYMENT_HISTORY_LIMIT = 50
PAYMENT_STATUSES = ("success", "failed", "pending")
DEFAULT_PAYMENT_METHOD = "Manual"


def payment_history_limit() -> int:
    return env_int("PAYMENT_HISTORY_LIMIT", PAYMENT_HISTORY_LIMIT)


@dataclass(frozen=True)
class Payment:
    amount: float
    paid_on: date
    payment_method: str = DEFAULT_PAYMENT_METHOD
    status: str = "success"
    subscription_id: object = None


def record_payment(
    sub: Subscription,
    paid_on: date | None = None,
    *,
    amount: float | None = None,
    payment_method: str | None = None,
    status: str = "success",
) -> tuple[Subscription, Payment]:
    """Record a charge against ``sub`` and return the updated subscription.

    Only successful payments touch the subscription: the counters move,
    the status returns to ``active`` and, for auto-renewing plans, the
    next billing date advances one cycle from the current one (or from
    ``paid_on`` when none is set). The input subscription is not modified.
    """
    paid_on = paid_on or date.today()
    charged = sub.price if amount is None else float(amount)
    if charged < 0:
        raise ValueError("Payment amount cannot be negative")
    if status not in PAYMENT_STATUSES:
        raise ValueError(f"Payment status must be one of {', '.join(PAYMENT_STATUSES)}")

    payment = Payment(
        amount=charged,
        paid_on=paid_on,
        payment_method=payment_method or DEFAULT_PAYMENT_METHOD,
        status=status,
        subscription_id=sub.id,
    )
    if status != "success":
        logger.info("Recorded %s payment for %r without updating it", status, sub.name)
        return sub, payment

    changes: dict[str, object] = {
        "payment_count": sub.payment_count + 1,
        "total_spent": sub.total_spent + charged,
        "last_payment_date": paid_on,
        "status": "active",
    }
    if sub.auto_renew:
        changes["next_billing_date"] = next_charge_date(sub.next_billing_date or paid_on, sub.billing_cycle)
    return sub.evolve(**changes), payment


def trim_history(payments: list[Payment], limit: int | None = None) -> list[Payment]:
    limit = payment_history_limit() if limit is None else limit
    if limit < 0:
        raise ValueError("limit must be non-negative")
    if limit == 0:
        return []
    ordered = sorted(payments, key=lambda payment: payment.paid_on)
    return ordered[-limit:]


def summarize_payments(payments: list[Payment]) -> dict[str, object]:
    history = sorted(payments, key=lambda payment: payment.paid_on, reverse=True)
    successful = [payment for payment in history if payment.status == "success"]
    return {
        "count": len(successful),
        "totalPaid": sum(payment.amount for payment in successful),
        "lastPaidOn": successful[0].paid_on if successful else None,
        "history": history,
    }
