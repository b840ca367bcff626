from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from billing import (
    DATE_FORMAT,
    DEFAULT_REMINDER_DAYS,
    Subscription,
    days_until,
    env_int,
    roll_forward,
    serialize_subscription,
)

logger = logging.getLogger(__name__)

DASHBOARD_TOP_LIMIT = 5
DASHBOARD_UPCOMING_LIMIT = 5


def dashboard_top_limit() -> int:
    return env_int("DASHBOARD_TOP_LIMIT", DASHBOARD_TOP_LIMIT)


def dashboard_upcoming_limit() -> int:
    return env_int("DASHBOARD_UPCOMING_LIMIT", DASHBOARD_UPCOMING_LIMIT)


def reminder_window_override() -> int | None:
    if not os.environ.get("REMINDER_WINDOW_DAYS", "").strip():
        return None
    return env_int("REMINDER_WINDOW_DAYS", DEFAULT_REMINDER_DAYS)


@dataclass(frozen=True)
class DashboardSummary:
    total_monthly: float = 0.0
    total_yearly: float = 0.0
    total_subscriptions: int = 0
    category_breakdown: dict[str, float] = field(default_factory=dict)
    top_subscriptions: list[tuple[Subscription, float]] = field(default_factory=list)
    upcoming_payments: list[tuple[Subscription, date]] = field(default_factory=list)


def active_only(subscriptions: Iterable[Subscription]) -> list[Subscription]:
    return [sub for sub in subscriptions if sub.status == "active"]


def category_breakdown(subscriptions: Iterable[Subscription]) -> dict[str, float]:
    breakdown: dict[str, float] = {}
    for sub in subscriptions:
        breakdown[sub.category] = breakdown.get(sub.category, 0.0) + sub.monthly_equivalent
    return breakdown


def spending_by_category(subscriptions: Iterable[Subscription]) -> list[dict[str, object]]:
    breakdown = category_breakdown(subscriptions)
    return [
        {"category": category, "monthlyCost": amount}
        for category, amount in sorted(breakdown.items(), key=lambda pair: pair[1], reverse=True)
    ]


def summarize(
    subscriptions: Iterable[Subscription],
    today: date | None = None,
    *,
    top_limit: int | None = None,
    upcoming_limit: int | None = None,
) -> DashboardSummary:
    """Reduce a set of subscriptions to the figures shown on the dashboard.

    Every subscription in the input is counted; callers that only want
    live plans pass them through :func:`active_only` first. Ties in the
    top list keep their input order. A subscription is upcoming when its
    due date falls strictly after ``today``.
    """
    today = today or date.today()
    top_limit = dashboard_top_limit() if top_limit is None else top_limit
    upcoming_limit = dashboard_upcoming_limit() if upcoming_limit is None else upcoming_limit
    if top_limit < 0 or upcoming_limit < 0:
        raise ValueError("limits must be non-negative")
    subs = list(subscriptions)

    decorated = [(sub, sub.monthly_equivalent) for sub in subs]
    total_monthly = sum(monthly for _, monthly in decorated)

    ranked = sorted(decorated, key=lambda pair: pair[1], reverse=True)

    upcoming: list[tuple[Subscription, date]] = []
    for sub in subs:
        due = sub.due_date
        if due is not None and due > today:
            upcoming.append((sub, due))
    upcoming.sort(key=lambda pair: pair[1])

    logger.debug("Summarized %d subscriptions, %d upcoming", len(subs), len(upcoming))
    return DashboardSummary(
        total_monthly=total_monthly,
        total_yearly=total_monthly * 12,
        total_subscriptions=len(subs),
        category_breakdown=category_breakdown(subs),
        top_subscriptions=ranked[:top_limit],
        upcoming_payments=upcoming[:upcoming_limit],
    )


def build_reminders(
    subscriptions: Iterable[Subscription],
    today: date | None = None,
    window_days: int | None = None,
) -> dict[str, object]:
    today = today or date.today()
    window_days = reminder_window_override() if window_days is None else window_days

    reminders = []
    for sub in subscriptions:
        due = sub.due_date
        if due is None:
            continue
        due = roll_forward(due, sub.billing_cycle, today=today)
        days_left = days_until(due, today=today)
        window = sub.reminder_days if window_days is None else window_days
        reminders.append(
            {
                "id": sub.id,
                "name": sub.name,
                "nextPaymentDate": due.strftime(DATE_FORMAT),
                "daysUntilPayment": days_left,
                "amount": round(sub.price, 2),
                "billingCycle": sub.billing_cycle,
                "isDueSoon": days_left <= window,
            }
        )

    reminders.sort(key=lambda entry: (entry["daysUntilPayment"], entry["name"]))

    return {
        "reminders": reminders,
        "nextReminder": reminders[0] if reminders else None,
    }


def serialize_summary(summary: DashboardSummary, today: date | None = None) -> dict[str, object]:
    today = today or date.today()
    return {
        "totalMonthly": round(summary.total_monthly, 2),
        "totalYearly": round(summary.total_yearly, 2),
        "totalSubscriptions": summary.total_subscriptions,
        "categoryBreakdown": {
            category: round(amount, 2) for category, amount in summary.category_breakdown.items()
        },
        "topSubscriptions": [
            serialize_subscription(sub, today=today) for sub, _ in summary.top_subscriptions
        ],
        "upcomingPayments": [
            {**serialize_subscription(sub, today=today), "dueDate": due.strftime(DATE_FORMAT)}
            for sub, due in summary.upcoming_payments
        ],
    }
