from __future__ import annotations

import calendar
import logging
import math
import os
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
DEFAULT_CYCLE = "monthly"
DEFAULT_CATEGORY = "Other"
DEFAULT_REMINDER_DAYS = 3
MAX_REMINDER_DAYS = 30
TRUE_VALUES = {"1", "true", "yes", "on"}

CYCLE_TO_MONTHLY_FACTOR = {
    "daily": 30.0,
    "weekly": 52 / 12,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "yearly": 1 / 12,
}
# Calendar step per cycle: (days, months)
CYCLE_STEP = {
    "daily": (1, 0),
    "weekly": (7, 0),
    "monthly": (0, 1),
    "quarterly": (0, 3),
    "yearly": (0, 12),
}
VALID_STATUSES = ("active", "paused", "cancelled", "expired")


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default
    if value < 0:
        logger.warning("Ignoring negative %s=%r", name, raw)
        return default
    return value


def normalize_cycle(value: object) -> str:
    cycle = str(value or "").strip().lower()
    if cycle in CYCLE_TO_MONTHLY_FACTOR:
        return cycle
    if not cycle:
        return DEFAULT_CYCLE
    logger.warning("Unrecognized billing cycle %r, treating as %s", value, DEFAULT_CYCLE)
    return DEFAULT_CYCLE


def add_months(source_date: date, months: int) -> date:
    month_index = source_date.month - 1 + months
    target_year = source_date.year + month_index // 12
    target_month = month_index % 12 + 1
    max_day = calendar.monthrange(target_year, target_month)[1]
    return source_date.replace(year=target_year, month=target_month, day=min(source_date.day, max_day))


def parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()


def parse_flag(value: object, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def coerce_date(value: object) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return parse_date(text)
    except ValueError:
        # ISO timestamps such as "2025-01-01T00:00:00.000Z"
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


def monthly_equivalent(price: float, billing_cycle: str) -> float:
    return float(price) * CYCLE_TO_MONTHLY_FACTOR[normalize_cycle(billing_cycle)]


def yearly_equivalent(price: float, billing_cycle: str) -> float:
    return monthly_equivalent(price, billing_cycle) * 12


def next_charge_date(anchor_date: date, billing_cycle: str) -> date:
    """Project the charge one billing cycle after ``anchor_date``.

    Month-based cycles clamp to the last day of a shorter month, so
    2024-01-31 becomes 2024-02-29 and then 2024-03-29.
    """
    days, months = CYCLE_STEP[normalize_cycle(billing_cycle)]
    if months:
        return add_months(anchor_date, months)
    return anchor_date + timedelta(days=days)


def roll_forward(initial_date: date, billing_cycle: str, today: date | None = None) -> date:
    today = today or date.today()
    cycle = normalize_cycle(billing_cycle)
    current_due = initial_date

    while current_due < today:
        current_due = next_charge_date(current_due, cycle)

    return current_due


def charge_dates(anchor_date: date, billing_cycle: str, count: int) -> list[date]:
    if count < 0:
        raise ValueError("count must be non-negative")
    cycle = normalize_cycle(billing_cycle)
    dates: list[date] = []
    current = anchor_date
    for _ in range(count):
        current = next_charge_date(current, cycle)
        dates.append(current)
    return dates


def days_until(due: date, today: date | None = None) -> int:
    today = today or date.today()
    return (due - today).days


@dataclass(frozen=True)
class Subscription:
    name: str
    price: float
    billing_cycle: str = DEFAULT_CYCLE
    category: str = DEFAULT_CATEGORY
    status: str = "active"
    next_billing_date: date | None = None
    start_date: date | None = None
    id: object = None
    auto_renew: bool = True
    payment_count: int = 0
    total_spent: float = 0.0
    last_payment_date: date | None = None
    reminder_days: int = DEFAULT_REMINDER_DAYS

    def __post_init__(self) -> None:
        # Calendar dates only; time of day is dropped.
        for name in ("next_billing_date", "start_date", "last_payment_date"):
            value = getattr(self, name)
            if isinstance(value, datetime):
                object.__setattr__(self, name, value.date())
        object.__setattr__(self, "billing_cycle", normalize_cycle(self.billing_cycle))

    @property
    def anchor_date(self) -> date | None:
        return self.next_billing_date or self.start_date

    @property
    def due_date(self) -> date | None:
        if self.next_billing_date is not None:
            return self.next_billing_date
        if self.start_date is not None:
            return next_charge_date(self.start_date, self.billing_cycle)
        return None

    @property
    def monthly_equivalent(self) -> float:
        return monthly_equivalent(self.price, self.billing_cycle)

    @property
    def yearly_equivalent(self) -> float:
        return yearly_equivalent(self.price, self.billing_cycle)

    def evolve(self, **changes: object) -> Subscription:
        return replace(self, **changes)


def normalize_category_name(value: str) -> str:
    cleaned = " ".join(value.split()).strip()
    return cleaned if cleaned else DEFAULT_CATEGORY


def _first_present(body: dict[str, object], *keys: str) -> object:
    for key in keys:
        value = body.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_subscription_record(body: dict[str, object]) -> tuple[Subscription | None, str | None]:
    """Resolve legacy field aliases and validate a raw subscription record.

    ``cost``/``amount`` stand in for ``price``, ``frequency`` for
    ``billingCycle`` and ``nextPaymentDate`` for ``nextBillingDate``.
    Returns ``(subscription, None)`` or ``(None, error_message)``.
    """
    name = str(body.get("name") or "").strip()
    category = normalize_category_name(str(body.get("category") or DEFAULT_CATEGORY))
    raw_cycle = _first_present(body, "billingCycle", "billing_cycle", "frequency")
    status = str(body.get("status") or "active").strip().lower()
    raw_price = _first_present(body, "price", "cost", "amount")

    if not name:
        return None, "Subscription name is required"

    try:
        price = float(raw_price if raw_price is not None else 0)
    except (TypeError, ValueError):
        return None, "Price must be a number"
    if not math.isfinite(price):
        return None, "Price must be a number"
    if price < 0:
        return None, "Price cannot be negative"
    if status not in VALID_STATUSES:
        return None, f"Status must be one of {', '.join(VALID_STATUSES)}"

    try:
        next_billing = coerce_date(
            _first_present(body, "nextBillingDate", "next_billing_date", "nextPaymentDate")
        )
        start = coerce_date(_first_present(body, "startDate", "start_date"))
        last_payment = coerce_date(body.get("lastPaymentDate"))
    except ValueError:
        return None, "Dates must be YYYY-MM-DD"

    try:
        payment_count = int(body.get("paymentCount") or 0)
        total_spent = float(body.get("totalSpent") or 0)
    except (TypeError, ValueError):
        return None, "Payment totals must be numbers"

    raw_reminder = _first_present(body, "reminderDays", "reminder_days")
    try:
        reminder_days = DEFAULT_REMINDER_DAYS if raw_reminder is None else int(raw_reminder)
    except (TypeError, ValueError):
        return None, "Reminder days must be a whole number"
    if not 0 <= reminder_days <= MAX_REMINDER_DAYS:
        return None, f"Reminder days must be between 0 and {MAX_REMINDER_DAYS}"

    return (
        Subscription(
            name=name,
            price=price,
            billing_cycle=normalize_cycle(raw_cycle),
            category=category,
            status=status,
            next_billing_date=next_billing,
            start_date=start,
            id=_first_present(body, "id", "_id"),
            auto_renew=parse_flag(_first_present(body, "autoRenew", "auto_renew"), True),
            payment_count=payment_count,
            total_spent=total_spent,
            last_payment_date=last_payment,
            reminder_days=reminder_days,
        ),
        None,
    )


def serialize_subscription(sub: Subscription, today: date | None = None) -> dict[str, object]:
    today = today or date.today()
    payload: dict[str, object] = {
        "id": sub.id,
        "name": sub.name,
        "category": sub.category,
        "price": round(sub.price, 2),
        "billingCycle": sub.billing_cycle,
        "status": sub.status,
        "monthlyCost": round(sub.monthly_equivalent, 2),
        "yearlyCost": round(sub.yearly_equivalent, 2),
        "nextPaymentDate": None,
        "daysUntilPayment": None,
    }

    due = sub.due_date
    if due is not None:
        due = roll_forward(due, sub.billing_cycle, today=today)
        payload["nextPaymentDate"] = due.strftime(DATE_FORMAT)
        payload["daysUntilPayment"] = days_until(due, today=today)
    return payload
