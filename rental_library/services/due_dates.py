"""Due-date arithmetic shared by every rental view.

Day differences use whole-day ceiling division: a rental due in 3 hours
is due in 1 day, one that was due 3 hours ago is due in 0 days (today).
"""

import enum
import math
from datetime import datetime
from typing import Optional

from rental_library.core.config import DUE_SOON_DAYS
from rental_library.core.database import utcnow

SECONDS_PER_DAY = 24 * 60 * 60


class DueStatus(str, enum.Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    NORMAL = "normal"


def days_until_due(due_date: datetime, now: Optional[datetime] = None) -> int:
    """Return ``ceil((due_date - now) / 1 day)``.

    Negative values mean overdue by that many days, zero means due today.
    """
    if now is None:
        now = utcnow()
    return math.ceil((due_date - now).total_seconds() / SECONDS_PER_DAY)


def classify_days(days: int) -> DueStatus:
    if days < 0:
        return DueStatus.OVERDUE
    if days <= DUE_SOON_DAYS:
        return DueStatus.DUE_SOON
    return DueStatus.NORMAL


def classify_due(due_date: datetime, now: Optional[datetime] = None) -> DueStatus:
    return classify_days(days_until_due(due_date, now))
