"""
Warranty -- expiry arithmetic for delivered units.

Pure functions; the delivery service calls ``warranty_expiry`` when a
delivery is confirmed and selectors call ``warranty_state`` to report
expired warranties without a background job rewriting rows.
"""

import calendar
from datetime import datetime

from inventory_kernel.domain.lifecycle import WarrantyStatus


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month addition, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def warranty_expiry(delivered_at: datetime, warranty_months: int) -> datetime:
    if warranty_months < 0:
        raise ValueError(f"warranty_months must be >= 0, got {warranty_months}")
    return add_months(delivered_at, warranty_months)


def warranty_state(
    stored_status: str, expires_at: datetime | None, now: datetime,
) -> WarrantyStatus:
    """Effective status: an active warranty past its expiry reads as expired."""
    status = WarrantyStatus(stored_status)
    if status is WarrantyStatus.ACTIVE and expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=now.tzinfo)
        if expires_at <= now:
            return WarrantyStatus.EXPIRED
    return status
