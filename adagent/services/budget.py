"""Monthly organization budget enforcement.

A campaign's full budget is attributed to every calendar month its inclusive
date range touches; budgets are not prorated by days.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.config import get_settings
from adagent.errors import BudgetExceededError
from adagent.models.campaign import Campaign

logger = logging.getLogger(__name__)

STATUS_WINDOW_MONTHS = 3


@dataclass(frozen=True, slots=True, order=True)
class CalendarMonth:
    """A calendar month."""

    year: int
    month: int

    @classmethod
    def of(cls, day: date) -> CalendarMonth:
        """Return the month containing ``day``."""
        return cls(day.year, day.month)

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def label(self) -> str:
        """``YYYY-MM`` form used in error details."""
        return f"{self.year}-{self.month:02d}"

    @property
    def name(self) -> str:
        return calendar.month_name[self.month]

    def next(self) -> CalendarMonth:
        if self.month == 12:
            return CalendarMonth(self.year + 1, 1)
        return CalendarMonth(self.year, self.month + 1)


def months_between(start_date: date, end_date: date) -> list[CalendarMonth]:
    """Return every month touched by the inclusive range ``[start_date, end_date]``.

    Parameters
    ----------
    start_date : date
        First day of the range.
    end_date : date
        Last day of the range.

    Returns
    -------
    list[CalendarMonth]
        Months in chronological order; empty when ``end_date < start_date``.
    """
    months: list[CalendarMonth] = []
    current = CalendarMonth.of(start_date)
    last = CalendarMonth.of(end_date)
    while current <= last:
        months.append(current)
        current = current.next()
    return months


def overlaps_month(start_date: date, end_date: date, month: CalendarMonth) -> bool:
    """Return whether an inclusive date range intersects a month."""
    return start_date <= month.last_day and end_date >= month.first_day


@dataclass(slots=True)
class MonthlyBudget:
    """Committed spend of an organization in one month.

    Attributes
    ----------
    month : CalendarMonth
        Month the totals apply to.
    monthly_total : int
        Sum of the budgets of contributing campaigns.
    campaigns : list[Campaign]
        Active campaigns overlapping the month.
    """

    month: CalendarMonth
    monthly_total: int
    campaigns: list[Campaign] = field(default_factory=list)


@dataclass(slots=True)
class BudgetValidation:
    """Successful budget check.

    Attributes
    ----------
    monthly_limit : int
        Ceiling applied.
    requested : int
        Proposed campaign budget.
    months : list[MonthlyBudget]
        Existing commitments per touched month, excluding the proposal.
    """

    monthly_limit: int
    requested: int
    months: list[MonthlyBudget]

    @property
    def current_total(self) -> int:
        """Existing commitment in the first touched month."""
        return self.months[0].monthly_total if self.months else 0

    @property
    def available(self) -> int:
        """Headroom left in the first touched month after the proposal."""
        return self.monthly_limit - self.current_total - self.requested


async def calculate_monthly_budget(
    session: AsyncSession,
    org_id: UUID,
    month: CalendarMonth,
    exclude_campaign_id: int | None = None,
) -> MonthlyBudget:
    """Sum active campaign budgets overlapping a month.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Organization identifier.
    month : CalendarMonth
        Month to total.
    exclude_campaign_id : int | None, default=None
        Campaign left out of the total, used when that campaign is being updated.

    Returns
    -------
    MonthlyBudget
        Total and contributing campaigns.
    """
    query = (
        select(Campaign)
        .where(
            Campaign.org_id == org_id,
            Campaign.status.is_(True),
            Campaign.start_date <= month.last_day,
            Campaign.end_date >= month.first_day,
        )
        .order_by(Campaign.id.asc())
    )
    if exclude_campaign_id is not None:
        query = query.where(Campaign.id != exclude_campaign_id)
    result = await session.execute(query)
    campaigns = list(result.scalars().all())
    return MonthlyBudget(
        month=month,
        monthly_total=sum(campaign.budget for campaign in campaigns),
        campaigns=campaigns,
    )


async def validate_campaign_budget(
    session: AsyncSession,
    *,
    org_id: UUID,
    budget: int,
    start_date: date,
    end_date: date,
    exclude_campaign_id: int | None = None,
    monthly_limit: int | None = None,
) -> BudgetValidation:
    """Check a proposed campaign budget against every month it touches.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Organization identifier.
    budget : int
        Proposed campaign budget.
    start_date : date
        Proposed start date.
    end_date : date
        Proposed inclusive end date.
    exclude_campaign_id : int | None, default=None
        Campaign being updated, whose current contribution is ignored.
    monthly_limit : int | None, default=None
        Ceiling override; the configured ``max_monthly_budget`` otherwise.

    Returns
    -------
    BudgetValidation
        Existing commitments per month.

    Raises
    ------
    BudgetExceededError
        For the first month whose total would exceed the ceiling.
    """
    limit = monthly_limit if monthly_limit is not None else get_settings().max_monthly_budget
    months: list[MonthlyBudget] = []
    for month in months_between(start_date, end_date):
        calculation = await calculate_monthly_budget(
            session, org_id, month, exclude_campaign_id
        )
        if calculation.monthly_total + budget > limit:
            logger.info(
                "Budget rejected for org %s in %s: %s + %s > %s",
                org_id,
                month.label,
                calculation.monthly_total,
                budget,
                limit,
            )
            raise BudgetExceededError(
                f"Campaign budget would exceed monthly limit of ${limit:,} "
                f"for {month.label}",
                {
                    "monthly_limit": limit,
                    "affected_month": month.label,
                    "current_total": calculation.monthly_total,
                    "requested": budget,
                    "available": max(0, limit - calculation.monthly_total),
                    "existing_campaigns": [
                        {"id": c.id, "name": c.name, "budget": c.budget}
                        for c in calculation.campaigns
                    ],
                },
            )
        months.append(calculation)
    return BudgetValidation(monthly_limit=limit, requested=budget, months=months)


async def get_budget_status(
    session: AsyncSession,
    org_id: UUID,
    *,
    year: int | None = None,
    month: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Summarize commitments for a month and the two following it.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    org_id : UUID
        Organization identifier.
    year : int | None, default=None
        Starting year; current year when omitted.
    month : int | None, default=None
        Starting month (1-12); current month when omitted.
    today : date | None, default=None
        Reference date for the defaults.

    Returns
    -------
    dict[str, Any]
        ``monthly_limit`` and a ``months`` list.
    """
    limit = get_settings().max_monthly_budget
    today = today or date.today()
    current = CalendarMonth(year or today.year, month or today.month)
    months: list[dict[str, Any]] = []
    for _ in range(STATUS_WINDOW_MONTHS):
        calculation = await calculate_monthly_budget(session, org_id, current)
        months.append(
            {
                "year": current.year,
                "month": current.month,
                "month_name": current.name,
                "monthly_total": calculation.monthly_total,
                "remaining": limit - calculation.monthly_total,
                "utilization_percentage": round(calculation.monthly_total / limit * 100),
                "campaigns": [
                    {
                        "id": c.id,
                        "name": c.name,
                        "budget": c.budget,
                        "start_date": c.start_date.isoformat(),
                        "end_date": c.end_date.isoformat(),
                    }
                    for c in calculation.campaigns
                ],
            }
        )
        current = current.next()
    return {"monthly_limit": limit, "months": months}


class BudgetLocks:
    """Per-organization serialization point for budget check-then-write.

    Holding the lock from validation until the campaign write is committed
    keeps two concurrent writers of one organization from both passing the
    check. Locks are process-local.
    """

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}

    def for_organization(self, org_id: UUID) -> asyncio.Lock:
        """Return the lock guarding an organization's campaign budgets."""
        lock = self._locks.get(org_id)
        if lock is None:
            lock = self._locks[org_id] = asyncio.Lock()
        return lock


@lru_cache(maxsize=1)
def get_budget_locks() -> BudgetLocks:
    """Return the process-wide lock registry.

    Returns
    -------
    BudgetLocks
        Shared registry.
    """
    return BudgetLocks()
