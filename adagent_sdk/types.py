"""SDK response types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True, slots=True)
class Campaign:
    """Campaign as seen by the agent.

    Attributes
    ----------
    id : int
        Campaign identifier.
    name : str
        Campaign name.
    platforms : list[str]
        Ad platforms.
    budget : int
        Budget attributed to every month the campaign touches.
    start_date : date
        First day.
    end_date : date
        Last day, inclusive.
    goal : str | None
        Free-text goal.
    status : bool
        Whether the campaign is active.
    """

    id: int
    name: str
    platforms: list[str]
    budget: int
    start_date: date
    end_date: date
    goal: str | None
    status: bool

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Campaign:
        return cls(
            id=data["id"],
            name=data["name"],
            platforms=list(data["platforms"]),
            budget=data["budget"],
            start_date=date.fromisoformat(data["start_date"]),
            end_date=date.fromisoformat(data["end_date"]),
            goal=data.get("goal"),
            status=data["status"],
        )


@dataclass(frozen=True, slots=True)
class Asset:
    """Creative asset."""

    id: UUID
    name: str
    type: str
    ad_format: str | None
    ad_data: dict[str, Any]
    file_url: str | None
    status: str

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Asset:
        return cls(
            id=UUID(data["id"]),
            name=data["name"],
            type=data["type"],
            ad_format=data.get("ad_format"),
            ad_data=data.get("ad_data") or {},
            file_url=data.get("file_url"),
            status=data["status"],
        )


@dataclass(frozen=True, slots=True)
class Audience:
    """Targeting definition."""

    id: UUID
    name: str
    description: str | None
    age_min: int | None
    age_max: int | None
    genders: list[str]
    locations: list[str]
    interests: list[str]
    status: str

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Audience:
        return cls(
            id=UUID(data["id"]),
            name=data["name"],
            description=data.get("description"),
            age_min=data.get("age_min"),
            age_max=data.get("age_max"),
            genders=list(data.get("genders") or []),
            locations=list(data.get("locations") or []),
            interests=list(data.get("interests") or []),
            status=data["status"],
        )


@dataclass(frozen=True, slots=True)
class Assignment:
    """Link between a campaign and an asset or audience."""

    id: UUID
    campaign_id: int
    resource_id: UUID
    assigned_at: datetime

    @classmethod
    def from_payload(cls, data: dict[str, Any], resource_key: str) -> Assignment:
        return cls(
            id=UUID(data["id"]),
            campaign_id=data["campaign_id"],
            resource_id=UUID(data[resource_key]),
            assigned_at=_parse_datetime(data["assigned_at"]),
        )


@dataclass(frozen=True, slots=True)
class BudgetMonth:
    """Committed spend in one month.

    Attributes
    ----------
    year : int
        Calendar year.
    month : int
        Month number, 1-12.
    monthly_total : int
        Sum of active campaign budgets touching the month.
    remaining : int
        Headroom under the monthly limit.
    utilization_percentage : int
        Rounded share of the limit in use.
    campaign_ids : list[int]
        Contributing campaigns.
    """

    year: int
    month: int
    monthly_total: int
    remaining: int
    utilization_percentage: int
    campaign_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class BudgetStatus:
    """Budget summary for three consecutive months."""

    monthly_limit: int
    months: list[BudgetMonth]

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> BudgetStatus:
        return cls(
            monthly_limit=data["monthly_limit"],
            months=[
                BudgetMonth(
                    year=item["year"],
                    month=item["month"],
                    monthly_total=item["monthly_total"],
                    remaining=item["remaining"],
                    utilization_percentage=item["utilization_percentage"],
                    campaign_ids=[c["id"] for c in item.get("campaigns", [])],
                )
                for item in data["months"]
            ],
        )
