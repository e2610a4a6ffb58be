"""Monthly budget validation tests."""

import asyncio
from datetime import date
from uuid import uuid4

import pytest
from conftest import AGENT, create_campaign
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adagent.errors import BudgetExceededError
from adagent.models.campaign import Campaign
from adagent.models.organization import Organization
from adagent.services import budget as budget_service
from adagent.services.budget import (
    CalendarMonth,
    calculate_monthly_budget,
    get_budget_status,
    months_between,
    validate_campaign_budget,
)


async def _seed(session: AsyncSession, *campaigns: dict) -> Organization:
    organization = Organization(name=f"org-{uuid4().hex[:8]}")
    session.add(organization)
    await session.flush()
    for fields in campaigns:
        session.add(
            Campaign(
                org_id=organization.id,
                name=fields.get("name", "existing"),
                platforms=["google"],
                budget=fields["budget"],
                start_date=fields["start_date"],
                end_date=fields["end_date"],
                status=fields.get("status", True),
            )
        )
    await session.commit()
    return organization


class TestMonthsBetween:
    """Calendar month enumeration."""

    def test_inclusive_range_across_year_end(self) -> None:
        months = months_between(date(2025, 11, 15), date(2026, 2, 1))
        assert [month.label for month in months] == [
            "2025-11",
            "2025-12",
            "2026-01",
            "2026-02",
        ]

    def test_month_end_start_does_not_skip_february(self) -> None:
        """Start on the 31st and still count the following short month."""
        months = months_between(date(2025, 1, 31), date(2025, 3, 1))
        assert [month.month for month in months] == [1, 2, 3]

    def test_single_day(self) -> None:
        assert months_between(date(2025, 9, 30), date(2025, 9, 30)) == [
            CalendarMonth(2025, 9)
        ]


class TestValidateCampaignBudget:
    """Budget validator against a real session."""

    @pytest.mark.asyncio
    async def test_overlapping_month_rejects_overflow(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Reject 5000 over Sep 15 - Oct 15 when September already holds 6000.

        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Test database session factory.

        Returns
        -------
        None
            Asserts the error details.
        """
        async with session_factory() as session:
            organization = await _seed(
                session,
                {
                    "name": "September push",
                    "budget": 6000,
                    "start_date": date(2025, 9, 1),
                    "end_date": date(2025, 9, 30),
                },
            )
            with pytest.raises(BudgetExceededError) as exc_info:
                await validate_campaign_budget(
                    session,
                    org_id=organization.id,
                    budget=5000,
                    start_date=date(2025, 9, 15),
                    end_date=date(2025, 10, 15),
                )

        details = exc_info.value.details
        assert details["affected_month"] == "2025-09"
        assert details["current_total"] == 6000
        assert details["requested"] == 5000
        assert details["available"] == 4000
        assert details["monthly_limit"] == 10000
        assert details["existing_campaigns"][0]["name"] == "September push"
        assert "$10,000" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_exact_headroom_is_accepted(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            organization = await _seed(
                session,
                {
                    "budget": 6000,
                    "start_date": date(2025, 9, 1),
                    "end_date": date(2025, 9, 30),
                },
            )
            result = await validate_campaign_budget(
                session,
                org_id=organization.id,
                budget=4000,
                start_date=date(2025, 9, 15),
                end_date=date(2025, 10, 15),
            )

        assert [month.monthly_total for month in result.months] == [6000, 0]
        assert result.current_total == 6000
        assert result.available == 0

    @pytest.mark.asyncio
    async def test_second_month_overflow_is_reported(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Name the second month when only it overflows."""
        async with session_factory() as session:
            organization = await _seed(
                session,
                {
                    "budget": 8000,
                    "start_date": date(2025, 10, 1),
                    "end_date": date(2025, 10, 31),
                },
            )
            with pytest.raises(BudgetExceededError) as exc_info:
                await validate_campaign_budget(
                    session,
                    org_id=organization.id,
                    budget=3000,
                    start_date=date(2025, 9, 10),
                    end_date=date(2025, 10, 10),
                )

        assert exc_info.value.details["affected_month"] == "2025-10"
        assert exc_info.value.details["available"] == 2000

    @pytest.mark.asyncio
    async def test_inactive_campaigns_do_not_count(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            organization = await _seed(
                session,
                {
                    "budget": 9000,
                    "start_date": date(2025, 9, 1),
                    "end_date": date(2025, 9, 30),
                    "status": False,
                },
            )
            result = await validate_campaign_budget(
                session,
                org_id=organization.id,
                budget=10000,
                start_date=date(2025, 9, 1),
                end_date=date(2025, 9, 2),
            )

        assert result.current_total == 0

    @pytest.mark.asyncio
    async def test_other_organizations_do_not_count(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            await _seed(
                session,
                {
                    "budget": 10000,
                    "start_date": date(2025, 9, 1),
                    "end_date": date(2025, 9, 30),
                },
            )
            other = await _seed(session)
            result = await validate_campaign_budget(
                session,
                org_id=other.id,
                budget=10000,
                start_date=date(2025, 9, 1),
                end_date=date(2025, 9, 30),
            )

        assert result.current_total == 0

    @pytest.mark.asyncio
    async def test_excluded_campaign_is_left_out(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Ignore the campaign being updated so it is not counted twice."""
        async with session_factory() as session:
            organization = await _seed(
                session,
                {
                    "budget": 10000,
                    "start_date": date(2025, 9, 1),
                    "end_date": date(2025, 9, 30),
                },
            )
            month = CalendarMonth(2025, 9)
            full = await calculate_monthly_budget(session, organization.id, month)
            campaign_id = full.campaigns[0].id
            excluded = await calculate_monthly_budget(
                session, organization.id, month, exclude_campaign_id=campaign_id
            )
            result = await validate_campaign_budget(
                session,
                org_id=organization.id,
                budget=10000,
                start_date=date(2025, 9, 5),
                end_date=date(2025, 9, 20),
                exclude_campaign_id=campaign_id,
            )

        assert full.monthly_total == 10000
        assert excluded.monthly_total == 0
        assert result.available == 0

    @pytest.mark.asyncio
    async def test_custom_limit(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            organization = await _seed(session)
            with pytest.raises(BudgetExceededError) as exc_info:
                await validate_campaign_budget(
                    session,
                    org_id=organization.id,
                    budget=600,
                    start_date=date(2025, 9, 1),
                    end_date=date(2025, 9, 2),
                    monthly_limit=500,
                )

        assert exc_info.value.details["monthly_limit"] == 500
        assert "$500" in exc_info.value.message


class TestBudgetStatus:
    """Three-month budget summary."""

    @pytest.mark.asyncio
    async def test_status_covers_three_months_across_year_end(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            organization = await _seed(
                session,
                {
                    "name": "Holiday",
                    "budget": 2500,
                    "start_date": date(2025, 12, 1),
                    "end_date": date(2026, 1, 15),
                },
            )
            summary = await get_budget_status(
                session, organization.id, year=2025, month=11
            )

        assert summary["monthly_limit"] == 10000
        months = summary["months"]
        assert [(m["year"], m["month"]) for m in months] == [
            (2025, 11),
            (2025, 12),
            (2026, 1),
        ]
        assert months[0]["monthly_total"] == 0
        assert months[1]["month_name"] == "December"
        assert months[1]["monthly_total"] == 2500
        assert months[1]["remaining"] == 7500
        assert months[1]["utilization_percentage"] == 25
        assert months[2]["campaigns"][0]["name"] == "Holiday"

    @pytest.mark.asyncio
    async def test_status_defaults_to_current_month(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            organization = await _seed(session)
            summary = await get_budget_status(
                session, organization.id, today=date(2026, 3, 14)
            )

        assert summary["months"][0]["year"] == 2026
        assert summary["months"][0]["month"] == 3


class TestBudgetThroughAgentAPI:
    """Budget enforcement on campaign create and update."""

    @pytest.mark.asyncio
    async def test_create_rejected_then_accepted(self, client, agent_headers) -> None:
        """Reproduce the September overflow through the HTTP surface.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        agent_headers : dict[str, str]
            Agent authorization header.

        Returns
        -------
        None
            Asserts the 400 envelope and the accepted retry.
        """
        first = await create_campaign(client, agent_headers, budget=6000)
        assert first["status_code"] == 201

        rejected = await create_campaign(
            client,
            agent_headers,
            name="Autumn",
            budget=5000,
            start_date="2025-09-15",
            end_date="2025-10-15",
        )
        assert rejected["status_code"] == 400
        assert rejected["success"] is False
        error = rejected["error"]
        assert error["code"] == "BUDGET_EXCEEDED"
        assert error["details"]["affected_month"] == "2025-09"
        assert error["details"]["available"] == 4000
        assert error["request_id"].startswith("req_")

        accepted = await create_campaign(
            client,
            agent_headers,
            name="Autumn",
            budget=4000,
            start_date="2025-09-15",
            end_date="2025-10-15",
        )
        assert accepted["status_code"] == 201

    @pytest.mark.asyncio
    async def test_shortening_own_range_is_never_rejected(
        self, client, agent_headers
    ) -> None:
        created = await create_campaign(
            client,
            agent_headers,
            budget=10000,
            start_date="2025-09-01",
            end_date="2025-11-30",
        )
        campaign_id = created["data"]["campaign"]["id"]

        response = await client.patch(
            f"{AGENT}/campaigns/{campaign_id}/update",
            headers=agent_headers,
            json={"end_date": "2025-10-15"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["campaign"]["end_date"] == "2025-10-15"

    @pytest.mark.asyncio
    async def test_budget_increase_rejected_when_month_full(
        self, client, agent_headers
    ) -> None:
        await create_campaign(client, agent_headers, budget=7000)
        second = await create_campaign(client, agent_headers, name="Second", budget=2000)

        response = await client.patch(
            f"{AGENT}/campaigns/{second['data']['campaign']['id']}/update",
            headers=agent_headers,
            json={"budget": 3500},
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"]["current_total"] == 7000

    @pytest.mark.asyncio
    async def test_reactivation_is_validated(self, client, agent_headers) -> None:
        """Re-check the budget when a paused campaign is switched back on."""
        paused = await create_campaign(client, agent_headers, budget=6000)
        paused_id = paused["data"]["campaign"]["id"]
        response = await client.patch(
            f"{AGENT}/campaigns/{paused_id}/update",
            headers=agent_headers,
            json={"status": False},
        )
        assert response.status_code == 200

        filler = await create_campaign(client, agent_headers, name="Filler", budget=5000)
        assert filler["status_code"] == 201

        response = await client.patch(
            f"{AGENT}/campaigns/{paused_id}/update",
            headers=agent_headers,
            json={"status": True},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BUDGET_EXCEEDED"

    @pytest.mark.asyncio
    async def test_budget_status_endpoint(self, client, agent_headers) -> None:
        await create_campaign(client, agent_headers, budget=3000)

        response = await client.get(
            f"{AGENT}/budget/status",
            headers=agent_headers,
            params={"year": 2025, "month": 9},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["months"][0]["monthly_total"] == 3000
        assert data["months"][0]["utilization_percentage"] == 30
        assert data["months"][1]["month"] == 10

    @pytest.mark.asyncio
    async def test_budget_status_rejects_invalid_month(
        self, client, agent_headers
    ) -> None:
        response = await client.get(
            f"{AGENT}/budget/status",
            headers=agent_headers,
            params={"month": 13},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_concurrent_creates_cannot_overcommit(
        self, client, agent_headers
    ) -> None:
        """Admit only one of several simultaneous creates that share a month.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        agent_headers : dict[str, str]
            Agent authorization header.

        Returns
        -------
        None
            Asserts one acceptance and the committed September total.
        """
        results = await asyncio.gather(
            *(
                create_campaign(client, agent_headers, name=f"Rush {n}", budget=6000)
                for n in range(3)
            )
        )

        assert sorted(result["status_code"] for result in results) == [201, 400, 400]
        rejected = [result for result in results if result["status_code"] == 400]
        assert {result["error"]["code"] for result in rejected} == {"BUDGET_EXCEEDED"}

        status = await client.get(
            f"{AGENT}/budget/status",
            headers=agent_headers,
            params={"year": 2025, "month": 9},
        )
        assert status.json()["data"]["months"][0]["monthly_total"] == 6000

    @pytest.mark.asyncio
    async def test_read_failure_is_not_treated_as_empty(
        self, client, agent_headers, monkeypatch
    ) -> None:
        async def failing_calculation(*args, **kwargs):
            raise OperationalError(
                "SELECT campaigns.budget", {}, Exception("disk I/O error")
            )

        monkeypatch.setattr(
            budget_service, "calculate_monthly_budget", failing_calculation
        )

        created = await create_campaign(client, agent_headers)

        assert created["status_code"] == 500
        assert created["error"]["code"] == "DATABASE_ERROR"
        assert "disk I/O" not in created["error"]["message"]
        assert "SELECT" not in str(created)

        listed = await client.get(f"{AGENT}/campaigns/list", headers=agent_headers)
        assert listed.json()["data"]["pagination"]["total"] == 0
