"""Audit logging tests."""

import asyncio
import json
from pathlib import Path
from uuid import uuid4

import pytest
from conftest import AGENT, bearer, create_campaign, issue_key
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adagent.models.audit import AgentAuditLog
from adagent.services.audit import (
    REDACTED,
    AgentAuditEntry,
    AuditWriter,
    build_entry,
    extract_action,
    extract_resource_info,
    get_audit_writer,
    sanitize,
    truncate,
)


def _entry(**fields) -> AgentAuditEntry:
    values = {
        "api_key_id": uuid4(),
        "org_id": uuid4(),
        "action": "campaigns.list",
        "request_method": "GET",
        "request_path": "/api/v1/agent/campaigns/list",
        "response_status": 200,
        "duration_ms": 3,
        **fields,
    }
    return AgentAuditEntry(**values)


class TestSanitize:
    """Sensitive key redaction."""

    def test_redacts_nested_keys_case_insensitively(self) -> None:
        body = {
            "name": "Spring",
            "Authorization": "Bearer bbl_x",
            "nested": {"userPassword": "hunter2", "items": [{"refresh_token": "t"}]},
            "client_secret": "s",
            "ApiKey": "k",
        }

        result = sanitize(body)

        assert result == {
            "name": "Spring",
            "Authorization": REDACTED,
            "nested": {"userPassword": REDACTED, "items": [{"refresh_token": REDACTED}]},
            "client_secret": REDACTED,
            "ApiKey": REDACTED,
        }
        assert body["nested"]["userPassword"] == "hunter2"

    def test_scalars_pass_through(self) -> None:
        assert sanitize("token") == "token"
        assert sanitize(None) is None
        assert sanitize([1, "a"]) == [1, "a"]


class TestTruncate:
    """Body size bounding."""

    def test_small_value_is_unchanged(self) -> None:
        value = {"a": 1}
        assert truncate(value, 100) is value

    def test_large_value_is_replaced_by_marker(self) -> None:
        value = {"blob": "x" * 200}
        serialized = json.dumps(value)

        result = truncate(value, 50)

        assert result["__truncated"] is True
        assert result["__original_size"] == len(serialized)
        assert result["data"] == serialized[:50] + "...[TRUNCATED]"

    def test_none_stays_none(self) -> None:
        assert truncate(None, 1) is None


class TestExtractAction:
    """Action naming from method and path."""

    @pytest.mark.parametrize(
        ("method", "path", "action"),
        [
            ("POST", "/api/v1/agent/campaigns/create", "campaigns.create"),
            ("GET", "/api/v1/agent/campaigns/list", "campaigns.list"),
            ("GET", "/api/v1/agent/campaigns/12/get", "campaigns.get"),
            ("PATCH", "/api/v1/agent/campaigns/12/update", "campaigns.update"),
            ("DELETE", "/api/v1/agent/campaigns/12/delete", "campaigns.delete"),
            ("GET", "/api/v1/agent/budget/status", "budget.status"),
            ("POST", "/api/v1/agent/campaigns/12/assets", "campaigns.assets.assign"),
            (
                "DELETE",
                "/api/v1/agent/campaigns/12/audiences",
                "campaigns.audiences.unassign",
            ),
            ("GET", "/api/v1/agent/campaigns/12", "campaigns.get"),
            ("DELETE", "/api/v1/agent/campaigns/12", "campaigns.delete"),
            ("PUT", "/api/v1/agent/campaigns/12", "campaigns.update"),
            ("POST", "/api/campaigns", "campaigns.post"),
            ("GET", "/api/v1/agent", "unknown"),
        ],
    )
    def test_mapping(self, method: str, path: str, action: str) -> None:
        assert extract_action(method, path) == action


class TestExtractResourceInfo:
    """Resource id discovery in response bodies."""

    def test_nested_campaign(self) -> None:
        body = {"success": True, "data": {"campaign": {"id": 7, "name": "x"}}}
        assert extract_resource_info("campaigns.create", body) == ("campaigns", "7")

    def test_direct_id_wins(self) -> None:
        body = {"data": {"campaign_id": 3, "asset": {"id": "a"}}}
        assert extract_resource_info("campaigns.assets.assign", body) == (
            "campaigns",
            "3",
        )

    def test_without_id(self) -> None:
        body = {"data": {"campaigns": []}}
        assert extract_resource_info("campaigns.list", body) == ("campaigns", None)

    def test_without_data(self) -> None:
        assert extract_resource_info("campaigns.get", {"success": False}) == (None, None)
        assert extract_resource_info("campaigns.get", None) == (None, None)


class TestBuildEntry:
    """Entry assembly."""

    def test_sanitizes_truncates_and_copies_error(self) -> None:
        entry = build_entry(
            api_key_id=uuid4(),
            org_id=uuid4(),
            method="POST",
            path="/api/v1/agent/campaigns/create",
            headers={"x-forwarded-for": "10.0.0.1"},
            request_body={"name": "n", "secret": "s"},
            response_status=400,
            response_body={
                "success": False,
                "error": {"code": "BUDGET_EXCEEDED", "message": "Too much"},
            },
            duration_ms=12,
            max_body_size=10_000,
        )

        assert entry.action == "campaigns.create"
        assert entry.request_body == {"name": "n", "secret": REDACTED}
        assert entry.error_message == "Too much"
        assert entry.ip_address == "10.0.0.1"
        assert entry.user_agent == "unknown"
        assert entry.resource_type is None


class TestAuditWriter:
    """Background persistence and dead-lettering."""

    @pytest.mark.asyncio
    async def test_persistent_failure_is_dead_lettered(self, tmp_path: Path) -> None:
        """Write the entry to the dead-letter file after retries run out.

        Parameters
        ----------
        tmp_path : Path
            Temporary directory.

        Returns
        -------
        None
            Asserts no exception escapes and the JSON line is written.
        """
        calls = 0

        def broken_factory():
            nonlocal calls
            calls += 1
            raise RuntimeError("database unavailable")

        dead_letter = tmp_path / "dlq" / "audit.jsonl"
        writer = AuditWriter(
            broken_factory,
            dead_letter,
            max_retries=2,
            retry_backoff_seconds=0,
        )

        stored = await writer.write(_entry())

        assert stored is False
        assert calls == 3
        record = json.loads(dead_letter.read_text().strip())
        assert record["attempts"] == 3
        assert "database unavailable" in record["error"]
        assert record["entry"]["action"] == "campaigns.list"

    @pytest.mark.asyncio
    async def test_worker_dead_letters_off_the_request_path(
        self, tmp_path: Path
    ) -> None:
        def broken_factory():
            raise RuntimeError("database unavailable")

        dead_letter = tmp_path / "audit.jsonl"
        writer = AuditWriter(
            broken_factory, dead_letter, max_retries=1, retry_backoff_seconds=0
        )

        writer.submit(_entry(action="assets.create"))
        writer.submit(_entry(action="audiences.create"))
        await writer.close()

        records = [json.loads(line) for line in dead_letter.read_text().splitlines()]
        assert [record["entry"]["action"] for record in records] == [
            "assets.create",
            "audiences.create",
        ]
        assert {record["attempts"] for record in records} == {2}

    @pytest.mark.asyncio
    async def test_full_queue_dead_letters(self, tmp_path: Path) -> None:
        def unused_factory():
            raise AssertionError("not reached")

        dead_letter = tmp_path / "audit.jsonl"
        writer = AuditWriter(unused_factory, dead_letter, queue_size=1, max_retries=0)
        writer._queue = asyncio.Queue(maxsize=1)
        writer._queue.put_nowait(_entry())
        writer._worker = asyncio.get_running_loop().create_future()

        writer.submit(_entry(action="campaigns.create"))

        record = json.loads(dead_letter.read_text().strip())
        assert record["error"] == "audit queue full"
        assert record["entry"]["action"] == "campaigns.create"
        writer._worker.cancel()

    @pytest.mark.asyncio
    async def test_submitted_entry_is_persisted(
        self, session_factory: async_sessionmaker[AsyncSession], tmp_path: Path
    ) -> None:
        writer = AuditWriter(session_factory, tmp_path / "audit.jsonl")
        entry = _entry()

        writer.submit(entry)
        await writer.close()

        async with session_factory() as session:
            rows = (await session.execute(select(AgentAuditLog))).scalars().all()
        assert len(rows) == 1
        assert rows[0].api_key_id == entry.api_key_id
        assert not (tmp_path / "audit.jsonl").exists()


class TestAgentRequestAuditing:
    """Middleware-driven auditing of agent requests."""

    @pytest.mark.asyncio
    async def test_request_is_recorded_without_secrets(
        self, client, admin_headers, session_factory
    ) -> None:
        """Record a campaign create with its resource id and sanitized body.

        Parameters
        ----------
        client : AsyncClient
            Test HTTP client.
        admin_headers : dict[str, str]
            Admin authorization header.
        session_factory : async_sessionmaker[AsyncSession]
            Test database session factory.

        Returns
        -------
        None
            Asserts the persisted audit row.
        """
        key = await issue_key(client, admin_headers)
        headers = {**bearer(key["api_key"]), "User-Agent": "agent-test/1.0"}
        created = await create_campaign(
            client, headers, goal="launch", api_token="should-not-leak"
        )
        await get_audit_writer().drain()

        async with session_factory() as session:
            row = (await session.execute(select(AgentAuditLog))).scalar_one()

        assert row.action == "campaigns.create"
        assert row.resource_type == "campaigns"
        assert row.resource_id == str(created["data"]["campaign"]["id"])
        assert row.response_status == 201
        assert row.request_body["api_token"] == REDACTED
        assert row.user_agent == "agent-test/1.0"
        assert str(row.api_key_id) == key["id"]

    @pytest.mark.asyncio
    async def test_errors_and_rate_limits_are_recorded(
        self, client, admin_headers
    ) -> None:
        key = await issue_key(
            client,
            admin_headers,
            metadata={"rate_limits": {"campaigns.get": {"requests": 1, "window": 60}}},
        )
        headers = bearer(key["api_key"])
        missing = await client.get(f"{AGENT}/campaigns/999/get", headers=headers)
        limited = await client.get(f"{AGENT}/campaigns/999/get", headers=headers)
        assert (missing.status_code, limited.status_code) == (404, 429)
        await get_audit_writer().drain()

        response = await client.get(
            "/v1/admin/agent-logs",
            headers=admin_headers,
            params={"status": "error"},
        )

        logs = response.json()["logs"]
        assert sorted(log["response_status"] for log in logs) == [404, 429]
        assert {log["error_message"] for log in logs} == {
            "Campaign with ID 999 not found",
            "Rate limit exceeded. Please try again later.",
        }

    @pytest.mark.asyncio
    async def test_unauthenticated_requests_are_not_persisted(
        self, client, admin_headers
    ) -> None:
        response = await client.get(f"{AGENT}/campaigns/list")
        assert response.status_code == 401
        await get_audit_writer().drain()

        logs = await client.get("/v1/admin/agent-logs", headers=admin_headers)

        assert logs.json()["pagination"]["total"] == 0
