"""Python SDK tests."""

import json

import httpx
import pytest

from adagent_sdk import (
    AGENT_TOOLS,
    ALLOWED_TOOLS,
    AdAgentAuthError,
    AdAgentBudgetExceededError,
    AdAgentClient,
    AdAgentConflictError,
    AdAgentRateLimitError,
    AdAgentValidationError,
    ToolNotAllowedError,
    execute_tool,
)

CAMPAIGN = {
    "id": 7,
    "name": "Spring launch",
    "platforms": ["google"],
    "budget": 1000,
    "start_date": "2025-09-01",
    "end_date": "2025-09-30",
    "goal": None,
    "status": True,
    "created_at": "2025-08-01T10:00:00Z",
    "updated_at": "2025-08-01T10:00:00Z",
}


def _error(status_code: int, code: str | None, message: str, **details) -> httpx.Response:
    error = {"message": message, "request_id": "req_test"}
    if code is not None:
        error["code"] = code
    if details:
        error["details"] = details
    return httpx.Response(status_code, json={"success": False, "error": error})


def _client(handler, **options) -> AdAgentClient:
    return AdAgentClient(
        base_url="http://adagent.test",
        api_key="bbl_test",
        transport=httpx.MockTransport(handler),
        **options,
    )


class TestAdAgentClient:
    """SDK client behavior tests."""

    def test_from_env_requires_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Reject missing API key environment configuration.

        Parameters
        ----------
        monkeypatch : pytest.MonkeyPatch
            Environment monkeypatch helper.

        Returns
        -------
        None
            Asserts env validation.
        """
        monkeypatch.delenv("ADAGENT_API_KEY", raising=False)
        monkeypatch.setenv("ADAGENT_BASE_URL", "http://example.test")

        with pytest.raises(AdAgentValidationError):
            AdAgentClient.from_env()

    def test_list_campaigns_unwraps_envelope(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "campaigns": [CAMPAIGN],
                        "pagination": {"limit": 10, "offset": 0, "total": 1},
                    },
                },
            )

        with _client(handler) as client:
            campaigns = client.list_campaigns(status="active", limit=10)

        [request] = requests
        assert request.url.path == "/api/v1/agent/campaigns/list"
        assert request.url.params["status"] == "active"
        assert request.headers["Authorization"] == "Bearer bbl_test"
        assert campaigns[0].id == 7
        assert campaigns[0].end_date.isoformat() == "2025-09-30"

    def test_budget_error_is_typed(self) -> None:
        """Expose the overflowing month and headroom on budget errors.

        Returns
        -------
        None
            Asserts exception mapping.
        """

        def handler(request: httpx.Request) -> httpx.Response:
            return _error(
                400,
                "BUDGET_EXCEEDED",
                "Campaign budget would exceed the monthly limit",
                affected_month="2025-09",
                available=500,
            )

        client = _client(handler)
        with pytest.raises(AdAgentBudgetExceededError) as exc_info:
            client.create_campaign(
                name="Big",
                platforms=["meta"],
                budget=9000,
                start_date="2025-09-01",
                end_date="2025-09-30",
            )

        assert exc_info.value.status_code == 400
        assert exc_info.value.affected_month == "2025-09"
        assert exc_info.value.available == 500
        assert exc_info.value.request_id == "req_test"

    def test_duplicate_assignment_is_conflict(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _error(409, "DUPLICATE_RESOURCE", "Asset is already assigned to this campaign")

        with pytest.raises(AdAgentConflictError):
            _client(handler).assign_asset(7, "5b1f0c2e-0000-4000-8000-000000000000")

    def test_unauthorized_without_code(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"detail": "Unauthorized"})

        with pytest.raises(AdAgentAuthError):
            _client(handler).get_campaign(1)

    def test_rate_limit_is_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                response = _error(429, "RATE_LIMIT_EXCEEDED", "Rate limit exceeded")
                response.headers["Retry-After"] = "12"
                return response
            return httpx.Response(200, json={"success": True, "data": {"campaign": CAMPAIGN}})

        campaign = _client(handler, max_retry_wait=0).get_campaign(7)

        assert calls == 2
        assert campaign.name == "Spring launch"

    def test_rate_limit_surfaces_after_retries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _error(429, "RATE_LIMIT_EXCEEDED", "Rate limit exceeded", retry_after=30)

        client = _client(handler, max_retries=0)
        with pytest.raises(AdAgentRateLimitError) as exc_info:
            client.list_assets()

        assert exc_info.value.retry_after == 30


class TestAgentTools:
    """Tool catalogue and dispatch."""

    def test_catalogue_matches_allow_list(self) -> None:
        names = {tool["function"]["name"] for tool in AGENT_TOOLS}

        assert len(AGENT_TOOLS) == 10
        assert names == ALLOWED_TOOLS
        assert not any("delete" in name or "update" in name for name in names)

    def test_restricted_tool_is_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(ToolNotAllowedError) as exc_info:
            execute_tool(_client(handler), "delete_campaign", {"campaign_id": 7})

        assert "cannot delete" in str(exc_info.value)

    def test_create_campaign_tool(self) -> None:
        """Send the model's arguments to the create endpoint.

        Returns
        -------
        None
            Asserts the outgoing request and returned data.
        """
        seen: list[tuple[str, str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(
                201, json={"success": True, "data": {"campaign": CAMPAIGN}}
            )

        result = execute_tool(
            _client(handler),
            "create_campaign",
            {
                "name": "Spring launch",
                "platforms": ["google"],
                "budget": 1000,
                "start_date": "2025-09-01",
                "end_date": "2025-09-30",
                "goal": None,
            },
        )

        [(method, path, body)] = seen
        assert (method, path) == ("POST", "/api/v1/agent/campaigns/create")
        assert "goal" not in body
        assert result["campaign"]["id"] == 7
