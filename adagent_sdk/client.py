"""Synchronous Python SDK client."""

from __future__ import annotations

import os
from datetime import date
from time import sleep
from typing import Any
from uuid import UUID

import httpx

from adagent_sdk.exceptions import (
    AdAgentAPIError,
    AdAgentAuthError,
    AdAgentBudgetExceededError,
    AdAgentConflictError,
    AdAgentNotFoundError,
    AdAgentPermissionError,
    AdAgentRateLimitError,
    AdAgentValidationError,
)
from adagent_sdk.types import Asset, Assignment, Audience, BudgetStatus, Campaign

AGENT_API_PREFIX = "/api/v1/agent"

_ERRORS_BY_CODE: dict[str, type[AdAgentAPIError]] = {
    "UNAUTHORIZED": AdAgentAuthError,
    "FORBIDDEN": AdAgentPermissionError,
    "VALIDATION_ERROR": AdAgentValidationError,
    "RESOURCE_NOT_FOUND": AdAgentNotFoundError,
    "DUPLICATE_RESOURCE": AdAgentConflictError,
    "BUDGET_EXCEEDED": AdAgentBudgetExceededError,
    "RATE_LIMIT_EXCEEDED": AdAgentRateLimitError,
}


class AdAgentClient:
    """Client for the campaign Agent API.

    Parameters
    ----------
    base_url : str
        Service base URL.
    api_key : str
        Agent API key (``bbl_...``).
    timeout : float, default=10.0
        Request timeout in seconds.
    max_retries : int, default=2
        Number of retries for transient errors.
    max_retry_wait : float, default=30.0
        Upper bound on a single wait, including server ``Retry-After`` hints.
    transport : httpx.BaseTransport | None, default=None
        Optional transport for tests or advanced usage.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        max_retry_wait: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_retry_wait = max_retry_wait
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> AdAgentClient:
        """Build a client from environment variables.

        Expected variables
        ------------------
        ADAGENT_BASE_URL
            Service base URL. Defaults to ``http://127.0.0.1:8000``.
        ADAGENT_API_KEY
            Required agent API key.

        Returns
        -------
        AdAgentClient
            Configured SDK client.
        """
        base_url = os.environ.get("ADAGENT_BASE_URL", "http://127.0.0.1:8000")
        api_key = os.environ.get("ADAGENT_API_KEY")
        if not api_key:
            raise AdAgentValidationError("ADAGENT_API_KEY is required to create the client")
        return cls(base_url=base_url, api_key=api_key)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def list_campaigns(
        self, *, status: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Campaign]:
        """List campaigns.

        Parameters
        ----------
        status : str | None, default=None
            ``active`` or ``inactive``.
        limit : int, default=50
            Page size, at most 100.
        offset : int, default=0
            Page offset.

        Returns
        -------
        list[Campaign]
            One page of campaigns.
        """
        data = self.request(
            "GET",
            "/campaigns/list",
            params=_drop_none({"status": status, "limit": limit, "offset": offset}),
        )
        return [Campaign.from_payload(item) for item in data["campaigns"]]

    def get_campaign(self, campaign_id: int) -> Campaign:
        data = self.request("GET", f"/campaigns/{campaign_id}/get")
        return Campaign.from_payload(data["campaign"])

    def create_campaign(
        self,
        *,
        name: str,
        platforms: list[str],
        budget: int,
        start_date: date | str,
        end_date: date | str,
        goal: str | None = None,
    ) -> Campaign:
        """Create a campaign.

        Parameters
        ----------
        name : str
            Campaign name.
        platforms : list[str]
            Ad platforms.
        budget : int
            Budget counted against every month in the date range.
        start_date : date | str
            First day.
        end_date : date | str
            Last day, inclusive.
        goal : str | None, default=None
            Optional goal.

        Returns
        -------
        Campaign
            Created campaign.

        Raises
        ------
        AdAgentBudgetExceededError
            When a touched month would exceed the organization ceiling.
        """
        payload = _drop_none(
            {
                "name": name,
                "platforms": platforms,
                "budget": budget,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "goal": goal,
            }
        )
        data = self.request("POST", "/campaigns/create", json=payload)
        return Campaign.from_payload(data["campaign"])

    def update_campaign(self, campaign_id: int, **fields: Any) -> Campaign:
        """Partially update a campaign."""
        payload = {
            key: str(value) if isinstance(value, date) else value
            for key, value in fields.items()
        }
        data = self.request("PATCH", f"/campaigns/{campaign_id}/update", json=payload)
        return Campaign.from_payload(data["campaign"])

    def delete_campaign(self, campaign_id: int) -> None:
        self.request("DELETE", f"/campaigns/{campaign_id}/delete")

    def list_assets(
        self, *, type: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Asset]:
        data = self.request(
            "GET",
            "/assets/list",
            params=_drop_none({"type": type, "limit": limit, "offset": offset}),
        )
        return [Asset.from_payload(item) for item in data["assets"]]

    def get_asset(self, asset_id: UUID | str) -> Asset:
        data = self.request("GET", f"/assets/{asset_id}/get")
        return Asset.from_payload(data["asset"])

    def list_audiences(
        self, *, status: str = "active", limit: int = 50, offset: int = 0
    ) -> list[Audience]:
        data = self.request(
            "GET",
            "/audiences/list",
            params={"status": status, "limit": limit, "offset": offset},
        )
        return [Audience.from_payload(item) for item in data["audiences"]]

    def get_audience(self, audience_id: UUID | str) -> Audience:
        data = self.request("GET", f"/audiences/{audience_id}/get")
        return Audience.from_payload(data["audience"])

    def assign_asset(self, campaign_id: int, asset_id: UUID | str) -> Assignment:
        """Assign an asset to a campaign.

        Raises
        ------
        AdAgentConflictError
            When the asset is already assigned.
        """
        data = self.request(
            "POST",
            f"/campaigns/{campaign_id}/assets",
            json={"asset_id": str(asset_id)},
        )
        return Assignment.from_payload(data["assignment"], "asset_id")

    def assign_audience(self, campaign_id: int, audience_id: UUID | str) -> Assignment:
        """Assign an audience to a campaign.

        Raises
        ------
        AdAgentConflictError
            When the audience is already assigned.
        """
        data = self.request(
            "POST",
            f"/campaigns/{campaign_id}/audiences",
            json={"audience_id": str(audience_id)},
        )
        return Assignment.from_payload(data["assignment"], "audience_id")

    def budget_status(
        self, *, year: int | None = None, month: int | None = None
    ) -> BudgetStatus:
        """Return committed spend for three months from ``year``/``month``."""
        data = self.request(
            "GET",
            "/budget/status",
            params=_drop_none({"year": year, "month": month}),
        )
        return BudgetStatus.from_payload(data)

    def request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Call an Agent API endpoint and return the envelope's ``data``.

        Parameters
        ----------
        method : str
            HTTP method.
        path : str
            Path relative to ``/api/v1/agent``.
        **kwargs : Any
            Additional request arguments.

        Returns
        -------
        dict[str, Any]
            Response ``data`` object.
        """
        response = self._request(method, AGENT_API_PREFIX + path, **kwargs)
        body = response.json()
        return body.get("data", body)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an HTTP request, retrying transient failures.

        Parameters
        ----------
        method : str
            HTTP method.
        path : str
            Request path.
        **kwargs : Any
            Additional request arguments.

        Returns
        -------
        httpx.Response
            Successful response.
        """
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                if attempt < self.max_retries:
                    sleep(0.1 * (attempt + 1))
                    continue
                raise AdAgentAPIError(str(exc)) from exc

            if response.status_code < 400:
                return response
            if _is_transient_response(response) and attempt < self.max_retries:
                sleep(self._retry_delay(response, attempt))
                continue
            raise _exception_for_response(response)
        raise AdAgentAPIError("Request failed")

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return min(max(0.0, float(retry_after)), self.max_retry_wait)
            except ValueError:
                pass
        return min(0.1 * (attempt + 1), self.max_retry_wait)

    def __enter__(self) -> AdAgentClient:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        _ = (exc_type, exc_value, traceback)
        self.close()


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _is_transient_response(response: httpx.Response) -> bool:
    """Return whether a response is worth retrying."""
    return response.status_code in {429, 502, 503, 504}


def _exception_for_response(response: httpx.Response) -> AdAgentAPIError:
    """Map an error envelope to a typed SDK exception.

    Parameters
    ----------
    response : httpx.Response
        HTTP response.

    Returns
    -------
    AdAgentAPIError
        Typed SDK error.
    """
    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {}
    message = error.get("message") or (
        f"Agent API request failed with status {response.status_code}"
    )
    code = error.get("code")
    exc_type = _ERRORS_BY_CODE.get(code or "", AdAgentAPIError)
    if code is None and response.status_code == 401:
        exc_type = AdAgentAuthError
    return exc_type(
        message,
        status_code=response.status_code,
        code=code,
        details=error.get("details"),
        request_id=error.get("request_id") or response.headers.get("X-Request-ID"),
    )
