"""Function-calling tools for the hosted campaign agent.

The catalogue only reads or creates: campaigns can be listed, fetched and
created, assets and audiences listed and fetched, both assigned to campaigns,
and the budget inspected. Updates and deletes are not exposed to the model.
"""

from __future__ import annotations

from typing import Any

from adagent_sdk.client import AdAgentClient
from adagent_sdk.exceptions import AdAgentError


class ToolNotAllowedError(AdAgentError):
    """Model asked for a tool outside the catalogue."""


def _function(
    name: str,
    description: str,
    properties: dict[str, Any] | None = None,
    required: list[str] | None = None,
) -> dict[str, Any]:
    parameters: dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        parameters["required"] = required
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


_LIMIT = {"type": "integer", "description": "Maximum number of items (default 50)"}

AGENT_TOOLS: list[dict[str, Any]] = [
    _function(
        "list_campaigns",
        "List campaigns with optional status filter.",
        {"status": {"type": "string", "enum": ["active", "inactive"]}, "limit": _LIMIT},
    ),
    _function(
        "get_campaign",
        "Get one campaign by ID.",
        {"campaign_id": {"type": "integer"}},
        ["campaign_id"],
    ),
    _function(
        "create_campaign",
        "Create a campaign. Rejected when any month it touches would exceed "
        "the organization's $10,000 monthly budget limit.",
        {
            "name": {"type": "string"},
            "platforms": {
                "type": "array",
                "items": {"type": "string", "enum": ["google", "youtube", "reddit", "meta"]},
            },
            "budget": {"type": "integer", "description": "Budget in USD"},
            "start_date": {"type": "string", "description": "YYYY-MM-DD"},
            "end_date": {"type": "string", "description": "YYYY-MM-DD, inclusive"},
            "goal": {"type": "string"},
        },
        ["name", "platforms", "budget", "start_date", "end_date"],
    ),
    _function(
        "list_assets",
        "List creative assets with optional type filter.",
        {
            "type": {"type": "string", "enum": ["image", "video", "text", "reddit_ad"]},
            "limit": _LIMIT,
        },
    ),
    _function(
        "get_asset",
        "Get one asset by ID.",
        {"asset_id": {"type": "string", "format": "uuid"}},
        ["asset_id"],
    ),
    _function(
        "list_audiences",
        "List audience segments.",
        {"status": {"type": "string", "enum": ["active", "archived"]}, "limit": _LIMIT},
    ),
    _function(
        "get_audience",
        "Get one audience by ID.",
        {"audience_id": {"type": "string", "format": "uuid"}},
        ["audience_id"],
    ),
    _function(
        "assign_asset_to_campaign",
        "Assign an asset to a campaign.",
        {"campaign_id": {"type": "integer"}, "asset_id": {"type": "string"}},
        ["campaign_id", "asset_id"],
    ),
    _function(
        "assign_audience_to_campaign",
        "Assign an audience to a campaign.",
        {"campaign_id": {"type": "integer"}, "audience_id": {"type": "string"}},
        ["campaign_id", "audience_id"],
    ),
    _function(
        "get_budget_status",
        "Show the monthly budget limit, committed spend and remaining budget "
        "for a month and the two months after it.",
        {
            "year": {"type": "integer"},
            "month": {"type": "integer", "minimum": 1, "maximum": 12},
        },
    ),
]

ALLOWED_TOOLS = frozenset(tool["function"]["name"] for tool in AGENT_TOOLS)

RESTRICTED_OPERATIONS = frozenset(
    {
        "update_campaign",
        "delete_campaign",
        "update_asset",
        "delete_asset",
        "update_audience",
        "delete_audience",
    }
)


def restriction_message(name: str) -> str:
    """Explain to the end user why a tool cannot be used."""
    if "update" in name:
        return (
            "I can view existing resources and create new ones, but I cannot "
            "update existing resources."
        )
    if "delete" in name:
        return "I cannot delete resources. Please use the dashboard instead."
    return "This operation is not allowed for the hosted agent."


def _query(arguments: dict[str, Any], *keys: str) -> dict[str, Any]:
    return {key: arguments[key] for key in keys if arguments.get(key) is not None}


def execute_tool(
    client: AdAgentClient, name: str, arguments: dict[str, Any]
) -> dict[str, Any]:
    """Run one tool call against the Agent API.

    Parameters
    ----------
    client : AdAgentClient
        Client authenticated with the agent's API key.
    name : str
        Tool name chosen by the model.
    arguments : dict[str, Any]
        Decoded tool arguments.

    Returns
    -------
    dict[str, Any]
        The ``data`` object of the API response, ready to hand back to the
        model.

    Raises
    ------
    ToolNotAllowedError
        When ``name`` is not in :data:`ALLOWED_TOOLS`.
    AdAgentAPIError
        When the API rejects the call.
    """
    if name not in ALLOWED_TOOLS:
        raise ToolNotAllowedError(f'Tool "{name}" is not allowed: {restriction_message(name)}')

    if name == "list_campaigns":
        return client.request(
            "GET", "/campaigns/list", params=_query(arguments, "status", "limit")
        )
    if name == "get_campaign":
        return client.request("GET", f"/campaigns/{int(arguments['campaign_id'])}/get")
    if name == "create_campaign":
        payload = _query(
            arguments, "name", "platforms", "budget", "start_date", "end_date", "goal"
        )
        return client.request("POST", "/campaigns/create", json=payload)
    if name == "list_assets":
        return client.request(
            "GET", "/assets/list", params=_query(arguments, "type", "limit")
        )
    if name == "get_asset":
        return client.request("GET", f"/assets/{arguments['asset_id']}/get")
    if name == "list_audiences":
        return client.request(
            "GET", "/audiences/list", params=_query(arguments, "status", "limit")
        )
    if name == "get_audience":
        return client.request("GET", f"/audiences/{arguments['audience_id']}/get")
    if name == "assign_asset_to_campaign":
        return client.request(
            "POST",
            f"/campaigns/{int(arguments['campaign_id'])}/assets",
            json={"asset_id": str(arguments["asset_id"])},
        )
    if name == "assign_audience_to_campaign":
        return client.request(
            "POST",
            f"/campaigns/{int(arguments['campaign_id'])}/audiences",
            json={"audience_id": str(arguments["audience_id"])},
        )
    return client.request(
        "GET", "/budget/status", params=_query(arguments, "year", "month")
    )
