"""Python SDK for the campaign Agent API."""

from adagent_sdk.client import AdAgentClient
from adagent_sdk.exceptions import (
    AdAgentAPIError,
    AdAgentAuthError,
    AdAgentBudgetExceededError,
    AdAgentConflictError,
    AdAgentError,
    AdAgentNotFoundError,
    AdAgentPermissionError,
    AdAgentRateLimitError,
    AdAgentValidationError,
)
from adagent_sdk.tools import AGENT_TOOLS, ALLOWED_TOOLS, ToolNotAllowedError, execute_tool
from adagent_sdk.types import (
    Asset,
    Assignment,
    Audience,
    BudgetMonth,
    BudgetStatus,
    Campaign,
)

__all__ = [
    "AGENT_TOOLS",
    "ALLOWED_TOOLS",
    "AdAgentAPIError",
    "AdAgentAuthError",
    "AdAgentBudgetExceededError",
    "AdAgentClient",
    "AdAgentConflictError",
    "AdAgentError",
    "AdAgentNotFoundError",
    "AdAgentPermissionError",
    "AdAgentRateLimitError",
    "AdAgentValidationError",
    "Asset",
    "Assignment",
    "Audience",
    "BudgetMonth",
    "BudgetStatus",
    "Campaign",
    "ToolNotAllowedError",
    "execute_tool",
]
