"""Seed a demo organization, agent API key and creatives through the HTTP API."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import anyio
import httpx


@dataclass(frozen=True, slots=True)
class AssetSeed:
    """Creative asset seed definition.

    Attributes
    ----------
    name : str
        Asset name.
    type : str
        Asset type accepted by the Agent API.
    ad_format : str | None
        Optional ad format.
    ad_data : dict[str, Any]
        Format-specific payload.
    """

    name: str
    type: str
    ad_format: str | None = None
    ad_data: dict[str, Any] = field(default_factory=dict)


ASSETS: tuple[AssetSeed, ...] = (
    AssetSeed(
        name="Spring sale RSA",
        type="text",
        ad_format="rsa",
        ad_data={
            "headlines": ["Spring Sale", "Up To 40% Off", "Free Shipping"],
            "descriptions": ["Shop the spring range.", "Offer ends Sunday."],
        },
    ),
    AssetSeed(name="Hero banner", type="image"),
)

AUDIENCES: tuple[dict[str, Any], ...] = (
    {
        "name": "US runners 25-44",
        "age_min": 25,
        "age_max": 44,
        "genders": ["all"],
        "locations": ["US"],
        "interests": ["running", "fitness"],
    },
)


async def bootstrap(client: httpx.AsyncClient, organization_name: str) -> str:
    """Create the demo organization and return its admin token.

    Parameters
    ----------
    client : httpx.AsyncClient
        Unauthenticated API client.
    organization_name : str
        Organization to create.

    Returns
    -------
    str
        Plaintext admin token.
    """
    response = await client.post(
        "/v1/bootstrap",
        json={"organization_name": organization_name},
    )
    if response.status_code == 409:
        raise SystemExit(
            "Already bootstrapped; set ADAGENT_ADMIN_TOKEN to seed the existing org"
        )
    response.raise_for_status()
    return response.json()["admin_token"]["token"]


async def issue_api_key(client: httpx.AsyncClient, name: str) -> str:
    """Issue an agent API key with the default permissions.

    Parameters
    ----------
    client : httpx.AsyncClient
        Admin-authenticated API client.
    name : str
        Key name.

    Returns
    -------
    str
        Plaintext API key, shown once.
    """
    response = await client.post("/v1/admin/api-keys", json={"name": name})
    response.raise_for_status()
    return response.json()["api_key"]


async def seed_creatives(client: httpx.AsyncClient) -> None:
    """Create demo assets and audiences with an agent-authenticated client."""
    for asset in ASSETS:
        response = await client.post(
            "/api/v1/agent/assets/create",
            json={
                "name": asset.name,
                "type": asset.type,
                "ad_format": asset.ad_format,
                "ad_data": asset.ad_data,
            },
        )
        response.raise_for_status()
        print(f"seeded asset {asset.name}")
    for audience in AUDIENCES:
        response = await client.post("/api/v1/agent/audiences/create", json=audience)
        response.raise_for_status()
        print(f"seeded audience {audience['name']}")


async def main() -> None:
    """Seed demo data from environment variables.

    Returns
    -------
    None
        Seeds the organization and prints the issued API key.
    """
    base_url = os.environ.get("ADAGENT_BASE_URL", "http://127.0.0.1:8000")
    admin_token = os.environ.get("ADAGENT_ADMIN_TOKEN")

    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        if not admin_token:
            admin_token = await bootstrap(client, "Demo Org")
            print(f"admin token: {admin_token}")
        client.headers["Authorization"] = f"Bearer {admin_token}"
        api_key = await issue_api_key(client, "demo-agent")
        print(f"agent api key: {api_key}")

        client.headers["Authorization"] = f"Bearer {api_key}"
        await seed_creatives(client)


if __name__ == "__main__":
    anyio.run(main)
