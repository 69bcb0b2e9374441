"""Static reference documents exposed as MCP resources."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from evm_mcp.chains import BLOCK_EXPLORERS, supported_chains_summary

# Gas price reference points, in Gwei.
GAS_REFERENCE_POINTS: Dict[str, Dict[str, int]] = {
    "ethereum": {"low": 20, "average": 40, "high": 100, "veryHigh": 200},
}


class ResourceNotFoundError(KeyError):
    """Raised when a resource URI is not registered."""


@dataclass(slots=True, frozen=True)
class ResourceDefinition:
    name: str
    uri: str
    description: str
    loader: Callable[[], Any]
    mime_type: str = "application/json"


RESOURCES: Dict[str, ResourceDefinition] = {
    resource.uri: resource
    for resource in (
        ResourceDefinition(
            name="gas-reference",
            uri="evm://docs/gas-reference",
            description="Typical gas price bands (Gwei) per chain.",
            loader=lambda: GAS_REFERENCE_POINTS,
        ),
        ResourceDefinition(
            name="block-explorers",
            uri="evm://docs/block-explorers",
            description="Block explorer front-end URLs per chain.",
            loader=lambda: BLOCK_EXPLORERS,
        ),
        ResourceDefinition(
            name="supported-chains",
            uri="evm://docs/supported-chains",
            description="Chains this server can query, with native token details.",
            loader=supported_chains_summary,
        ),
    )
}


def list_resources() -> List[Dict[str, str]]:
    return [
        {
            "name": resource.name,
            "uri": resource.uri,
            "description": resource.description,
            "mimeType": resource.mime_type,
        }
        for resource in RESOURCES.values()
    ]


def read_resource(uri: str) -> Dict[str, Any]:
    resource = RESOURCES.get(uri)
    if resource is None:
        raise ResourceNotFoundError(uri)
    return {
        "contents": [
            {
                "uri": resource.uri,
                "mimeType": resource.mime_type,
                "text": json.dumps(resource.loader(), indent=2),
            }
        ]
    }
