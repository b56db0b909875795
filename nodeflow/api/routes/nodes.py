"""Node library API endpoints.

Provides the catalog of registered workflow node types.
"""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status

from nodeflow.api.deps import CurrentUser
from nodeflow.models.node import NodeCategory
from nodeflow.nodes.registry import get_node_registry

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=dict[str, Any])
async def list_nodes(user: CurrentUser) -> dict[str, Any]:
    """List all available node types grouped by category."""
    registry = get_node_registry()
    categories: dict[str, list[dict[str, Any]]] = {}
    for definition in registry.list_all():
        categories.setdefault(definition.category.value, []).append(definition.to_dict())

    return {"total": len(registry), "categories": categories}


@router.get("/category/{category}", response_model=list[dict[str, Any]])
async def list_nodes_by_category(
    category: NodeCategory,
    user: CurrentUser,
) -> list[dict[str, Any]]:
    """List node types in one category."""
    return [d.to_dict() for d in get_node_registry().list_by_category(category)]


@router.get("/{node_type}", response_model=dict[str, Any])
async def get_node(node_type: str, user: CurrentUser) -> dict[str, Any]:
    """Get a node type definition.

    Raises:
        HTTPException: 404 if the node type is not registered
    """
    definition = get_node_registry().get_definition(node_type)
    if definition is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Node type '{node_type}' not found",
        )
    return definition.to_dict()
