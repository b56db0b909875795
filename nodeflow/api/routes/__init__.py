"""API route handlers."""

from nodeflow.api.routes.credentials import router as credentials_router
from nodeflow.api.routes.executions import router as executions_router
from nodeflow.api.routes.nodes import router as nodes_router
from nodeflow.api.routes.webhooks import router as webhooks_router
from nodeflow.api.routes.workflows import router as workflows_router

__all__ = [
    "credentials_router",
    "executions_router",
    "nodes_router",
    "webhooks_router",
    "workflows_router",
]
