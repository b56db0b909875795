"""Node type and node definition models.

NodeType is the closed set of node kinds a workflow may contain; every member
has exactly one executor in the node registry. NodeDefinition is a runtime
model (not persisted) describing a node kind for the catalog.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeType(str, Enum):
    """Every node kind a workflow graph can contain."""

    # Triggers
    INITIAL = "INITIAL"
    MANUAL_TRIGGER = "MANUAL_TRIGGER"
    WEBHOOK_TRIGGER = "WEBHOOK_TRIGGER"
    SCHEDULE_TRIGGER = "SCHEDULE_TRIGGER"

    # Communication
    SLACK_SEND_MESSAGE = "SLACK_SEND_MESSAGE"
    DISCORD_SEND_MESSAGE = "DISCORD_SEND_MESSAGE"
    EMAIL_SEND = "EMAIL_SEND"

    # AI
    OPENAI_CHAT = "OPENAI_CHAT"
    ANTHROPIC_CHAT = "ANTHROPIC_CHAT"
    GOOGLE_GEMINI_CHAT = "GOOGLE_GEMINI_CHAT"

    # Data
    JSON_PARSE = "JSON_PARSE"
    FILTER = "FILTER"
    SET_VARIABLE = "SET_VARIABLE"
    CODE_EXECUTE = "CODE_EXECUTE"

    # Database
    POSTGRES_QUERY = "POSTGRES_QUERY"
    MONGODB_QUERY = "MONGODB_QUERY"

    # Utility
    HTTP_REQUEST = "HTTP_REQUEST"
    DELAY = "DELAY"
    IF_CONDITION = "IF_CONDITION"
    MERGE = "MERGE"


TRIGGER_NODE_TYPES = frozenset(
    {
        NodeType.INITIAL,
        NodeType.MANUAL_TRIGGER,
        NodeType.WEBHOOK_TRIGGER,
        NodeType.SCHEDULE_TRIGGER,
    }
)


class NodeCategory(str, Enum):
    """Node category for organization and filtering."""

    TRIGGER = "trigger"
    COMMUNICATION = "communication"
    AI = "ai"
    DATA = "data"
    DATABASE = "database"
    UTILITY = "utility"


class NodeFieldType(str, Enum):
    """Supported configuration field types."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"
    ARRAY = "array"
    CODE = "code"
    CREDENTIAL = "credential"


@dataclass
class NodeField:
    """Definition of a node configuration field."""

    name: str
    display_name: str
    type: NodeFieldType
    description: str = ""
    required: bool = False
    default: Any = None
    options: list[str] | None = None  # For enum-like fields
    templated: bool = False  # Accepts {{...}} expressions


@dataclass
class NodeDefinition:
    """Complete node definition with metadata and configuration schema.

    Runtime model used for the node catalog. Not persisted to the database.
    """

    node_type: NodeType
    display_name: str  # Also used as the label in error messages
    description: str
    category: NodeCategory
    fields: list[NodeField] = field(default_factory=list)
    credential_types: list[str] = field(default_factory=list)
    output_handles: list[str] = field(default_factory=lambda: ["main"])
    version: str = "1.0.0"
    tags: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.node_type.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "category": self.category.value,
            "fields": [
                {
                    "name": f.name,
                    "display_name": f.display_name,
                    "type": f.type.value,
                    "description": f.description,
                    "required": f.required,
                    "default": f.default,
                    "options": f.options,
                    "templated": f.templated,
                }
                for f in self.fields
            ],
            "credential_types": self.credential_types,
            "output_handles": self.output_handles,
            "version": self.version,
            "tags": self.tags,
        }
