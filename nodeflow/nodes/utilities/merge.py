"""Merge node.

Combines the outputs of the upstream nodes that fed this node.

Modes:
- append: concatenate items (lists are flattened one level)
- merge: join object items sharing the same ``joinKey`` value
- combine: union of object inputs, later inputs win on key conflicts
"""

from dataclasses import dataclass, field
from typing import Any

from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeValidationError

MERGE_MODES = ("append", "merge", "combine")
OUTPUT_FORMATS = ("array", "object")


@dataclass
class MergeConfig:
    """Configuration for merge node."""

    mode: str = "append"
    join_key: str | None = None
    output_format: str | None = None
    sources: list[Any] = field(default_factory=list)


def _items(values: list[Any]) -> list[Any]:
    items: list[Any] = []
    for value in values:
        if isinstance(value, list):
            items.extend(value)
        elif value is not None:
            items.append(value)
    return items


def append_items(values: list[Any]) -> list[Any]:
    return _items(values)


def merge_by_key(values: list[Any], join_key: str) -> list[Any]:
    """Merge object items with equal ``join_key``; first occurrence keeps its position."""
    merged: list[Any] = []
    by_key: dict[str, dict[str, Any]] = {}
    for item in _items(values):
        if not isinstance(item, dict) or item.get(join_key) is None:
            merged.append(item)
            continue
        key = repr(item[join_key])
        if key in by_key:
            by_key[key].update(item)
        else:
            entry = dict(item)
            by_key[key] = entry
            merged.append(entry)
    return merged


def combine_objects(values: list[Any]) -> tuple[dict[str, Any], int]:
    """Union of dict inputs. Returns the union and the count of skipped inputs."""
    combined: dict[str, Any] = {}
    skipped = 0
    for value in values:
        if isinstance(value, dict):
            combined.update(value)
        elif value is not None:
            skipped += 1
    return combined, skipped


class MergeNode(BaseNode[MergeConfig]):
    """Merge node."""

    label = "Merge"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.MERGE,
            display_name="Merge",
            description="Combine the outputs of several upstream nodes",
            category=NodeCategory.UTILITY,
            fields=[
                NodeField(
                    name="mergeMode",
                    display_name="Mode",
                    type=NodeFieldType.STRING,
                    default="append",
                    options=list(MERGE_MODES),
                ),
                NodeField(
                    name="joinKey",
                    display_name="Join Key",
                    type=NodeFieldType.STRING,
                    description="Field matched between items in merge mode",
                ),
                NodeField(
                    name="outputFormat",
                    display_name="Output Format",
                    type=NodeFieldType.STRING,
                    options=list(OUTPUT_FORMATS),
                ),
                NodeField(
                    name="sources",
                    display_name="Sources",
                    type=NodeFieldType.ARRAY,
                    description="Variables or node outputs to merge; defaults to upstream outputs",
                ),
            ],
            tags=["merge", "combine", "utility"],
        )

    def validate_input(self, data: dict[str, Any]) -> MergeConfig:
        mode = data.get("mergeMode") or "append"
        if mode not in MERGE_MODES:
            raise NodeValidationError(f"Unknown merge mode: {mode}", field="mergeMode")

        join_key = data.get("joinKey") or None
        if mode == "merge" and not join_key:
            raise NodeValidationError("Merge mode requires a join key", field="joinKey")

        output_format = data.get("outputFormat") or None
        if output_format is not None and output_format not in OUTPUT_FORMATS:
            raise NodeValidationError(
                f"Unknown output format: {output_format}", field="outputFormat"
            )

        sources = data.get("sources") or []
        if not isinstance(sources, list):
            raise NodeValidationError("Sources must be a list", field="sources")

        return MergeConfig(
            mode=mode,
            join_key=join_key,
            output_format=output_format,
            sources=sources,
        )

    async def execute(self, config: MergeConfig, context: NodeContext) -> Any:
        if config.sources:
            values = [context.resolve_source(ref) for ref in config.sources]
        else:
            values = list(context.inputs.values())

        if config.mode == "combine":
            combined, skipped = combine_objects(values)
            if skipped:
                context.log(
                    LogLevel.WARN,
                    f"Skipped {skipped} non-object inputs while combining",
                )
            result: Any = [combined] if config.output_format == "array" else combined
            count = len(combined)
        else:
            if config.mode == "merge":
                items = merge_by_key(values, config.join_key or "")
            else:
                items = append_items(values)
            result = {"items": items} if config.output_format == "object" else items
            count = len(items)

        context.log(
            LogLevel.INFO,
            f"Merge completed using {config.mode} mode",
            {"inputs": len(values), "itemCount": count},
        )
        return result
