"""Assemble flat component records into an ordered forest and back.

Everything here is in-memory and synchronous. Records reference their parent
by key only; the hierarchy is rebuilt on demand instead of being kept as
live back-pointers.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields, replace
from typing import Any

from pagecraft.lib.errors import InvalidError

SNAPSHOT_FORMAT = 1

DOCUMENT_FIELDS = (
    "properties",
    "styles",
    "content",
    "settings",
    "responsive_settings",
    "animation_settings",
    "interaction_settings",
)


@dataclass
class NodeRecord:
    """Storage-independent view of one page component."""

    key: str
    type: str
    parent_key: str | None = None
    sort_order: int = 0
    insert_seq: int = 0
    name: str = ""
    column: int = 1
    column_span: int = 12
    row: int = 1
    row_span: int = 1
    properties: dict[str, Any] = field(default_factory=dict)
    styles: dict[str, Any] = field(default_factory=dict)
    content: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    responsive_settings: dict[str, Any] = field(default_factory=dict)
    animation_settings: dict[str, Any] = field(default_factory=dict)
    interaction_settings: dict[str, Any] = field(default_factory=dict)
    css_classes: str | None = None
    custom_css: str | None = None
    is_visible: bool = True
    is_locked: bool = False

    @classmethod
    def from_component(cls, component) -> NodeRecord:
        """Build a record from a PageComponent row."""
        return cls(
            key=component.key,
            type=component.type,
            parent_key=component.parent_key,
            sort_order=component.sort_order,
            insert_seq=component.insert_seq,
            name=component.name or "",
            column=component.grid_column,
            column_span=component.grid_column_span,
            row=component.grid_row,
            row_span=component.grid_row_span,
            properties=dict(component.properties or {}),
            styles=dict(component.styles or {}),
            content=dict(component.content or {}),
            settings=dict(component.settings or {}),
            responsive_settings=dict(component.responsive_settings or {}),
            animation_settings=dict(component.animation_settings or {}),
            interaction_settings=dict(component.interaction_settings or {}),
            css_classes=component.css_classes,
            custom_css=component.custom_css,
            is_visible=component.is_visible,
            is_locked=component.is_locked,
        )

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeRecord:
        known = {f.name for f in fields(cls)}
        if not data.get("key"):
            raise InvalidError("component is missing its key")
        if not data.get("type"):
            raise InvalidError("component is missing its type", key=data.get("key"))
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class TreeNode:
    record: NodeRecord
    children: list[TreeNode] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.record.key


@dataclass(frozen=True)
class AssemblyWarning:
    """Integrity problem found while assembling; the node is kept as a root."""

    key: str
    parent_key: str | None
    reason: str


@dataclass
class AssembledForest:
    roots: list[TreeNode]
    warnings: list[AssemblyWarning] = field(default_factory=list)

    @property
    def has_orphans(self) -> bool:
        return bool(self.warnings)


def _sibling_sort_key(record: NodeRecord) -> tuple[int, int]:
    return (record.sort_order, record.insert_seq)


def assemble(records: Iterable[NodeRecord]) -> AssembledForest:
    """Group records by parent key and attach children in sibling order.

    A record whose parent is missing from the input, or that sits in a
    parent cycle, is promoted to a root and reported in ``warnings``.

    Raises:
        InvalidError: if two records share a key
    """
    records = list(records)
    by_key: dict[str, NodeRecord] = {}
    for record in records:
        if record.key in by_key:
            raise InvalidError(f"duplicate component key {record.key!r}", key=record.key)
        by_key[record.key] = record

    groups: dict[str | None, list[NodeRecord]] = defaultdict(list)
    warnings: list[AssemblyWarning] = []
    for record in records:
        parent_key = record.parent_key
        if parent_key is not None and parent_key not in by_key:
            warnings.append(AssemblyWarning(record.key, parent_key, "missing parent"))
            parent_key = None
        groups[parent_key].append(record)

    for group in groups.values():
        group.sort(key=_sibling_sort_key)

    visited: set[str] = set()

    def build(record: NodeRecord) -> TreeNode:
        visited.add(record.key)
        node = TreeNode(record)
        stack = [node]
        while stack:
            current = stack.pop()
            for child in groups.get(current.key, ()):
                if child.key in visited:
                    continue
                visited.add(child.key)
                child_node = TreeNode(child)
                current.children.append(child_node)
                stack.append(child_node)
        return node

    roots = [build(record) for record in groups.get(None, ())]

    # Anything not reached from a root is stuck in a parent cycle
    stranded = [r for r in records if r.key not in visited]
    stranded.sort(key=_sibling_sort_key)
    for record in stranded:
        if record.key in visited:
            continue
        warnings.append(AssemblyWarning(record.key, record.parent_key, "parent cycle"))
        roots.append(build(record))

    return AssembledForest(roots=roots, warnings=warnings)


def flatten(roots: Sequence[TreeNode]) -> list[NodeRecord]:
    """Depth-first, pre-order list of the records in a forest."""
    result: list[NodeRecord] = []
    stack = list(reversed(roots))
    while stack:
        node = stack.pop()
        result.append(node.record)
        stack.extend(reversed(node.children))
    return result


def forest_to_dicts(roots: Sequence[TreeNode]) -> list[dict[str, Any]]:
    """Serialize a forest to nested JSON-compatible dicts."""

    def convert(node: TreeNode) -> dict[str, Any]:
        data = node.record.to_dict()
        data["children"] = [convert(child) for child in node.children]
        return data

    return [convert(root) for root in roots]


def forest_from_dicts(items: Sequence[dict[str, Any]]) -> list[TreeNode]:
    """Inverse of :func:`forest_to_dicts`.

    Parent keys are taken from the nesting, so a client only has to send a
    well-formed tree.
    """

    def convert(item: dict[str, Any], parent_key: str | None) -> TreeNode:
        data = {k: v for k, v in item.items() if k != "children"}
        data["parent_key"] = parent_key
        record = NodeRecord.from_dict(data)
        node = TreeNode(record)
        node.children = [convert(child, record.key) for child in item.get("children") or ()]
        return node

    return [convert(item, None) for item in items]


def normalize_orders(roots: Sequence[TreeNode], step: int) -> list[NodeRecord]:
    """Flatten a forest, respacing each sibling set by its list position."""
    result: list[NodeRecord] = []

    def visit(nodes: Sequence[TreeNode]) -> None:
        for index, node in enumerate(nodes):
            result.append(replace(node.record, sort_order=index * step))
            visit(node.children)

    visit(roots)
    return result
