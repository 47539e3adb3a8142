"""
Organization structure records — snapshots read from the org-structure API.

These are plain dataclasses, not ORM models: positions and departments
are owned by the remote API and the hierarchy engine never persists
them.  Reference fields (``department_id``, ``reports_to_position_id``,
``head_position_id``) keep whatever shape the API sent; compare them
only through ``orgchart.services.identifiers.normalize``.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator

from orgchart.services.identifiers import normalize


@dataclass
class Position:
    """
    One job slot within a department.

    ``reports_to_position_id`` names the organizational parent; ``None``
    means no declared parent.  Inactive positions are left out of every
    tree.
    """

    id: Any
    code: str = ""
    title: str = ""
    department_id: Any = None
    reports_to_position_id: Any = None
    is_active: bool = True
    description: str | None = None

    @classmethod
    def from_api(cls, record: dict[str, Any]) -> "Position":
        """
        Build a Position from an API record.

        The API uses camelCase and Mongo-style ``_id``::

            {
                "_id": "665f...",
                "code": "ENG-LEAD",
                "title": "Engineering Lead",
                "departmentId": {"_id": "6650...", "code": "ENG"},
                "reportsToPositionId": "665e...",
                "isActive": true
            }
        """
        # Use 'or' fallbacks: the API may send JSON null for optional keys.
        return cls(
            id=record.get("_id") or record.get("id"),
            code=record.get("code") or "",
            title=record.get("title") or "",
            department_id=record.get("departmentId"),
            reports_to_position_id=record.get("reportsToPositionId"),
            is_active=record.get("isActive", True) is not False,
            description=record.get("description"),
        )

    @property
    def key(self) -> str:
        """Normalized id of this position."""
        return normalize(self.id)

    @property
    def parent_key(self) -> str:
        """Normalized id of the reports-to position, or ``""``."""
        return normalize(self.reports_to_position_id)

    def __repr__(self) -> str:
        return f"<Position {self.code or self.key}: {self.title}>"


@dataclass
class Department:
    """Organizational unit owning a set of positions and a head pointer."""

    id: Any
    code: str = ""
    name: str = ""
    head_position_id: Any = None
    is_active: bool = True

    @classmethod
    def from_api(cls, record: dict[str, Any]) -> "Department":
        """Build a Department from an API record (``headPositionId`` may be populated)."""
        return cls(
            id=record.get("_id") or record.get("id"),
            code=record.get("code") or "",
            name=record.get("name") or "",
            head_position_id=record.get("headPositionId"),
            is_active=record.get("isActive", True) is not False,
        )

    @property
    def key(self) -> str:
        """Normalized id of this department."""
        return normalize(self.id)

    @property
    def head_key(self) -> str:
        """Normalized head position id, or ``""`` when no head is set."""
        return normalize(self.head_position_id)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready summary of the department."""
        return {
            "id": self.key,
            "code": self.code,
            "name": self.name,
            "head_position_id": self.head_key or None,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<Department {self.code or self.key}: {self.name}>"


@dataclass
class TreeNode:
    """
    Derived, read-only view of a position and its computed children.

    Rebuilt from a fresh snapshot on every render; never persisted.
    ``is_orphan_root`` marks roots that were attached by orphan
    reconciliation rather than reached from the department head.
    """

    position: Position
    children: list["TreeNode"] = field(default_factory=list)
    is_orphan_root: bool = False

    @property
    def id(self) -> str:
        return self.position.key

    def walk(self, depth: int = 0) -> Iterator[tuple["TreeNode", int]]:
        """Yield ``(node, depth)`` pairs in pre-order."""
        stack = [(self, depth)]
        while stack:
            node, level = stack.pop()
            yield node, level
            # Reverse so children come out in their original order.
            stack.extend((child, level + 1) for child in reversed(node.children))

    def ids(self) -> list[str]:
        """Normalized ids of this node and all descendants, pre-order."""
        return [node.id for node, _ in self.walk()]

    def size(self) -> int:
        """Number of nodes in this subtree."""
        return sum(1 for _ in self.walk())

    def to_dict(self) -> dict[str, Any]:
        """
        Return a JSON-ready nested structure for this subtree.

        Built with an explicit stack, like ``walk()``, so deep chains
        don't hit the recursion limit.
        """
        root = self._summary()
        stack = [(self, root)]
        while stack:
            node, payload = stack.pop()
            for child in node.children:
                child_payload = child._summary()
                payload["children"].append(child_payload)
                stack.append((child, child_payload))
        return root

    def _summary(self) -> dict[str, Any]:
        """This node's fields with an empty ``children`` list."""
        return {
            "id": self.id,
            "code": self.position.code,
            "title": self.position.title,
            "reports_to_position_id": self.position.parent_key or None,
            "is_orphan_root": self.is_orphan_root,
            "children": [],
        }


def forest_ids(forest: list[TreeNode]) -> list[str]:
    """Flatten a forest into its node ids, tree by tree, pre-order."""
    return [node_id for tree in forest for node_id in tree.ids()]
