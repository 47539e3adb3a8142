"""
Tree builder — reconstruct a department's position hierarchy.

Positions arrive as a flat list linked only by ``reports_to_position_id``
plus the department's ``head_position_id``.  ``build_forest`` turns that
into a forest: the tree rooted at the department head first, followed by
every position that the head's tree does not reach.  Nothing the
department owns is ever dropped, and every active position appears
exactly once, even when the reports-to links contain cycles.

The functions here are pure: no API calls, no Flask, no logging side
effects beyond debug output.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any

from orgchart.models.organization import Position, TreeNode
from orgchart.services.identifiers import normalize

logger = logging.getLogger(__name__)

ChildrenLookup = dict[str, list[Position]]


# =========================================================================
# Public API
# =========================================================================


def build_forest(
    positions: Iterable[Position | Mapping[str, Any]],
    department_id: Any,
    head_position_id: Any = None,
) -> list[TreeNode]:
    """
    Build the position forest for one department.

    Args:
        positions:        Position records (or raw API dicts).  May include
                          other departments' and inactive positions; both
                          are filtered out here.
        department_id:    Department whose positions are arranged.
        head_position_id: Optional head position, the root of the first tree.

    Returns:
        List of root ``TreeNode`` objects.  When the head resolves, the
        first root is the head; the rest are orphan roots.
    """
    department_positions = filter_department_positions(positions, department_id)
    if not department_positions:
        return []

    children_of = build_children_lookup(department_positions)
    by_id = {position.key: position for position in department_positions}
    placed: set[str] = set()

    head_key = normalize(head_position_id)
    head = by_id.get(head_key) if head_key else None

    if head is not None:
        roots = [_build_subtree(head, children_of, placed)]
    else:
        # No usable head: every position without a resolvable parent is
        # a root of its own tree.
        top_level = [p for p in department_positions if p.parent_key not in by_id]
        if not top_level:
            logger.debug(
                "Department %s has no root positions; showing %d positions flat",
                normalize(department_id),
                len(department_positions),
            )
            return [TreeNode(position=p) for p in department_positions]
        roots = [_build_subtree(p, children_of, placed) for p in top_level]

    roots.extend(reconcile_orphans(department_positions, children_of, placed))
    return roots


def reconcile_orphans(
    candidates: list[Position],
    children_of: ChildrenLookup,
    placed: set[str],
) -> list[TreeNode]:
    """
    Attach every candidate not yet in the forest as an extra root.

    Orphans whose parent lies outside ``candidates`` become roots first,
    in input order, each carrying its own descendants.  Whatever is still
    unplaced after that can only be part of a reports-to cycle; the first
    such position (input order) roots the rest of its loop.

    ``placed`` is updated in place with every id attached here.
    """
    known = {position.key for position in candidates}
    unplaced = [p for p in candidates if p.key not in placed]
    if not unplaced:
        return []

    orphan_roots: list[TreeNode] = []
    detached = [p for p in unplaced if p.parent_key not in known]
    for position in detached + unplaced:
        if position.key in placed:
            continue
        node = _build_subtree(position, children_of, placed)
        node.is_orphan_root = True
        orphan_roots.append(node)

    logger.debug(
        "Reconciled %d orphan root(s) covering %d position(s)",
        len(orphan_roots),
        len(unplaced),
    )
    return orphan_roots


# =========================================================================
# Helpers
# =========================================================================


def filter_department_positions(
    positions: Iterable[Position | Mapping[str, Any]],
    department_id: Any,
) -> list[Position]:
    """Return the active positions belonging to ``department_id``, in input order."""
    department_key = normalize(department_id)
    seen: set[str] = set()
    result: list[Position] = []

    for item in positions or []:
        position = item if isinstance(item, Position) else Position.from_api(item)
        if not position.is_active or not position.key:
            continue
        if normalize(position.department_id) != department_key:
            continue
        # A snapshot should never repeat an id; keep the first if it does.
        if position.key in seen:
            logger.warning("Duplicate position id %s in snapshot", position.key)
            continue
        seen.add(position.key)
        result.append(position)

    return result


def build_children_lookup(positions: list[Position]) -> ChildrenLookup:
    """Map each parent id to the positions reporting to it, in input order."""
    children_of: ChildrenLookup = defaultdict(list)
    for position in positions:
        if position.parent_key:
            children_of[position.parent_key].append(position)
    return dict(children_of)


def _build_subtree(
    root: Position,
    children_of: ChildrenLookup,
    placed: set[str],
) -> TreeNode:
    """
    Build the subtree under ``root``, skipping positions already placed.

    Iterative so deep chains don't hit the recursion limit; the
    ``placed`` check is what stops reports-to cycles.
    """
    root_node = TreeNode(position=root)
    placed.add(root.key)
    stack = [root_node]

    while stack:
        node = stack.pop()
        for child in children_of.get(node.id, []):
            if child.key in placed:
                continue
            placed.add(child.key)
            child_node = TreeNode(position=child)
            node.children.append(child_node)
            stack.append(child_node)

    return root_node


# =========================================================================
# Reporting-line queries
# =========================================================================


def reporting_chain(position_id: Any, positions: Iterable[Position]) -> list[str]:
    """
    Return the ids a position reports to, from direct parent up to the root.

    Stops at a missing parent, an unknown id, or the first repeat, so a
    cyclic snapshot still terminates.
    """
    by_id = {p.key: p for p in positions}
    chain: list[str] = []
    visited = {normalize(position_id)}
    current = by_id.get(normalize(position_id))

    while current is not None and current.parent_key:
        parent_key = current.parent_key
        if parent_key in visited:
            break
        chain.append(parent_key)
        visited.add(parent_key)
        current = by_id.get(parent_key)

    return chain


def direct_reports(position_id: Any, positions: Iterable[Position]) -> list[Position]:
    """Return the active positions that report directly to ``position_id``."""
    key = normalize(position_id)
    return [p for p in positions if p.is_active and key and p.parent_key == key]
