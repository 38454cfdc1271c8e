"""Display ordering and filtering of the note tree.

``project`` never touches the tree it is given; it builds a pruned, sorted copy.
"""

import locale
from typing import Callable, List, Optional, Tuple

from notetree.schemas.tree import NodeKind, SortPolicy, TreeNode

SortKey = Callable[[TreeNode], Tuple]


def name_key(name: str) -> Tuple[str, str]:
    """Locale-aware collation key, falling back to codepoint order on ties."""
    try:
        collated = locale.strxfrm(name.casefold())
    except (ValueError, OSError):  # pragma: no cover
        collated = name.casefold()
    return collated, name


def _kind_rank(node: TreeNode) -> int:
    # folders before notes, whatever the policy
    return 0 if node.kind == NodeKind.CONTAINER else 1


def _sort_children(children: List[TreeNode], policy: SortPolicy) -> List[TreeNode]:
    by_name = sorted(children, key=lambda n: name_key(n.name))

    if policy == SortPolicy.NAME_ASC:
        ordered = by_name
    elif policy == SortPolicy.NAME_DESC:
        ordered = list(reversed(by_name))
    elif policy in (SortPolicy.MODIFIED_ASC, SortPolicy.MODIFIED_DESC):
        # sorted() is stable, so equal timestamps keep name ascending
        ordered = sorted(
            by_name,
            key=lambda n: n.modified_at if policy == SortPolicy.MODIFIED_ASC else -n.modified_at,
        )
    elif policy in (SortPolicy.CREATED_ASC, SortPolicy.CREATED_DESC):
        ordered = sorted(
            by_name,
            key=lambda n: n.created_at if policy == SortPolicy.CREATED_ASC else -n.created_at,
        )
    else:  # pragma: no cover
        raise ValueError(f"Unsupported sort policy: {policy}")

    return sorted(ordered, key=_kind_rank)


def _matches(node: TreeNode, needle: str) -> bool:
    return needle in node.name.casefold()


def _filter(node: TreeNode, needle: str) -> Optional[TreeNode]:
    """Return a pruned copy of ``node``, or None when nothing under it matches.

    A matching container is kept even with no matching children, but only its
    matching or retaining children are kept.
    """
    if node.kind == NodeKind.LEAF:
        return node.model_copy() if _matches(node, needle) else None

    kept = []
    for child in node.children or []:
        pruned = _filter(child, needle)
        if pruned is not None:
            kept.append(pruned)
    if not kept and not _matches(node, needle):
        return None
    return node.model_copy(update={"children": kept})


def _sort(node: TreeNode, policy: SortPolicy) -> TreeNode:
    if node.kind == NodeKind.LEAF:
        return node.model_copy()
    children = [_sort(child, policy) for child in node.children or []]
    return node.model_copy(update={"children": _sort_children(children, policy)})


def project(
    tree: TreeNode,
    sort_policy: SortPolicy = SortPolicy.NAME_ASC,
    filter_query: Optional[str] = None,
) -> TreeNode:
    """Derive a display-ready copy of ``tree``.

    Args:
        tree: Root (or any container) of the tree to project
        sort_policy: Ordering applied at every level; folders always come first
        filter_query: Case-insensitive substring matched against node names. A
            folder is kept when it matches or any descendant matches; blank
            queries disable filtering.

    Returns:
        A new tree. The root is always returned, possibly with no children.
    """
    needle = (filter_query or "").strip().casefold()

    projected: TreeNode = tree
    if needle:
        kept = []
        for child in tree.children or []:
            pruned = _filter(child, needle)
            if pruned is not None:
                kept.append(pruned)
        projected = tree.model_copy(update={"children": kept})

    return _sort(projected, sort_policy)
