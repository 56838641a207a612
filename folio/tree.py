"""folio.tree - Nested tree view built from flat node rows"""

from typing import Optional, List, Dict, Iterator, Iterable

from .config import TREE_PREVIEW_LENGTH
from .models import NodeKind, TreeNode


def build_tree(rows: Iterable[Dict], preview_length: int = TREE_PREVIEW_LENGTH) -> List[TreeNode]:
    """
    Build a nested forest from flat {id, parent_id, kind, title,
    sort_order, content} rows.

    Siblings are ordered by sort_order, ties broken by id. A row whose
    parent is not in the row set is treated as a root so nothing is
    silently dropped.
    """
    rows = list(rows)
    ids = {row['id'] for row in rows}

    children: Dict[Optional[int], List[Dict]] = {}
    for row in rows:
        parent_id = row.get('parent_id')
        if parent_id not in ids:
            parent_id = None
        children.setdefault(parent_id, []).append(row)

    def attach(parent_id: Optional[int]) -> List[TreeNode]:
        siblings = sorted(
            children.get(parent_id, []),
            key=lambda r: (r.get('sort_order', 0), r['id']),
        )
        return [_tree_node(row, attach(row['id']), preview_length) for row in siblings]

    return attach(None)


def _tree_node(row: Dict, children: List[TreeNode], preview_length: int) -> TreeNode:
    trimmed = (row.get('content') or "").strip()
    kind = row['kind']
    return TreeNode(
        id=row['id'],
        title=row['title'],
        kind=kind if isinstance(kind, NodeKind) else NodeKind(kind),
        has_content=bool(trimmed),
        preview=trimmed[:preview_length],
        children=children,
    )


def walk(tree: List[TreeNode]) -> Iterator[TreeNode]:
    """Pre-order traversal of a forest."""
    stack = list(reversed(tree))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find_node(tree: List[TreeNode], node_id: int) -> Optional[TreeNode]:
    for node in walk(tree):
        if node.id == node_id:
            return node
    return None


def render_tree(tree: List[TreeNode], title: str = "Structure") -> str:
    """Indented outline with node ids and content previews."""
    output = [f"# {title}", ""]

    def render(node: TreeNode, depth: int):
        indent = "  " * depth
        line = f"{indent}[{node.id}] {node.title[:40]} ({node.kind.value})"
        if node.has_content:
            line += f' - "{node.preview}"'
        output.append(line)
        for child in node.children:
            render(child, depth + 1)

    for root in tree:
        render(root, 0)

    return "\n".join(output)
