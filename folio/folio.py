"""folio.folio - Work/node/content store on LMDB"""

import json
import time
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterable, Iterator, Union
try:
    import lmdb
except ImportError:
    print("Please install lmdb: pip install lmdb")
    raise

from . import config
from .errors import NotFoundError, StorageError, ValidationError
from .ledger import VersionLedger
from .models import (
    DEFAULT_SKELETON, Content, Node, NodeKind, PromptTemplate, SaveResult, TreeNode, Work,
)
from .tree import build_tree

logger = logging.getLogger(__name__)


class Folio:
    """
    Versioned document tree for long-form writing.

    Uses LMDB for:
    - Snapshot-isolated reads (a tree is always built from one consistent view)
    - Atomic writes (one writer; every operation is a single transaction)
    - Memory-mapped I/O

    Sub-databases mirror the logical schema: works, nodes, contents,
    versions (owned by the VersionLedger), settings, prompts and meta
    (id sequences).
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        max_versions: int = config.MAX_VERSIONS,
        map_size: int = config.MAP_SIZE,
    ):
        self.db_path = Path(db_path or config.default_db_path())
        self.db_path.mkdir(parents=True, exist_ok=True)
        self.max_versions = max_versions

        try:
            self.env = lmdb.open(
                str(self.db_path / "data.lmdb"),
                map_size=map_size,
                max_dbs=8,
                writemap=True,
            )

            # Sub-databases
            with self.env.begin(write=True) as txn:
                self.works_db = self.env.open_db(b'works', txn=txn)
                self.nodes_db = self.env.open_db(b'nodes', txn=txn)
                self.contents_db = self.env.open_db(b'contents', txn=txn)
                self.versions_db = self.env.open_db(b'versions', txn=txn)
                self.settings_db = self.env.open_db(b'settings', txn=txn)
                self.prompts_db = self.env.open_db(b'prompts', txn=txn)
                self.meta_db = self.env.open_db(b'meta', txn=txn)
        except lmdb.Error as e:
            raise StorageError(f"Cannot open store at {self.db_path}: {e}") from e

        self.versions = VersionLedger(self)

    def __enter__(self) -> "Folio":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Close the store."""
        self.env.close()

    # =========================================================================
    # LOW-LEVEL HELPERS
    # =========================================================================

    @contextmanager
    def _txn(self, write: bool = False) -> Iterator[Any]:
        """Run one atomic unit against the store; LMDB errors become StorageError."""
        try:
            with self.env.begin(write=write) as txn:
                yield txn
        except lmdb.Error as e:
            logger.error("Store %s failed: %s", "write" if write else "read", e)
            raise StorageError(str(e)) from e

    def _serialize(self, obj: Any) -> bytes:
        return json.dumps(obj, default=str).encode('utf-8')

    def _deserialize(self, data: bytes) -> Any:
        return json.loads(data.decode('utf-8'))

    @staticmethod
    def _key(record_id: Union[int, str]) -> bytes:
        return str(record_id).encode()

    def _next_id(self, txn, table: str) -> int:
        """Allocate the next id for a table. Ids are never reused."""
        key = f"seq:{table}".encode()
        current = txn.get(key, db=self.meta_db)
        next_id = int(current.decode()) + 1 if current else 1
        txn.put(key, str(next_id).encode(), db=self.meta_db)
        return next_id

    def _iter_records(self, txn, db) -> Iterator[Dict]:
        cursor = txn.cursor(db=db)
        for _, value in cursor:
            yield self._deserialize(value)

    def _work_nodes(self, txn, work_id: int) -> List[Dict]:
        return [n for n in self._iter_records(txn, self.nodes_db) if n['work_id'] == work_id]

    @staticmethod
    def _validate_kind(kind: Union[NodeKind, str]) -> NodeKind:
        if isinstance(kind, NodeKind):
            return kind
        try:
            return NodeKind(kind)
        except ValueError:
            valid = ", ".join(k.value for k in NodeKind)
            raise ValidationError(f"Unknown node kind {kind!r} (expected one of: {valid})") from None

    @staticmethod
    def _validate_title(title: Any) -> str:
        if not isinstance(title, str):
            raise ValidationError(f"Title must be a string, got {type(title).__name__}")
        return title

    # =========================================================================
    # WORKS
    # =========================================================================

    def create_work(self, name: str, description: str = "", initialize: bool = True) -> Work:
        """Create a work, seeding the default structure unless initialize=False."""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Work name cannot be empty")

        now = time.time()
        with self._txn(write=True) as txn:
            work_id = self._next_id(txn, 'works')
            work = {
                'id': work_id,
                'name': name,
                'description': description or "",
                'created_at': now,
                'updated_at': now,
            }
            txn.put(self._key(work_id), self._serialize(work), db=self.works_db)

            if initialize:
                self._seed(txn, work_id, None, DEFAULT_SKELETON, [])

        logger.info("Created work %s (%s)", work_id, name)
        return Work.from_dict(work)

    def initialize_work(self, work_id: int) -> List[Node]:
        """Seed the canonical default structure into an existing work."""
        created: List[Node] = []
        with self._txn(write=True) as txn:
            if not txn.get(self._key(work_id), db=self.works_db):
                raise NotFoundError(f"Work {work_id} not found")
            self._seed(txn, work_id, None, DEFAULT_SKELETON, created)
        return created

    def _seed(self, txn, work_id: int, parent_id: Optional[int], entries: list, created: List[Node]):
        for kind, title, sort_order, children in entries:
            node = self._put_node(txn, work_id, parent_id, kind, title, sort_order)
            created.append(node)
            self._seed(txn, work_id, node.id, children, created)

    def get_work(self, work_id: int) -> Optional[Work]:
        with self._txn() as txn:
            data = txn.get(self._key(work_id), db=self.works_db)
            return Work.from_dict(self._deserialize(data)) if data else None

    def list_works(self) -> List[Work]:
        """All works, most recently updated first."""
        with self._txn() as txn:
            works = [Work.from_dict(w) for w in self._iter_records(txn, self.works_db)]
        return sorted(works, key=lambda w: (w.updated_at, w.id), reverse=True)

    def update_work(self, work_id: int, name: str, description: str = "") -> bool:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Work name cannot be empty")

        with self._txn(write=True) as txn:
            data = txn.get(self._key(work_id), db=self.works_db)
            if not data:
                return False
            work = self._deserialize(data)
            work['name'] = name
            work['description'] = description or ""
            work['updated_at'] = time.time()
            txn.put(self._key(work_id), self._serialize(work), db=self.works_db)
            return True

    def delete_work(self, work_id: int) -> bool:
        """Delete a work with all of its nodes, contents and versions."""
        with self._txn(write=True) as txn:
            key = self._key(work_id)
            if not txn.get(key, db=self.works_db):
                return False

            node_ids = [n['id'] for n in self._work_nodes(txn, work_id)]
            self._purge_nodes(txn, node_ids)
            txn.delete(key, db=self.works_db)

        logger.info("Deleted work %s (%d nodes)", work_id, len(node_ids))
        return True

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def _put_node(
        self,
        txn,
        work_id: int,
        parent_id: Optional[int],
        kind: NodeKind,
        title: str,
        sort_order: int,
    ) -> Node:
        node = Node(
            id=self._next_id(txn, 'nodes'),
            work_id=work_id,
            parent_id=parent_id,
            kind=kind,
            title=title,
            sort_order=sort_order,
            created_at=time.time(),
        )
        txn.put(self._key(node.id), self._serialize(node.to_dict()), db=self.nodes_db)
        return node

    def create_node(
        self,
        work_id: int,
        parent_id: Optional[int],
        kind: Union[NodeKind, str],
        title: str,
        sort_order: int = 0,
    ) -> Node:
        """
        Create a node under parent_id (None for a root node).

        Raises:
            ValidationError: unknown kind, non-string title or non-integer sort order
            NotFoundError: the work is missing, or parent_id is not a node of this work
        """
        node_kind = self._validate_kind(kind)
        self._validate_title(title)
        if not isinstance(sort_order, int) or isinstance(sort_order, bool):
            raise ValidationError(f"Sort order must be an integer, got {sort_order!r}")

        with self._txn(write=True) as txn:
            if not txn.get(self._key(work_id), db=self.works_db):
                raise NotFoundError(f"Work {work_id} not found")

            if parent_id is not None:
                parent_data = txn.get(self._key(parent_id), db=self.nodes_db)
                if not parent_data or self._deserialize(parent_data)['work_id'] != work_id:
                    raise NotFoundError(f"Parent node {parent_id} not found in work {work_id}")

            node = self._put_node(txn, work_id, parent_id, node_kind, title, sort_order)

        logger.debug("Created node %s under %s in work %s", node.id, parent_id, work_id)
        return node

    def get_node(self, node_id: int) -> Optional[Node]:
        with self._txn() as txn:
            data = txn.get(self._key(node_id), db=self.nodes_db)
            return Node.from_dict(self._deserialize(data)) if data else None

    def list_nodes(self, work_id: int) -> List[Node]:
        """All nodes of a work, in creation order."""
        with self._txn() as txn:
            nodes = [Node.from_dict(n) for n in self._work_nodes(txn, work_id)]
        return sorted(nodes, key=lambda n: n.id)

    def next_sort_order(self, work_id: int, parent_id: Optional[int]) -> int:
        """Sort order that places a new node after its existing siblings."""
        siblings = [n.sort_order for n in self.list_nodes(work_id) if n.parent_id == parent_id]
        return max(siblings) + 1 if siblings else 1

    def rename_node(self, node_id: int, title: str) -> bool:
        """Update a node's title. Returns False if the node does not exist."""
        self._validate_title(title)
        with self._txn(write=True) as txn:
            data = txn.get(self._key(node_id), db=self.nodes_db)
            if not data:
                return False

            node = self._deserialize(data)
            node['title'] = title
            txn.put(self._key(node_id), self._serialize(node), db=self.nodes_db)
            return True

    def delete_node(self, node_id: int) -> bool:
        """
        Delete a node and its whole subtree (children before parents),
        including their contents and versions. Returns False if the node
        does not exist.
        """
        with self._txn(write=True) as txn:
            data = txn.get(self._key(node_id), db=self.nodes_db)
            if not data:
                return False

            node = self._deserialize(data)
            children: Dict[int, List[int]] = {}
            for other in self._work_nodes(txn, node['work_id']):
                if other.get('parent_id') is not None:
                    children.setdefault(other['parent_id'], []).append(other['id'])

            doomed = self._post_order(node_id, children)
            self._purge_nodes(txn, doomed)

        logger.debug("Deleted node %s (%d nodes total)", node_id, len(doomed))
        return True

    @staticmethod
    def _post_order(root_id: int, children: Dict[int, List[int]]) -> List[int]:
        order = []
        stack = [(root_id, False)]
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                order.append(node_id)
                continue
            stack.append((node_id, True))
            for child_id in children.get(node_id, []):
                stack.append((child_id, False))
        return order

    def _purge_nodes(self, txn, node_ids: Iterable[int]):
        for node_id in node_ids:
            key = self._key(node_id)
            self.versions.purge(txn, node_id)
            txn.delete(key, db=self.contents_db)
            txn.delete(key, db=self.nodes_db)

    # =========================================================================
    # CONTENT
    # =========================================================================

    def get_content(self, node_id: int) -> str:
        """Current text of a node; empty when nothing has been saved."""
        with self._txn() as txn:
            data = txn.get(self._key(node_id), db=self.contents_db)
            if not data:
                return ""
            return self._deserialize(data).get('content') or ""

    def get_content_record(self, node_id: int) -> Optional[Content]:
        with self._txn() as txn:
            data = txn.get(self._key(node_id), db=self.contents_db)
            if not data:
                return None
            row = self._deserialize(data)
            return Content(
                id=row['id'],
                node_id=row['node_id'],
                content=row.get('content') or "",
                updated_at=row['updated_at'],
            )

    def save_content(self, node_id: int, text: str) -> SaveResult:
        """
        Save a node's content.

        When the node already has content and it differs from `text`, the
        previous text is snapshotted into the version ledger (and the
        ledger pruned to max_versions) in the same transaction as the
        overwrite. First saves and identical saves write no version.
        """
        if text is None:
            text = ""
        if not isinstance(text, str):
            raise ValidationError(f"Content must be a string, got {type(text).__name__}")

        key = self._key(node_id)
        with self._txn(write=True) as txn:
            if not txn.get(key, db=self.nodes_db):
                return SaveResult(success=False, node_id=node_id, message=f"Node {node_id} not found")

            now = time.time()
            label = None
            existing_data = txn.get(key, db=self.contents_db)

            if existing_data:
                existing = self._deserialize(existing_data)
                previous = existing.get('content') or ""
                if previous != text:
                    label = self.versions.snapshot(
                        txn, node_id, self.versions.make_label(now), previous, now
                    )
                    self.versions.prune(txn, node_id)
                content_id = existing['id']
            else:
                content_id = self._next_id(txn, 'contents')

            row = {
                'id': content_id,
                'node_id': node_id,
                'content': text,
                'updated_at': now,
            }
            txn.put(key, self._serialize(row), db=self.contents_db)

        if label:
            message = f"Saved. Previous content kept as version {label}"
        elif existing_data:
            message = "Saved (no changes)" if previous == text else "Saved"
        else:
            message = "Saved"
        return SaveResult(success=True, node_id=node_id, snapshot=label, message=message)

    # =========================================================================
    # TREE
    # =========================================================================

    def node_rows(self, work_id: int) -> List[Dict]:
        """Flat node+content rows of a work, read from one consistent snapshot."""
        rows = []
        with self._txn() as txn:
            for node in self._work_nodes(txn, work_id):
                content_data = txn.get(self._key(node['id']), db=self.contents_db)
                content = ""
                if content_data:
                    content = self._deserialize(content_data).get('content') or ""
                rows.append({
                    'id': node['id'],
                    'parent_id': node.get('parent_id'),
                    'kind': node['kind'],
                    'title': node['title'],
                    'sort_order': node.get('sort_order', 0),
                    'content': content,
                    'has_content': bool(content.strip()),
                })
        return rows

    def get_tree(self, work_id: int) -> List[TreeNode]:
        """Nested, display-ready view of a work's structure."""
        return build_tree(self.node_rows(work_id), preview_length=config.TREE_PREVIEW_LENGTH)

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self._txn() as txn:
            data = txn.get(key.encode(), db=self.settings_db)
            return self._deserialize(data) if data else default

    def set_setting(self, key: str, value: Any) -> bool:
        with self._txn(write=True) as txn:
            txn.put(key.encode(), self._serialize(value), db=self.settings_db)
        return True

    def delete_setting(self, key: str) -> bool:
        with self._txn(write=True) as txn:
            return txn.delete(key.encode(), db=self.settings_db)

    def all_settings(self) -> Dict[str, Any]:
        settings = {}
        with self._txn() as txn:
            cursor = txn.cursor(db=self.settings_db)
            for key, value in cursor:
                settings[key.decode()] = self._deserialize(value)
        return settings

    @staticmethod
    def _selection_key(work_id: int) -> str:
        return f"work_{work_id}_checked_nodes"

    def get_selection(self, work_id: int) -> List[int]:
        """Node ids last selected as reference context for a work."""
        value = self.get_setting(self._selection_key(work_id), [])
        try:
            return [int(v) for v in value]
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed selection for work %s: %r", work_id, value)
            return []

    def save_selection(self, work_id: int, node_ids: Iterable[int]) -> bool:
        ids = [int(v) for v in dict.fromkeys(node_ids)]
        return self.set_setting(self._selection_key(work_id), ids)

    # =========================================================================
    # PROMPT TEMPLATES
    # =========================================================================

    def create_prompt(self, name: str, content: str) -> PromptTemplate:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Prompt name cannot be empty")
        if not isinstance(content, str):
            raise ValidationError("Prompt content must be a string")

        now = time.time()
        with self._txn(write=True) as txn:
            prompt_id = self._next_id(txn, 'prompts')
            prompt = {
                'id': prompt_id,
                'name': name,
                'content': content,
                'created_at': now,
                'updated_at': now,
            }
            txn.put(self._key(prompt_id), self._serialize(prompt), db=self.prompts_db)
        return PromptTemplate.from_dict(prompt)

    def get_prompt(self, prompt_id: int) -> Optional[PromptTemplate]:
        with self._txn() as txn:
            data = txn.get(self._key(prompt_id), db=self.prompts_db)
            return PromptTemplate.from_dict(self._deserialize(data)) if data else None

    def list_prompts(self) -> List[PromptTemplate]:
        """All prompt templates, newest first."""
        with self._txn() as txn:
            prompts = [PromptTemplate.from_dict(p) for p in self._iter_records(txn, self.prompts_db)]
        return sorted(prompts, key=lambda p: (p.created_at, p.id), reverse=True)

    def update_prompt(self, prompt_id: int, name: str, content: str) -> bool:
        with self._txn(write=True) as txn:
            data = txn.get(self._key(prompt_id), db=self.prompts_db)
            if not data:
                return False
            prompt = self._deserialize(data)
            prompt['name'] = name
            prompt['content'] = content
            prompt['updated_at'] = time.time()
            txn.put(self._key(prompt_id), self._serialize(prompt), db=self.prompts_db)
            return True

    def delete_prompt(self, prompt_id: int) -> bool:
        with self._txn(write=True) as txn:
            return txn.delete(self._key(prompt_id), db=self.prompts_db)
