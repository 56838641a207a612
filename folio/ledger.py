"""folio.ledger - Content version history"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, TYPE_CHECKING

from . import config
from .models import Version, VersionInfo

if TYPE_CHECKING:
    from .folio import Folio

logger = logging.getLogger(__name__)

LABEL_FORMAT = "%Y%m%dT%H%M%S"


class VersionLedger:
    """
    Historical snapshots of node content, keyed "<node_id>:<label>".

    The key prefix doubles as the per-node index: listing and pruning a
    node's versions is a single cursor range scan. Writes happen inside
    the caller's transaction so a snapshot commits together with the
    save that caused it.
    """

    def __init__(self, store: "Folio"):
        self.store = store

    @property
    def db(self):
        return self.store.versions_db

    @staticmethod
    def make_label(timestamp: float) -> str:
        """Version label with one-second granularity, e.g. 20261018T213045."""
        return datetime.fromtimestamp(timestamp).strftime(LABEL_FORMAT)

    @staticmethod
    def _prefix(node_id: int) -> bytes:
        return f"{node_id}:".encode()

    @staticmethod
    def _key(node_id: int, label: str) -> bytes:
        return f"{node_id}:{label}".encode()

    def _scan(self, txn, node_id: int) -> List[Dict]:
        prefix = self._prefix(node_id)
        entries = []
        cursor = txn.cursor(db=self.db)
        if not cursor.set_range(prefix):
            return entries
        for key, value in cursor.iternext():
            if not key.startswith(prefix):
                break
            entries.append(self.store._deserialize(value))
        return entries

    @staticmethod
    def _newest_first(entries: List[Dict]) -> List[Dict]:
        # Same-second versions still order by insertion via the id
        return sorted(entries, key=lambda e: (e['created_at'], e['id']), reverse=True)

    # =========================================================================
    # WRITES (caller's transaction)
    # =========================================================================

    def snapshot(self, txn, node_id: int, label: str, text: str, created_at: float) -> str:
        """
        Append a snapshot. If `label` is already taken for this node (two
        saves within one second), a counter suffix is added: label-1,
        label-2, ... Returns the label actually stored.
        """
        stored_label = label
        suffix = 0
        while txn.get(self._key(node_id, stored_label), db=self.db) is not None:
            suffix += 1
            stored_label = f"{label}-{suffix}"

        entry = {
            'id': self.store._next_id(txn, 'versions'),
            'node_id': node_id,
            'label': stored_label,
            'content': text,
            'created_at': created_at,
        }
        txn.put(self._key(node_id, stored_label), self.store._serialize(entry), db=self.db)
        logger.debug("Snapshot %s for node %s (%d chars)", stored_label, node_id, len(text))
        return stored_label

    def prune(self, txn, node_id: int, keep: Optional[int] = None) -> int:
        """Delete all but the `keep` newest versions of a node. Returns the number deleted."""
        if keep is None:
            keep = self.store.max_versions
        keep = max(keep, 0)

        stale = self._newest_first(self._scan(txn, node_id))[keep:]
        for entry in stale:
            txn.delete(self._key(node_id, entry['label']), db=self.db)

        if stale:
            logger.debug("Pruned %d old versions of node %s", len(stale), node_id)
        return len(stale)

    def purge(self, txn, node_id: int) -> int:
        """Delete every version of a node (node deletion cascade)."""
        entries = self._scan(txn, node_id)
        for entry in entries:
            txn.delete(self._key(node_id, entry['label']), db=self.db)
        return len(entries)

    # =========================================================================
    # READS
    # =========================================================================

    def history(self, node_id: int) -> List[Version]:
        """Full version records of a node, newest first."""
        with self.store._txn() as txn:
            entries = self._scan(txn, node_id)
        return [Version.from_dict(e) for e in self._newest_first(entries)]

    def list(self, node_id: int) -> List[VersionInfo]:
        """Version list entries, newest first, with a short preview."""
        return [
            VersionInfo(
                label=v.label,
                created_at=v.created_at,
                preview=v.content[:config.VERSION_PREVIEW_LENGTH],
            )
            for v in self.history(node_id)
        ]

    def get(self, node_id: int, label: str) -> Optional[str]:
        """Snapshot text, or None if there is no such version."""
        with self.store._txn() as txn:
            data = txn.get(self._key(node_id, label), db=self.db)
            if data is None:
                return None
            return self.store._deserialize(data).get('content') or ""

    def restore(self, node_id: int, label: str) -> bool:
        """
        Restore a node to the text of version `label`.

        Goes through the store's normal save path, so the content being
        replaced is itself kept as a new version and the restore can be
        undone by restoring that version. Returns False, touching
        nothing, if the version does not exist.
        """
        text = self.get(node_id, label)
        if text is None:
            logger.info("Cannot restore node %s: no version %s", node_id, label)
            return False

        result = self.store.save_content(node_id, text)
        return result.success
