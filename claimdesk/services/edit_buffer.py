"""
Ledger Edit Buffer - committed ledger state plus in-flight local edits.

The committed snapshot is whatever the store last returned. Local edits are
line items the user is still typing or that are waiting to be saved. A
background refresh replaces only the committed snapshot; local edits survive
until they are explicitly saved or discarded.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple


def _as_record(item) -> Dict[str, Any]:
    if hasattr(item, 'to_dict'):
        return item.to_dict()
    return dict(item)


class LedgerEditBuffer:
    """Holds one assessment's committed ledger and its unsaved edits."""

    def __init__(self, committed: Iterable = ()):
        self._committed: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
        self._local: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self.reconcile(committed)

    @property
    def committed(self) -> List[Dict[str, Any]]:
        return list(self._committed.values())

    @property
    def local_edits(self) -> List[Tuple[str, Dict[str, Any]]]:
        return list(self._local.items())

    @property
    def has_unsaved_edits(self) -> bool:
        return bool(self._local)

    def stage(self, key: str, edit: Dict[str, Any]) -> None:
        """Create or update an in-flight edit (e.g. a new additional being typed)."""
        current = self._local.get(key, {})
        current.update(edit)
        self._local[key] = current

    def discard(self, key: str) -> Optional[Dict[str, Any]]:
        return self._local.pop(key, None)

    def reconcile(self, committed: Iterable) -> None:
        """
        Replace the committed snapshot with fresh store state.

        Local edits are left untouched.
        """
        snapshot = OrderedDict()
        for item in committed:
            record = _as_record(item)
            snapshot[record['id']] = record
        self._committed = snapshot

    def mark_saved(self, key: str, item) -> Dict[str, Any]:
        """Promote a local edit to committed once the store accepted it."""
        record = _as_record(item)
        self._local.pop(key, None)
        self._committed[record['id']] = record
        return record

    def view(self) -> List[Dict[str, Any]]:
        """Committed entries in audit order followed by unsaved edits."""
        rows = [dict(record, unsaved=False) for record in self._committed.values()]
        for key, edit in self._local.items():
            rows.append(dict(edit, local_key=key, unsaved=True))
        return rows
