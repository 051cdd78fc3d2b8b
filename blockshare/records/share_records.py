"""Local record of shares created by this installation."""

import json
import logging
import os
import threading
from typing import Dict, Iterable, List, Optional

from blockshare.models import ShareRecord

logger = logging.getLogger('blockshare.records.shares')


class ShareRecordStore:
    """Share records keyed by share id, persisted as one JSON file."""

    FILE_NAME = 'share-records.json'

    def __init__(self, directory: Optional[str] = None):
        self.path = os.path.join(directory, self.FILE_NAME) if directory else None
        self._lock = threading.RLock()
        self._records: Dict[str, ShareRecord] = {}
        self._load()

    def _load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable share records at {self.path}: {e}")
            return
        for item in raw.get('records', []):
            record = ShareRecord.from_dict(item)
            self._records[record.share_id] = record

    def _save(self) -> None:
        if not self.path:
            return
        os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
        tmp_path = self.path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({'records': [r.to_dict() for r in self._records.values()]}, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def add_record(self, record: ShareRecord) -> None:
        """Store a record, replacing any older record for the same document."""
        with self._lock:
            for share_id in [sid for sid, r in self._records.items() if r.doc_id == record.doc_id]:
                del self._records[share_id]
            self._records[record.share_id] = record
            self._save()

    def merge(self, remote_records: Iterable[ShareRecord]) -> List[ShareRecord]:
        """
        Replace local records with the registry's view.

        Remote records win; local records the registry no longer lists are
        dropped. An empty remote listing leaves the local records untouched.

        Returns:
            The records after merging
        """
        remote = {record.share_id: record for record in remote_records}
        with self._lock:
            if not remote:
                return list(self._records.values())
            stale = [sid for sid in self._records if sid not in remote]
            for share_id in stale:
                logger.debug(f"Dropping share {share_id}; the registry no longer lists it")
            self._records = remote
            self._save()
            logger.info(f"Merged {len(remote)} share(s) from the registry, dropped {len(stale)} stale")
            return list(self._records.values())

    def get_record(self, share_id: str) -> Optional[ShareRecord]:
        with self._lock:
            return self._records.get(share_id)

    def get_record_by_doc(self, doc_id: str) -> Optional[ShareRecord]:
        with self._lock:
            for record in self._records.values():
                if record.doc_id == doc_id:
                    return record
            return None

    def list_records(self) -> List[ShareRecord]:
        with self._lock:
            return list(self._records.values())

    def remove_record(self, share_id: str) -> bool:
        with self._lock:
            if self._records.pop(share_id, None) is None:
                return False
            self._save()
            return True

    def remove_records(self, share_ids: Iterable[str]) -> int:
        with self._lock:
            removed = sum(1 for sid in set(share_ids) if self._records.pop(sid, None) is not None)
            if removed:
                self._save()
            return removed

    def clear_all(self) -> None:
        with self._lock:
            self._records.clear()
            self._save()


__all__ = ['ShareRecordStore']
