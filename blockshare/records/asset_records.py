"""
Per-document asset mappings.

Tracks which uploaded objects belong to which published document so that
republishing can skip unchanged assets and unpublishing can delete them.
Mappings are persisted as a single JSON file.
"""

import json
import logging
import os
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from blockshare.models import DocAssetMapping, UploadedAsset

logger = logging.getLogger('blockshare.records.assets')


def _now_ms() -> int:
    return int(time.time() * 1000)


class AssetRecordStore:
    """Mapping of document id to the assets uploaded for it."""

    FILE_NAME = 'asset-mappings.json'

    def __init__(self, directory: Optional[str] = None, clock: Callable[[], int] = _now_ms):
        """
        Args:
            directory: Where to persist mappings; memory only when None
            clock: Epoch milliseconds source for created/updated stamps
        """
        self.path = os.path.join(directory, self.FILE_NAME) if directory else None
        self._clock = clock
        self._lock = threading.RLock()
        self._mappings: Dict[str, DocAssetMapping] = {}
        self._load()

    def _load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable asset records at {self.path}: {e}")
            return
        for item in raw.get('mappings', []):
            mapping = DocAssetMapping.from_dict(item)
            self._mappings[mapping.doc_id] = mapping
        logger.debug(f"Loaded {len(self._mappings)} asset mappings from {self.path}")

    def _save(self) -> None:
        if not self.path:
            return
        os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
        tmp_path = self.path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({'mappings': [m.to_dict() for m in self._mappings.values()]}, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def add_or_update_mapping(self, doc_id: str, share_id: str, assets: Iterable[UploadedAsset]) -> DocAssetMapping:
        """
        Record assets for a document, merging with what is already there.

        Assets are keyed by object key and local path; a repeated pair
        replaces the old entry. Several local paths may share one object.

        Args:
            doc_id: Document id
            share_id: Share the assets were published under
            assets: Uploaded assets

        Returns:
            The stored mapping
        """
        with self._lock:
            now = self._clock()
            mapping = self._mappings.get(doc_id)
            if mapping is None:
                mapping = DocAssetMapping(doc_id=doc_id, share_id=share_id, created_at=now)
                self._mappings[doc_id] = mapping

            by_key = {(asset.object_key, asset.local_path): asset for asset in mapping.assets}
            for asset in assets:
                by_key[(asset.object_key, asset.local_path)] = asset

            mapping.assets = list(by_key.values())
            mapping.share_id = share_id
            mapping.updated_at = now
            self._save()

        logger.debug(f"Asset mapping for {doc_id}: {len(mapping.assets)} assets")
        return mapping

    def get_mapping(self, doc_id: str) -> Optional[DocAssetMapping]:
        with self._lock:
            return self._mappings.get(doc_id)

    def get_all_mappings(self) -> List[DocAssetMapping]:
        with self._lock:
            return list(self._mappings.values())

    def remove_mapping(self, doc_id: str) -> Optional[DocAssetMapping]:
        with self._lock:
            mapping = self._mappings.pop(doc_id, None)
            if mapping is not None:
                self._save()
            return mapping

    def remove_mapping_by_share_id(self, share_id: str) -> List[DocAssetMapping]:
        with self._lock:
            removed = [m for m in self._mappings.values() if m.share_id == share_id]
            for mapping in removed:
                del self._mappings[mapping.doc_id]
            if removed:
                self._save()
            return removed

    def find_asset_by_hash(self, content_hash: str) -> Optional[UploadedAsset]:
        """Any stored asset with this content hash, across all documents."""
        with self._lock:
            for mapping in self._mappings.values():
                for asset in mapping.assets:
                    if asset.content_hash == content_hash:
                        return asset
            return None

    def find_asset_by_local_path(self, doc_id: str, local_path: str) -> Optional[UploadedAsset]:
        with self._lock:
            mapping = self._mappings.get(doc_id)
            if mapping is None:
                return None
            for asset in mapping.assets:
                if asset.local_path == local_path:
                    return asset
            return None

    def remove_asset_from_doc(self, doc_id: str, object_key: str) -> bool:
        """Drop one asset from a document; the mapping goes when it is empty."""
        with self._lock:
            mapping = self._mappings.get(doc_id)
            if mapping is None:
                return False
            remaining = [a for a in mapping.assets if a.object_key != object_key]
            if len(remaining) == len(mapping.assets):
                return False
            if remaining:
                mapping.assets = remaining
                mapping.updated_at = self._clock()
            else:
                del self._mappings[doc_id]
            self._save()
            return True

    def remove_assets(self, object_keys: Iterable[str]) -> int:
        """Drop the given object keys from every mapping; returns how many were removed."""
        keys = set(object_keys)
        removed = 0
        with self._lock:
            for doc_id in list(self._mappings):
                mapping = self._mappings[doc_id]
                remaining = [a for a in mapping.assets if a.object_key not in keys]
                removed += len(mapping.assets) - len(remaining)
                if not remaining:
                    del self._mappings[doc_id]
                elif len(remaining) != len(mapping.assets):
                    mapping.assets = remaining
                    mapping.updated_at = self._clock()
            if removed:
                self._save()
        return removed

    def clear_all(self) -> None:
        with self._lock:
            self._mappings.clear()
            self._save()
        logger.debug("Cleared all asset mappings")

    def get_statistics(self) -> Dict[str, int]:
        with self._lock:
            return {
                'documents': len(self._mappings),
                'assets': sum(len(m.assets) for m in self._mappings.values()),
                'bytes': sum(a.size_bytes for m in self._mappings.values() for a in m.assets),
            }


__all__ = ['AssetRecordStore']
