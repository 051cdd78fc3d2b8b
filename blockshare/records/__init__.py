"""Local persistence of share records and per-document asset mappings."""

from .asset_records import AssetRecordStore
from .share_records import ShareRecordStore

__all__ = ['AssetRecordStore', 'ShareRecordStore']
