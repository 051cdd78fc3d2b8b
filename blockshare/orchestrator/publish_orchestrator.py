"""
Publish orchestrator for the end-to-end share pipeline.

Sequences: fetch native content -> transform -> resolve references and
publish assets side by side -> rewrite asset links -> submit to the share
registry -> persist records. Unpublishing reverses the registry and storage
side effects.
"""

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

from blockshare.config_loader import get_nested
from blockshare.converters.asset_extractor import AssetExtractor
from blockshare.converters.kramdown_transformer import transform
from blockshare.errors import ParseError, PublisherError
from blockshare.logger import ProgressTracker
from blockshare.models import (
    DeleteResult,
    PublishOptions,
    PublishResult,
    SharePayload,
    ShareRecord,
    StorageConfig,
    UploadedAsset,
    UploadProgress,
)
from blockshare.records.asset_records import AssetRecordStore
from blockshare.records.share_records import ShareRecordStore
from blockshare.resolver.reference_resolver import ReferenceResolver
from blockshare.sources.base_source import ContentSource, ShareRegistry
from blockshare.sources.content_cache import ContentCache
from blockshare.sources.kernel_client import KernelClient
from blockshare.sources.share_client import ShareApiClient
from blockshare.storage.client import ObjectStorageClient, content_hash
from blockshare.storage.transport import ProxyTransport

logger = logging.getLogger('blockshare.orchestrator')


class PublishOrchestrator:
    """Coordinates content, references, assets and the share registry for one document at a time."""

    LOOKUP_PAGE_SIZE = 50
    SYNC_PAGE_SIZE = 100
    SYNC_LIMIT = 1000

    def __init__(
        self,
        config: Dict[str, Any],
        source: ContentSource,
        registry: ShareRegistry,
        storage: Optional[ObjectStorageClient] = None,
        asset_records: Optional[AssetRecordStore] = None,
        share_records: Optional[ShareRecordStore] = None,
        content_cache: Optional[ContentCache] = None,
        resolver: Optional[ReferenceResolver] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            config: Loaded configuration dictionary
            source: Content source for native content and binaries
            registry: Share registry receiving payloads
            storage: Object storage client; asset publishing is skipped when None or disabled
            asset_records: Per-document asset mappings, in memory when None
            share_records: Local share records, in memory when None
            content_cache: Cache for native document content
            resolver: Reference resolver, built from ``config`` when None
            logger: Optional logger instance
        """
        self.config = config
        self.source = source
        self.registry = registry
        self.storage = storage
        self.asset_records = asset_records or AssetRecordStore()
        self.share_records = share_records or ShareRecordStore()
        self.content_cache = content_cache or ContentCache(get_nested(config, 'cache.ttl_seconds', 60))
        self.resolver = resolver or ReferenceResolver(
            source,
            max_depth=get_nested(config, 'resolver.max_depth', ReferenceResolver.DEFAULT_MAX_DEPTH),
            max_workers=get_nested(config, 'resolver.max_workers', ReferenceResolver.DEFAULT_MAX_WORKERS),
            fetch_timeout=get_nested(config, 'resolver.fetch_timeout', ReferenceResolver.DEFAULT_FETCH_TIMEOUT),
        )
        self.extractor = AssetExtractor(get_nested(config, 'storage.asset_prefixes'))
        self.fetch_timeout = get_nested(config, 'kernel.timeout', 20)
        self.logger = logger or logging.getLogger('blockshare.orchestrator')

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'PublishOrchestrator':
        """Wire the HTTP collaborators, storage client and record stores from configuration."""
        source = KernelClient.from_config(config)
        registry = ShareApiClient.from_config(config)

        storage_config = StorageConfig.from_config(config)
        storage = None
        if storage_config.enabled:
            storage = ObjectStorageClient(storage_config, fallback_transport=ProxyTransport(source))

        records_dir = get_nested(config, 'records.directory')
        return cls(
            config,
            source,
            registry,
            storage=storage,
            asset_records=AssetRecordStore(records_dir),
            share_records=ShareRecordStore(records_dir),
        )

    @property
    def storage_enabled(self) -> bool:
        return self.storage is not None and self.storage.config.enabled

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def load_native(self, doc_id: str, use_cache: bool = True) -> str:
        """Fetch the native document, coalescing concurrent and recent requests."""
        if not use_cache:
            self.content_cache.invalidate(doc_id)
        return self.content_cache.get_or_load(
            doc_id,
            lambda: self.source.fetch_block_content(doc_id, self.fetch_timeout)
        )

    def publish(
        self,
        options: PublishOptions,
        progress_callback: Optional[Callable[[UploadProgress], None]] = None,
        use_cache: bool = True
    ) -> PublishResult:
        """
        Publish one document.

        Args:
            options: Document id, title and access policy
            progress_callback: Receives per-file upload progress
            use_cache: Reuse native content fetched within the cache TTL

        Returns:
            PublishResult with the registry record and anything that degraded

        Raises:
            ConfigurationError: Storage enabled but incomplete
            FetchError: The document itself could not be fetched
            ParseError: The document transformed to nothing
            RegistryError: The share registry rejected the payload
        """
        if self.storage_enabled:
            self.storage.config.validate()

        self.logger.info(f"Publishing document {options.doc_id} ({options.doc_title})")
        native = self.load_native(options.doc_id, use_cache=use_cache)
        content = transform(native)
        if not content:
            raise ParseError(f"Document {options.doc_id} produced no Markdown content")

        warnings: List[str] = []
        degraded = False
        assets: List[UploadedAsset] = []
        failed_assets: Dict[str, str] = {}

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix='resolver') as executor:
            references_future = executor.submit(self.resolver.resolve_all, native, options.doc_id)

            if self.storage_enabled:
                try:
                    assets, failed_assets = self._publish_assets(options.doc_id, content, progress_callback)
                except Exception as e:
                    self.logger.error(f"Asset publishing failed, publishing without assets: {e}", exc_info=True)
                    warnings.append(f"Assets were not published: {e}")
                    degraded = True
                    assets, failed_assets = [], {}
            else:
                self.logger.debug("Object storage disabled; local asset links are kept")

            references = references_future.result()

        if assets:
            content = self.extractor.rewrite(content, {asset.local_path: asset.public_url for asset in assets})

        warnings.extend(str(reason) for reason in self.resolver.dropped)
        warnings.extend(f"Asset {path} kept as local link: {error}" for path, error in failed_assets.items())

        payload = SharePayload(
            doc_id=options.doc_id,
            doc_title=options.doc_title,
            content=content,
            require_password=options.require_password,
            password=options.password or '',
            expire_days=options.expire_days,
            is_public=options.is_public,
            references=references,
            assets=assets,
        )
        record = self.registry.create_share(payload)

        self.share_records.add_record(record)
        if assets:
            self.asset_records.add_or_update_mapping(options.doc_id, record.share_id, assets)

        result = PublishResult(
            record=record,
            references=references,
            assets=assets,
            failed_assets=failed_assets,
            warnings=warnings,
            degraded=degraded,
        )
        if result.partial:
            self.logger.warning(f"Published {record.share_url} with {len(warnings)} warning(s)")
        else:
            self.logger.info(f"Published {record.share_url}")
        return result

    def _publish_assets(
        self,
        doc_id: str,
        content: str,
        progress_callback: Optional[Callable[[UploadProgress], None]]
    ) -> Tuple[List[UploadedAsset], Dict[str, str]]:
        """
        Make every local asset of ``content`` available in object storage.

        Known local paths and known content hashes are reused; the rest are
        uploaded one at a time, once per distinct hash.

        Returns:
            (assets for the payload, local path -> error for assets left local)
        """
        paths = sorted(self.extractor.extract(content))
        if not paths:
            return [], {}

        assets: List[UploadedAsset] = []
        failed: Dict[str, str] = {}
        pending: Dict[str, Tuple[bytes, List[str]]] = {}

        for path in paths:
            prior = self.asset_records.find_asset_by_local_path(doc_id, path)
            if prior is not None:
                self.logger.debug(f"Reusing prior upload for {path}")
                assets.append(prior)
                continue

            try:
                data = self.source.fetch_binary(path)
            except PublisherError as e:
                self.logger.warning(f"Could not read asset {path}: {e}")
                failed[path] = str(e)
                continue

            hash_hex = content_hash(data)
            if hash_hex in pending:
                pending[hash_hex][1].append(path)
                continue

            existing = self.asset_records.find_asset_by_hash(hash_hex)
            if existing is not None:
                self.logger.debug(f"Reusing {existing.object_key} for {path} (same content)")
                assets.append(dataclasses.replace(existing, local_path=path))
                continue

            pending[hash_hex] = (data, [path])

        self.logger.info(
            f"Assets: {len(paths)} referenced, {len(assets)} reused, "
            f"{len(pending)} to upload, {len(failed)} unreadable"
        )

        with ProgressTracker(len(pending), 'assets') as tracker:
            for hash_hex, (data, same_paths) in pending.items():
                try:
                    uploaded = self.storage.upload(
                        same_paths[0],
                        data,
                        progress_callback=progress_callback,
                        precomputed_hash=hash_hex,
                    )
                except PublisherError as e:
                    self.logger.warning(f"Upload failed for {same_paths[0]}: {e}")
                    for path in same_paths:
                        failed[path] = str(e)
                    tracker.increment(success=False)
                    continue

                assets.append(uploaded)
                assets.extend(dataclasses.replace(uploaded, local_path=path) for path in same_paths[1:])
                tracker.increment(success=True)

        return assets, failed

    # ------------------------------------------------------------------
    # Unpublish
    # ------------------------------------------------------------------

    def find_record(self, doc_id: str) -> Optional[ShareRecord]:
        """
        Return the share of ``doc_id``, asking the registry when no local record exists.

        Raises:
            RegistryError: The registry listing could not be read
        """
        record = self.share_records.get_record_by_doc(doc_id)
        if record is not None:
            return record
        self.logger.info(f"No local share record for {doc_id}; looking it up on the registry")
        return self.registry.find_share_by_doc(doc_id, page_size=self.LOOKUP_PAGE_SIZE)

    def unpublish(self, doc_id: str) -> DeleteResult:
        """
        Remove a document's share and the objects only it uses.

        Returns:
            DeleteResult for the object deletes

        Raises:
            RegistryError: The registry could not be searched or refused the delete
        """
        record = self.find_record(doc_id)
        if record is None:
            self.logger.warning(f"No share found for {doc_id} locally or on the registry")
        else:
            self.registry.delete_share(record.share_id)
            self.share_records.remove_record(record.share_id)

        self.content_cache.invalidate(doc_id)
        return self.purge_assets(doc_id)

    def unpublish_many(self, doc_ids: List[str]) -> Tuple[Dict[str, List[str]], DeleteResult]:
        """
        Remove the shares of several documents with one batch registry call.

        Returns:
            (registry outcome ``{'deleted', 'notFound'}``, combined object DeleteResult)
        """
        share_ids = []
        for doc_id in doc_ids:
            record = self.find_record(doc_id)
            if record is None:
                self.logger.warning(f"No share found for {doc_id} locally or on the registry")
            else:
                share_ids.append(record.share_id)

        outcome: Dict[str, List[str]] = {'deleted': [], 'notFound': []}
        if share_ids:
            outcome = self.registry.delete_shares(share_ids)
            self.share_records.remove_records(outcome['deleted'] + outcome['notFound'])
            self.logger.info(
                f"Registry deleted {len(outcome['deleted'])} share(s), {len(outcome['notFound'])} already gone"
            )

        combined = DeleteResult()
        for doc_id in doc_ids:
            self.content_cache.invalidate(doc_id)
            result = self.purge_assets(doc_id)
            combined.success.extend(result.success)
            combined.failed.extend(result.failed)
        return outcome, combined

    def purge_assets(self, doc_id: str) -> DeleteResult:
        """
        Delete the stored objects mapped to ``doc_id``.

        Objects that another document also maps are only unlinked from this
        document. Keys that fail to delete stay in the mapping.
        """
        mapping = self.asset_records.get_mapping(doc_id)
        if mapping is None or not mapping.assets:
            return DeleteResult()

        if not self.storage_enabled:
            self.logger.warning(f"Object storage disabled; {len(mapping.assets)} objects of {doc_id} left in place")
            return DeleteResult()

        shared_keys = {
            asset.object_key
            for other in self.asset_records.get_all_mappings() if other.doc_id != doc_id
            for asset in other.assets
        }
        own_keys = sorted({a.object_key for a in mapping.assets} - shared_keys)
        for key in sorted({a.object_key for a in mapping.assets} & shared_keys):
            self.asset_records.remove_asset_from_doc(doc_id, key)

        result = self.storage.delete_many(own_keys)
        for key in result.success:
            self.asset_records.remove_asset_from_doc(doc_id, key)

        if result.failed:
            self.logger.warning(f"{len(result.failed)} of {len(own_keys)} objects could not be deleted")
        return result

    def sync_records(self) -> List[ShareRecord]:
        """Pull the registry's share listing and merge it into the local records."""
        remote = list(self.registry.iter_shares(page_size=self.SYNC_PAGE_SIZE, limit=self.SYNC_LIMIT))
        return self.share_records.merge(remote)

    def list_shares(self, sync: bool = False) -> List[ShareRecord]:
        if sync:
            return self.sync_records()
        return self.share_records.list_records()


__all__ = ['PublishOrchestrator']
