"""Data models for the document export and asset publishing pipeline."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from blockshare.errors import ConfigurationError

logger = logging.getLogger('blockshare.models')


class StorageProvider(Enum):
    """Object store flavours with distinct request signing."""
    AWS = "aws"
    OSS = "oss"


class AddressingStyle(Enum):
    """Where the bucket name goes in an object URL."""
    AUTO = "auto"
    PATH = "path"
    VIRTUAL = "virtual"


class UploadStatus(Enum):
    """Lifecycle of a single asset upload."""
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


class ResolutionState(Enum):
    """Per-block state inside the reference resolver."""
    UNVISITED = "unvisited"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class BlockReference:
    """A resolved transclusion target, deduplicated by block id."""

    block_id: str
    content: str
    display_text: Optional[str] = None
    ref_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        """Serialize reference to the share registry wire shape."""
        data = {
            'blockId': self.block_id,
            'content': self.content,
            'refCount': self.ref_count,
        }
        if self.display_text:
            data['displayText'] = self.display_text
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BlockReference':
        return cls(
            block_id=data['blockId'],
            content=data.get('content', ''),
            display_text=data.get('displayText'),
            ref_count=int(data.get('refCount', 1)),
        )


@dataclass
class UploadedAsset:
    """An asset stored in the object store, one per unique content hash."""

    local_path: str
    object_key: str
    public_url: str
    content_type: str
    size_bytes: int
    content_hash: str
    uploaded_at: int  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        """Serialize asset to dictionary."""
        return {
            'localPath': self.local_path,
            'objectKey': self.object_key,
            'publicUrl': self.public_url,
            'contentType': self.content_type,
            'sizeBytes': self.size_bytes,
            'contentHash': self.content_hash,
            'uploadedAt': self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UploadedAsset':
        return cls(
            local_path=data['localPath'],
            object_key=data['objectKey'],
            public_url=data['publicUrl'],
            content_type=data.get('contentType', 'application/octet-stream'),
            size_bytes=int(data.get('sizeBytes', 0)),
            content_hash=data.get('contentHash', ''),
            uploaded_at=int(data.get('uploadedAt', 0)),
        )


@dataclass
class UploadProgress:
    """Transient progress event emitted while uploading one file."""

    file_name: str
    bytes_sent: int
    total_bytes: int
    status: UploadStatus
    error: Optional[str] = None

    @property
    def percentage(self) -> int:
        if self.total_bytes <= 0:
            return 100 if self.status == UploadStatus.SUCCESS else 0
        return max(0, min(100, int(self.bytes_sent * 100 / self.total_bytes)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fileName': self.file_name,
            'bytesSent': self.bytes_sent,
            'totalBytes': self.total_bytes,
            'percentage': self.percentage,
            'status': self.status.value,
            'error': self.error,
        }


@dataclass
class StorageConfig:
    """Object store connection settings."""

    REQUIRED_FIELDS = ('endpoint', 'region', 'bucket', 'access_key_id', 'secret_access_key')

    enabled: bool = False
    endpoint: str = ''
    region: str = ''
    bucket: str = ''
    access_key_id: str = ''
    secret_access_key: str = ''
    custom_domain: Optional[str] = None
    path_prefix: Optional[str] = None
    provider: StorageProvider = StorageProvider.AWS
    addressing: AddressingStyle = AddressingStyle.AUTO
    timeout: float = 60.0
    max_retries: int = 2

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'StorageConfig':
        """
        Build storage settings from the ``storage`` section of a loaded config.

        Args:
            config: Full configuration dictionary

        Returns:
            StorageConfig instance

        Raises:
            ValueError: If provider or addressing is not a known value
        """
        section = config.get('storage', {}) or {}
        return cls(
            enabled=bool(section.get('enabled', False)),
            endpoint=section.get('endpoint') or '',
            region=section.get('region') or '',
            bucket=section.get('bucket') or '',
            access_key_id=section.get('access_key_id') or '',
            secret_access_key=section.get('secret_access_key') or '',
            custom_domain=section.get('custom_domain') or None,
            path_prefix=section.get('path_prefix') or None,
            provider=StorageProvider(section.get('provider', 'aws')),
            addressing=AddressingStyle(section.get('addressing', 'auto')),
            timeout=float(section.get('timeout', 60)),
            max_retries=int(section.get('max_retries', 2)),
        )

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]

    def validate(self) -> None:
        """
        Ensure all connection fields are set when storage is enabled.

        Raises:
            ConfigurationError: If storage is enabled and any required field is empty
        """
        if not self.enabled:
            return
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(
                f"Storage configuration incomplete, missing: {', '.join(missing)}",
                fields=missing
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'endpoint': self.endpoint,
            'region': self.region,
            'bucket': self.bucket,
            'access_key_id': self.access_key_id,
            'secret_access_key': self.secret_access_key,
            'custom_domain': self.custom_domain,
            'path_prefix': self.path_prefix,
            'provider': self.provider.value,
            'addressing': self.addressing.value,
            'timeout': self.timeout,
            'max_retries': self.max_retries,
        }


@dataclass
class PublishOptions:
    """Caller-supplied access policy for one publish."""

    doc_id: str
    doc_title: str
    password: Optional[str] = None
    expire_days: int = 7
    is_public: bool = True

    @property
    def require_password(self) -> bool:
        return bool(self.password)


@dataclass
class SharePayload:
    """Everything the share registry needs to publish one document."""

    doc_id: str
    doc_title: str
    content: str
    require_password: bool
    password: str
    expire_days: int
    is_public: bool
    references: List[BlockReference] = field(default_factory=list)
    assets: List[UploadedAsset] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize payload to the share registry request body."""
        return {
            'docId': self.doc_id,
            'docTitle': self.doc_title,
            'content': self.content,
            'requirePassword': self.require_password,
            'password': self.password if self.require_password else '',
            'expireDays': self.expire_days,
            'isPublic': self.is_public,
            'references': [ref.to_dict() for ref in self.references],
            'assets': [asset.to_dict() for asset in self.assets],
        }


@dataclass
class ShareRecord:
    """Share registry acknowledgement, persisted locally per document."""

    share_id: str
    share_url: str
    doc_id: str
    doc_title: str
    require_password: bool = False
    is_public: bool = True
    expire_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    reused: bool = False
    view_count: Optional[int] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any], payload: SharePayload) -> 'ShareRecord':
        """Build a record from the registry ``data`` object, falling back to payload values."""
        return cls(
            share_id=str(data.get('shareId', '')),
            share_url=data.get('shareUrl', ''),
            doc_id=data.get('docId') or payload.doc_id,
            doc_title=data.get('docTitle') or payload.doc_title,
            require_password=bool(data.get('requirePassword', payload.require_password)),
            is_public=bool(data.get('isPublic', payload.is_public)),
            expire_at=data.get('expireAt'),
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
            reused=bool(data.get('reused', False)),
        )

    @classmethod
    def from_listing(cls, item: Dict[str, Any]) -> 'ShareRecord':
        """Build a record from one ``items`` entry of the registry share listing."""
        return cls(
            share_id=str(item.get('id') or item.get('shareId', '')),
            share_url=item.get('shareUrl', ''),
            doc_id=item.get('docId', ''),
            doc_title=item.get('docTitle', ''),
            require_password=bool(item.get('requirePassword', False)),
            is_public=bool(item.get('isPublic', True)),
            expire_at=item.get('expireAt'),
            created_at=item.get('createdAt'),
            updated_at=item.get('updatedAt') or item.get('createdAt'),
            view_count=item.get('viewCount'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shareId': self.share_id,
            'shareUrl': self.share_url,
            'docId': self.doc_id,
            'docTitle': self.doc_title,
            'requirePassword': self.require_password,
            'isPublic': self.is_public,
            'expireAt': self.expire_at,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
            'reused': self.reused,
            'viewCount': self.view_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShareRecord':
        return cls(
            share_id=data['shareId'],
            share_url=data.get('shareUrl', ''),
            doc_id=data.get('docId', ''),
            doc_title=data.get('docTitle', ''),
            require_password=bool(data.get('requirePassword', False)),
            is_public=bool(data.get('isPublic', True)),
            expire_at=data.get('expireAt'),
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
            reused=bool(data.get('reused', False)),
            view_count=data.get('viewCount'),
        )


@dataclass
class DocAssetMapping:
    """Uploaded assets owned by one published document."""

    doc_id: str
    share_id: str
    assets: List[UploadedAsset] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'docId': self.doc_id,
            'shareId': self.share_id,
            'assets': [asset.to_dict() for asset in self.assets],
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocAssetMapping':
        return cls(
            doc_id=data['docId'],
            share_id=data.get('shareId', ''),
            assets=[UploadedAsset.from_dict(item) for item in data.get('assets', [])],
            created_at=int(data.get('createdAt', 0)),
            updated_at=int(data.get('updatedAt', 0)),
        )


@dataclass
class DeleteResult:
    """Outcome of a batch object delete."""

    success: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'success': list(self.success), 'failed': list(self.failed)}


@dataclass
class PublishResult:
    """What a publish produced, including anything that degraded."""

    record: ShareRecord
    references: List[BlockReference] = field(default_factory=list)
    assets: List[UploadedAsset] = field(default_factory=list)
    failed_assets: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    degraded: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.failed_assets) or self.degraded

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record': self.record.to_dict(),
            'references': [ref.to_dict() for ref in self.references],
            'assets': [asset.to_dict() for asset in self.assets],
            'failedAssets': dict(self.failed_assets),
            'warnings': list(self.warnings),
            'degraded': self.degraded,
        }
