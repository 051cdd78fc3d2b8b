"""SiYuan Share Publisher

Publishes a SiYuan document to a share server:

- Converts SiYuan kramdown to portable Markdown
- Resolves transitive block references with cycle and depth guards
- Uploads local assets to S3-compatible storage (AWS SigV4 or OSS signing)
- Rewrites asset links to their public URLs
- Falls back to the kernel forward proxy when direct uploads cannot connect

Basic Usage:
    1. Copy config.yaml.example to config.yaml
    2. Fill in the kernel token, share server and storage credentials
    3. Run: blockshare publish <doc-id> --title "My document"
"""

__version__ = "1.0.0"
__description__ = "Publish SiYuan documents with their assets to a share server"

from .models import (
    AddressingStyle,
    BlockReference,
    DeleteResult,
    DocAssetMapping,
    PublishOptions,
    PublishResult,
    SharePayload,
    ShareRecord,
    StorageConfig,
    StorageProvider,
    UploadedAsset,
    UploadProgress,
    UploadStatus,
)
from .errors import (
    ConfigurationError,
    CycleDetected,
    DeleteError,
    DepthExceeded,
    FetchError,
    NetworkTransportError,
    ParseError,
    PublisherError,
    RegistryError,
    RequestTimeoutError,
    SigningError,
    UploadError,
)
from .config_loader import ConfigLoader, get_nested
from .logger import setup_logging, ProgressTracker, log_section, log_config
from .converters import AssetExtractor, extract_assets, find_block_references, transform
from .resolver import ReferenceResolver
from .storage import ObjectStorageClient, create_signer
from .orchestrator import PublishOrchestrator

from .cli import main as cli_main

__all__ = [
    '__version__',
    '__description__',

    # Data models
    'AddressingStyle',
    'BlockReference',
    'DeleteResult',
    'DocAssetMapping',
    'PublishOptions',
    'PublishResult',
    'SharePayload',
    'ShareRecord',
    'StorageConfig',
    'StorageProvider',
    'UploadedAsset',
    'UploadProgress',
    'UploadStatus',

    # Errors
    'PublisherError',
    'ConfigurationError',
    'FetchError',
    'RequestTimeoutError',
    'ParseError',
    'CycleDetected',
    'DepthExceeded',
    'SigningError',
    'UploadError',
    'DeleteError',
    'NetworkTransportError',
    'RegistryError',

    # Configuration and logging
    'ConfigLoader',
    'get_nested',
    'setup_logging',
    'ProgressTracker',
    'log_section',
    'log_config',

    # Pipeline
    'transform',
    'find_block_references',
    'AssetExtractor',
    'extract_assets',
    'ReferenceResolver',
    'ObjectStorageClient',
    'create_signer',
    'PublishOrchestrator',

    # CLI entry point
    'cli_main',
]
