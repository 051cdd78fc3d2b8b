"""Pure text conversions: kramdown to Markdown and asset reference handling."""

from .asset_extractor import AssetExtractor, extract_assets, DEFAULT_ASSET_PREFIXES
from .kramdown_transformer import (
    BLOCK_ID_PATTERN,
    ReferenceToken,
    find_block_references,
    transform,
)

__all__ = [
    'AssetExtractor',
    'extract_assets',
    'DEFAULT_ASSET_PREFIXES',
    'BLOCK_ID_PATTERN',
    'ReferenceToken',
    'find_block_references',
    'transform',
]
