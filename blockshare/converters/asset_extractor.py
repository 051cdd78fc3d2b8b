"""Extraction and rewriting of local asset references in Markdown."""

import logging
import re
from typing import Dict, Iterable, Optional, Set, Tuple

from bs4 import BeautifulSoup

logger = logging.getLogger('blockshare.converters.assets')

DEFAULT_ASSET_PREFIXES: Tuple[str, ...] = ('assets/', '/assets/')

REMOTE_SCHEMES = ('http://', 'https://', 'data:')

# ![alt](path "title") and [text](path "title"); the path stops at whitespace or ')'
MARKDOWN_IMAGE = re.compile(r'!\[[^\]\n]*\]\(\s*<?([^)\s>]+)>?(?:\s+"[^"\n]*")?\s*\)')
MARKDOWN_LINK = re.compile(r'(?<!!)\[[^\]\n]*\]\(\s*<?([^)\s>]+)>?(?:\s+"[^"\n]*")?\s*\)')

HTML_IMG_HINT = re.compile(r'<img\b', re.IGNORECASE)


class AssetExtractor:
    """Finds local asset paths in Markdown and swaps them for public URLs."""

    def __init__(self, asset_prefixes: Optional[Iterable[str]] = None):
        """
        Args:
            asset_prefixes: Path prefixes that mark a reference as a local asset
        """
        self.asset_prefixes = tuple(asset_prefixes or DEFAULT_ASSET_PREFIXES)

    def is_local_asset(self, path: str) -> bool:
        if not path:
            return False
        if path.lower().startswith(REMOTE_SCHEMES):
            return False
        return path.startswith(self.asset_prefixes)

    def extract(self, markdown: str) -> Set[str]:
        """
        Collect local asset paths from images, links and ``<img>`` tags.

        Args:
            markdown: Markdown content

        Returns:
            Deduplicated set of local paths
        """
        if not markdown:
            return set()

        candidates = []
        candidates.extend(MARKDOWN_IMAGE.findall(markdown))
        candidates.extend(MARKDOWN_LINK.findall(markdown))

        if HTML_IMG_HINT.search(markdown):
            soup = BeautifulSoup(markdown, 'html.parser')
            for img in soup.find_all('img'):
                src = img.get('src')
                if src:
                    candidates.append(src.strip())

        paths = {path for path in candidates if self.is_local_asset(path)}
        logger.debug(f"Extracted {len(paths)} local assets from {len(candidates)} references")
        return paths

    def rewrite(self, markdown: str, url_map: Dict[str, str]) -> str:
        """
        Replace every occurrence of each local path with its public URL.

        Longer paths are replaced first and a path only matches when it is not
        part of a longer path, so ``assets/a.png`` never rewrites inside
        ``assets/a.png.bak``.

        Args:
            markdown: Markdown content
            url_map: Local path to public URL

        Returns:
            Rewritten Markdown
        """
        if not markdown or not url_map:
            return markdown

        result = markdown
        for local_path in sorted(url_map, key=len, reverse=True):
            pattern = re.compile(r'(?<![\w/.-])' + re.escape(local_path) + r'(?![\w/.-])')
            result, count = pattern.subn(lambda _match, url=url_map[local_path]: url, result)
            logger.debug(f"Rewrote {count} occurrence(s) of {local_path}")
        return result


def extract_assets(markdown: str, asset_prefixes: Optional[Iterable[str]] = None) -> Set[str]:
    """Module-level shortcut for :meth:`AssetExtractor.extract`."""
    return AssetExtractor(asset_prefixes).extract(markdown)


__all__ = ['AssetExtractor', 'extract_assets', 'DEFAULT_ASSET_PREFIXES']
