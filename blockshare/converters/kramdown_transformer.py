"""Transformer from SiYuan kramdown to portable Markdown.

The transform is a fixed sequence of text passes. Each pass is a small regex
or line scan so that malformed input degrades to "left as is" rather than
failing.
"""

import logging
import re
from typing import List, NamedTuple, Optional

logger = logging.getLogger('blockshare.converters.kramdown')

BLOCK_ID_PATTERN = r'[0-9]{14,}-[0-9a-zA-Z]{7,}'

REF_PLACEHOLDER = 'ref'

FULL_WIDTH_SPACE = '\u3000'

METADATA_PREFIXES = ('title:', 'date:', 'lastmod:', 'updated:')

# Attribute groups never span lines; [^}\n] keeps every match on one line.
LIST_ITEM_IAL = re.compile(r'^([ \t]*[-*+][ \t]+)\{:[^}\n]*\}', re.MULTILINE)
ORDERED_ITEM_IAL = re.compile(r'^([ \t]*\d+\.[ \t]+)\{:[^}\n]*\}', re.MULTILINE)
INLINE_IAL = re.compile(r'\{:[^}\n]*\}')
IAL_ONLY_LINE = re.compile(r'^[ \t]*\{:[^}\n]*\}[ \t]*$', re.MULTILINE)
BLANKISH_LINE = re.compile(r'^[ \t\u3000]+$', re.MULTILINE)

BLOCK_REF = re.compile(
    r'\(\((' + BLOCK_ID_PATTERN + r')(?:[ \t]+(?:"([^"\n]*)"|\'([^\'\n]*)\'))?\)\)'
)

EMBED_QUERY = re.compile(r'\{\{[\s\S]+?\}\}')

EXCESS_BLANK_LINES = re.compile(r'\n{3,}')


class ReferenceToken(NamedTuple):
    """A ``((id "label"))`` occurrence found in native text."""
    block_id: str
    display_text: Optional[str] = None


def transform(native: str) -> str:
    """
    Convert SiYuan kramdown to Markdown.

    Args:
        native: Kramdown source as returned by the kernel

    Returns:
        Markdown text, empty string for empty or non-string input
    """
    if not native or not isinstance(native, str):
        return ''

    result = strip_attribute_lists(native)
    result = convert_block_references(result)
    result = strip_embed_queries(result)
    result = strip_front_matter(result)
    result = normalize_full_width_spaces(result)
    result = EXCESS_BLANK_LINES.sub('\n\n', result)
    return result.strip()


def strip_attribute_lists(content: str) -> str:
    """Remove ``{: ...}`` annotations and lines that held nothing else."""
    result = LIST_ITEM_IAL.sub(r'\1', content)
    result = ORDERED_ITEM_IAL.sub(r'\1', result)
    result = IAL_ONLY_LINE.sub('', result)
    result = INLINE_IAL.sub('', result)
    return BLANKISH_LINE.sub('', result)


def convert_block_references(content: str) -> str:
    """Replace ``((id "label"))`` with ``[label]`` and ``((id))`` with ``[ref]``."""
    def replace(match):
        label = match.group(2) or match.group(3)
        return f'[{label}]' if label else f'[{REF_PLACEHOLDER}]'

    return BLOCK_REF.sub(replace, content)


def strip_embed_queries(content: str) -> str:
    def replace(match):
        logger.debug(f"Removed embed query: {match.group(0)[:50]!r}")
        return ''

    return EMBED_QUERY.sub(replace, content)


def strip_front_matter(content: str) -> str:
    """
    Drop a leading ``---`` delimited block and document metadata lines.

    An opening delimiter without a matching close is kept as ordinary text.
    """
    lines = content.split('\n')
    kept: List[str] = []
    in_front_matter = False

    for index, line in enumerate(lines):
        stripped = line.strip()

        if stripped == '---':
            if in_front_matter:
                in_front_matter = False
                continue
            opens_document = index == 0 or (index == 1 and not kept)
            if opens_document and any(l.strip() == '---' for l in lines[index + 1:]):
                in_front_matter = True
                continue

        if in_front_matter:
            continue

        if stripped.startswith(METADATA_PREFIXES):
            continue

        kept.append(line)

    return '\n'.join(kept)


def normalize_full_width_spaces(content: str) -> str:
    lines = []
    for line in content.split('\n'):
        if line and line.strip(FULL_WIDTH_SPACE) == '':
            lines.append('')
            continue
        body = line.lstrip(FULL_WIDTH_SPACE)
        indent = ' ' * (len(line) - len(body))
        body = body.rstrip(FULL_WIDTH_SPACE)
        body = re.sub(FULL_WIDTH_SPACE + '+', ' ', body)
        lines.append(indent + body)
    return '\n'.join(lines)


def find_block_references(native: str, unique: bool = True) -> List[ReferenceToken]:
    """
    List the transclusion tokens of a native document in order.

    Args:
        native: Kramdown source
        unique: Keep only the first occurrence of each block id

    Returns:
        ReferenceToken list; labels may use single or double quotes
    """
    if not native or not isinstance(native, str):
        return []

    tokens: List[ReferenceToken] = []
    seen = set()
    for match in BLOCK_REF.finditer(native):
        block_id = match.group(1)
        if unique and block_id in seen:
            continue
        seen.add(block_id)
        tokens.append(ReferenceToken(block_id, match.group(2) or match.group(3) or None))
    return tokens


__all__ = [
    'BLOCK_ID_PATTERN',
    'ReferenceToken',
    'transform',
    'find_block_references',
]
