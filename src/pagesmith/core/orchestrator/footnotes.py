"""Footnote post-processing for improved pages.

Two idempotent passes run once a page has converged:

* ``deduplicate_footnotes`` merges numeric footnote definitions that cite the
  same URL, pointing every reference at the first-seen number.
* ``renumber_footnotes`` renumbers all markers (numeric ``[^1]`` and
  alphanumeric ``[^SRC-1]`` alike) by first inline appearance and rebuilds
  the definition block at the end of the document.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_NUMERIC_DEF_RE = re.compile(r"^\[\^(\d+)\]:\s*(.+)$", re.MULTILINE)
_PAREN_URL_RE = re.compile(r"\((https?://[^)]+)\)")
_BARE_URL_RE = re.compile(r"(https?://\S+)")

_ANY_DEF_RE = re.compile(r"^\[\^([^\]]+)\]:\s*(.+)$", re.MULTILINE)
_ANY_DEF_LINE_RE = re.compile(r"^\[\^([^\]]+)\]:\s*.+\n?", re.MULTILINE)
_INLINE_REF_RE = re.compile(r"\[\^([^\]]+)\]")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def _normalized_url(definition: str) -> str:
    """Citation key of a definition: its URL, or the raw text when it has none."""
    match = _PAREN_URL_RE.search(definition) or _BARE_URL_RE.search(definition)
    url = match.group(1) if match else definition
    return url.rstrip("/").lower()


def deduplicate_footnotes(content: str) -> str:
    """Merge footnotes that point at the same URL.

    Args:
        content: Page text with ``[^N]: ...`` definition lines.

    Returns:
        The content with references to later duplicates rewritten to the
        first-seen number and the duplicate definitions removed. Content
        with no duplicates is returned unchanged.
    """
    first_by_url: dict[str, str] = {}
    remap: dict[str, str] = {}

    for match in _NUMERIC_DEF_RE.finditer(content):
        number = match.group(1)
        key = _normalized_url(match.group(2).strip())
        if key not in first_by_url:
            first_by_url[key] = number
        elif first_by_url[key] != number:
            remap[number] = first_by_url[key]

    if not remap:
        return content

    logger.info("Deduplicating %d duplicate footnote(s)", len(remap))

    result = content
    for old, new in remap.items():
        result = re.sub(rf"\[\^{old}\](?!:)", f"[^{new}]", result)
    for old in remap:
        result = re.sub(rf"^\[\^{old}\]:\s*.+$\n?", "", result, flags=re.MULTILINE)
    return result


def renumber_footnotes(content: str) -> str:
    """Renumber footnote markers sequentially by first inline appearance.

    References without a definition keep their new number but no definition
    is emitted for them. Content with no footnote markers at all is returned
    unchanged.
    """
    definitions: dict[str, str] = {}
    for match in _ANY_DEF_RE.finditer(content):
        definitions.setdefault(match.group(1), match.group(2))

    if not definitions and not _INLINE_REF_RE.search(content):
        return content

    stripped = _ANY_DEF_LINE_RE.sub("", content)
    stripped = _EXCESS_NEWLINES_RE.sub("\n\n", stripped).rstrip()

    mapping: dict[str, int] = {}
    for match in _INLINE_REF_RE.finditer(stripped):
        mapping.setdefault(match.group(1), len(mapping) + 1)

    if not mapping:
        return stripped + "\n"

    renumbered = _INLINE_REF_RE.sub(lambda m: f"[^{mapping[m.group(1)]}]", stripped)

    definition_lines = [
        f"[^{number}]: {definitions[marker]}"
        for marker, number in sorted(mapping.items(), key=lambda item: item[1])
        if marker in definitions
    ]
    if not definition_lines:
        return renumbered + "\n"
    return renumbered + "\n\n" + "\n".join(definition_lines) + "\n"


__all__ = ["deduplicate_footnotes", "renumber_footnotes"]
