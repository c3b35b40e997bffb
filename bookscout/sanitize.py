"""Clean Open Library descriptions and author bios of markup residue.

Descriptions on Open Library are contributed free text and commonly carry
Markdown fragments, citation markers, "Contains:" preambles and shouted
titles. ``sanitize()`` runs an ordered pipeline of small ``str -> str``
stages over the text. Each stage is a plain function so it can be tested on
its own; ``STAGES`` fixes the order in which they run.

The pipeline is repeated until the text stops changing. Every stage either
removes characters or lowers capital letters, so this always terminates, and
the result is a fixed point: ``sanitize(sanitize(x)) == sanitize(x)``.
"""
import re
from typing import Callable, Tuple

PREAMBLE_RE = re.compile(
    r"^[ \t]*(?:contains|also contained in|also published as|contents|includes)[ \t]*:.*$",
    re.IGNORECASE | re.MULTILINE
)
SOURCE_NOTE_RE = re.compile(r"[ \t]*\([^()\n]*\bsource[^()\n]*\)", re.IGNORECASE)
BRACKETED_NOTE_RE = re.compile(r"[ \t]*\([ \t]*\[[^\[\]\n]*\][ \t]*\)")
REF_LINK_RE = re.compile(r"\[([^\[\]\n]+)\]\[\d+\]")
INLINE_LINK_RE = re.compile(r"\[([^\[\]\n]+)\]\([^()\n]+\)")
REF_DEFINITION_RE = re.compile(r"^[ \t]*\[\d+\]:.*$", re.MULTILINE)
CITATION_RE = re.compile(r"[ \t]*\[\d+\]")
BOLD_RE = re.compile(r"\*\*([^*\n]+)\*\*")
ITALIC_RE = re.compile(r"\*([^*\n]+)\*")
RULE_RE = re.compile(r"[-_]{2,}")
HEADING_RE = re.compile(r"^([ \t]*)#{1,6}[ \t]+", re.MULTILINE)
BULLET_RE = re.compile(r"^[ \t]*[-*][ \t]+.*$", re.MULTILINE)
COLON_LINE_RE = re.compile(r"^[ \t]*:.*$", re.MULTILINE)
SHOUTING_RE = re.compile(r"\b([A-Z]{3,})\b")
EMPTY_PAIR_RE = re.compile(r"\[[ \t]*\]|\([ \t]*\)")
SYMBOL_LINE_RE = re.compile(r"^(?:[^\w\n]|_)+$", re.MULTILINE)
BLANK_RUN_RE = re.compile(r"\n{3,}")


def strip_preamble_labels(text: str) -> str:
    """Drop lines such as ``Contains: ...`` or ``Also published as: ...``."""
    return PREAMBLE_RE.sub("", text)


def strip_source_notes(text: str) -> str:
    """Drop ``(Source: ...)`` style annotations and ``([1])`` markers."""
    text = SOURCE_NOTE_RE.sub("", text)
    return BRACKETED_NOTE_RE.sub("", text)


def strip_citations(text: str) -> str:
    """
    Remove citation markers.

    ``[text][1]`` and ``[text](url)`` collapse to ``text``; reference
    definition lines (``[1]: https://...``) go away entirely, and so do
    any remaining bare ``[1]`` markers.
    """
    text = REF_LINK_RE.sub(r"\1", text)
    text = INLINE_LINK_RE.sub(r"\1", text)
    text = REF_DEFINITION_RE.sub("", text)
    return CITATION_RE.sub("", text)


def strip_emphasis(text: str) -> str:
    """Unwrap ``**bold**`` and ``*italic*`` to their inner text."""
    text = BOLD_RE.sub(r"\1", text)
    return ITALIC_RE.sub(r"\1", text)


def strip_rules(text: str) -> str:
    """Remove ``---`` / ``___`` style dividers."""
    return RULE_RE.sub("", text)


def strip_heading_markers(text: str) -> str:
    return HEADING_RE.sub(r"\1", text)


def strip_bullet_lines(text: str) -> str:
    return BULLET_RE.sub("", text)


def strip_colon_lines(text: str) -> str:
    """Drop lines that are a bare colon or start with one."""
    return COLON_LINE_RE.sub("", text)


def recase_shouting(text: str) -> str:
    """Turn ``THE HOBBIT`` into ``The Hobbit``; shorter acronyms are kept."""
    return SHOUTING_RE.sub(lambda m: m.group(1)[0] + m.group(1)[1:].lower(), text)


def strip_empty_pairs(text: str) -> str:
    """Remove ``[]`` and ``()`` left behind by earlier stages."""
    return EMPTY_PAIR_RE.sub("", text)


def strip_symbol_lines(text: str) -> str:
    """Blank out lines with no letters or digits at all."""
    return SYMBOL_LINE_RE.sub("", text)


def collapse_blank_lines(text: str) -> str:
    return BLANK_RUN_RE.sub("\n\n", text).strip()


STAGES: Tuple[Callable[[str], str], ...] = (
    strip_preamble_labels,
    strip_source_notes,
    strip_citations,
    strip_emphasis,
    strip_rules,
    strip_heading_markers,
    strip_bullet_lines,
    strip_colon_lines,
    recase_shouting,
    strip_empty_pairs,
    strip_symbol_lines,
    collapse_blank_lines,
)


def _run_stages(text: str) -> str:
    for stage in STAGES:
        text = stage(text)
    return text


def sanitize(raw: str) -> str:
    """
    Clean a description or bio.

    Args:
        raw: Free text as returned by Open Library

    Returns:
        Cleaned text (possibly empty)
    """
    text = (raw or "").replace("\r\n", "\n").replace("\r", "\n")
    while True:
        cleaned = _run_stages(text)
        if cleaned == text:
            return cleaned
        text = cleaned
