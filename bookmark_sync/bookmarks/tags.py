"""Tag normalization and the tag <-> URL slug codec.

Tags arrive either as bare strings or as ``{name, slug?, color?}`` records.
Both are reduced to a :class:`NormalizedTag` before any comparison, so the two
encodings always match the same bookmarks.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bookmark_sync.domain.models import BookmarkTag

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookmark_sync.domain.models import Bookmark

# Symbols that would otherwise vanish and make "C++", "C+" and "C" collide.
_SYMBOL_WORDS = (
    ("+", "-plus-"),
    ("#", "-sharp-"),
    ("&", "-and-"),
    ("@", "-at-"),
)

_DOT_BEFORE_WORD = re.compile(r"\.(?=[a-z0-9])")
_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")

# Words shown upper-case when a lower-case tag is formatted for display.
_ACRONYMS = frozenset(
    {"ai", "api", "aws", "css", "cli", "gpu", "html", "http", "llm", "ml", "seo", "sql", "ui", "ux"}
)


@dataclass(frozen=True, slots=True)
class NormalizedTag:
    slug: str
    name: str


def sanitize_unicode(text: str | None) -> str:
    """Drop control and format characters (zero-width spaces, bidi marks...)."""
    if not text:
        return ""
    return "".join(ch for ch in text if unicodedata.category(ch) not in ("Cc", "Cf"))


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def tag_to_slug(tag: str | None) -> str:
    """Convert a human tag name into its URL-safe slug.

    >>> tag_to_slug("C++"), tag_to_slug("Node.js"), tag_to_slug("AI & ML")
    ('c-plus-plus', 'nodedotjs', 'ai-and-ml')
    """
    if not tag:
        return ""
    text = sanitize_unicode(strip_diacritics(tag)).lower().strip()
    for symbol, word in _SYMBOL_WORDS:
        text = text.replace(symbol, word)
    if text.startswith("."):
        text = "dot" + text[1:]
    text = _DOT_BEFORE_WORD.sub("dot", text)
    text = text.replace(".", "")
    text = _DISALLOWED.sub("", text)
    text = _WHITESPACE.sub("-", text)
    return _HYPHENS.sub("-", text).strip("-")


def format_tag_display(tag: str | None) -> str:
    """Title-case an all lower-case tag; mixed-case tags ("iOS") are kept."""
    if not tag:
        return ""
    if tag != tag.lower():
        return tag
    words = []
    for word in tag.split(" "):
        if word in _ACRONYMS:
            words.append(word.upper())
        else:
            words.append(word[:1].upper() + word[1:])
    return " ".join(words)


def slug_to_tag_display(slug: str | None) -> str:
    """Best-effort display name for a tag slug ("react-native" -> "React Native")."""
    if not slug:
        return ""
    return format_tag_display(slug.replace("-", " "))


def tag_name(tag: Any) -> str:
    if isinstance(tag, BookmarkTag):
        return tag.name
    if isinstance(tag, dict):
        return str(tag.get("name") or "")
    if isinstance(tag, str):
        return tag
    return ""


def normalize_tag(tag: str | BookmarkTag | dict[str, Any]) -> NormalizedTag | None:
    """Reduce either tag encoding to ``(slug, name)``; ``None`` for empty tags.

    The slug is always recomputed from the name so a stale or hand-edited
    ``slug`` on a record cannot split one tag into two.
    """
    name = tag_name(tag).strip()
    slug = tag_to_slug(name)
    if not slug:
        return None
    return NormalizedTag(slug=slug, name=name)


def normalize_tags(tags: Iterable[Any] | None) -> list[NormalizedTag]:
    """Normalize and de-duplicate tags by slug, keeping first-seen order."""
    seen: set[str] = set()
    result: list[NormalizedTag] = []
    for tag in tags or ():
        normalized = normalize_tag(tag)
        if normalized is None or normalized.slug in seen:
            continue
        seen.add(normalized.slug)
        result.append(normalized)
    return result


def normalize_tags_to_strings(tags: Any) -> list[str]:
    if not isinstance(tags, list | tuple):
        return []
    return [name for name in (tag_name(tag).strip() for tag in tags) if name]


def bookmark_tag_slugs(bookmark: Bookmark) -> set[str]:
    return {tag.slug for tag in normalize_tags(bookmark.tags)}


def bookmark_has_tag(bookmark: Bookmark, tag_slug: str) -> bool:
    """Match a bookmark against a tag slug (or raw tag name)."""
    target = tag_to_slug(tag_slug)
    return bool(target) and target in bookmark_tag_slugs(bookmark)
