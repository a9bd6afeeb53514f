"""
Deterministic text normalization rules.

Two transforms live here, both pure functions driven by the rule tables
below rather than by control flow:

- `title_terms`: the key-term set used for fuzzy title overlap between
  candidate events.
- `search_keyword`: the compact subject (usually a model name) used to query
  external corroboration sources.

Changing a table changes dedup and corroboration behavior for every run, so
the tables are module-level constants that callers may override.
"""

from __future__ import annotations

import re
from typing import Iterable, Pattern

# Words that carry no identity for a release title.
FILLER_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "of", "for", "to", "in", "on", "with",
        "by", "its", "it", "via", "as", "at", "from", "into", "is", "now",
        "new", "model", "models", "version", "update", "updated", "brief",
        "release", "released", "releases", "releasing",
        "launch", "launched", "launches",
        "announce", "announced", "announces",
        "unveil", "unveiled", "unveils",
        "introduce", "introduced", "introduces",
        "debut", "debuts", "ship", "ships", "shipped",
        "available", "generally", "publicly",
    }
)

# (pattern, replacement) pairs applied in order before tokenizing.
VERSION_RULES: tuple[tuple[Pattern[str], str], ...] = (
    # "3.5" and "35" compare equal; repeated for "1.2.3"
    (re.compile(r"(?<=\d)[.,](?=\d)"), ""),
    # "v2" -> "2"
    (re.compile(r"\bv(?=\d)"), ""),
)

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")

KEYWORD_MAX_CHARS = 30
KEYWORD_FALLBACK_CHARS = 25

# "OpenAI launches GPT-4o ..." -> "GPT-4o ..."
KEYWORD_LEAD_VERBS: Pattern[str] = re.compile(
    r"^(?:[\w-]+(?:\s+[\w-]+){0,2}?\s+)?"
    r"(?:launches?|releases?|unveils?|introduces?|announces?|ships?|showcases?|previews?)"
    r"\s+(.+)",
    re.IGNORECASE,
)

# Applied in order after the lead-verb rule.
KEYWORD_RULES: tuple[tuple[Pattern[str], str], ...] = (
    # trailing verb phrases and qualifiers
    (
        re.compile(
            r"\s+(?:released|launched|announced|unveiled|introduced|with|featuring|including|"
            r"achieving|reaches|open-source|open source|as\s).*$",
            re.IGNORECASE,
        ),
        "",
    ),
    # parenthesised qualifiers
    (re.compile(r"\s*\(.*$"), ""),
    # descriptive adjectives
    (
        re.compile(
            r"\s+(?:multimodal|hybrid|reasoning|open-weight|open-weights|agentic|autonomous|"
            r"non-generative|vision-language)\b",
            re.IGNORECASE,
        ),
        "",
    ),
    # generic descriptor nouns and everything after them
    (
        re.compile(
            r"\s+(?:model|models|family|system|variant|variants|parameters?|preview|"
            r"capabilities|details)\b.*$",
            re.IGNORECASE,
        ),
        "",
    ),
    # possessive lead: "Google's Gemini" -> "Gemini"
    (re.compile(r"^\w+'s\s+", re.IGNORECASE), ""),
    (re.compile(r"^full\s+version\s+of\s+", re.IGNORECASE), ""),
)


def normalize_versions(text: str, rules: Iterable[tuple[Pattern[str], str]] = VERSION_RULES) -> str:
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def title_terms(title: str, filler_words: frozenset[str] = FILLER_WORDS) -> frozenset[str]:
    """Return the normalized key-term set of a title.

    Lower-cases, collapses version numbers, splits on anything that is not
    a letter or digit and drops filler words.

    >>> sorted(title_terms("OpenAI releases GPT-3.5 Turbo"))
    ['35', 'gpt', 'openai', 'turbo']
    """
    lowered = normalize_versions(title.lower())
    return frozenset(
        token for token in _TOKEN_SPLIT_RE.split(lowered) if token and token not in filler_words
    )


def search_keyword(
    title: str,
    lead: Pattern[str] = KEYWORD_LEAD_VERBS,
    rules: Iterable[tuple[Pattern[str], str]] = KEYWORD_RULES,
    max_chars: int = KEYWORD_MAX_CHARS,
) -> str:
    """Derive a short search keyword from an event title.

    >>> search_keyword("Meta releases Llama 3.1 405B open-weights model")
    'Llama 3.1 405B'
    """
    match = lead.match(title)
    subject = match.group(1) if match else title
    for pattern, replacement in rules:
        subject = pattern.sub(replacement, subject).strip()

    if len(subject) > max_chars:
        subject = subject[:max_chars].strip()
    return subject or title[:KEYWORD_FALLBACK_CHARS].strip()
