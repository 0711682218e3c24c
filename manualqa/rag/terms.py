"""
Technical term detection and query normalization.

Manuals are dense with part codes, connector labels, voltages and error
codes. These patterns feed both the keyword line appended before embedding
and the exact-match bonus in diversification.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence, Tuple


DEFAULT_TERM_PATTERNS: Tuple[str, ...] = (
    r"CR-?\d{4}",                          # coin cell batteries
    r"CMOS|BIOS|HDMI|VGA|USB|DVI",          # board / interface names
    r"(?-i:(?:J|CN|P)\d{1,3})",           # connector labels, upper case only
    r"pin\s?\d{1,3}",                      # pin labels
    r"\d+(?:\.\d+)?\s?V(?:AC|DC)?",        # voltages
    r"(?:error|err)\s?E?-?\d+",            # error codes
)


class TermExtractor(Protocol):
    """Finds technical tokens in free text."""

    def extract(self, text: str) -> List[str]:
        ...

    def contains_technical_term(self, text: str) -> bool:
        ...


@dataclass
class RegexTermExtractor:
    """TermExtractor backed by a list of case-insensitive regex patterns."""

    patterns: Sequence[str] = DEFAULT_TERM_PATTERNS

    def __post_init__(self) -> None:
        joined = "|".join(f"(?:{p})" for p in self.patterns)
        self._regex = re.compile(rf"\b(?:{joined})\b", re.IGNORECASE)

    def extract(self, text: str) -> List[str]:
        seen: set[str] = set()
        tokens: List[str] = []
        for match in self._regex.finditer(text or ""):
            tok = match.group(0)
            key = tok.lower()
            if key in seen:
                continue
            seen.add(key)
            tokens.append(tok)
        return tokens

    def contains_technical_term(self, text: str) -> bool:
        return bool(self._regex.search(text or ""))


def keyword_line(query: str, extractor: TermExtractor) -> str:
    """Space-joined technical tokens found in the query ("" if none)."""
    return " ".join(extractor.extract(query))


_QUOTES_RE = re.compile(r"[‘’]")
_WS_RE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    return _WS_RE.sub(" ", _QUOTES_RE.sub("'", query or "")).strip()


@dataclass(frozen=True)
class SymptomRule:
    """Appends synonyms when a symptom phrasing is recognised."""

    pattern: re.Pattern[str]
    synonyms: Tuple[str, ...] = field(default_factory=tuple)


DEFAULT_SYMPTOM_RULES: Tuple[SymptomRule, ...] = (
    SymptomRule(
        pattern=re.compile(
            r"balls?.*?(won'?t|wont|do'?nt|dont).*?(come\s*out|dispense|release)"
            r"|balls?.*?(stuck|jam)",
            re.IGNORECASE,
        ),
        synonyms=(
            "ball gate",
            "ball release",
            "gate motor",
            "gate open sensor",
            "gate closed sensor",
            "ball diverter",
        ),
    ),
)


def expand_query(
    query: str,
    rules: Sequence[SymptomRule] = DEFAULT_SYMPTOM_RULES,
) -> str:
    """Normalize the query and append a synonyms line for the first matching rule."""
    normalized = normalize_query(query)
    for rule in rules:
        if rule.pattern.search(normalized):
            return f"{normalized}\nSynonyms: {', '.join(rule.synonyms)}"
    return normalized
