"""
Ignore-term block-list.

Listings whose description, title or seller name mention one of these terms are
skipped. The list is data; replace it through ScraperConfig.ignore_terms.
"""
import re
from typing import Iterable, Optional, Tuple

DEFAULT_IGNORE_TERMS: Tuple[str, ...] = (
    "salvage",
    "rebuilt",
    "rebuilt title",
    "reconstructed",
    "branded title",
    "flood",
    "flood damage",
    "lemon",
    "parts only",
    "for parts",
    "parting out",
    "not running",
    "does not run",
    "doesn't run",
    "blown engine",
    "wholesale",
    "dealer",
    "dealership",
    "financing available",
    "buy here pay here",
    "no credit check",
    "down payment",
    "rent to own",
    "lease takeover",
    "trade only",
)


class IgnoreTermMatcher:
    """Case-insensitive whole-token matcher over a block-list."""

    def __init__(self, terms: Iterable[str] = DEFAULT_IGNORE_TERMS):
        self.terms = tuple(t.strip().lower() for t in terms if t and t.strip())
        if self.terms:
            # Longest first so multi-word terms win over their prefixes
            alternatives = sorted((re.escape(t) for t in self.terms), key=len, reverse=True)
            self._pattern = re.compile(
                r"(?<!\w)(" + "|".join(alternatives) + r")(?!\w)", re.IGNORECASE
            )
        else:
            self._pattern = None

    def find(self, text: Optional[str]) -> Optional[str]:
        """Return the first matching term in ``text`` or None."""
        if not text or self._pattern is None:
            return None
        m = self._pattern.search(text)
        return m.group(1).lower() if m else None

    def matches(self, text: Optional[str]) -> bool:
        return self.find(text) is not None

    def matches_any(self, *texts: Optional[str]) -> bool:
        return any(self.matches(t) for t in texts)


def has_ignore_term(text: Optional[str], terms: Iterable[str] = DEFAULT_IGNORE_TERMS) -> bool:
    """Check a single text against a block-list."""
    return IgnoreTermMatcher(terms).matches(text)
