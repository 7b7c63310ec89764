"""Headline dedup — bounded recency set of normalized headlines with fuzzy matching.

Each accepted headline is kept in insertion order; once the set grows past
its capacity the oldest entry is evicted (insertion order, not access order).
A headline is a duplicate when its normalized form is already held, or when
its token Jaccard similarity to any held headline exceeds the threshold.

The fuzzy pass scans every held headline, so each call costs O(capacity).
"""

import re
from collections import OrderedDict

from .text_similarity import jaccard_similarity

DEFAULT_CAPACITY = 1000
DEFAULT_THRESHOLD = 0.8

_PUNCT = re.compile(r"[^\w\s]")


def normalize_headline(headline: str) -> str:
    return _PUNCT.sub("", headline.lower()).strip()


class HeadlineDeduplicator:
    """Recency set owned by one monitor instance.

    Not thread-safe: a single monitor loop is the only writer. Monitors that
    run concurrently must each own a deduplicator, or serialize access.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, threshold: float = DEFAULT_THRESHOLD):
        self.capacity = capacity
        self.threshold = threshold
        self._seen: OrderedDict[str, None] = OrderedDict()

    def is_new(self, headline: str) -> bool:
        """True (and remember it) if the headline was not seen; False for duplicates."""
        normalized = normalize_headline(headline)

        if normalized in self._seen:
            return False

        for seen in self._seen:
            if jaccard_similarity(normalized, seen) > self.threshold:
                return False

        self._seen[normalized] = None
        if len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def clear(self):
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, headline: str) -> bool:
        return normalize_headline(headline) in self._seen
