"""Structured cache keys for shorten results.

Two requests share a cache entry exactly when their ``CacheKey`` values are
equal: same long URL and same normalised options. Normalisation drops unset
options, strips whitespace and treats tags as an unordered set, so
``tags=("b", "a")`` and ``tags=("a", "b", "a")`` hit the same entry.

``digest()`` turns the key into a stable string for external stores; it is
deterministic across processes and Python versions (no ``hash()``).
"""

import hashlib
import json
from dataclasses import dataclass

from linkgate.models import ShortenOptions

__all__ = ["CacheKey"]


@dataclass(frozen=True)
class CacheKey:
    long_url: str
    options: tuple[tuple[str, str | tuple[str, ...]], ...] = ()

    @classmethod
    def build(cls, long_url: str, options: ShortenOptions | None = None) -> "CacheKey":
        pairs: list[tuple[str, str | tuple[str, ...]]] = []
        if options is not None:
            if options.alias and options.alias.strip():
                pairs.append(("alias", options.alias.strip()))
            if options.description and options.description.strip():
                pairs.append(("description", options.description.strip()))
            if options.domain and options.domain.strip():
                pairs.append(("domain", options.domain.strip().lower()))
            tags = tuple(sorted({tag.strip() for tag in options.tags if tag and tag.strip()}))
            if tags:
                pairs.append(("tags", tags))
        return cls(long_url=long_url.strip(), options=tuple(sorted(pairs)))

    def digest(self) -> str:
        payload = json.dumps(
            [self.long_url, [[name, list(value) if isinstance(value, tuple) else value] for name, value in self.options]],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def __str__(self) -> str:
        return self.digest()
