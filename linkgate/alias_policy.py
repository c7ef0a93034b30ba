"""Human-readable alias derivation for content URLs.

Flow Diagram — derive_alias()
=============================
::
    ┌──────────────────┐
    │ long URL          │
    │ .../post/<slug>   │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ Extract + clean   │──── no slug ───▶ None (provider picks)
    │ slug              │
    └────────┬─────────┘
      len(slug) <= 50?
    ┌────────┴────────┐
    │ YES              │ NO
    ▼                  ▼
 "<ns>-<slug>"   pack whole "-" segments
                 while alias <= 30 chars;
                 none fit → truncated
                 first segment

Example::
    >>> derive_alias("https://blog.example.com/post/hello-world")
    'blog-hello-world'
    >>> derive_alias("https://blog.example.com/about")  # no slug
"""

import re

__all__ = ["derive_alias", "extract_identifier"]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9-]")


def extract_identifier(long_url: str, path_prefix: str = "post") -> str | None:
    match = re.search(rf"/{re.escape(path_prefix.strip('/'))}/([^/?#]+)", long_url or "")
    if not match:
        return None
    identifier = _UNSAFE_CHARS.sub("", match.group(1))
    return identifier or None


def derive_alias(
    long_url: str,
    namespace: str = "blog",
    path_prefix: str = "post",
    direct_max_length: int = 50,
    max_length: int = 30,
    separator: str = "-",
) -> str | None:
    identifier = extract_identifier(long_url, path_prefix)
    if identifier is None:
        return None

    if len(identifier) <= direct_max_length:
        return f"{namespace}{separator}{identifier}"

    segments = [segment for segment in identifier.split(separator) if segment]
    if not segments:
        return None

    alias = namespace
    for segment in segments:
        candidate = f"{alias}{separator}{segment}"
        if len(candidate) > max_length:
            break
        alias = candidate

    if alias == namespace:
        # Not even the first segment fits whole.
        return f"{namespace}{separator}{segments[0]}"[:max_length]
    return alias
