"""Id resolution shared by every lookup that accepts a user-typed id."""

from __future__ import annotations

from collections.abc import Iterable

from taskmark.errors import AmbiguousIdError, NotFoundError


def resolve_id(candidates: Iterable[str], query: str, kind: str = "entity") -> str:
    """Resolve *query* against *candidates*.

    An exact match wins; otherwise the query must be a prefix of exactly one
    candidate. Raises :class:`NotFoundError` or :class:`AmbiguousIdError`.
    """
    query = (query or "").strip()
    if not query:
        raise NotFoundError(f"{kind.capitalize()} id cannot be blank.")

    ids = list(dict.fromkeys(candidates))
    if query in ids:
        return query

    matches = [c for c in ids if c.startswith(query)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise AmbiguousIdError(kind, query, matches)
    raise NotFoundError(f"{kind.capitalize()} not found: {query}")
