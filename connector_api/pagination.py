"""Paginated response bodies with navigation links."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


@dataclass
class NavigationLinks:
    first: str = ""
    last: str = ""
    next: str = ""
    prev: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialise, leaving out empty links."""
        items = {"first": self.first, "last": self.last, "next": self.next, "prev": self.prev}
        return {key: value for key, value in items.items() if value}


@dataclass
class PaginatedResponse:
    count: int
    links: NavigationLinks = field(default_factory=NavigationLinks)
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"meta": {"count": self.count}, "links": self.links.to_dict(), "data": self.data}


def build_paginated_response(url: str, offset: int, limit: int, total: int, data: Any) -> PaginatedResponse:
    return PaginatedResponse(total, build_navigation_links(url, offset, limit, total), data)


def build_navigation_link(url: str, offset: int, limit: int) -> str:
    """Return ``url`` with its offset and limit query values replaced."""
    parts = urlsplit(url)
    values: dict[str, list[str]] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        values.setdefault(key, []).append(value)
    values["offset"] = [str(offset)]
    values["limit"] = [str(limit)]
    query = urlencode(sorted(values.items()), doseq=True)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def build_navigation_links(url: str, offset: int, limit: int, total: int) -> NavigationLinks:
    if total == 0:
        return NavigationLinks()
    links = NavigationLinks(
        first=build_navigation_link(url, 0, limit),
        last=build_navigation_link(url, calculate_offset_of_last_page(total, limit), limit),
    )
    if offset + limit < total:
        links.next = build_navigation_link(url, offset + limit, limit)
    if offset > 0:
        links.prev = build_navigation_link(url, max(offset - limit, 0), limit)
    return links


def calculate_offset_of_last_page(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return (max(total - 1, 0) // limit) * limit