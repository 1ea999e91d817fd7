"""
Route key resolution.

Maps (method, path) to the rate-limit bucket a request belongs to. Major
parameters (the id right after a major prefix such as /channels/{id}) stay in
the key; every other identifier collapses to a placeholder, so
/channels/1/messages/2 and /channels/1/messages/3 share a bucket while
/channels/1/... and /channels/9/... do not.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_MAJOR_PARAMETERS: tuple[str, ...] = ("channels", "guilds", "webhooks")

ID_PLACEHOLDER = ":id"
TOKEN_PLACEHOLDER = ":token"

# Webhook and interaction tokens are long opaque URL-safe strings
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_\-.]{64,}$")

# Segments whose child is always a minor, non-numeric value (emoji names)
_OPAQUE_CHILD_PREFIXES: frozenset[str] = frozenset({"reactions"})


def _is_identifier(segment: str) -> bool:
    return segment.isdigit()


class RouteKeyResolver:
    """
    Derives bucket keys from HTTP method and path.

    Pure and deterministic: no I/O, no shared mutable state. The major
    parameter allow-list is configuration since the API adds new
    major-parameter routes over time.
    """

    def __init__(self, major_parameters: Iterable[str] = DEFAULT_MAJOR_PARAMETERS) -> None:
        self._major_parameters = frozenset(p.strip("/").lower() for p in major_parameters)
        if not self._major_parameters:
            raise ValueError("major_parameters must not be empty")

    @property
    def major_parameters(self) -> frozenset[str]:
        return self._major_parameters

    def normalize(self, path: str) -> str:
        """
        Normalize a resolved path to its route shape.

        Examples:
            /channels/1/messages/2            -> /channels/1/messages/:id
            /guilds/5/members/7/roles/8       -> /guilds/5/members/:id/roles/:id
            /channels/1/messages/2/reactions/%F0%9F%91%8D/@me
                                              -> /channels/1/messages/:id/reactions/:id/@me
            /webhooks/3/<token>               -> /webhooks/3/:token
        """
        path = path.split("?", 1)[0].split("#", 1)[0]
        segments = [s for s in path.split("/") if s]

        normalized: list[str] = []
        previous = ""
        for segment in segments:
            prefix = previous.lower()
            if _is_identifier(segment):
                if prefix in self._major_parameters:
                    normalized.append(segment)
                else:
                    normalized.append(ID_PLACEHOLDER)
            elif prefix in _OPAQUE_CHILD_PREFIXES:
                normalized.append(ID_PLACEHOLDER)
            elif _TOKEN_PATTERN.match(segment):
                normalized.append(TOKEN_PLACEHOLDER)
            else:
                normalized.append(segment)
            previous = segment

        return "/" + "/".join(normalized)

    def resolve(self, method: str, path: str) -> str:
        """Return the bucket key for a request."""
        return f"{method.upper()}:{self.normalize(path)}"
