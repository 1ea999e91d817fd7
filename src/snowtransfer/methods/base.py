"""Shared plumbing for the resource-method wrappers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from snowtransfer.types import Attachment, RouteDescriptor

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from snowtransfer.types import RequestHandle, RequestOptions


class Requester(Protocol):
    """The capability every wrapper is constructed with."""

    def submit(
        self,
        descriptor: RouteDescriptor,
        options: RequestOptions | None = None,
    ) -> RequestHandle: ...


class MethodGroup:
    """
    Base for a group of resource methods.

    Wrappers only build a RouteDescriptor and hand it to the requester; all
    scheduling, retrying and parsing happens in the dispatcher.
    """

    def __init__(self, requester: Requester) -> None:
        self._requester = requester

    async def _call(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        files: Sequence[Attachment] = (),
        query: Mapping[str, Any] | None = None,
        reason: str | None = None,
        authenticated: bool = True,
        options: RequestOptions | None = None,
    ) -> Any:
        descriptor = RouteDescriptor(
            method=method,
            path=path,
            body=body,
            attachments=tuple(files),
            query=query,
            reason=reason,
            authenticated=authenticated,
        )
        return await self._requester.submit(descriptor, options)
