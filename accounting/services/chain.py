"""Chain resolution: find the canonical first and last node of a request chain.

Both walks start by climbing `main` to the outermost request (a
sub-request is accounted as part of the request that spawned it), then
move sideways along `prev` or `next`.

The host guarantees chains are finite and acyclic; these walks do not
check for cycles.
"""

from __future__ import annotations

from accounting.models.request_node import RequestNode


def _outermost(node: RequestNode) -> RequestNode:
    while node.is_subrequest:
        node = node.main  # type: ignore[assignment]
    return node


def resolve_first(node: RequestNode) -> RequestNode:
    """Return the node where the chain's begin snapshot is stored."""
    node = _outermost(node)
    while node.prev is not None:
        node = node.prev
    return node


def resolve_last(node: RequestNode) -> RequestNode:
    """Return the node the chain's metrics are published on."""
    node = _outermost(node)
    while node.next is not None:
        node = node.next
    return node
