"""Request nodes: the tree-of-chains a client request is dispatched into.

One client-visible request can turn into several request objects inside
the server:

  INTERNAL REDIRECT — the handler decides another path should answer
    (e.g. /docs → /docs/index.html).  The server builds a NEW request
    object for the new path and links it to the old one:

        A ──next──▶ B ──next──▶ C
        A ◀──prev── B ◀──prev── C

  SUB-REQUEST — while handling a request, the server runs another request
    "on the side" (include, lookup) and uses its result.  The sub-request
    points upward to its outer request through `main`:

        A ──next──▶ B
                    ▲
                    └──main── S (sub-request of B)

All of these nodes belong to one logical transaction, so the resources
they consume are accounted once: measured from the first node of the
outermost chain to its last node.

OWNERSHIP
----------
`main`, `prev` and `next` are plain back-references, not ownership: the
host keeps the nodes alive for as long as the transaction runs.  They are
excluded from repr/compare so a chain never recurses when printed.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class RequestNode:
    """A single request object in a chain.

    uri:    path this node dispatched to (descriptive, used in logs)
    method: HTTP method (descriptive)
    notes:  per-node string side-channel; accounting metrics are
            published here as decimal text
    """

    uri: str = "/"
    method: str = "GET"
    notes: dict[str, str] = field(default_factory=dict)
    main: RequestNode | None = field(default=None, repr=False)
    prev: RequestNode | None = field(default=None, repr=False)
    next: RequestNode | None = field(default=None, repr=False)

    def redirect(self, uri: str) -> RequestNode:
        """Create the node an internal redirect of this node dispatches to."""
        node = RequestNode(uri=uri, method=self.method, main=self.main, prev=self)
        self.next = node
        return node

    def subrequest(self, uri: str, method: str = "GET") -> RequestNode:
        """Create a sub-request whose outer request is this node."""
        return RequestNode(uri=uri, method=method, main=self)

    @property
    def is_subrequest(self) -> bool:
        return self.main is not None
