"""
Node Resolution
===============
Maps cluster node ids to base URLs.

Real deployments plug in their membership service; ``StaticNodeResolver``
covers fixed clusters and tests.
"""

from typing import Dict, Optional, Protocol

import structlog

from .exceptions import NodeResolutionError

logger = structlog.get_logger(__name__)


class NodeResolver(Protocol):
    def resolve_base_url(self, node_id: str) -> str:
        ...


def node_name_to_base_url(node_name: str, scheme: str = "http") -> str:
    """
    Convert a node name of the form ``host:port_context`` to a base URL.

    ``"10.0.0.5:8983_solr"`` becomes ``"http://10.0.0.5:8983/solr"``.
    Underscores in the context path stand for slashes.
    """
    host_port, sep, context = node_name.partition("_")
    if not host_port:
        raise NodeResolutionError("Empty node name", node_id=node_name)
    if not sep or not context:
        return f"{scheme}://{host_port}"
    return f"{scheme}://{host_port}/{context.replace('_', '/')}"


class StaticNodeResolver:
    """Resolver backed by a fixed node id -> base URL mapping."""

    def __init__(
        self,
        nodes: Optional[Dict[str, str]] = None,
        derive_from_name: bool = False,
        scheme: str = "http",
    ):
        self._nodes: Dict[str, str] = {
            node_id: url.rstrip("/") for node_id, url in (nodes or {}).items()
        }
        self.derive_from_name = derive_from_name
        self.scheme = scheme

    @classmethod
    def from_string(cls, value: str, **kwargs) -> "StaticNodeResolver":
        """
        Parse ``"node1=http://a:8983/solr,node2=http://b:8983/solr"``.

        Blank entries are ignored; entries without ``=`` are rejected.
        """
        nodes: Dict[str, str] = {}
        for entry in (value or "").split(","):
            entry = entry.strip()
            if not entry:
                continue
            node_id, sep, url = entry.partition("=")
            if not sep or not node_id.strip() or not url.strip():
                raise ValueError(f"Invalid cluster node entry: {entry!r}")
            nodes[node_id.strip()] = url.strip()
        return cls(nodes, **kwargs)

    def register(self, node_id: str, base_url: str) -> None:
        self._nodes[node_id] = base_url.rstrip("/")

    def resolve_base_url(self, node_id: str) -> str:
        url = self._nodes.get(node_id)
        if url:
            return url
        if self.derive_from_name:
            return node_name_to_base_url(node_id, scheme=self.scheme)
        logger.warning("pki_unknown_node", node_id=node_id)
        raise NodeResolutionError("Unknown node", node_id=node_id)
