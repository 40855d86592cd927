"""
PKI Auth Configuration
======================
Configuration read from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import List

from .assertion import KEY_PATH, MAX_VALIDITY_MS
from .keys import DEFAULT_KEY_SIZE

TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


def _env_list(name: str) -> List[str]:
    return [p.strip() for p in os.environ.get(name, "").split(",") if p.strip()]


@dataclass
class PKIAuthConfig:
    """Configuration for node-to-node authentication."""
    node_id: str = field(default_factory=lambda: os.environ.get("PKI_NODE_ID", ""))

    # Explicit switch; set false when another cluster auth scheme is active
    enabled: bool = field(default_factory=lambda: _env_bool("PKI_AUTH_ENABLED", True))

    max_validity_ms: int = field(
        default_factory=lambda: int(os.environ.get("PKI_MAX_VALIDITY_MS", str(MAX_VALIDITY_MS)))
    )
    key_size: int = field(
        default_factory=lambda: int(os.environ.get("PKI_KEY_SIZE", str(DEFAULT_KEY_SIZE)))
    )
    key_path: str = field(default_factory=lambda: os.environ.get("PKI_KEY_PATH", KEY_PATH))
    fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PKI_FETCH_TIMEOUT", "5.0"))
    )

    # "node1=http://a:8983/solr,node2=http://b:8983/solr"
    cluster_nodes: str = field(default_factory=lambda: os.environ.get("PKI_CLUSTER_NODES", ""))

    # Paths that bypass verification besides the key endpoint
    skip_paths: List[str] = field(default_factory=lambda: _env_list("PKI_SKIP_PATHS"))

    @classmethod
    def from_env(cls) -> "PKIAuthConfig":
        return cls()
