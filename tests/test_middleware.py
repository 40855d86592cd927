"""
Tests for the PKI Auth Middleware and Key Endpoint
==================================================
"""

from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient


async def unreachable_fetch(node_id):
    from pki_auth.exceptions import RemoteKeyFetchFailure

    raise RemoteKeyFetchFailure("unreachable", node_id=node_id)


def create_app(key_pair, peer_key_pair=None, enabled=True, skip_paths=None):
    from pki_auth.middleware import get_principal, require_node_principal, require_principal
    from pki_auth.plugin import PKIAuthPlugin

    plugin = PKIAuthPlugin(
        "node-b",
        key_pair=key_pair,
        fetch_fn=unreachable_fetch,
        enabled=enabled,
        skip_paths=skip_paths,
    )
    if peer_key_pair is not None:
        plugin.key_cache.put("node-a", peer_key_pair.public_key)

    app = FastAPI()

    @app.get("/whoami")
    async def whoami(request: Request, principal=Depends(get_principal)):
        return {
            "principal": principal.name if principal else None,
            "type": type(principal).__name__ if principal else None,
            "outcome": request.state.pki_auth.outcome.value,
        }

    @app.get("/protected")
    async def protected(principal=Depends(require_principal)):
        return {"principal": principal.name}

    @app.get("/internal")
    async def internal(principal=Depends(require_node_principal)):
        return {"ok": True}

    @app.get("/health")
    async def health(request: Request):
        return {"outcome": request.state.pki_auth.outcome.value}

    plugin.install(app)
    return TestClient(app)


def auth_header(key_pair, principal="alice", node_id="node-a"):
    from pki_auth.assertion import HEADER, encode_header_value

    return {HEADER: encode_header_value(node_id, principal, key_pair)}


class TestKeyEndpoint:
    """Tests for the key-exchange endpoint."""

    def test_serves_public_key(self, key_pair):
        """Should return the node's public key without any header."""
        client = create_app(key_pair)

        response = client.get("/admin/info/key", params={"wt": "json", "omitHeader": "true"})

        assert response.status_code == 200
        assert response.json() == {"key": key_pair.public_key_str}


class TestPKIAuthMiddleware:
    """Tests for PKIAuthMiddleware."""

    def test_no_header_passes_through(self, key_pair):
        """Requests without the header should reach the endpoint unauthenticated."""
        client = create_app(key_pair)

        response = client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {"principal": None, "type": None, "outcome": "no_header"}

    def test_malformed_header_passes_through(self, key_pair):
        """A one-token header should not raise."""
        client = create_app(key_pair)

        response = client.get("/whoami", headers={"SolrAuth": "node-a"})

        assert response.status_code == 200
        assert response.json()["outcome"] == "malformed_header"

    def test_user_principal_attached(self, key_pair, peer_key_pair):
        """A valid header should expose the end user downstream."""
        client = create_app(key_pair, peer_key_pair)

        response = client.get("/whoami", headers=auth_header(peer_key_pair, "alice"))

        assert response.json() == {"principal": "alice", "type": "UserPrincipal", "outcome": "authenticated"}

    def test_node_principal_attached(self, key_pair, peer_key_pair):
        """The '$' sentinel should expose the node principal."""
        client = create_app(key_pair, peer_key_pair)

        response = client.get("/whoami", headers=auth_header(peer_key_pair, "$"))

        assert response.json()["type"] == "NodePrincipal"

    def test_unknown_sender(self, key_pair, peer_key_pair):
        """An unreachable sender should degrade to unauthenticated."""
        client = create_app(key_pair)

        response = client.get("/whoami", headers=auth_header(peer_key_pair, node_id="node-x"))

        assert response.status_code == 200
        assert response.json()["outcome"] == "key_unavailable"

    def test_require_principal(self, key_pair, peer_key_pair):
        """Protected endpoints should reject unauthenticated requests with 401."""
        client = create_app(key_pair, peer_key_pair)

        assert client.get("/protected").status_code == 401

        response = client.get("/protected", headers=auth_header(peer_key_pair, "alice"))
        assert response.status_code == 200
        assert response.json() == {"principal": "alice"}

    def test_require_node_principal(self, key_pair, peer_key_pair):
        """Node-only endpoints should reject end users with 403."""
        client = create_app(key_pair, peer_key_pair)

        assert client.get("/internal", headers=auth_header(peer_key_pair, "alice")).status_code == 403
        assert client.get("/internal", headers=auth_header(peer_key_pair, "$")).status_code == 200

    def test_skip_paths(self, key_pair):
        """Configured skip paths should not be verified."""
        client = create_app(key_pair, skip_paths=["/health"])

        assert client.get("/health").json() == {"outcome": "skipped"}

    def test_disabled(self, key_pair, peer_key_pair):
        """A disabled middleware should never attach a principal."""
        client = create_app(key_pair, peer_key_pair, enabled=False)

        response = client.get("/whoami", headers=auth_header(peer_key_pair, "alice"))

        assert response.json() == {"principal": None, "type": None, "outcome": "skipped"}
