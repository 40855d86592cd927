"""
PKI Authentication Middleware
=============================
Verifies the node identity header on every inbound request.

Usage:
    from pki_auth.middleware import PKIAuthMiddleware, get_principal

    app.add_middleware(PKIAuthMiddleware, verifier=plugin.verifier)

    @app.get("/v1/collections")
    async def list_collections(principal: Principal = Depends(require_principal)):
        ...
"""

from typing import Iterable, Optional

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from .assertion import HEADER, KEY_PATH
from .inbound import InboundVerifier
from .models import NODE_PRINCIPAL, Principal, VerificationOutcome, VerificationResult

logger = structlog.get_logger(__name__)


class PKIAuthMiddleware(BaseHTTPMiddleware):
    """
    Attaches the verified principal to ``request.state.principal``.

    Never rejects a request: unauthenticated requests continue with no
    principal and authorization is left to the endpoint dependencies.
    The key-exchange endpoint is always skipped so peers can bootstrap.
    """

    def __init__(
        self,
        app,
        verifier: InboundVerifier,
        enabled: bool = True,
        key_path: str = KEY_PATH,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.enabled = enabled
        self.key_path = key_path
        self.skip_paths = tuple(skip_paths or ())

    def _should_skip(self, path: str) -> bool:
        if path.rstrip("/").endswith(self.key_path):
            return True
        return any(path.startswith(p) for p in self.skip_paths)

    async def dispatch(self, request: Request, call_next):
        request.state.principal = None

        if not self.enabled or self._should_skip(request.url.path):
            request.state.pki_auth = VerificationResult(VerificationOutcome.SKIPPED)
            return await call_next(request)

        result = await self.verifier.verify(request.headers.get(HEADER))
        request.state.pki_auth = result
        request.state.principal = result.principal

        if not result.authenticated:
            logger.warning(
                "pki_request_unauthenticated",
                path=request.url.path,
                outcome=result.outcome.value,
                sender=result.sender_node_id,
                header_present=HEADER in request.headers,
            )

        return await call_next(request)


def get_principal(request: Request) -> Optional[Principal]:
    """
    Dependency returning the verified principal, or None.

    Usage:
        @app.get("/v1/resource")
        async def get_resource(principal = Depends(get_principal)):
            ...
    """
    return getattr(request.state, "principal", None)


def require_principal(request: Request) -> Principal:
    """
    Dependency that requires an authenticated node or user.
    Raises 401 if the identity header did not verify.
    """
    principal = get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail="This endpoint requires node authentication"
        )
    return principal


def require_node_principal(request: Request) -> Principal:
    """
    Dependency that only admits cluster-internal node traffic.
    Raises 403 for end-user principals.
    """
    principal = require_principal(request)
    if principal is not NODE_PRINCIPAL:
        raise HTTPException(
            status_code=403,
            detail="This endpoint is restricted to cluster nodes"
        )
    return principal
