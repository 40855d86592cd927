"""
Key Exchange Router
===================
Serves this node's public key to peers.
"""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from .assertion import KEY_PATH
from .keys import KeyPair


class PublicKeyResponse(BaseModel):
    key: str


def create_key_router(key_pair: KeyPair, path: str = KEY_PATH) -> APIRouter:
    """
    Create the key-exchange router.

    Args:
        key_pair: This node's key pair
        path: Endpoint path (default /admin/info/key)

    Returns:
        FastAPI router with a single GET endpoint returning {"key": ...}
    """
    router = APIRouter(tags=["Admin"])

    @router.get(path, response_model=PublicKeyResponse)
    async def public_key(wt: Optional[str] = None, omitHeader: Optional[str] = None) -> PublicKeyResponse:
        """Return the public key of this server."""
        return PublicKeyResponse(key=key_pair.public_key_str)

    return router
