from fastapi import Depends, Header, HTTPException
from typing import AsyncIterator, Optional

from .api_client import InventoryApi
from .mapping.session import MappingSession


def _extract_bearer_token(authorization: Optional[str]) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    raise HTTPException(status_code=401, detail="missing token")


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    # Opaque pass-through: the remote backend validates it, not us.
    return _extract_bearer_token(authorization)


async def get_inventory_api(token: str = Depends(get_bearer_token)) -> AsyncIterator[InventoryApi]:
    api = InventoryApi(token)
    try:
        yield api
    finally:
        await api.aclose()


def get_mapping_session(api=Depends(get_inventory_api)) -> MappingSession:
    # One cache per request: imports for different tenants never share directory state.
    return MappingSession(api)
