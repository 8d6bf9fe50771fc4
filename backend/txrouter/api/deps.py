"""Shared API dependencies."""

from fastapi import Header

from txrouter.core.database import get_db


async def get_company_id(x_company_id: int = Header(..., alias="X-Company-Id", gt=0)) -> int:
    """Company scope of the request, set by the gateway in front of this service."""
    return x_company_id


__all__ = ["get_db", "get_company_id"]
