"""
Reusable FastAPI dependencies.

Dependencies:
  - get_current_principal — authenticated sender from the JWT (401 if invalid)
  - get_orchestrator      — TransferOrchestrator wired from settings
  - get_repository        — transfer repository used for status reads
  - get_scheme            — scheme client used for party lookup
"""

from fastapi import Depends, Header, HTTPException, status

from app.core.security import Principal, verify_access_token
from app.redis_client import get_redis
from app.services.scheme_client import SchemeClient, get_scheme_client
from app.transfers.orchestrator import TransferOrchestrator, build_orchestrator
from app.transfers.repository import TransferRepository, get_transfer_repository


async def get_current_principal(
    authorization: str = Header(..., description="Bearer <access_token>"),
) -> Principal:
    """
    Parse the ``Authorization: Bearer <token>`` header and verify the JWT.

    Raises 401 if the token is missing, malformed or expired.
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )
    return verify_access_token(authorization[len("Bearer "):])


async def get_repository() -> TransferRepository:
    return get_transfer_repository()


async def get_orchestrator(
    redis=Depends(get_redis),
    repository: TransferRepository = Depends(get_repository),
) -> TransferOrchestrator:
    return build_orchestrator(redis, repository)


async def get_scheme() -> SchemeClient:
    return get_scheme_client()
