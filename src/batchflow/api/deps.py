"""FastAPI dependency injection for owner identity, database and collaborators."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.clients.protocols import AICategorizer, JobQueue
from batchflow.core.security import get_owner_id_from_token
from batchflow.db.session import get_db
from batchflow.services.batch import BatchCoordinator
from batchflow.services.rules import RuleService
from batchflow.services.transactions import TransactionFlagService

# OAuth2 bearer token scheme
security = HTTPBearer()


async def get_current_owner_id(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Resolve the calling owner from the bearer token's ``sub`` claim.

    Raises:
        HTTPException: If the token is invalid, expired or has no usable subject
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        owner_id = get_owner_id_from_token(credentials.credentials)
    except JWTError:
        raise credentials_exception
    except ValueError:
        raise credentials_exception

    request.state.owner_id = owner_id
    return owner_id


def get_job_queue(request: Request) -> JobQueue | None:
    return getattr(request.app.state, "job_queue", None)


def get_ai_categorizer(request: Request) -> AICategorizer | None:
    return getattr(request.app.state, "ai_categorizer", None)


async def get_batch_coordinator(
    db: AsyncSession = Depends(get_db),
    queue: JobQueue | None = Depends(get_job_queue),
) -> BatchCoordinator:
    return BatchCoordinator(db, queue=queue)


async def get_rule_service(
    db: AsyncSession = Depends(get_db),
    ai_categorizer: AICategorizer | None = Depends(get_ai_categorizer),
) -> RuleService:
    return RuleService(db, ai_categorizer=ai_categorizer)


async def get_transaction_flag_service(
    db: AsyncSession = Depends(get_db),
) -> TransactionFlagService:
    return TransactionFlagService(db)


OwnerId = Annotated[UUID, Depends(get_current_owner_id)]
