import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.dependencies import get_current_user_id
from ..database import get_async_db
from ..error_handlers import ErrorCode
from ..logging_config import get_logger
from ..storage.service import ObjectStorage, get_storage
from . import schemas, service

logger = get_logger(__name__)

router = APIRouter(tags=["users"])


@router.post("/users/store", response_model=schemas.UserOut)
async def store_user(
    user: schemas.UserStore,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db)
):
    """Store user on login"""
    logger.info("Storing user on login", extra={"user_id": user_id})
    return await service.store_user_on_login_async(db, user_id, user)


@router.api_route("/delete-account", methods=["POST", "DELETE"], response_model=schemas.UserDeleteResponse)
async def delete_account(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: AsyncSession = Depends(get_async_db),
    storage: ObjectStorage = Depends(get_storage)
):
    """
    Delete the account and everything it owns.

    Failures answer 400 with a generic message and a request id to quote
    to support; the cause is only logged.
    """
    logger.info("Account deletion requested", extra={"user_id": user_id})

    try:
        await service.delete_account(db, storage, user_id)
    except Exception as e:
        await db.rollback()
        request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        logger.error(
            f"Account deletion failed: {e}",
            extra={"user_id": user_id, "request_id": request_id},
            exc_info=True
        )
        return JSONResponse(
            status_code=400,
            content={
                "error": "Unable to process request",
                "code": ErrorCode.ACCOUNT_DELETION_FAILED,
                "requestId": request_id,
            }
        )

    logger.info("Account deletion completed", extra={"user_id": user_id})
    return schemas.UserDeleteResponse()
