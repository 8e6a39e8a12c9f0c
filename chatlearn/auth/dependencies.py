from typing import Annotated

import httpx
from clerk_backend_api import Clerk
from clerk_backend_api.models import ClerkBaseError
from clerk_backend_api.security.types import AuthenticateRequestOptions
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import settings
from ..logging_config import get_logger

logger = get_logger(__name__)

clerk_client = Clerk(bearer_auth=settings.CLERK_SECRET_KEY)
bearer_scheme = HTTPBearer()


async def get_current_user_id(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)]
) -> str:
    """Resolve the Clerk user id from the Authorization bearer token"""
    try:
        httpx_request = httpx.Request(
            method=request.method,
            url=str(request.url),
            headers=dict(request.headers)
        )

        request_state = clerk_client.authenticate_request(
            httpx_request,
            AuthenticateRequestOptions(
                authorized_parties=[settings.FRONTEND_URL] if settings.FRONTEND_URL else None
            )
        )

        if not request_state.is_signed_in:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Authentication failed: {request_state.reason}",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user_id = request_state.payload.get('sub')
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user ID",
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user_id = user_id
        return user_id

    except ClerkBaseError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Authentication error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during authentication."
        )


async def delete_clerk_user(user_id: str):
    """Remove the user from Clerk through the Backend API"""
    if not settings.CLERK_SECRET_KEY:
        raise Exception("CLERK_SECRET_KEY not configured")

    async with httpx.AsyncClient() as client:
        response = await client.delete(
            f"https://api.clerk.com/v1/users/{user_id}",
            headers={
                "Authorization": f"Bearer {settings.CLERK_SECRET_KEY}",
                "Content-Type": "application/json"
            }
        )

    if response.status_code not in (200, 204):
        raise Exception(f"Clerk deletion failed: {response.text}")
    return True
