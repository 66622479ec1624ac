import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, HTTPException, Response, status, Depends

from ..config import settings, is_production
from ..exceptions import StoreScoreException
from ..models.schemas import RegisterUserRequest, LoginUserRequest, UpdateProfileRequest
from ..services.auth_service import AuthService
from ..services.database_service import DatabaseService
from .dependencies import get_auth_service, get_database_service, get_session_token, require_user

logger = logging.getLogger(__name__)
router = APIRouter()


def _set_session_cookie(response: Response, session: Dict[str, Any]):
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session["id"],
        max_age=settings.SESSION_TTL_DAYS * 24 * 3600,
        httponly=True,
        secure=is_production(),
        samesite="lax",
    )


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
async def register(
        request: RegisterUserRequest,
        response: Response,
        auth_service: AuthService = Depends(get_auth_service)
):
    """
    Create an account and log it in

    New accounts start with the sign-up credit bonus. The session token is
    set as a cookie and also returned for clients using bearer auth.
    """
    try:
        result = auth_service.register(request)
        _set_session_cookie(response, result["session"])
        return {
            "success": True,
            "data": {"user": result["user"], "sessionId": result["session"]["id"]},
            "message": "Account created successfully"
        }

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error registering {request.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during registration"
        )


@router.post("/auth/login")
async def login(
        request: LoginUserRequest,
        response: Response,
        auth_service: AuthService = Depends(get_auth_service)
):
    try:
        result = auth_service.login(request)
        _set_session_cookie(response, result["session"])
        return {
            "success": True,
            "data": {"user": result["user"], "sessionId": result["session"]["id"]},
            "message": "Logged in successfully"
        }

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error logging in {request.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during login"
        )


@router.post("/auth/logout")
async def logout(
        response: Response,
        token: Optional[str] = Depends(get_session_token),
        auth_service: AuthService = Depends(get_auth_service)
):
    auth_service.logout(token)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"success": True, "data": None, "message": "Logged out"}


@router.get("/auth/me")
async def get_me(user: Dict[str, Any] = Depends(require_user)):
    return {"success": True, "data": user, "message": "OK"}


@router.put("/profile")
async def update_profile(
        request: UpdateProfileRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    """Update name fields and the onboarding flag"""
    try:
        fields = request.model_dump(exclude_none=True)
        updated = db_service.update_user(user["id"], **fields) if fields else user
        return {"success": True, "data": updated, "message": "Profile updated"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error updating profile for user {user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while updating the profile"
        )
