import logging
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, status, Depends

from ..exceptions import NotFoundError, StoreScoreException, ValidationError
from ..models.schemas import CreateUserStoreRequest, StoreType, UpdateUserStoreRequest, check_store_target
from ..services.database_service import DatabaseService
from ..utils.helpers import normalize_store_url
from .dependencies import get_database_service, require_user

logger = logging.getLogger(__name__)
router = APIRouter()


def _store_fields(request) -> Dict[str, Any]:
    fields = request.model_dump(exclude_none=True)
    if "store_type" in fields:
        fields["store_type"] = fields["store_type"].value
    if fields.get("store_url"):
        fields["store_url"] = normalize_store_url(fields["store_url"])
    return fields


def _check_updated_target(store: Dict[str, Any], fields: Dict[str, Any]):
    """The store must still name its storefront or seller after the update"""
    if not {"store_type", "store_url", "ebay_username"} & fields.keys():
        return
    store_type = StoreType(fields.get("store_type", store["storeType"]))
    store_url = fields.get("store_url", store["storeUrl"]) or store["shopifyDomain"]
    try:
        check_store_target(store_type, store_url, fields.get("ebay_username", store["ebayUsername"]))
    except ValueError as e:
        raise ValidationError(str(e))


def get_owned_store(store_id: int, user: Dict[str, Any], db_service: DatabaseService) -> Dict[str, Any]:
    """Store owned by ``user``; anyone else's store is reported as missing"""
    store = db_service.get_user_store(store_id, user_id=user["id"])
    if not store:
        raise NotFoundError("Store", store_id)
    return store


@router.get("/stores")
async def list_stores(
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    stores = db_service.get_user_stores(user["id"])
    return {"success": True, "data": stores, "total": len(stores), "message": f"Retrieved {len(stores)} stores"}


@router.post("/stores", status_code=status.HTTP_201_CREATED)
async def create_store(
        request: CreateUserStoreRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    try:
        store = db_service.create_user_store(user["id"], **_store_fields(request))
        return {"success": True, "data": store, "message": f"Store '{store['name']}' created"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error creating store for user {user['id']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while creating the store"
        )


@router.get("/stores/{store_id}")
async def get_store(
        store_id: int,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    store = get_owned_store(store_id, user, db_service)
    return {
        "success": True,
        "data": {**store, "recentAnalyses": db_service.get_store_analyses(store_id)},
        "message": "OK"
    }


@router.put("/stores/{store_id}")
async def update_store(
        store_id: int,
        request: UpdateUserStoreRequest,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    """Partial update; only the fields present in the body change"""
    try:
        store = get_owned_store(store_id, user, db_service)
        fields = _store_fields(request)
        _check_updated_target(store, fields)
        if fields:
            store = db_service.update_user_store(store_id, user_id=user["id"], **fields)
        return {"success": True, "data": store, "message": "Store updated"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error updating store {store_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while updating the store"
        )


@router.delete("/stores/{store_id}")
async def delete_store(
        store_id: int,
        user: Dict[str, Any] = Depends(require_user),
        db_service: DatabaseService = Depends(get_database_service)
):
    try:
        if not db_service.delete_user_store(store_id, user["id"]):
            raise NotFoundError("Store", store_id)
        return {"success": True, "data": None, "message": "Store deleted"}

    except (HTTPException, StoreScoreException):
        raise
    except Exception as e:
        logger.error(f"Error deleting store {store_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while deleting the store"
        )
