"""
Admin Endpoints
POST /admin/reload-profiles - Rebuild or reload user profiles in this process
POST /admin/rebuild-profiles - Queue the offline profile rebuild task
GET /admin/task-status/{task_id} - Check Celery task status
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..config import APISettings, get_settings
from ..dependencies import get_profiles
from ...ml.user_modeling.profile_store import ProfileStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


# Request/Response Models
class ReloadProfilesRequest(BaseModel):
    source: str = Field(
        default="files",
        pattern="^(files|snapshot)$",
        description="'files' rebuilds from the order/product exports, 'snapshot' loads the artifact",
    )


class ReloadProfilesResponse(BaseModel):
    status: str = Field(..., description="Status")
    source: str = Field(..., description="Where profiles were loaded from")
    profiles: int = Field(..., description="Profiles in the published snapshot")
    users_with_history: int = Field(..., description="Users with order history")
    user_types: int = Field(..., description="User type aggregates")
    built_at: Optional[str] = Field(None, description="Snapshot build time")


class RebuildProfilesResponse(BaseModel):
    task_id: str = Field(..., description="Celery task ID")
    status: str = Field(default="queued", description="Task status")
    message: str = Field(..., description="Success message")


class TaskStatusResponse(BaseModel):
    task_id: str = Field(..., description="Celery task ID")
    status: str = Field(..., description="Task status (PENDING, STARTED, SUCCESS, FAILURE)")
    result: Optional[dict] = Field(None, description="Task result if completed")
    error: Optional[str] = Field(None, description="Error message if failed")


# Endpoints
@router.post("/reload-profiles", response_model=ReloadProfilesResponse)
def reload_profiles(
    request: Optional[ReloadProfilesRequest] = None,
    settings: APISettings = Depends(get_settings),
    profile_store: ProfileStore = Depends(get_profiles),
) -> ReloadProfilesResponse:
    """
    Synchronously rebuild or reload user profiles (no Celery required).

    The new snapshot is published only once fully built; in-flight searches
    keep using the previous one.
    """
    request = request or ReloadProfilesRequest()
    if request.source == "snapshot":
        try:
            snapshot = profile_store.load_artifact(settings.snapshot_path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load profile snapshot: {e}")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Profile snapshot unavailable: {e}",
            )
    else:
        snapshot = profile_store.rebuild_from_files(settings.orders_path, settings.products_path)

    return ReloadProfilesResponse(status="success", source=request.source, **snapshot.stats())


@router.post(
    "/rebuild-profiles",
    response_model=RebuildProfilesResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def rebuild_profiles() -> RebuildProfilesResponse:
    """
    Queue the offline profile rebuild.

    The worker writes the snapshot artifact; load it afterwards with
    POST /admin/reload-profiles {"source": "snapshot"}.
    """
    try:
        from ...tasks.profiles import rebuild_user_profiles

        result = rebuild_user_profiles.delay()

        logger.info(f"User profile rebuild triggered: task_id={result.id}")

        return RebuildProfilesResponse(
            task_id=result.id,
            status="queued",
            message="User profile rebuild queued",
        )

    except Exception as e:
        logger.error(f"Failed to trigger profile rebuild: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to trigger profile rebuild: {str(e)}",
        )


@router.get("/task-status/{task_id}", response_model=TaskStatusResponse)
async def get_task_status(task_id: str) -> TaskStatusResponse:
    """
    Check the status of a Celery task.

    Returns task state and result (if completed).
    """
    try:
        from celery.result import AsyncResult

        from ...tasks.celery_app import app as celery_app

        task_result = AsyncResult(task_id, app=celery_app)

        status_str = task_result.status  # PENDING, STARTED, SUCCESS, FAILURE, RETRY

        response = TaskStatusResponse(task_id=task_id, status=status_str, result=None, error=None)

        if status_str == "SUCCESS":
            response.result = task_result.result
        elif status_str == "FAILURE":
            response.error = str(task_result.info)

        return response

    except Exception as e:
        logger.error(f"Failed to get task status: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get task status: {str(e)}",
        )
