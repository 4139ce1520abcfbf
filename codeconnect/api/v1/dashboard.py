"""
Admin dashboard endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from codeconnect.api.deps import get_admin_user, get_dashboard_service
from codeconnect.core.exceptions import ValidationError
from codeconnect.domain.base import DocumentModel, utcnow
from codeconnect.domain.user import User
from codeconnect.services.dashboard_service import DashboardService

router = APIRouter()


class RoleUpdateRequest(DocumentModel):
    role: Optional[str] = None


@router.get("/dashboard/chats")
async def chats(
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> list[dict[str, Any]]:
    return await service.chat_overview()


@router.get("/dashboard/feedback")
async def feedback(
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> list[dict[str, Any]]:
    return await service.feedback_overview()


@router.get("/dashboard/metrics")
async def metrics(
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return await service.feedback_metrics()


@router.get("/dashboard/model-performance")
async def model_performance(
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return await service.model_performance()


@router.get("/dashboard/messages-count")
async def messages_count(
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return await service.messages_count()


@router.get("/dashboard/users", response_model=None)
async def users(
    action: Optional[str] = Query(default=None),
    export_format: Optional[str] = Query(default=None, alias="format"),
    limit: int = Query(default=10, ge=1),
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> Any:
    """
    User analytics.

    ``action`` selects ``analytics`` (default), ``growth``, ``activity``,
    ``top-users`` or ``export`` (``format=csv``).
    """
    if action == "growth":
        return {"data": await service.user_growth()}
    if action == "activity":
        return {"data": await service.user_activity()}
    if action == "top-users":
        return {"data": await service.top_users(limit)}
    if action == "export":
        if export_format != "csv":
            raise ValidationError("Invalid export format")
        filename = f"user-analytics-{utcnow().date().isoformat()}.csv"
        return Response(
            content=await service.export_users_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return {"data": await service.user_analytics()}


@router.patch("/dashboard/users/{user_id}/role")
async def update_role(
    user_id: str,
    request: RoleUpdateRequest,
    admin: User = Depends(get_admin_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    return await service.update_user_role(user_id, request.role)
