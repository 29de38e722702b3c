"""Registration request API endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.database import get_db
from classroll.models.registration import RegistrationState
from classroll.models.user import Role
from classroll.schemas.common import APIResponse, PaginationMeta
from classroll.schemas.registration import (
    ApprovalResult,
    RegistrationResponse,
    RegistrationSubmit,
    RejectRequest,
)
from classroll.services.onboarding_service import OnboardingService, get_onboarding_service
from classroll.utils.permissions import require_role
from classroll.utils.request_context import (
    get_current_user_id,
    get_school_id,
    require_caller,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=APIResponse[RegistrationResponse], status_code=201)
async def submit_registration(
    data: RegistrationSubmit,
    db: AsyncSession = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Submit a registration request with an invitation code (public)."""
    request = await service.submit(db, data.invitation_code, data.guardian, data.students)
    return APIResponse(
        data=RegistrationResponse.model_validate(request),
        message="Registration request submitted and awaiting review",
    )


@router.get("/pending", response_model=APIResponse[list[RegistrationResponse]])
@require_role(Role.SCHOOL_ADMIN)
async def list_pending_registrations(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """List requests awaiting review, newest first."""
    requests, total = await service.list_pending(
        db, require_caller().school_id, page=page, page_size=page_size
    )

    return APIResponse(
        data=[RegistrationResponse.model_validate(r) for r in requests],
        pagination=PaginationMeta.build(page, page_size, total),
    )


@router.get("/history", response_model=APIResponse[list[RegistrationResponse]])
@require_role(Role.SCHOOL_ADMIN)
async def list_registration_history(
    state: RegistrationState | None = Query(None, description="Filter by state"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """List reviewed and pending requests, newest first."""
    requests, total = await service.list_history(
        db, require_caller().school_id, state=state, page=page, page_size=page_size
    )

    return APIResponse(
        data=[RegistrationResponse.model_validate(r) for r in requests],
        pagination=PaginationMeta.build(page, page_size, total),
    )


@router.get("/{request_id}", response_model=APIResponse[RegistrationResponse])
@require_role(Role.SCHOOL_ADMIN)
async def get_registration(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Get one registration request of the admin's school."""
    request = await service.get_request(db, request_id, school_id=get_school_id())
    return APIResponse(data=RegistrationResponse.model_validate(request))


@router.put("/{request_id}/approve", response_model=APIResponse[ApprovalResult])
@require_role(Role.SCHOOL_ADMIN)
async def approve_registration(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Approve a pending request and create its accounts."""
    await service.get_request(db, request_id, school_id=get_school_id())
    result = await service.approve(db, request_id, reviewer_id=get_current_user_id())

    message = "Registration approved"
    if not result.email_sent:
        message += ", but the credentials email could not be sent"
    return APIResponse(data=result, message=message)


@router.put("/{request_id}/reject", response_model=APIResponse[RegistrationResponse])
@require_role(Role.SCHOOL_ADMIN)
async def reject_registration(
    request_id: UUID,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Reject a pending request with a reason."""
    await service.get_request(db, request_id, school_id=get_school_id())
    request = await service.reject(db, request_id, reviewer_id=get_current_user_id(), reason=data.reason)
    return APIResponse(
        data=RegistrationResponse.model_validate(request),
        message="Registration rejected",
    )
