"""Enrollment invitation API endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.database import get_db
from classroll.models.invitation import InvitationState
from classroll.models.user import Role
from classroll.schemas.common import APIResponse, PaginationMeta
from classroll.schemas.invitation import (
    InvitationCreate,
    InvitationResponse,
    InvitationValidate,
    InvitationView,
)
from classroll.services.invitation_service import InvitationService, get_invitation_service
from classroll.utils.permissions import require_role
from classroll.utils.request_context import get_current_user_id, get_school_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=APIResponse[InvitationResponse], status_code=201)
@require_role(Role.SCHOOL_ADMIN)
async def create_invitation(
    data: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    """Create a new enrollment invitation for the admin's school."""
    invitation = await service.create(
        db,
        kind=data.kind,
        school_id=get_school_id(),
        creator_id=get_current_user_id(),
        course_id=data.course_id,
        student_id=data.student_id,
        max_uses=data.max_uses,
        expires_at=data.expires_at,
        extra=data.extra,
    )

    return APIResponse(
        data=InvitationResponse.model_validate(invitation),
        message=f"Invitation {invitation.code} created",
    )


@router.get("", response_model=APIResponse[list[InvitationResponse]])
@require_role(Role.SCHOOL_ADMIN)
async def list_invitations(
    state: InvitationState | None = Query(None, description="Filter by state"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    """List the school's invitations, newest first."""
    invitations, total = await service.list_for_school(
        db,
        get_school_id(),
        state=state,
        page=page,
        page_size=page_size,
    )

    return APIResponse(
        data=[InvitationResponse.model_validate(i) for i in invitations],
        pagination=PaginationMeta.build(page, page_size, total),
    )


@router.post("/validate", response_model=APIResponse[InvitationView])
async def validate_invitation(
    data: InvitationValidate,
    db: AsyncSession = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    """Check an invitation code before registering (public)."""
    view = await service.validate(db, data.code)
    return APIResponse(data=view, message="Invitation is valid")


@router.get("/course/{course_id}", response_model=APIResponse[list[InvitationResponse]])
@require_role(Role.SCHOOL_ADMIN)
async def list_course_invitations(
    course_id: UUID,
    state: InvitationState | None = Query(None, description="Filter by state"),
    db: AsyncSession = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    """List the invitations issued for one course."""
    school_id = get_school_id()
    invitations = await service.list_for_course(db, course_id, state=state)

    return APIResponse(
        data=[InvitationResponse.model_validate(i) for i in invitations if i.school_id == school_id],
    )


@router.get("/{invitation_id}", response_model=APIResponse[InvitationResponse])
@require_role(Role.SCHOOL_ADMIN)
async def get_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    """Get an invitation of the admin's school."""
    invitation = await service.get(db, invitation_id, school_id=get_school_id())
    return APIResponse(data=InvitationResponse.model_validate(invitation))


@router.delete("/{invitation_id}", response_model=APIResponse[InvitationResponse])
@require_role(Role.SCHOOL_ADMIN)
async def revoke_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: InvitationService = Depends(get_invitation_service),
):
    """Revoke an ACTIVE invitation. Invitations are never deleted."""
    invitation = await service.revoke(db, invitation_id, school_id=get_school_id())
    return APIResponse(
        data=InvitationResponse.model_validate(invitation),
        message="Invitation revoked",
    )
