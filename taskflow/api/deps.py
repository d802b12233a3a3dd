from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import BackgroundTasks, Depends, Header, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.db.session import get_session
from taskflow.models.organization import MemberRole, OrganizationMember
from taskflow.services import organizations as organizations_service
from taskflow.services import snapshots as snapshots_service

SessionDep = Annotated[AsyncSession, Depends(get_session)]


@dataclass
class MemberContext:
    membership: OrganizationMember

    @property
    def organization_id(self) -> int:
        return self.membership.organization_id

    @property
    def user_id(self) -> int:
        return self.membership.user_id

    @property
    def role(self) -> MemberRole:
        return self.membership.role


async def get_member_context(
    session: SessionDep,
    # Header parameter names must not collide with path parameters like {user_id}
    x_user_id: Optional[int] = Header(None, alias="X-User-ID"),
    x_organization_id: Optional[int] = Header(None, alias="X-Organization-ID"),
) -> MemberContext:
    if x_user_id is None or x_organization_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing caller identity")
    membership = await organizations_service.get_membership(
        session,
        organization_id=x_organization_id,
        user_id=x_user_id,
    )
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Organization access denied")
    return MemberContext(membership=membership)


MemberContextDep = Annotated[MemberContext, Depends(get_member_context)]


def schedule_snapshot_refresh(background_tasks: BackgroundTasks, organization_id: int) -> None:
    """Drop the cached snapshot and recompute it after the response is sent."""
    snapshots_service.invalidate_organization(organization_id)
    background_tasks.add_task(snapshots_service.refresh_snapshot, organization_id)
