from __future__ import annotations

from typing import Iterable

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.core.exceptions import NotFoundError
from taskflow.models.organization import MemberRole, Organization, OrganizationMember
from taskflow.models.user import User


async def get_organization(session: AsyncSession, organization_id: int) -> Organization:
    result = await session.exec(select(Organization).where(Organization.id == organization_id))
    organization = result.one_or_none()
    if not organization:
        raise NotFoundError("Organization not found")
    return organization


async def list_organization_ids(session: AsyncSession) -> list[int]:
    result = await session.exec(select(Organization.id).order_by(Organization.id.asc()))
    return list(result.all())


async def get_membership(
    session: AsyncSession,
    *,
    organization_id: int,
    user_id: int,
) -> OrganizationMember | None:
    stmt = select(OrganizationMember).where(
        OrganizationMember.organization_id == organization_id,
        OrganizationMember.user_id == user_id,
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def ensure_membership(
    session: AsyncSession,
    *,
    organization_id: int,
    user_id: int,
    role: MemberRole = MemberRole.member,
    job_role: str | None = None,
) -> OrganizationMember:
    membership = await get_membership(session, organization_id=organization_id, user_id=user_id)
    if membership:
        return membership
    membership = OrganizationMember(
        organization_id=organization_id,
        user_id=user_id,
        role=role,
        job_role=job_role,
    )
    session.add(membership)
    await session.flush()
    return membership


async def member_ids(
    session: AsyncSession,
    *,
    organization_id: int,
    user_ids: Iterable[int] | None = None,
) -> set[int]:
    stmt = select(OrganizationMember.user_id).where(OrganizationMember.organization_id == organization_id)
    if user_ids is not None:
        ids = tuple(user_ids)
        if not ids:
            return set()
        stmt = stmt.where(OrganizationMember.user_id.in_(ids))
    result = await session.exec(stmt)
    return set(result.all())


async def list_members(
    session: AsyncSession,
    *,
    organization_id: int,
) -> list[tuple[OrganizationMember, User]]:
    stmt = (
        select(OrganizationMember, User)
        .join(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == organization_id)
        .order_by(OrganizationMember.joined_at.asc(), OrganizationMember.user_id.asc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def display_names(session: AsyncSession, user_ids: Iterable[int]) -> dict[int, str]:
    """Profile lookup used for message text only."""
    ids = tuple({user_id for user_id in user_ids if user_id is not None})
    if not ids:
        return {}
    result = await session.exec(select(User).where(User.id.in_(ids)))
    return {user.id: user.display_name for user in result.all()}
