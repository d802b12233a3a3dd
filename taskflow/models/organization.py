from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Enum as SQLEnum, Field, SQLModel


class MemberRole(str, Enum):
    admin = "admin"
    manager = "manager"
    member = "member"


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class OrganizationMember(SQLModel, table=True):
    __tablename__ = "organization_members"

    organization_id: int = Field(foreign_key="organizations.id", primary_key=True)
    user_id: int = Field(foreign_key="users.id", primary_key=True)
    role: MemberRole = Field(
        default=MemberRole.member,
        sa_column=Column(
            SQLEnum(MemberRole, name="member_role"),
            nullable=False,
            server_default=MemberRole.member.value,
        ),
    )
    job_role: Optional[str] = Field(default=None)
    joined_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
