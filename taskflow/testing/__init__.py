"""
Shared test utilities and factories.

Re-exports all factory functions for convenient imports:
    from taskflow.testing import create_user, create_organization, member_headers
"""

from taskflow.testing.factories import (
    create_assignment,
    create_member,
    create_membership,
    create_organization,
    create_task,
    create_user,
    create_working_hours,
    member_headers,
)

__all__ = [
    "create_assignment",
    "create_member",
    "create_membership",
    "create_organization",
    "create_task",
    "create_user",
    "create_working_hours",
    "member_headers",
]
