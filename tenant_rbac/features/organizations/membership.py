"""
Membership provider.

Answers who a member is (organization and organization role) and which
application roles the member holds. Member rows are written by the external
organization service through ``sync_members``.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_rbac.core.database.engine import is_unique_violation
from tenant_rbac.core.errors import ConflictError, ValidationError
from tenant_rbac.features.organizations.models import Member, ORGANIZATION_ADMIN_ROLES
from tenant_rbac.features.organizations.schemas import MemberSyncItem, MemberSyncEnvelope
from tenant_rbac.features.roles.models import ApplicationRole, member_application_roles
from tenant_rbac.utils import get_logger


log = get_logger(__name__)

_member_list_adapter = TypeAdapter(list[MemberSyncItem])


@dataclass(frozen=True)
class MemberRecord:
    member_id: str
    user_id: str
    organization_id: str
    organization_role: str
    joined_at: Optional[datetime] = None

    @property
    def is_organization_admin(self) -> bool:
        return self.organization_role in ORGANIZATION_ADMIN_ROLES

    @classmethod
    def from_model(cls, member: Member) -> "MemberRecord":
        return cls(
            member_id=member.id,
            user_id=member.user_id,
            organization_id=member.organization_id,
            organization_role=member.role,
            joined_at=member.joined_at,
        )


def normalize_member_payload(payload: Any) -> List[MemberSyncItem]:
    """
    Normalize a member listing into an ordered list of members.
    
    The organization service answers either with a bare list of members or
    with an object carrying a ``members`` list; both shapes end up here.
    
    Raises:
        ValidationError: neither shape matches
    """
    try:
        if isinstance(payload, list):
            return _member_list_adapter.validate_python(payload)
        if isinstance(payload, dict) and "members" in payload:
            return MemberSyncEnvelope.model_validate(payload).members
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid member listing: {e.error_count()} error(s)", field="members")
    raise ValidationError("Member listing must be a list or an object with a 'members' list", field="members")


class MembershipResolver:
    """Database-backed membership provider."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_member(self, member_id: str) -> Optional[MemberRecord]:
        result = await self.db.execute(select(Member).where(Member.id == member_id))
        member = result.scalar_one_or_none()
        return MemberRecord.from_model(member) if member else None

    async def get_membership(self, user_id: str, organization_id: str) -> Optional[MemberRecord]:
        """Membership of a user in one organization, or None."""
        result = await self.db.execute(
            select(Member).where(
                and_(Member.user_id == user_id, Member.organization_id == organization_id)
            )
        )
        member = result.scalar_one_or_none()
        return MemberRecord.from_model(member) if member else None

    async def get_application_role_ids(self, member_id: str, application_id: str) -> set[str]:
        """IDs of the roles of ``application_id`` assigned to the member."""
        stmt = (
            select(member_application_roles.c.application_role_id)
            .join(ApplicationRole, ApplicationRole.id == member_application_roles.c.application_role_id)
            .where(
                and_(
                    member_application_roles.c.member_id == member_id,
                    ApplicationRole.application_id == application_id,
                )
            )
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def sync_members(self, organization_id: str, members: List[MemberSyncItem]) -> tuple[int, int]:
        """
        Upsert member rows for an organization. A member id listed more than
        once is written once, with its last record.
        
        Returns:
            (created, updated) counts
        
        Raises:
            ValidationError: a member id belongs to another organization
            ConflictError: two member ids share a user in this organization
        """
        latest = {item.id: item for item in members}
        created = updated = 0
        for item in latest.values():
            result = await self.db.execute(select(Member).where(Member.id == item.id))
            existing = result.scalar_one_or_none()
            if existing is not None and existing.organization_id != organization_id:
                raise ValidationError(
                    f"Member {item.id} belongs to another organization", field="members"
                )
            if existing is None:
                values = dict(id=item.id, organization_id=organization_id, user_id=item.user_id, role=item.role)
                if item.joined_at is not None:
                    values["joined_at"] = item.joined_at
                self.db.add(Member(**values))
                created += 1
            else:
                existing.user_id = item.user_id
                existing.role = item.role
                updated += 1
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if not is_unique_violation(e):
                raise
            raise ConflictError("A user can hold only one membership per organization", field="members")
        log.info(f"Synced members for org {organization_id}: created={created} updated={updated}")
        return created, updated
