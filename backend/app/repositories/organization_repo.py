"""Organization Repository - Data access for organizations and memberships"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import Organization, Membership
from ..domain.enums import Role
from ..domain.errors import (
    ConflictError, DuplicateError, MembershipNotFoundError, OrganizationNotFoundError
)
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class OrganizationRepository:
    """Repository for organization and membership operations"""

    def __init__(self):
        self._organizations: Collection = get_collection("organizations")
        self._memberships: Collection = get_collection("memberships")

    # =========================================================================
    # Organizations
    # =========================================================================

    def create_organization(self, organization: Organization) -> Organization:
        """Create an organization; the slug must be unused"""
        doc = organization.model_dump()
        doc["_id"] = organization.org_id

        try:
            self._organizations.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateError(
                f"Organization slug '{organization.slug}' is already taken",
                details={"slug": organization.slug}
            )
        logger.info(f"Created organization: {organization.slug}", extra={"org_id": organization.org_id})
        return organization

    def get_organization(self, org_id: str) -> Optional[Organization]:
        doc = self._organizations.find_one({"org_id": org_id})
        if doc:
            doc.pop("_id", None)
            return Organization.model_validate(doc)
        return None

    def get_organization_by_slug(self, slug: str) -> Optional[Organization]:
        doc = self._organizations.find_one({"slug": slug})
        if doc:
            doc.pop("_id", None)
            return Organization.model_validate(doc)
        return None

    def get_organization_by_slug_or_raise(self, slug: str) -> Organization:
        organization = self.get_organization_by_slug(slug)
        if not organization:
            raise OrganizationNotFoundError(f"Organization '{slug}' not found")
        return organization

    def slug_exists(self, slug: str) -> bool:
        return self._organizations.count_documents({"slug": slug}, limit=1) > 0

    def update_organization(self, org_id: str, updates: Dict[str, Any]) -> Organization:
        """Update organization fields"""
        updates = dict(updates)
        updates["updated_at"] = utc_now()

        result = self._organizations.find_one_and_update(
            {"org_id": org_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise OrganizationNotFoundError(f"Organization {org_id} not found")

        result.pop("_id", None)
        logger.info(f"Updated organization: {org_id}", extra={"org_id": org_id})
        return Organization.model_validate(result)

    def list_organizations_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """Organizations the user belongs to, each paired with the user's role"""
        memberships = list(self._memberships.find({"user_id": user_id}).sort("created_at", ASCENDING))
        if not memberships:
            return []

        role_by_org = {m["org_id"]: m["role"] for m in memberships}
        cursor = self._organizations.find({"org_id": {"$in": list(role_by_org)}}).sort("name", ASCENDING)

        results = []
        for doc in cursor:
            doc.pop("_id", None)
            results.append({
                "organization": Organization.model_validate(doc),
                "role": Role(role_by_org[doc["org_id"]]),
            })
        return results

    # =========================================================================
    # Memberships
    # =========================================================================

    def create_membership(self, membership: Membership) -> Membership:
        """Insert a membership; (org_id, user_id) is unique"""
        doc = membership.model_dump()
        doc["_id"] = membership.membership_id

        try:
            self._memberships.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateError(
                "User is already a member of this organization",
                details={"org_id": membership.org_id, "user_id": membership.user_id}
            )
        logger.info(
            f"Added member {membership.user_id} as {membership.role.value}",
            extra={"org_id": membership.org_id, "actor_id": membership.user_id}
        )
        return membership

    def get_membership(self, org_id: str, user_id: str) -> Optional[Membership]:
        doc = self._memberships.find_one({"org_id": org_id, "user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return Membership.model_validate(doc)
        return None

    def get_membership_role(self, org_id: str, user_id: str) -> Optional[Role]:
        """Role of the user in the org, or None when not a member"""
        doc = self._memberships.find_one({"org_id": org_id, "user_id": user_id}, {"role": 1})
        return Role(doc["role"]) if doc else None

    def list_memberships(self, org_id: str, roles: Optional[List[Role]] = None) -> List[Membership]:
        query: Dict[str, Any] = {"org_id": org_id}
        if roles:
            query["role"] = {"$in": [r.value for r in roles]}

        memberships = []
        for doc in self._memberships.find(query).sort("created_at", ASCENDING):
            doc.pop("_id", None)
            memberships.append(Membership.model_validate(doc))
        return memberships

    def update_membership_role(self, org_id: str, user_id: str, role: Role, expected_role: Role) -> Membership:
        """
        Compare-and-set role change keyed by membership and the prior role.

        Raises:
            ConflictError: The member's role changed concurrently
            MembershipNotFoundError: The member is not in the organization
        """
        result = self._memberships.find_one_and_update(
            {"org_id": org_id, "user_id": user_id, "role": expected_role.value},
            {"$set": {"role": role.value}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            current = self._memberships.find_one({"org_id": org_id, "user_id": user_id}, {"role": 1})
            if current:
                raise ConflictError(
                    f"Role of {user_id} was changed. Please refresh and try again.",
                    details={"expected_role": expected_role.value, "current_role": current.get("role")}
                )
            raise MembershipNotFoundError(f"Member {user_id} not found in organization")

        result.pop("_id", None)
        logger.info(
            f"Changed role of {user_id} to {role.value}",
            extra={"org_id": org_id, "actor_id": user_id}
        )
        return Membership.model_validate(result)

    def delete_membership(self, org_id: str, user_id: str) -> None:
        result = self._memberships.delete_one({"org_id": org_id, "user_id": user_id})
        if result.deleted_count == 0:
            raise MembershipNotFoundError(f"Member {user_id} not found in organization")
        logger.info(f"Removed member {user_id}", extra={"org_id": org_id})
