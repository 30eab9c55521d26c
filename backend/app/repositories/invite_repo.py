"""Invite Repository - Data access for email invites, invite links and link usage

Invite-link capacity is guarded by single conditional updates so two
concurrent redemptions can never push current_uses past max_uses.
"""
from typing import List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import Invite, InviteLink, InviteLinkUsage
from ..domain.enums import InviteStatus
from ..domain.errors import InviteNotFoundError, DuplicateError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class InviteRepository:
    """Repository for invitation operations"""

    def __init__(self):
        self._invites: Collection = get_collection("invites")
        self._links: Collection = get_collection("invite_links")
        self._usage: Collection = get_collection("invite_link_usage")

    # =========================================================================
    # Email Invites
    # =========================================================================

    def create_invite(self, invite: Invite) -> Invite:
        doc = invite.model_dump()
        doc["email"] = str(invite.email).lower()
        doc["_id"] = invite.invite_id

        self._invites.insert_one(doc)
        logger.info(f"Created invite for {invite.email}", extra={"org_id": invite.org_id})
        return invite

    def get_invite(self, invite_id: str) -> Optional[Invite]:
        doc = self._invites.find_one({"invite_id": invite_id})
        if doc:
            doc.pop("_id", None)
            return Invite.model_validate(doc)
        return None

    def get_invite_or_raise(self, invite_id: str) -> Invite:
        invite = self.get_invite(invite_id)
        if not invite:
            raise InviteNotFoundError(f"Invite {invite_id} not found")
        return invite

    def get_pending_invite(self, org_id: str, email: str) -> Optional[Invite]:
        doc = self._invites.find_one({
            "org_id": org_id,
            "email": email.lower(),
            "status": InviteStatus.PENDING.value,
        })
        if doc:
            doc.pop("_id", None)
            return Invite.model_validate(doc)
        return None

    def list_invites(self, org_id: str, status: Optional[InviteStatus] = None) -> List[Invite]:
        query = {"org_id": org_id}
        if status:
            query["status"] = status.value

        invites = []
        for doc in self._invites.find(query).sort("created_at", DESCENDING):
            doc.pop("_id", None)
            invites.append(Invite.model_validate(doc))
        return invites

    def mark_invite_accepted(self, invite_id: str) -> Optional[Invite]:
        """
        Consume a pending invite.

        Returns None when the invite was not pending (already accepted).
        """
        result = self._invites.find_one_and_update(
            {"invite_id": invite_id, "status": InviteStatus.PENDING.value},
            {"$set": {"status": InviteStatus.ACCEPTED.value, "accepted_at": utc_now()}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            return None
        result.pop("_id", None)
        return Invite.model_validate(result)

    def revert_invite_acceptance(self, invite_id: str) -> None:
        self._invites.update_one(
            {"invite_id": invite_id, "status": InviteStatus.ACCEPTED.value},
            {"$set": {"status": InviteStatus.PENDING.value, "accepted_at": None}}
        )

    # =========================================================================
    # Invite Links
    # =========================================================================

    def create_link(self, link: InviteLink) -> InviteLink:
        doc = link.model_dump()
        doc["_id"] = link.link_id

        self._links.insert_one(doc)
        logger.info(f"Created invite link: {link.link_id}", extra={"org_id": link.org_id, "link_id": link.link_id})
        return link

    def get_link(self, link_id: str) -> Optional[InviteLink]:
        doc = self._links.find_one({"link_id": link_id})
        if doc:
            doc.pop("_id", None)
            return InviteLink.model_validate(doc)
        return None

    def get_link_or_raise(self, link_id: str) -> InviteLink:
        link = self.get_link(link_id)
        if not link:
            raise InviteNotFoundError(f"Invite link {link_id} not found")
        return link

    def list_links(self, org_id: str) -> List[InviteLink]:
        links = []
        for doc in self._links.find({"org_id": org_id}).sort("created_at", DESCENDING):
            doc.pop("_id", None)
            links.append(InviteLink.model_validate(doc))
        return links

    def deactivate_link(self, org_id: str, link_id: str) -> InviteLink:
        result = self._links.find_one_and_update(
            {"org_id": org_id, "link_id": link_id},
            {"$set": {"is_active": False}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise InviteNotFoundError(f"Invite link {link_id} not found")

        result.pop("_id", None)
        logger.info(f"Deactivated invite link: {link_id}", extra={"org_id": org_id, "link_id": link_id})
        return InviteLink.model_validate(result)

    def claim_link_slot(self, link_id: str, max_uses: Optional[int]) -> bool:
        """
        Atomically take one use of an active link.

        max_uses is fixed at link creation, so filtering on
        current_uses < max_uses in the same update is a compare-and-set.

        Returns:
            True if a slot was claimed, False if the link is full or inactive
        """
        query = {"link_id": link_id, "is_active": True}
        if max_uses is not None:
            query["current_uses"] = {"$lt": max_uses}

        result = self._links.update_one(query, {"$inc": {"current_uses": 1}})
        claimed = result.modified_count == 1
        logger.debug(
            f"Claim slot on {link_id}: {'ok' if claimed else 'refused'}",
            extra={"link_id": link_id}
        )
        return claimed

    def release_link_slot(self, link_id: str) -> None:
        """Give back a slot taken by a redemption that did not complete"""
        self._links.update_one(
            {"link_id": link_id, "current_uses": {"$gt": 0}},
            {"$inc": {"current_uses": -1}}
        )
        logger.info(f"Released slot on invite link {link_id}", extra={"link_id": link_id})

    # =========================================================================
    # Link Usage
    # =========================================================================

    def has_link_usage(self, link_id: str, email: str) -> bool:
        return self._usage.count_documents({"link_id": link_id, "email": email.lower()}, limit=1) > 0

    def record_link_usage(self, usage: InviteLinkUsage) -> InviteLinkUsage:
        """Insert a usage row; (link_id, email) is unique"""
        doc = usage.model_dump()
        doc["email"] = str(usage.email).lower()
        doc["_id"] = usage.usage_id

        try:
            self._usage.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateError(
                "This email has already used this invite link",
                details={"link_id": usage.link_id}
            )
        return usage

    def delete_link_usage(self, usage_id: str) -> None:
        self._usage.delete_one({"usage_id": usage_id})

    def list_link_usage(self, link_id: str) -> List[InviteLinkUsage]:
        usages = []
        for doc in self._usage.find({"link_id": link_id}).sort("used_at", ASCENDING):
            doc.pop("_id", None)
            usages.append(InviteLinkUsage.model_validate(doc))
        return usages
