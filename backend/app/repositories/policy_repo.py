"""Policy Repository - Data access for expense policies"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Policy
from ..domain.errors import NotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class PolicyRepository:
    """Repository for policy operations"""

    def __init__(self):
        self._policies: Collection = get_collection("policies")

    def _next_position(self, org_id: str) -> int:
        last = self._policies.find_one({"org_id": org_id}, sort=[("position", DESCENDING)])
        return (last["position"] + 1) if last else 0

    def create_policy(self, policy: Policy) -> Policy:
        """Append a policy to the org's table"""
        policy = policy.model_copy(update={"position": self._next_position(policy.org_id)})
        doc = policy.model_dump()
        doc["_id"] = policy.policy_id

        self._policies.insert_one(doc)
        logger.info(f"Created policy: {policy.expense_type}", extra={"org_id": policy.org_id})
        return policy

    def create_policies_bulk(self, policies: List[Policy]) -> List[Policy]:
        """Append several policies, keeping the given order"""
        if not policies:
            return []

        start = self._next_position(policies[0].org_id)
        stored = []
        docs = []
        for offset, policy in enumerate(policies):
            policy = policy.model_copy(update={"position": start + offset})
            doc = policy.model_dump()
            doc["_id"] = policy.policy_id
            docs.append(doc)
            stored.append(policy)

        self._policies.insert_many(docs)
        logger.info(f"Created {len(stored)} policies", extra={"org_id": stored[0].org_id})
        return stored

    def list_policies(self, org_id: str) -> List[Policy]:
        """All policies of an org in stored order"""
        cursor = self._policies.find({"org_id": org_id}).sort("position", ASCENDING)

        policies = []
        for doc in cursor:
            doc.pop("_id", None)
            policies.append(Policy.model_validate(doc))
        return policies

    def get_policy(self, org_id: str, policy_id: str) -> Optional[Policy]:
        doc = self._policies.find_one({"org_id": org_id, "policy_id": policy_id})
        if doc:
            doc.pop("_id", None)
            return Policy.model_validate(doc)
        return None

    def update_policy(self, org_id: str, policy_id: str, updates: Dict[str, Any]) -> Policy:
        updates = dict(updates)
        updates["updated_at"] = utc_now()

        result = self._policies.find_one_and_update(
            {"org_id": org_id, "policy_id": policy_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise NotFoundError(f"Policy {policy_id} not found")

        result.pop("_id", None)
        logger.info(f"Updated policy: {policy_id}", extra={"org_id": org_id})
        return Policy.model_validate(result)

    def delete_policy(self, org_id: str, policy_id: str) -> None:
        result = self._policies.delete_one({"org_id": org_id, "policy_id": policy_id})
        if result.deleted_count == 0:
            raise NotFoundError(f"Policy {policy_id} not found")
        logger.info(f"Deleted policy: {policy_id}", extra={"org_id": org_id})
