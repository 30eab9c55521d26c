"""Profile Repository - User directory backing recipient and name resolution"""
from typing import Dict, Iterable, Optional
from pymongo.collection import Collection
from pymongo import ReturnDocument

from .mongo_client import get_collection
from ..domain.models import ActorContext, Profile
from ..utils.time import utc_now


class ProfileRepository:
    """Repository for user profiles"""

    def __init__(self):
        self._profiles: Collection = get_collection("profiles")

    def upsert_from_actor(self, actor: ActorContext) -> Profile:
        """Refresh the profile from the latest identity token"""
        doc = self._profiles.find_one_and_update(
            {"user_id": actor.user_id},
            {
                "$set": {
                    "email": actor.email.lower(),
                    "full_name": actor.display_name,
                    "updated_at": utc_now(),
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        doc.pop("_id", None)
        return Profile.model_validate(doc)

    def get_profile(self, user_id: str) -> Optional[Profile]:
        doc = self._profiles.find_one({"user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return Profile.model_validate(doc)
        return None

    def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        """Profiles keyed by user id; unknown ids are simply absent"""
        ids = [uid for uid in set(user_ids) if uid]
        if not ids:
            return {}

        profiles = {}
        for doc in self._profiles.find({"user_id": {"$in": ids}}):
            doc.pop("_id", None)
            profile = Profile.model_validate(doc)
            profiles[profile.user_id] = profile
        return profiles
