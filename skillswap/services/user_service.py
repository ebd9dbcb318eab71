import logging
import math
from typing import Dict, Optional

from ..core.config import Settings
from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError
from ..core.security import get_password_hash, verify_password
from ..core.store import Store, now_iso
from ..schemas.user import ProfileVisibility, UserCreate, UserUpdate

logger = logging.getLogger(__name__)

DEFAULT_AVAILABILITY = "weekends"

# Fields that may be cleared by sending null; everything else keeps its value
NULLABLE_PROFILE_FIELDS = {"location", "profile_photo"}


def public_view(user: Dict) -> Dict:
    """Return a copy of a user record without credentials or bookkeeping columns."""
    return {k: v for k, v in user.items() if k not in ("password", "version", "search_text")}


def summary_view(user: Dict) -> Dict:
    return {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "profile_photo": user.get("profile_photo"),
    }


class UserService:
    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    async def register(self, user: UserCreate) -> Dict:
        existing = await self.store.get_user_by_email(user.email)
        if existing:
            raise ConflictError("User already exists")

        now = now_iso()
        new_user = await self.store.insert_user({
            "email": user.email,
            "password": get_password_hash(user.password, self.settings),
            "name": user.name,
            "location": None,
            "profile_photo": None,
            "skills_offered": [],
            "skills_wanted": [],
            "availability": DEFAULT_AVAILABILITY,
            "profile_visibility": ProfileVisibility.PUBLIC.value,
            "rating": 0,
            "ratings_count": 0,
            "created_at": now,
            "updated_at": now,
        })
        logger.info("Registered user %s", new_user["id"])
        return public_view(new_user)

    async def authenticate(self, email: str, password: str) -> Optional[Dict]:
        """Resolve credentials to a user, or None when they do not match."""
        if not email or not password:
            return None
        user = await self.store.get_user_by_email(email.strip().lower())
        if not user or not verify_password(password, user.get("password"), self.settings):
            logger.info("Failed login attempt")
            return None
        return public_view(user)

    async def get_user_by_id(self, user_id: str) -> Dict:
        user = await self.store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return public_view(user)

    async def get_visible_user(self, user_id: str, viewer_id: Optional[str] = None) -> Dict:
        """Fetch a profile, hiding private ones from everyone but their owner."""
        user = await self.get_user_by_id(user_id)
        if user.get("profile_visibility") == ProfileVisibility.PRIVATE.value and viewer_id != user_id:
            raise ForbiddenError("Profile is private")
        return user

    async def update_user(self, user_id: str, actor_id: str, user_update: UserUpdate) -> Dict:
        if actor_id != user_id:
            raise ForbiddenError("You can only edit your own profile")

        raw_data = user_update.model_dump(mode="json", exclude_unset=True)
        update_data = {
            key: value for key, value in raw_data.items()
            if value is not None or key in NULLABLE_PROFILE_FIELDS
        }
        update_data["updated_at"] = now_iso()

        updated = await self.store.update_user(user_id, update_data)
        if not updated:
            raise NotFoundError("User not found")
        logger.info("Updated profile %s (%s)", user_id, ", ".join(sorted(update_data)))
        return public_view(updated)

    async def list_users(self, search: Optional[str], page: int, limit: int) -> Dict:
        search = search.strip() if search else None
        offset = (page - 1) * limit
        users, total = await self.store.search_public_users(search or None, offset, limit)
        total_pages = math.ceil(total / limit) if limit else 0
        return {
            "users": [public_view(u) for u in users],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }
