#!/usr/bin/env python
"""
Command-line utility to load sample users, swaps and ratings.

Usage:
    python -m skillswap.seed [--password password123] [--store memory]

Everything goes through the service layer, so the lifecycle rules and the
rating aggregates hold for seeded data exactly as for API traffic. Users,
swaps and ratings that already exist are looked up and reused, so running
the script again creates nothing new.
"""

import argparse
import asyncio
import logging
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .core.config import Settings, get_settings
from .core.exceptions import ConflictError
from .core.store import Store, create_store
from .schemas.rating import RatingCreate
from .schemas.swap import SwapCreate, SwapStatus
from .schemas.user import UserCreate, UserUpdate
from .services.rating_service import RatingService
from .services.swap_service import SwapService
from .services.user_service import UserService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

SAMPLE_USERS: List[Dict] = [
    {
        "name": "Alice Johnson",
        "email": "alice@example.com",
        "location": "San Francisco, CA",
        "skills_offered": ["Web Development", "React", "Node.js"],
        "skills_wanted": ["UI/UX Design", "Photography", "Spanish"],
        "availability": "evenings",
    },
    {
        "name": "Bob Smith",
        "email": "bob@example.com",
        "location": "New York, NY",
        "skills_offered": ["Graphic Design", "Adobe Photoshop", "Branding"],
        "skills_wanted": ["Web Development", "Digital Marketing", "Video Editing"],
        "availability": "weekends",
    },
    {
        "name": "Carol Davis",
        "email": "carol@example.com",
        "location": "Los Angeles, CA",
        "skills_offered": ["Photography", "Photo Editing", "Lightroom"],
        "skills_wanted": ["Graphic Design", "Music Production", "Cooking"],
        "availability": "flexible",
    },
    {
        "name": "David Wilson",
        "email": "david@example.com",
        "location": "Chicago, IL",
        "skills_offered": ["Digital Marketing", "SEO", "Content Writing"],
        "skills_wanted": ["Web Development", "Data Analysis", "Machine Learning"],
        "availability": "weekdays",
    },
    {
        "name": "Emma Thompson",
        "email": "emma@example.com",
        "location": "Austin, TX",
        "skills_offered": ["UI/UX Design", "Figma", "User Research"],
        "skills_wanted": ["React", "JavaScript", "Frontend Development"],
        "availability": "evenings",
    },
    {
        "name": "Frank Miller",
        "email": "frank@example.com",
        "location": "Seattle, WA",
        "skills_offered": ["Music Production", "Audio Engineering", "Piano"],
        "skills_wanted": ["Video Editing", "Motion Graphics", "Photography"],
        "availability": "weekends",
    },
]

# (requester, receiver, offered, requested, final status, message)
SAMPLE_SWAPS = [
    ("alice@example.com", "bob@example.com", "Web Development", "Graphic Design", SwapStatus.PENDING,
     "Hi Bob! I'd love to learn graphic design from you. I can help you with modern web development techniques."),
    ("bob@example.com", "emma@example.com", "Branding", "UI/UX Design", SwapStatus.ACCEPTED,
     "Hey Emma! I specialize in branding and would love to learn UX design from you."),
    ("carol@example.com", "david@example.com", "Photography", "Digital Marketing", SwapStatus.COMPLETED,
     "Hi David! I can teach you photography and would love to learn digital marketing strategies."),
    ("emma@example.com", "alice@example.com", "User Research", "React", SwapStatus.PENDING,
     "Alice, I need help with React development. I can share user research techniques in return."),
    ("frank@example.com", "carol@example.com", "Music Production", "Photography", SwapStatus.REJECTED,
     "Carol, I'd love to learn photography from you. I can teach music production in return."),
]

# (rater, ratee, score, feedback) on the completed Carol/David swap
SAMPLE_RATINGS = [
    ("carol@example.com", "david@example.com", 5,
     "David was an excellent teacher! Very patient and knowledgeable about digital marketing."),
    ("david@example.com", "carol@example.com", 4,
     "Carol has great photography skills and was very helpful with composition techniques."),
]


async def _ensure_user(users: UserService, sample: Dict, password: str) -> Dict:
    existing = await users.store.get_user_by_email(sample["email"])
    if existing:
        logger.info("User %s already exists, reusing it", sample["email"])
        return existing

    created = await users.register(
        UserCreate(email=sample["email"], password=password, name=sample["name"])
    )
    profile = UserUpdate(
        location=sample["location"],
        skills_offered=sample["skills_offered"],
        skills_wanted=sample["skills_wanted"],
        availability=sample["availability"],
    )
    return await users.update_user(created["id"], created["id"], profile)


async def _find_swap(store: Store, requester_id: str, receiver_id: str, offered: str, requested: str) -> Optional[Dict]:
    for swap in await store.list_swaps(requester_id, role="sent"):
        if (swap["receiver_id"], swap["skill_offered"], swap["skill_requested"]) == (receiver_id, offered, requested):
            return swap
    return None


async def _advance(swaps: SwapService, swap: Dict, requester_id: str, receiver_id: str, target: SwapStatus) -> None:
    # Picks up from the current status, so a half-finished earlier run is completed
    current = SwapStatus(swap["status"])
    if current == target or target == SwapStatus.PENDING:
        return
    if current == SwapStatus.PENDING:
        if target == SwapStatus.REJECTED:
            await swaps.update_status(swap["id"], receiver_id, SwapStatus.REJECTED.value)
            return
        await swaps.update_status(swap["id"], receiver_id, SwapStatus.ACCEPTED.value)
        current = SwapStatus.ACCEPTED
    if target == SwapStatus.COMPLETED and current == SwapStatus.ACCEPTED:
        await swaps.update_status(swap["id"], requester_id, SwapStatus.COMPLETED.value)


async def seed(store: Store, settings: Settings, password: str = "password123") -> Dict[str, int]:
    """Load the sample data into ``store`` and return how many records were created."""
    users = UserService(store, settings)
    swaps = SwapService(store)
    ratings = RatingService(store, settings)
    created = {"users": 0, "swaps": 0, "ratings": 0}

    by_email = {}
    for sample in SAMPLE_USERS:
        existed = await store.get_user_by_email(sample["email"])
        by_email[sample["email"]] = await _ensure_user(users, sample, password)
        if not existed:
            created["users"] += 1

    completed = None
    for requester, receiver, offered, requested, target, message in SAMPLE_SWAPS:
        requester_id = by_email[requester]["id"]
        receiver_id = by_email[receiver]["id"]
        swap = await _find_swap(store, requester_id, receiver_id, offered, requested)
        if swap:
            logger.info("Swap %s -> %s already exists, reusing it", requester, receiver)
        else:
            try:
                swap = await swaps.create_swap(
                    requester_id,
                    SwapCreate(receiver=receiver_id, skill_offered=offered, skill_requested=requested, message=message),
                )
            except ConflictError:
                logger.info("Another open swap %s -> %s exists, skipping", requester, receiver)
                continue
            created["swaps"] += 1
        await _advance(swaps, swap, requester_id, receiver_id, target)
        if target == SwapStatus.COMPLETED:
            completed = swap

    if completed:
        for rater, ratee, score, feedback in SAMPLE_RATINGS:
            rater_id = by_email[rater]["id"]
            if await store.find_rating(completed["id"], rater_id):
                continue
            await ratings.create_rating(
                rater_id,
                RatingCreate(swap_id=completed["id"], ratee=by_email[ratee]["id"], rating=score, feedback=feedback),
            )
            created["ratings"] += 1

    return created


async def main():
    parser = argparse.ArgumentParser(description="Seed the SkillSwap store with sample data")
    parser.add_argument("--password", type=str, default="password123", help="Password given to every sample user")
    parser.add_argument("--store", type=str, choices=["supabase", "memory"], help="Store backend (overrides STORE_BACKEND)")

    args = parser.parse_args()

    settings = get_settings()
    if args.store:
        settings = settings.model_copy(update={"store_backend": args.store})
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    store = create_store(settings)
    try:
        created = await seed(store, settings, args.password)
    except Exception:
        logger.exception("Seeding failed")
        return 1
    finally:
        await store.close()

    print(f"Created {created['users']} users, {created['swaps']} swaps, {created['ratings']} ratings")
    print("\nSample login credentials:")
    for sample in SAMPLE_USERS:
        print(f"Email: {sample['email']}, Password: {args.password}")
    return 0


def run():
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
