from fastapi import APIRouter
from .endpoints import users, swaps, ratings

router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
router.include_router(users.router, prefix="/users")
router.include_router(swaps.router, prefix="/swaps")
router.include_router(ratings.router, prefix="/ratings")
