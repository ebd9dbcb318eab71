from fastapi import Depends, Request

from ...core.config import Settings
from ...core.store import Store
from ...services.rating_service import RatingService
from ...services.swap_service import SwapService
from ...services.user_service import UserService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    """The store built once in the application lifespan."""
    return request.app.state.store


def get_user_service(
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> UserService:
    return UserService(store, settings)


def get_swap_service(store: Store = Depends(get_store)) -> SwapService:
    return SwapService(store)


def get_rating_service(
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> RatingService:
    return RatingService(store, settings)
