from typing import Dict, Optional
from fastapi import status


class SkillSwapError(Exception):
    """
    Base class for errors surfaced to API callers.

    Each subclass carries the HTTP status it maps to; ``detail`` is the
    human-readable message returned as ``{"detail": ...}``.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers: Optional[Dict[str, str]] = None

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail


class InvalidArgumentError(SkillSwapError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(SkillSwapError):
    # Duplicates are reported as 400 to match the public contract
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(SkillSwapError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthenticatedError(SkillSwapError):
    status_code = status.HTTP_401_UNAUTHORIZED
    headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenError(SkillSwapError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(SkillSwapError):
    status_code = status.HTTP_404_NOT_FOUND
