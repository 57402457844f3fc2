from core.exceptions.base import (
    CustomException,
    BadRequestException,
    NotFoundException,
    ConflictException,
    CapacityExceededException,
    ValidationException,
)

__all__ = [
    "CustomException",
    "BadRequestException",
    "NotFoundException",
    "ConflictException",
    "CapacityExceededException",
    "ValidationException",
]
