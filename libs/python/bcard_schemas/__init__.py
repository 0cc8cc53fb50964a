"""Shared schema exports."""

from .user import Address, Image, PersonName, PublicClaims, Role, UserProfile

__all__ = [
    "Address",
    "Image",
    "PersonName",
    "PublicClaims",
    "Role",
    "UserProfile",
]
