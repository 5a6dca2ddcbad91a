"""Loaders for the target system."""

from .base import BaseLoader, PushResponse, Token
from .token_cache import TokenCache
from .partner_manager_loader import PartnerManagerLoader

__all__ = [
    "BaseLoader",
    "PushResponse",
    "Token",
    "TokenCache",
    "PartnerManagerLoader",
]
