"""Claim and unclaim protocols."""

from .base import BaseProtocol
from .claim import ClaimProtocol
from .unclaim import UnclaimProtocol

__all__ = [
    "BaseProtocol",
    "ClaimProtocol",
    "UnclaimProtocol",
]
