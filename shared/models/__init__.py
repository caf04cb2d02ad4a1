"""Database models package."""

from .base import Base
from .deploy_history import DeployHistory

__all__ = [
    "Base",
    "DeployHistory",
]
