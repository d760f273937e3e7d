"""Object store providers for the backup bucket."""

from backup_agent.automation.storage.b2 import B2Config, B2Storage
from backup_agent.automation.storage.base import ObjectStore

__all__ = ["B2Config", "B2Storage", "ObjectStore"]
