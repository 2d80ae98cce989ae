"""HaloPSA Sync - Projects/Tasks ↔ HaloPSA ticket synchronization

This package keeps internal Projects and Tasks in step with tickets in the
HaloPSA service desk:

Directions:
- Push project: project name/description/status → ticket upsert
- Push task: task summary → hidden note on the project's ticket
- Pull ticket: ticket summary/details/status → project
- Full sync: read-only fetch of a ticket and its actions

Architecture:
- Credentials come from the environment plus the IntegrationSettings record
- Bearer tokens are cached per credential set until shortly before expiry
- Every attempt leaves one AuditLog record in the entity store
- Flask API (api.py) and CLI (__main__.py) both drive SyncEngine
"""

__version__ = "0.1.0"

from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExternalApiError,
    HaloSyncError,
    NotFound,
    NotLinked,
    ValidationError,
)
from .sync_engine import SyncEngine, get_engine

__all__ = [
    "SyncEngine",
    "get_engine",
    "HaloSyncError",
    "ConfigurationError",
    "AuthenticationError",
    "ExternalApiError",
    "NotLinked",
    "NotFound",
    "ValidationError",
]
