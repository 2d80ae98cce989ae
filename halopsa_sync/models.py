"""Data models for the HaloPSA sync engine."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ProjectStatus(Enum):
    """Internal project status vocabulary."""
    PLANNING = 'planning'
    IN_PROGRESS = 'in_progress'
    ON_HOLD = 'on_hold'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class SyncOutcome(Enum):
    """Outcome recorded on an audit entry."""
    SUCCESS = 'success'
    ERROR = 'error'


# =========================================================================
# INTERNAL ENTITIES
# =========================================================================

@dataclass
class IntegrationSettings:
    """Integration settings record (setting_key = 'main')."""
    id: str = ''
    setting_key: str = 'main'
    halopsa_auth_url: str = ''
    halopsa_api_url: str = ''
    halopsa_client_id: str = ''
    halopsa_tenant: str = ''
    halopsa_excluded_ids: str = ''

    @classmethod
    def from_record(cls, data: dict) -> 'IntegrationSettings':
        """Create from an entity store record."""
        return cls(
            id=data.get('id', ''),
            setting_key=data.get('setting_key', 'main'),
            halopsa_auth_url=data.get('halopsa_auth_url') or '',
            halopsa_api_url=data.get('halopsa_api_url') or '',
            halopsa_client_id=data.get('halopsa_client_id') or '',
            halopsa_tenant=data.get('halopsa_tenant') or '',
            halopsa_excluded_ids=data.get('halopsa_excluded_ids') or '',
        )

    @property
    def excluded_client_ids(self) -> set[str]:
        return {i.strip() for i in self.halopsa_excluded_ids.split(',') if i.strip()}


@dataclass
class Project:
    """Internal project."""
    id: str
    name: str = ''
    description: str = ''
    status: str = ''
    progress: Optional[int] = None
    halopsa_ticket_id: Optional[str] = None
    halopsa_ticket_url: Optional[str] = None

    @classmethod
    def from_record(cls, data: dict) -> 'Project':
        """Create from an entity store record."""
        return cls(
            id=data['id'],
            name=data.get('name', '') or '',
            description=data.get('description', '') or '',
            status=data.get('status', '') or '',
            progress=data.get('progress'),
            halopsa_ticket_id=data.get('halopsa_ticket_id') or None,
            halopsa_ticket_url=data.get('halopsa_ticket_url') or None,
        )

    @property
    def is_linked(self) -> bool:
        """Check if the project is linked to a HaloPSA ticket."""
        return bool(self.halopsa_ticket_id)


@dataclass
class Task:
    """Internal task. Appears in HaloPSA only as a note on the project ticket."""
    id: str
    project_id: str
    title: str = ''
    status: str = ''
    assigned_name: str = ''
    description: str = ''

    @classmethod
    def from_record(cls, data: dict) -> 'Task':
        """Create from an entity store record."""
        return cls(
            id=data['id'],
            project_id=data.get('project_id', '') or '',
            title=data.get('title', '') or '',
            status=data.get('status', '') or '',
            assigned_name=data.get('assigned_name', '') or '',
            description=data.get('description', '') or '',
        )


@dataclass
class Customer:
    """Internal customer, optionally mapped to a HaloPSA client."""
    id: str
    name: str = ''
    email: str = ''
    halopsa_id: Optional[str] = None
    external_id: Optional[str] = None  # "halo_<n>" when synced from HaloPSA
    is_company: bool = True

    @classmethod
    def from_record(cls, data: dict) -> 'Customer':
        """Create from an entity store record."""
        return cls(
            id=data['id'],
            name=data.get('name', '') or '',
            email=data.get('email', '') or '',
            halopsa_id=str(data['halopsa_id']) if data.get('halopsa_id') else None,
            external_id=data.get('external_id') or None,
            is_company=data.get('is_company') is not False,
        )


# =========================================================================
# HALOPSA ENTITIES
# =========================================================================

@dataclass
class HaloTicket:
    """Ticket from HaloPSA."""
    id: int
    summary: str = ''
    details: str = ''
    status_id: Optional[int] = None
    client_id: Optional[int] = None
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: dict) -> 'HaloTicket':
        """Create from HaloPSA API response."""
        status_id = data.get('status_id')
        client_id = data.get('client_id')
        return cls(
            id=int(data['id']),
            summary=data.get('summary', '') or '',
            details=data.get('details', '') or '',
            status_id=int(status_id) if status_id is not None else None,
            client_id=int(client_id) if client_id else None,
            raw=data,
        )


@dataclass
class HaloAction:
    """Action (note) attached to a HaloPSA ticket."""
    ticket_id: int
    note: str
    hiddenfromuser: bool = True
    outcome: str = 'note'

    def to_api(self) -> dict:
        return asdict(self)


@dataclass
class HaloClientRecord:
    """Client (customer organisation) in HaloPSA."""
    id: int
    name: str = ''
    email: str = ''
    phone: str = ''

    @classmethod
    def from_api(cls, data: dict) -> 'HaloClientRecord':
        """Create from HaloPSA API response."""
        return cls(
            id=int(data['id']),
            name=data.get('name') or data.get('client_name') or '',
            email=data.get('email') or data.get('main_email') or '',
            phone=data.get('main_phone') or data.get('phonenumber') or '',
        )


# =========================================================================
# AUDIT
# =========================================================================

@dataclass
class AuditLogEntry:
    """One synchronization attempt. Append-only."""
    action: str
    entity_type: str
    entity_id: Optional[str]
    outcome: str
    details: str = ''
    action_category: str = 'project'
    user_email: str = 'system@halopsa-sync'
    user_name: str = 'HaloPSA Sync'
    created_date: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_record(self) -> dict[str, Any]:
        return asdict(self)
