"""Bidirectional sync engine for internal Projects/Tasks ↔ HaloPSA tickets."""

import logging
import os
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import httpx

from .audit import AuditLogger
from .client_resolution import ChainedClientResolver, ClientResolutionRequest, default_resolver
from .config import Config, config as default_config
from .credentials import load_settings, resolve_credentials
from .db import EntityStore, SQLiteEntityStore
from .exceptions import ExternalApiError, NotFound, NotLinked, ValidationError
from .field_mapper import (
    fields_to_ticket_update,
    project_to_ticket,
    task_to_action,
    ticket_to_project,
)
from .halo_client import HaloClient
from .locks import KeyedLockRegistry
from .models import Customer, HaloAction, Project, SyncOutcome, Task
from .token_manager import TokenCache

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    """What the audit entry for the current operation should say."""
    entity_type: str
    entity_id: Any
    details: Any = None


def _ticket_id(value, message: str = 'Ticket ID required') -> int:
    """Validate a ticket id from a request."""
    if value is None or str(value).strip() == '':
        raise ValidationError(message)
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Ticket ID must be numeric, got {value!r}")


class SyncEngine:
    """Synchronization between the entity store and HaloPSA.

    Each public operation is one synchronous attempt: it takes the lock for
    the entity it touches, talks to HaloPSA without retries, writes back to
    the store and records exactly one audit entry.
    """

    def __init__(
        self,
        store: EntityStore,
        audit: Optional[AuditLogger] = None,
        token_cache: Optional[TokenCache] = None,
        locks: Optional[KeyedLockRegistry] = None,
        settings: Optional[Config] = None,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        resolver_factory: Callable[[EntityStore, HaloClient], ChainedClientResolver] = default_resolver,
    ):
        self.settings = settings or default_config
        self.store = store
        self.audit = audit or AuditLogger(store, max_queue=self.settings.AUDIT_QUEUE_SIZE)
        self.token_cache = token_cache or TokenCache(
            default_ttl=self.settings.TOKEN_TTL, skew=self.settings.TOKEN_SKEW
        )
        self.locks = locks or KeyedLockRegistry()
        self.environ = environ
        self.transport = transport
        self.resolver_factory = resolver_factory

    # =========================================================================
    # PLUMBING
    # =========================================================================

    def _connect(self) -> HaloClient:
        """Resolve credentials and open a HaloPSA client."""
        credentials = resolve_credentials(self.store, self.environ)
        return HaloClient(
            credentials,
            self.token_cache,
            transport=self.transport,
            timeout=self.settings.HTTP_TIMEOUT,
        )

    @contextmanager
    def _attempt(self, operation: str, entity_type: str, entity_id):
        """Audit the enclosed operation exactly once, success or failure."""
        attempt = _Attempt(entity_type, entity_id)
        try:
            yield attempt
        except Exception as e:
            details = getattr(e, 'details', None) or str(e)
            logger.error(f"HaloPSA sync {operation} failed for {attempt.entity_type} {attempt.entity_id}: {e}")
            self.audit.record(operation, attempt.entity_type, attempt.entity_id, SyncOutcome.ERROR, details)
            raise
        else:
            self.audit.record(operation, attempt.entity_type, attempt.entity_id, SyncOutcome.SUCCESS, attempt.details)

    def _get_project(self, project_id) -> Project:
        if not project_id:
            raise ValidationError('Project ID required')
        record = self.store.get('Project', project_id)
        if not record:
            raise NotFound('Project not found')
        return Project.from_record(record)

    def _get_linked_project(self, project_id) -> Project:
        project = self._get_project(project_id)
        if not project.is_linked:
            raise NotLinked('Project not linked to HaloPSA ticket')
        return project

    # =========================================================================
    # PROJECT → HALOPSA
    # =========================================================================

    def push_project_update(self, project_id) -> dict:
        """Push a linked project's name, description and status to its ticket."""
        with self._attempt('push_project', 'Project', project_id) as attempt:
            with self.locks.hold('Project', project_id):
                project = self._get_linked_project(project_id)
                payload = project_to_ticket(project)
                logger.info(f"Pushing project {project.id} to HaloPSA ticket #{project.halopsa_ticket_id}")

                with self._connect() as halo:
                    halo.create_or_update_tickets([payload])

                attempt.details = f"Updated ticket #{project.halopsa_ticket_id}"

        return {'success': True, 'message': 'Project synced to HaloPSA'}

    def push_task_update(self, task_id) -> dict:
        """Add a hidden note describing a task to its project's ticket."""
        with self._attempt('push_task', 'Task', task_id) as attempt:
            record = self.store.get('Task', task_id) if task_id else None
            if not record:
                raise NotFound('Task not found')
            task = Task.from_record(record)

            with self.locks.hold('Project', task.project_id):
                project_record = self.store.get('Project', task.project_id)
                project = Project.from_record(project_record) if project_record else None
                if not project or not project.is_linked:
                    raise NotLinked('Project not linked to HaloPSA')

                action = task_to_action(task, project.halopsa_ticket_id)
                logger.info(f"Pushing task {task.id} as note on HaloPSA ticket #{action.ticket_id}")

                with self._connect() as halo:
                    halo.create_actions([action.to_api()])

                attempt.details = f"Added note to ticket #{project.halopsa_ticket_id}"

        return {'success': True, 'message': 'Task synced to HaloPSA'}

    # =========================================================================
    # HALOPSA → PROJECT
    # =========================================================================

    def pull_ticket_update(self, ticket_id) -> dict:
        """Copy a ticket's summary, details and status onto its linked project."""
        with self._attempt('pull_ticket', 'Ticket', ticket_id) as attempt:
            ticket_id = _ticket_id(ticket_id)

            record = self.store.first('Project', {'halopsa_ticket_id': str(ticket_id)})
            if not record:
                raise NotFound('No project linked to this ticket')
            attempt.entity_type, attempt.entity_id = 'Project', record['id']

            with self.locks.hold('Project', record['id']):
                # Re-read under the lock: an unlink or relink may have won the race
                project = self._get_project(record['id'])
                if project.halopsa_ticket_id != str(ticket_id):
                    raise NotFound('No project linked to this ticket')

                with self._connect() as halo:
                    ticket = halo.get_ticket(ticket_id)

                updates = ticket_to_project(ticket, project)
                self.store.update('Project', project.id, updates)

                attempt.details = f"Synced from ticket #{ticket_id}"

        logger.info(f"Updated project {project.id} from HaloPSA ticket #{ticket_id}")
        return {
            'success': True,
            'message': 'Project updated from HaloPSA',
            'updates': updates,
        }

    def full_sync(self, project_id) -> dict:
        """Fetch a linked project's ticket and its actions. Read-only."""
        with self._attempt('full_sync', 'Project', project_id) as attempt:
            with self.locks.hold('Project', project_id):
                project = self._get_linked_project(project_id)

                with self._connect() as halo:
                    ticket = halo.get_ticket(project.halopsa_ticket_id)
                    try:
                        actions = halo.list_actions(project.halopsa_ticket_id)
                    except ExternalApiError as e:
                        logger.warning(f"Could not fetch actions for ticket #{project.halopsa_ticket_id}: {e}")
                        actions = []

                attempt.details = f"Synced ticket #{project.halopsa_ticket_id} with {len(actions)} actions"

        return {
            'success': True,
            'ticket': ticket.raw,
            'actions': actions,
            'message': 'Full sync completed',
        }

    # =========================================================================
    # TICKET MANAGEMENT
    # =========================================================================

    def create_ticket(
        self,
        project_id=None,
        summary: Optional[str] = None,
        details: Optional[str] = None,
        client_ref: Optional[str] = None,
        client_name: Optional[str] = None,
    ) -> dict:
        """Create a ticket (optionally for a resolved client) and link it."""
        with self._attempt('create_ticket', 'Project', project_id) as attempt:
            lock = self.locks.hold('Project', project_id) if project_id else nullcontext()
            with lock:
                if project_id:
                    self._get_project(project_id)

                with self._connect() as halo:
                    resolver = self.resolver_factory(self.store, halo)
                    halo_client_id = resolver.resolve(
                        ClientResolutionRequest(client_ref=client_ref, client_name=client_name)
                    )

                    payload = {
                        'summary': summary or 'New Project Ticket',
                        'details': details or '',
                        'tickettype_name': self.settings.TICKET_TYPE,
                    }
                    if halo_client_id is not None:
                        payload['client_id'] = halo_client_id

                    created = halo.create_or_update_tickets([payload])
                    new_ticket = created[0] if created else {}
                    if not new_ticket.get('id'):
                        raise ExternalApiError('HaloPSA did not return the created ticket', 0, str(created))

                    ticket_id = new_ticket['id']
                    ticket_url = halo.credentials.ticket_url(ticket_id)

                if project_id:
                    self.store.update('Project', project_id, {
                        'halopsa_ticket_id': str(ticket_id),
                        'halopsa_ticket_url': ticket_url,
                    })

                attempt.details = f"Created ticket #{ticket_id} (client {halo_client_id})"

        logger.info(f"Created HaloPSA ticket #{ticket_id} for project {project_id}")
        return {
            'success': True,
            'ticketId': ticket_id,
            'ticketUrl': ticket_url,
            'message': f"Ticket #{ticket_id} created successfully",
        }

    def link_ticket(self, project_id, ticket_id) -> dict:
        """Link a project to an existing ticket after checking it exists."""
        with self._attempt('link_ticket', 'Project', project_id) as attempt:
            ticket_id = _ticket_id(ticket_id)
            lock = self.locks.hold('Project', project_id) if project_id else nullcontext()
            with lock:
                if project_id:
                    self._get_project(project_id)

                with self._connect() as halo:
                    try:
                        ticket = halo.get_ticket(ticket_id)
                    except ExternalApiError as e:
                        if e.provider_status == 404:
                            raise NotFound(
                                f"Ticket #{ticket_id} not found in HaloPSA",
                                'Please check the ticket ID and try again',
                            )
                        raise
                    ticket_url = halo.credentials.ticket_url(ticket_id)

                if project_id:
                    self.store.update('Project', project_id, {
                        'halopsa_ticket_id': str(ticket_id),
                        'halopsa_ticket_url': ticket_url,
                    })

                attempt.details = f"Linked to ticket #{ticket_id}"

        return {
            'success': True,
            'ticketId': ticket_id,
            'ticketUrl': ticket_url,
            'ticketSummary': ticket.summary,
            'message': f"Project linked to ticket #{ticket_id}",
        }

    def unlink_ticket(self, project_id) -> dict:
        """Clear a project's ticket link. No HaloPSA call."""
        with self._attempt('unlink_ticket', 'Project', project_id) as attempt:
            with self.locks.hold('Project', project_id):
                project = self._get_project(project_id)
                self.store.update('Project', project.id, {
                    'halopsa_ticket_id': '',
                    'halopsa_ticket_url': '',
                })
                attempt.details = f"Unlinked from ticket #{project.halopsa_ticket_id or '-'}"

        return {'success': True, 'message': 'Ticket unlinked from project'}

    def add_note(self, ticket_id, note: Optional[str], note_is_private: Optional[bool] = None) -> dict:
        """Add a note to a ticket. Notes are private unless explicitly public."""
        with self._attempt('add_note', 'Ticket', ticket_id) as attempt:
            if not note:
                raise ValidationError('Ticket ID and note are required')
            ticket_id = _ticket_id(ticket_id, 'Ticket ID and note are required')
            hidden = note_is_private is not False

            with self.locks.hold('Ticket', ticket_id):
                action = HaloAction(ticket_id=ticket_id, note=note, hiddenfromuser=hidden, outcome='note')
                with self._connect() as halo:
                    halo.create_actions([action.to_api()])

            attempt.details = f"Added {'private' if hidden else 'public'} note to ticket #{ticket_id}"

        return {
            'success': True,
            'message': 'Private note added to ticket' if hidden else 'Note added to ticket',
        }

    def update_ticket(
        self,
        ticket_id,
        status: Optional[str] = None,
        new_summary: Optional[str] = None,
        new_details: Optional[str] = None,
    ) -> dict:
        """Partially update a ticket's summary, details and mapped status."""
        with self._attempt('update_ticket', 'Ticket', ticket_id) as attempt:
            ticket_id = _ticket_id(ticket_id)
            payload = fields_to_ticket_update(ticket_id, new_summary, new_details, status)

            with self.locks.hold('Ticket', ticket_id):
                with self._connect() as halo:
                    halo.create_or_update_tickets([payload])

            attempt.details = f"Updated fields {sorted(k for k in payload if k != 'id')} on ticket #{ticket_id}"

        return {'success': True, 'message': 'Ticket updated successfully'}

    def get_ticket(self, ticket_id) -> dict:
        """Read a ticket."""
        with self._attempt('get_ticket', 'Ticket', ticket_id) as attempt:
            ticket_id = _ticket_id(ticket_id)
            with self._connect() as halo:
                try:
                    ticket = halo.get_ticket(ticket_id)
                except ExternalApiError as e:
                    if e.provider_status == 404:
                        raise NotFound('Ticket not found')
                    raise
            attempt.details = f"Read ticket #{ticket_id}"

        return {'success': True, 'message': 'Ticket retrieved', 'ticket': ticket.raw}

    # =========================================================================
    # CONNECTION & CLIENT MAPPING
    # =========================================================================

    def test_connection(self) -> dict:
        """Authenticate and make one cheap API call."""
        with self._connect() as halo:
            halo.list_clients(count=1)
            credentials = halo.credentials

        return {
            'success': True,
            'message': 'Successfully connected to HaloPSA',
            'authUrl': credentials.auth_base_url,
            'apiUrl': credentials.api_base_url,
        }

    def env_status(self) -> dict:
        """Report whether server-side secrets are present."""
        env = os.environ if self.environ is None else self.environ
        return {
            'success': True,
            'hasClientSecret': bool(env.get('HALOPSA_CLIENT_SECRET')),
        }

    def list_clients(self) -> dict:
        """HaloPSA clients annotated with their local Customer mapping."""
        settings = load_settings(self.store)
        excluded = settings.excluded_client_ids

        with self._connect() as halo:
            halo_clients = [c for c in halo.list_clients() if str(c.id) not in excluded]

        customers = [Customer.from_record(r) for r in self.store.list('Customer')]
        by_external_id = {c.external_id: c for c in customers if c.external_id}
        by_name = {c.name.lower().strip(): c for c in customers if c.name}

        mapped_clients = []
        for hc in halo_clients:
            by_external = by_external_id.get(f"halo_{hc.id}")
            by_name_match = by_name.get(hc.name.lower().strip()) if not by_external and hc.name else None
            mapped = by_external or by_name_match
            mapped_clients.append({
                'halo_id': hc.id,
                'halo_name': hc.name,
                'halo_email': hc.email,
                'halo_phone': hc.phone,
                'mapped_customer_id': mapped.id if mapped else None,
                'mapped_customer_name': mapped.name if mapped else None,
                'is_synced': by_external is not None,
                'is_name_matched': by_name_match is not None,
            })

        local_customers = sorted(
            ({'id': c.id, 'name': c.name, 'email': c.email} for c in customers if c.is_company),
            key=lambda c: c['name'] or '',
        )

        return {
            'success': True,
            'halo_clients': mapped_clients,
            'local_customers': local_customers,
            'total_halo': len(mapped_clients),
            'total_mapped': sum(1 for c in mapped_clients if c['mapped_customer_id']),
        }


_engine: Optional[SyncEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> SyncEngine:
    """Process-wide engine over the configured SQLite store."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = SyncEngine(SQLiteEntityStore(default_config.DB_PATH))
        return _engine
