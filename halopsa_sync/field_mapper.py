"""Field and status translation between internal entities and HaloPSA.

Everything here is pure: no I/O, no store access.
"""

from typing import Optional

from .models import HaloAction, HaloTicket, Project, Task

# Internal project status -> HaloPSA status_id
STATUS_TO_HALO = {
    'planning': 1,
    'on_hold': 23,
    'completed': 9,
}

# HaloPSA status_id -> internal project status.
# 2 ("in progress") collapses onto planning alongside 1. This is kept as-is
# until product decides what in-progress tickets should map to.
HALO_TO_STATUS = {
    1: 'planning',
    2: 'planning',
    23: 'on_hold',
    9: 'completed',
}

TASK_NOTE_TEMPLATE = "[Task Update] {title}\nStatus: {status}\nAssigned: {assigned}\n{description}"


def status_to_halo(status: Optional[str]) -> Optional[int]:
    """Map an internal status to a HaloPSA status_id, None when unmapped."""
    if not status:
        return None
    return STATUS_TO_HALO.get(status)


def status_from_halo(status_id) -> Optional[str]:
    """Map a HaloPSA status_id to an internal status, None when unmapped."""
    if status_id is None or status_id == '':
        return None
    try:
        return HALO_TO_STATUS.get(int(status_id))
    except (TypeError, ValueError):
        return None


def project_to_ticket(project: Project) -> dict:
    """Build the ticket upsert payload for a linked project."""
    payload = {
        'id': int(project.halopsa_ticket_id),
        'summary': project.name,
        'details': project.description or '',
    }

    status_id = status_to_halo(project.status)
    if status_id is not None:
        payload['status_id'] = status_id

    if project.progress is not None:
        payload['customfields'] = [{'name': 'progress', 'value': project.progress}]

    return payload


def task_to_action(task: Task, ticket_id) -> HaloAction:
    """Render a task as a hidden note on its project's ticket."""
    note = TASK_NOTE_TEMPLATE.format(
        title=task.title,
        status=task.status,
        assigned=task.assigned_name or 'Unassigned',
        description=task.description or '',
    )
    return HaloAction(ticket_id=int(ticket_id), note=note, hiddenfromuser=True, outcome='note')


def ticket_to_project(ticket: HaloTicket, project: Project) -> dict:
    """Compute project field updates from a ticket.

    Empty ticket fields keep the project's current values; an unmapped
    status_id leaves the status untouched.
    """
    updates = {
        'name': ticket.summary or project.name,
        'description': ticket.details or project.description,
    }

    status = status_from_halo(ticket.status_id)
    if status is not None:
        updates['status'] = status

    return updates


def fields_to_ticket_update(
    ticket_id,
    summary: Optional[str] = None,
    details: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    """Partial ticket update payload; only supplied fields are written."""
    payload = {'id': int(ticket_id)}
    if summary:
        payload['summary'] = summary
    if details:
        payload['details'] = details
    status_id = status_to_halo(status)
    if status_id is not None:
        payload['status_id'] = status_id
    return payload
