"""
The upload session lifecycle as a closed set of statuses and one table of
legal transitions. Every status change goes through
UploadRepositoryDjango.transition(), which consults this module.
"""
from django.db import models

from .exceptions import InvalidTransition


class Status(models.TextChoices):
    PENDING = 'pending', 'Pending'
    UPLOADING = 'uploading', 'Uploading'
    ASSEMBLING = 'assembling', 'Assembling'
    VIRUS_SCANNING = 'virus_scanning', 'Virus scanning'
    FINALIZING = 'finalizing', 'Finalizing'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'
    FINALIZATION_FAILED = 'finalization_failed', 'Finalization failed'
    VIRUS_SCAN_FAILED = 'virus_scan_failed', 'Virus scan failed'
    CANCELLED = 'cancelled', 'Cancelled'


TRANSITIONS = {
    Status.PENDING: {Status.UPLOADING, Status.ASSEMBLING, Status.FAILED, Status.CANCELLED},
    Status.UPLOADING: {Status.ASSEMBLING, Status.FAILED, Status.CANCELLED},
    Status.ASSEMBLING: {Status.VIRUS_SCANNING, Status.FAILED, Status.CANCELLED},
    Status.VIRUS_SCANNING: {Status.FINALIZING, Status.VIRUS_SCAN_FAILED, Status.CANCELLED},
    Status.FINALIZING: {Status.COMPLETED, Status.FINALIZATION_FAILED},
    Status.COMPLETED: set(),
    Status.FAILED: set(),
    Status.FINALIZATION_FAILED: set(),
    Status.VIRUS_SCAN_FAILED: set(),
    Status.CANCELLED: set(),
}

# Sessions in these statuses hold the (workspace, container, filename) slot
ACTIVE_STATUSES = (Status.PENDING, Status.UPLOADING, Status.ASSEMBLING)

ACCEPTING_CHUNKS_STATUSES = (Status.PENDING, Status.UPLOADING)

CANCELLABLE_STATUSES = (Status.PENDING, Status.UPLOADING, Status.ASSEMBLING, Status.VIRUS_SCANNING)

FAILURE_STATUSES = (
    Status.FAILED,
    Status.FINALIZATION_FAILED,
    Status.VIRUS_SCAN_FAILED,
)

TERMINAL_STATUSES = tuple(status for status, targets in TRANSITIONS.items() if not targets)


def can_transition(from_status, to_status):
    return Status(to_status) in TRANSITIONS.get(Status(from_status), set())


def sources_for(to_status):
    """
    Returns every status from which `to_status` can legally be reached.
    """
    to_status = Status(to_status)
    return [source for source, targets in TRANSITIONS.items() if to_status in targets]


def validate_transition(from_status, to_status):
    """
    Raises InvalidTransition unless from_status -> to_status is in the table.
    """
    if not can_transition(from_status, to_status):
        raise InvalidTransition(
            f"Cannot transition from {from_status} to {to_status}",
            current_status=from_status,
            target_status=to_status,
        )


def is_terminal(status):
    return Status(status) in TERMINAL_STATUSES
