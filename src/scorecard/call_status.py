"""Provider call-status mapping.

Maps telephony lifecycle events onto CallRecord.status. Status only moves
forward by rank; startTime, endTime and duration are written once and
never overwritten, so replayed webhooks are harmless.
"""

import logging
import time
from email.utils import parsedate_to_datetime

from scorecard.models import CallRecord, CallStatus

logger = logging.getLogger(__name__)

PROVIDER_STATUS_MAP = {
    "queued": CallStatus.INITIATING,
    "initiated": CallStatus.INITIATING,
    "ringing": CallStatus.RINGING,
    "answered": CallStatus.IN_PROGRESS,
    "in-progress": CallStatus.IN_PROGRESS,
    "completed": CallStatus.COMPLETED,
    "busy": CallStatus.FAILED,
    "failed": CallStatus.FAILED,
    "no-answer": CallStatus.FAILED,
    "canceled": CallStatus.FAILED,
}


def map_provider_status(provider_status: str, answered_by: str = "") -> CallStatus | None:
    """Return the CallStatus for a provider status, or None if unknown."""
    status = PROVIDER_STATUS_MAP.get((provider_status or "").strip().lower())
    if status is CallStatus.IN_PROGRESS and is_machine(answered_by):
        return CallStatus.VOICEMAIL
    return status


def is_machine(answered_by: str) -> bool:
    return (answered_by or "").lower().startswith("machine")


def parse_provider_timestamp(value: str | None) -> float | None:
    """Provider timestamps are RFC 2822 dates; None if absent or unparseable."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        logger.warning("Unparseable provider timestamp: %r", value)
        return None


def advance_status(record: CallRecord, status: CallStatus) -> bool:
    """Move record to status if that is a forward step. Returns True on change."""
    if record.status.is_terminal or status.rank <= record.status.rank:
        return False
    record.status = status
    return True


def apply_status_event(
    record: CallRecord,
    provider_status: str,
    duration: str | int | None = None,
    timestamp: str | None = None,
    answered_by: str = "",
    now: float | None = None,
) -> bool:
    """Apply one provider lifecycle event to record in place.

    Returns True if the record's status changed.
    """
    status = map_provider_status(provider_status, answered_by)
    if status is None:
        logger.warning("Ignoring unknown provider status %r for %s", provider_status, record.call_id)
        return False

    event_time = parse_provider_timestamp(timestamp) or (time.time() if now is None else now)
    if answered_by and not record.answered_by:
        record.answered_by = answered_by

    if status is CallStatus.IN_PROGRESS and record.start_time is None:
        record.start_time = event_time
    if status.is_terminal:
        if record.end_time is None:
            record.end_time = event_time
        if record.duration is None and duration not in (None, ""):
            try:
                record.duration = int(duration)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric duration %r for %s", duration, record.call_id)

    changed = advance_status(record, status)
    logger.info(
        "Status event for %s: provider=%s mapped=%s current=%s",
        record.call_id, provider_status, status.value, record.status.value,
    )
    return changed


def mark_completed(record: CallRecord, now: float | None = None) -> bool:
    """Terminate a call from our side (turn path close, apology path)."""
    if record.end_time is None:
        record.end_time = time.time() if now is None else now
    if record.duration is None and record.start_time is not None:
        record.duration = int(round(record.end_time - record.start_time))
    return advance_status(record, CallStatus.COMPLETED)
