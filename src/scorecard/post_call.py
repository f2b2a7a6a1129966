"""Post-call transcript dump.

When a call first reaches a terminal status its transcript is written to
the log as TRANSCRIPT_DUMP lines, which scripts/call_transcript.py
reassembles.
"""

import json
import logging

from scorecard.models import CallRecord
from scorecard.transcript import to_timestamped_dump

logger = logging.getLogger(__name__)

DUMP_PREFIX = "TRANSCRIPT_DUMP"
MAX_LINE_BYTES = 3500
TRUNCATION_MARK = " [truncated]"
# "TRANSCRIPT_DUMP|nn/nn|"
LINE_OVERHEAD = len(f"{DUMP_PREFIX}|99/99|")


def _encoded_size(payload: dict) -> int:
    return len(json.dumps(payload).encode("utf-8"))


def _shorten(entry: dict, limit: int) -> dict:
    """Cut an entry's content until the entry encodes within limit bytes."""
    entry = dict(entry)
    content = entry.get("content", "")
    while content and _encoded_size(entry) > limit:
        overflow = _encoded_size(entry) - limit
        content = content[: max(0, len(content) - overflow - len(TRUNCATION_MARK))]
        entry["content"] = content + TRUNCATION_MARK
    return entry


def chunk_transcript_dump(dump: dict, max_bytes: int = MAX_LINE_BYTES) -> list[str]:
    """Pack a dump into TRANSCRIPT_DUMP|i/n|{json} log lines of at most max_bytes.

    Call metadata rides on the first line only; every line carries as many
    whole segments as fit. A segment too long for any line is cut and
    marked truncated, so it still fits next to the metadata.
    """
    header = {k: v for k, v in dump.items() if k != "entries"}
    entry_limit = max_bytes - LINE_OVERHEAD - _encoded_size({**header, "entries": []})

    groups: list[list[dict]] = [[]]
    for entry in dump.get("entries", []):
        entry = _shorten(entry, entry_limit)
        current = groups[-1]
        meta = header if len(groups) == 1 else {}
        if current and LINE_OVERHEAD + _encoded_size({**meta, "entries": current + [entry]}) > max_bytes:
            groups.append([entry])
        else:
            current.append(entry)

    total = len(groups)
    lines = []
    for i, group in enumerate(groups, start=1):
        payload = {**header, "entries": group} if i == 1 else {"entries": group}
        lines.append(f"{DUMP_PREFIX}|{i}/{total}|{json.dumps(payload)}")
    return lines


def handle_call_ended(record: CallRecord) -> list[str]:
    """Log the transcript dump for a call that just turned terminal."""
    lines = chunk_transcript_dump(to_timestamped_dump(record))
    for line in lines:
        logger.info(line)
    logger.info(
        "Call %s ended: status=%s duration=%s segments=%d",
        record.call_id, record.status.value, record.duration, len(record.transcript),
    )
    return lines
