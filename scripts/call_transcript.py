#!/usr/bin/env python3
"""Print a timestamped transcript of a mystery-shopper call.

Reads TRANSCRIPT_DUMP lines from server logs, or fetches a call record
straight from a running server.

Usage:
    python scripts/call_transcript.py --log-file server.log        # last call in the log
    fly logs --no-tail | python scripts/call_transcript.py          # same, from stdin
    python scripts/call_transcript.py --log-file server.log --call-id abc123
    python scripts/call_transcript.py --url http://localhost:8000 --call-id abc123
    python scripts/call_transcript.py --raw ...                     # raw JSON
"""

import argparse
import json
import sys

import httpx

DUMP_MARKER = "TRANSCRIPT_DUMP|"
SPEAKERS = {"ai": "Shopper", "other-party": "Front desk"}


def parse_transcript_lines(lines: list[str], call_id: str | None = None) -> list[dict]:
    """Parse TRANSCRIPT_DUMP lines from log output into transcript dicts.

    Handles multi-chunk reassembly. Returns list of complete transcripts
    (most recent last). If call_id is specified, filters to that call only.
    """
    chunk_groups: dict[int, dict[int, str]] = {}
    group_counter = 0

    for line in lines:
        if DUMP_MARKER not in line:
            continue

        parts = line[line.index(DUMP_MARKER):].split("|", 2)
        if len(parts) < 3:
            continue

        try:
            chunk_num, _total = (int(n) for n in parts[1].split("/"))
        except ValueError:
            continue

        if chunk_num == 1:
            group_counter += 1
        chunk_groups.setdefault(group_counter, {})[chunk_num] = parts[2]

    transcripts = []
    for group_id in sorted(chunk_groups):
        chunks = chunk_groups[group_id]
        try:
            first = json.loads(chunks.get(1, "{}"))
        except json.JSONDecodeError:
            continue
        if not first:
            continue
        if call_id and first.get("call_id") != call_id:
            continue

        entries = list(first.get("entries", []))
        for i in sorted(chunks):
            if i == 1:
                continue
            try:
                entries.extend(json.loads(chunks[i]).get("entries", []))
            except json.JSONDecodeError:
                continue

        first["entries"] = entries
        transcripts.append(first)

    return transcripts


def dump_from_call(call: dict) -> dict:
    """Shape a GET /session/{callId} record like a log dump."""
    practice = call.get("practiceInfo", {})
    entries = []
    for seg in call.get("transcript", []):
        entry = {"t": seg.get("timestamp", 0.0), "role": seg.get("speaker", ""), "content": seg.get("text", "")}
        if seg.get("confidence") is not None:
            entry["confidence"] = seg["confidence"]
        entries.append(entry)
    return {
        "call_id": call.get("callId"),
        "provider_call_ref": call.get("providerCallRef") or "",
        "practice": practice.get("practiceName", ""),
        "phone": practice.get("phoneNumber", ""),
        "final_status": call.get("status", "unknown"),
        "duration_s": call.get("duration") or 0,
        "entries": entries,
    }


def format_transcript(transcript: dict, gap_threshold: float = 2.0) -> str:
    """Format a transcript dict into human-readable output with gap annotations."""
    call_id = transcript.get("call_id", "unknown")
    practice = transcript.get("practice") or "unknown practice"
    phone = transcript.get("phone", "unknown")
    duration = transcript.get("duration_s") or 0
    status = transcript.get("final_status", "unknown")

    lines = [f"Call {call_id} | {practice} ({phone}) | {duration}s | {status}", "═" * 55, ""]

    entries = transcript.get("entries", [])
    prev_t = None
    for entry in entries:
        t = entry.get("t", 0.0)
        if prev_t is not None:
            gap = t - prev_t
            if gap >= 5.0:
                lines.append(f"      ┆ +{gap:.1f}s ⚠ SLOW")
            elif gap >= gap_threshold:
                lines.append(f"      ┆ +{gap:.1f}s")

        speaker = SPEAKERS.get(entry.get("role", ""), "Unknown")
        text = entry.get("content", "")
        confidence = entry.get("confidence")
        if confidence is not None and confidence < 0.5:
            text += f"  (low confidence {confidence:.2f})"
        lines.append(f"{t:5.1f}s {speaker + ':':<12} {text}")
        prev_t = t

    if entries:
        lines.append(f"{float(duration):5.1f}s {'':12} ☎ Call ended")

    return "\n".join(lines)


def fetch_call(base_url: str, call_id: str) -> dict:
    response = httpx.get(f"{base_url.rstrip('/')}/session/{call_id}", timeout=10.0)
    response.raise_for_status()
    return response.json()["call"]


def main():
    parser = argparse.ArgumentParser(description="Print the timestamped transcript of a call")
    parser.add_argument("--raw", action="store_true", help="Output raw JSON")
    parser.add_argument("--call-id", type=str, default=None, help="Filter by callId")
    parser.add_argument("--gap-threshold", type=float, default=2.0, help="Gap threshold in seconds (default: 2.0)")
    parser.add_argument("--log-file", type=str, default=None, help="Read log lines from a file instead of stdin")
    parser.add_argument("--url", type=str, default=None, help="Fetch the call from a running server instead of logs")
    args = parser.parse_args()

    if args.url:
        if not args.call_id:
            print("Error: --url needs --call-id", file=sys.stderr)
            sys.exit(1)
        try:
            transcript = dump_from_call(fetch_call(args.url, args.call_id))
        except httpx.HTTPStatusError as e:
            print(f"Error: server answered {e.response.status_code} for {args.call_id}", file=sys.stderr)
            sys.exit(1)
        except httpx.HTTPError as e:
            print(f"Error: could not reach {args.url}: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        if args.log_file:
            with open(args.log_file, encoding="utf-8") as f:
                lines = f.read().splitlines()
        else:
            lines = sys.stdin.read().splitlines()

        transcripts = parse_transcript_lines(lines, call_id=args.call_id)
        if not transcripts:
            print("No TRANSCRIPT_DUMP lines found", file=sys.stderr)
            sys.exit(1)
        transcript = transcripts[-1]

    if args.raw:
        print(json.dumps(transcript, indent=2))
    else:
        print(format_transcript(transcript, gap_threshold=args.gap_threshold))


if __name__ == "__main__":
    main()
