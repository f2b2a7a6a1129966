from scorecard.models import CallRecord, Speaker, TranscriptSegment

SPEAKER_LABELS = {
    Speaker.AI: "Caller",
    Speaker.OTHER_PARTY: "Receptionist",
}


def to_plain_text(transcript: list[TranscriptSegment]) -> str:
    """Convert a transcript to plain text for the judge.

    The AI's lines are prefixed "Caller:", the other party's lines
    "Receptionist:", matching how the scoring prompts name the roles.
    """
    if not transcript:
        return ""
    return "\n".join(f"{SPEAKER_LABELS[seg.speaker]}: {seg.text}" for seg in transcript)


def other_party_lines(transcript: list[TranscriptSegment]) -> list[TranscriptSegment]:
    return [seg for seg in transcript if seg.speaker is Speaker.OTHER_PARTY]


def ai_lines(transcript: list[TranscriptSegment]) -> list[TranscriptSegment]:
    return [seg for seg in transcript if seg.speaker is Speaker.AI]


def to_timestamped_dump(record: CallRecord) -> dict:
    """Build a timestamped transcript dump dict for structured logging.

    Segment timestamps are already relative to the call start.
    """
    entries = []
    for seg in record.transcript:
        entry = {"t": seg.timestamp, "role": seg.speaker.value, "content": seg.text}
        if seg.confidence is not None:
            entry["confidence"] = seg.confidence
        entries.append(entry)

    return {
        "call_id": record.call_id,
        "provider_call_ref": record.provider_call_ref,
        "practice": record.practice_info.practice_name,
        "phone": record.practice_info.phone_number,
        "final_status": record.status.value,
        "duration_s": record.duration or 0,
        "entries": entries,
    }
