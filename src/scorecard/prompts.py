from scorecard.caller_state import CallerConversationState, Stage
from scorecard.models import PracticeInfo

DEFAULT_INSURANCE = "Delta Dental"

OPENING_LINES = [
    "Hi, I'm looking for a new dentist. Are you accepting new patients?",
    "Hello! I was hoping to find a new dental office. Do you have availability for new patients?",
    "Hi there, I'm looking for a dentist in the area. Are you taking new patients?",
]

RETRY_LINE = "I'm sorry, I didn't catch that. Could you repeat?"
CLOSING_LINE = "Thank you so much for your help. Have a great day!"
APOLOGY_LINE = "I apologize, but we're experiencing technical difficulties. Goodbye."

PERSONA = """You are a potential new patient calling a dental practice. You are friendly, slightly hesitant about making appointments, and need some convincing to book.

PRACTICE INFORMATION
- Practice Name: {practice_name}
{offer_line}
YOUR ROLE
- You're looking for a new dentist.
- You have {insurance} insurance.
- You're cost-conscious but willing to book if the conversation goes well.
- Ask natural follow-up questions.
- Don't commit to booking too quickly. Give them opportunities to sell you.

RULES
1. Keep responses conversational and natural, 1-2 sentences max.
2. Sound like a real person, not a script.
3. Give them opportunities to explain offers and overcome objections.
4. Let them try to book you at least 2-3 times before accepting or declining.
5. Only say "thank" when you are ready to end the call."""

STAGE_PROMPTS = {
    Stage.NEW_PATIENT: "## NEXT\nAsk if they accept new patients.",
    Stage.INSURANCE: "## NEXT\nAsk if they take {insurance} insurance.",
    Stage.OFFERS: "## NEXT\nAsk about new patient specials or promotions.",
    Stage.PRICING: "## NEXT\nAsk about pricing for a cleaning or exam.",
    Stage.AVAILABILITY: "## NEXT\nAsk about availability this week or next.",
    Stage.BOOKING_RESISTANCE: (
        "## NEXT\nIf they try to book you, say you're not sure yet and "
        "need to check my schedule first."
    ),
    Stage.CLOSE: "## NEXT\nThank them and end the conversation politely.",
}


def insurance_for(practice_info: PracticeInfo) -> str:
    return practice_info.insurance_provider or DEFAULT_INSURANCE


def _persona(practice_info: PracticeInfo) -> str:
    offer_line = ""
    if practice_info.new_patient_offer:
        offer_line = f"- They offer: {practice_info.new_patient_offer}\n"
    return PERSONA.format(
        practice_name=practice_info.practice_name,
        offer_line=offer_line,
        insurance=insurance_for(practice_info),
    )


def get_system_prompt(practice_info: PracticeInfo, state: CallerConversationState) -> str:
    stage = state.next_stage()
    stage_prompt = STAGE_PROMPTS[stage].format(insurance=insurance_for(practice_info))
    context = (
        f"## CONTEXT\nYou've asked {state.step} questions so far. "
        f"They have tried to book you {state.booking_attempts} times."
    )
    return f"{_persona(practice_info)}\n\n{context}\n\n{stage_prompt}"


def realtime_instructions(practice_info: PracticeInfo) -> str:
    """Instructions for the continuous-stream path, where there is no per-turn stage."""
    return (
        f"{_persona(practice_info)}\n\n"
        "## GOALS\nAsk, one at a time, about new patient availability, "
        f"{insurance_for(practice_info)} insurance, new patient specials, pricing "
        "for a cleaning or exam, and availability this week or next. "
        "Do not commit to booking immediately. Keep responses concise and natural."
    )
