import pytest

from conftest import ScriptedChat, ai, desk
from scorecard.judge import Judge
from scorecard.models import PracticeInfo
from scorecard.rubric import (
    NO_OBJECTION,
    build_judge_prompt,
    caller_hesitated,
    score_booking_attempts,
    score_contact_capture,
    score_greeting,
    score_rubric,
    score_speed_to_answer,
)


class TestSpeedToAnswer:
    @pytest.mark.parametrize("seconds,points,category", [
        (0, 10, "≤10 sec"),
        (10, 10, "≤10 sec"),
        (15, 7, "11-20 sec"),
        (20, 7, "11-20 sec"),
        (25, 4, "21-30 sec"),
        (31, 0, "30+ sec / voicemail"),
    ])
    def test_bands(self, seconds, points, category):
        score = score_speed_to_answer(1000.0, 1000.0 + seconds)
        assert score.points == points
        assert score.category == category
        assert score.seconds == seconds

    def test_never_answered(self):
        score = score_speed_to_answer(1000.0, None)
        assert score.points == 0
        assert score.seconds is None

    def test_voicemail(self):
        assert score_speed_to_answer(1000.0, 1003.0, voicemail=True).points == 0


class TestGreeting:
    def test_practice_and_staff_name(self, practice):
        transcript = [ai("Hi"), desk("Bright Smiles Dental, this is Karen.")]
        score = score_greeting(transcript, practice)
        assert score.points == 6
        assert score.evidence == "Bright Smiles Dental, this is Karen."

    def test_practice_name_only(self, practice):
        score = score_greeting([desk("bright smiles dental, how can I help?")], practice)
        assert score.points == 4
        assert score.category == "name only"

    def test_generic(self, practice):
        assert score_greeting([desk("Hello, dental office.")], practice).points == 2

    def test_no_greeting(self, practice):
        assert score_greeting([desk("Yeah?")], practice).points == 0

    def test_no_receptionist_lines(self, practice):
        score = score_greeting([ai("Hello?")], practice)
        assert score.points == 0
        assert score.category == "no greeting"

    def test_only_first_line_counts(self, practice):
        transcript = [desk("Yeah?"), desk("Oh, this is Bright Smiles Dental, I'm Karen.")]
        assert score_greeting(transcript, practice).points == 0


class TestBookingAttempts:
    def test_counts_distinct_lines(self):
        transcript = [
            desk("Would you like to schedule a cleaning?"),
            desk("Would you like to schedule a cleaning?"),
            desk("We have something this week."),
        ]
        score = score_booking_attempts(transcript)
        assert score.count == 2
        assert score.points == 8

    def test_three_or_more(self, good_call_transcript):
        score = score_booking_attempts(good_call_transcript)
        assert score.count == 3
        assert score.points == 12

    def test_caller_lines_ignored(self):
        score = score_booking_attempts([ai("Can I book an appointment?")])
        assert score.count == 0
        assert score.points == 0

    def test_single_attempt(self):
        assert score_booking_attempts([desk("Let me get you on the calendar.")]).points == 4


class TestContactCapture:
    def test_name_and_contact(self, good_call_transcript):
        score = score_contact_capture(good_call_transcript)
        assert score.points == 6
        assert "name" in score.evidence

    def test_one_item(self):
        score = score_contact_capture([desk("What's a good phone number for you?")])
        assert score.points == 3
        assert score.category == "one item"

    def test_none(self):
        assert score_contact_capture([desk("Okay, bye.")]).points == 0


class TestHesitation:
    def test_caller_hesitated(self, good_call_transcript):
        assert caller_hesitated(good_call_transcript)

    def test_receptionist_hesitation_does_not_count(self):
        assert not caller_hesitated([ai("Great, thanks."), desk("I'm not sure we have openings.")])


class TestJudgePrompts:
    def test_insurance_prompt_names_insurance(self, practice):
        prompt = build_judge_prompt("insuranceHandling", "Caller: hi", practice)
        assert "Insurance asked about: Cigna" in prompt
        assert "Caller: hi" in prompt

    def test_offer_prompt_with_expected_offer(self, practice):
        prompt = build_judge_prompt("offerMention", "", practice)
        assert "Expected offer: $99 exam, cleaning and x-rays" in prompt

    def test_offer_prompt_without_offer(self):
        prompt = build_judge_prompt("offerMention", "", PracticeInfo("A", "+1"))
        assert "No specific offer provided" in prompt

    def test_prompt_asks_for_json(self, practice):
        prompt = build_judge_prompt("priceFraming", "", practice)
        assert '{ "points": number, "category": string, "evidence": string }' in prompt


class TestScoreRubric:
    @pytest.mark.asyncio
    async def test_full_rubric(self, good_call_transcript, practice):
        chat = ScriptedChat()
        rubric = await score_rubric(
            Judge(chat), good_call_transcript, practice, call_start=1000.0, first_answer=1006.0,
        )
        assert rubric.speed_to_answer.points == 10
        assert rubric.greeting.points == 6
        assert rubric.booking_attempts.points == 12
        assert rubric.contact_info.points == 6
        assert rubric.new_patient.points == 4
        assert rubric.objection_handling.points == 4
        assert rubric.total == 10 + 6 + 4 * 5 + 12 + 6
        assert len(chat.calls) == 5

    @pytest.mark.asyncio
    async def test_no_hesitation_skips_objection_judge(self, practice):
        transcript = [ai("Are you taking new patients?"), desk("Yes we are!")]
        chat = ScriptedChat()
        rubric = await score_rubric(Judge(chat), transcript, practice, call_start=1000.0, first_answer=1002.0)
        assert rubric.objection_handling == NO_OBJECTION
        assert len(chat.calls) == 4

    @pytest.mark.asyncio
    async def test_judge_failure_falls_back(self, good_call_transcript, practice):
        chat = ScriptedChat(verdict=RuntimeError("timeout"))
        rubric = await score_rubric(
            Judge(chat), good_call_transcript, practice, call_start=1000.0, first_answer=1006.0,
        )
        assert rubric.offer.points == 0
        assert rubric.offer.category == "no mention"
        assert rubric.insurance.category == "wrong/none"
        assert rubric.greeting.points == 6

    @pytest.mark.asyncio
    async def test_total_bounded(self, good_call_transcript, practice):
        chat = ScriptedChat(verdict={"points": 100, "category": "max"})
        rubric = await score_rubric(
            Judge(chat), good_call_transcript, practice, call_start=1000.0, first_answer=1001.0,
        )
        assert rubric.total == 70
