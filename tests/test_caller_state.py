from scorecard.caller_state import (
    MAX_HESITATIONS,
    TOPIC_ORDER,
    CallerConversationState,
    Stage,
    match_any_phrase,
)


class TestMatchAnyPhrase:
    def test_case_insensitive(self):
        assert match_any_phrase("Do you take DELTA?", frozenset({"delta"}))

    def test_no_match(self):
        assert not match_any_phrase("Hello there", frozenset({"price"}))

    def test_none_text(self):
        assert not match_any_phrase(None, frozenset({"price"}))


class TestTopicProgression:
    def test_starts_with_new_patient(self):
        assert CallerConversationState().next_stage() is Stage.NEW_PATIENT

    def test_asking_resolves_topic(self):
        state = CallerConversationState()
        state.observe_ai_line("Hi, are you accepting new patients?")
        assert state.is_resolved(Stage.NEW_PATIENT)
        assert state.next_stage() is Stage.INSURANCE

    def test_always_first_unresolved_topic(self):
        state = CallerConversationState()
        state.observe_ai_line("How much does a cleaning cost?")
        assert state.is_resolved(Stage.PRICING)
        assert state.next_stage() is Stage.NEW_PATIENT

    def test_one_line_can_resolve_several_topics(self):
        state = CallerConversationState()
        state.observe_ai_line("I'm a new patient with Cigna insurance, any special offer?")
        assert state.next_stage() is Stage.PRICING

    def test_resolved_topics_stay_resolved(self):
        state = CallerConversationState()
        state.observe_ai_line("Do you take my insurance?")
        state.observe_ai_line("Okay.")
        assert state.is_resolved(Stage.INSURANCE)


class TestBookingResistance:
    def _all_topics_resolved(self):
        state = CallerConversationState()
        for line in [
            "Are you taking new patients?",
            "Do you take Delta insurance?",
            "Any new patient special?",
            "How much is a cleaning?",
            "Do you have an appointment this week?",
        ]:
            state.observe_ai_line(line)
        return state

    def test_resistance_after_topics(self):
        state = self._all_topics_resolved()
        assert [p.topic for p in state.topics] == TOPIC_ORDER
        assert state.next_stage() is Stage.BOOKING_RESISTANCE

    def test_close_after_max_hesitations(self):
        state = self._all_topics_resolved()
        for _ in range(MAX_HESITATIONS):
            state.observe_ai_line("Hmm, I'm not sure yet.")
        assert state.next_stage() is Stage.CLOSE

    def test_thanks_requests_end(self):
        state = CallerConversationState()
        state.observe_ai_line("Thank you, that's all I needed.")
        assert state.end_requested


class TestObserveOtherParty:
    def test_counts_booking_attempts(self):
        state = CallerConversationState()
        state.observe_other_party("Would you like to schedule a visit?")
        state.observe_other_party("We're open until five.")
        state.observe_other_party("I can get you in tomorrow.")
        assert state.booking_attempts == 2

    def test_history_roles(self):
        state = CallerConversationState()
        state.observe_ai_line("Are you accepting new patients?")
        state.observe_other_party("Yes we are.")
        assert [m["role"] for m in state.history] == ["assistant", "user"]
