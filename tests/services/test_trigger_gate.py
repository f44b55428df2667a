"""Tests for the trigger gate state machine."""

from reflect.models.contracts import Proactivity, QuestionKind, QuestionStatus, TriggerReason
from reflect.models.questions import FIRST_QUESTION, QuestionItem
from reflect.services.trigger_gate import (
    GatePhase,
    RequestNextQuestion,
    TriggerGate,
    ValidateAnswer,
    build_recent_text,
    ends_at_sentence_boundary,
)


def shown_gate(**kwargs) -> TriggerGate:
    gate = TriggerGate(started_at=0.0, **kwargs)
    gate.question_shown(QuestionItem.from_template(FIRST_QUESTION), 0.0)
    return gate


class TestHelpers:
    def test_sentence_boundary(self):
        assert ends_at_sentence_boundary("It was fine.")
        assert ends_at_sentence_boundary("Was it fine? ")
        assert ends_at_sentence_boundary("It was great!")
        assert not ends_at_sentence_boundary("It was fine and")

    def test_recent_text_uses_last_three_lines(self):
        assert build_recent_text(["a", "b", "c"], "d") == "b c d"
        assert build_recent_text(["a", "b", "c"], "  ") == "a b c"


class TestValidation:
    def test_answer_sentence_triggers_validation(self):
        gate = shown_gate()
        action = gate.on_transcript(["It was busy but good."], "", 12.0)
        assert action == ValidateAnswer(recent_text="It was busy but good.")
        assert gate.phase == GatePhase.AWAITING_DECISION
        assert gate.state.is_generating

    def test_answer_needs_no_markers_or_question_keywords(self):
        # Whether the sentence answers the question is left to the model.
        gate = shown_gate()
        action = gate.on_transcript(["Mostly meetings all afternoon."], "", 12.0)
        assert action == ValidateAnswer(recent_text="Mostly meetings all afternoon.")

    def test_no_validation_without_terminal_punctuation(self):
        gate = shown_gate()
        assert gate.on_transcript(["i went for a walk and then"], "", 12.0) is None
        assert gate.on_audio_level(0.0, 12.0) is None
        for second in range(13, 120):
            assert gate.tick(float(second)) is None
        assert not gate.state.is_generating
        assert gate.phase == GatePhase.QUESTION_DISPLAYED

    def test_short_sentence_does_not_trigger(self):
        gate = shown_gate()
        assert gate.on_transcript(["Fine, thanks."], "", 12.0) is None

    def test_same_sentence_is_only_evaluated_once(self):
        gate = shown_gate()
        assert isinstance(gate.on_transcript(["It was busy but good."], "", 12.0), ValidateAnswer)
        assert gate.validation_finished(False, 13.0) is None
        assert gate.on_transcript(["It was busy but good."], "", 14.0) is None
        action = gate.on_transcript(["It was busy but good.", "Mostly meetings all afternoon."], "", 15.0)
        assert isinstance(action, ValidateAnswer)

    def test_text_before_question_never_counts_as_answer(self):
        gate = TriggerGate(started_at=0.0)
        assert gate.on_transcript(["I had a really long day."], "", 5.0) is None
        gate.question_shown(QuestionItem.from_template(FIRST_QUESTION), 6.0)
        assert gate.on_transcript(["I had a really long day."], "", 12.0) is None

    def test_answered_leads_to_follow_up(self):
        gate = shown_gate()
        gate.on_transcript(["It was busy but good."], "", 12.0)
        action = gate.validation_finished(True, 13.0)
        assert action == RequestNextQuestion(
            preferred_kind=QuestionKind.FOLLOW_UP,
            reason=TriggerReason.ANSWERED,
            recent_text="It was busy but good.",
        )
        assert gate.history[0].status == QuestionStatus.ANSWERED
        assert gate.current_question.status == QuestionStatus.ANSWERED

    def test_unanswered_keeps_question_displayed(self):
        gate = shown_gate()
        gate.on_transcript(["The weather was nice today."], "", 12.0)
        assert gate.validation_finished(False, 13.0) is None
        assert gate.phase == GatePhase.QUESTION_DISPLAYED
        assert not gate.state.is_generating


class TestNextQuestionTriggers:
    def test_start_delay_suppresses_triggers(self):
        gate = TriggerGate(started_at=0.0)
        assert gate.on_transcript(["I had a long day at work."], "", 5.0) is None
        action = gate.on_transcript(["I had a long day at work."], "", 11.0)
        assert action == RequestNextQuestion(
            preferred_kind=QuestionKind.DEFAULT,
            reason=TriggerReason.SENTENCE_BOUNDARY,
            recent_text="I had a long day at work.",
        )

    def test_silence_requests_question_once(self):
        gate = TriggerGate(started_at=0.0)
        assert gate.on_audio_level(0.0, 20.0) is None
        assert gate.tick(24.0) is None
        action = gate.tick(25.0)
        assert isinstance(action, RequestNextQuestion)
        assert action.reason == TriggerReason.SILENCE
        assert gate.tick(40.0) is None

    def test_voice_activity_resets_silence(self):
        gate = TriggerGate(started_at=0.0)
        gate.on_audio_level(0.0, 20.0)
        gate.on_audio_level(0.5, 23.0)
        assert gate.tick(26.0) is None
        gate.on_audio_level(0.01, 26.0)
        assert gate.tick(29.0) is None
        assert isinstance(gate.tick(30.5), RequestNextQuestion)

    def test_minimum_interval_depends_on_proactivity(self):
        gate = shown_gate(proactivity=Proactivity.LOW)
        gate.dismiss()
        lines = ["This is a complete sentence here."]
        assert gate.on_transcript(lines, "", 45.0) is None
        gate.set_proactivity(Proactivity.MEDIUM)
        action = gate.on_transcript(lines, "", 45.0)
        assert isinstance(action, RequestNextQuestion)
        assert action.preferred_kind == QuestionKind.NEW_TOPIC

    def test_generating_suppresses_further_triggers(self):
        gate = TriggerGate(started_at=0.0)
        assert isinstance(gate.on_transcript(["I had a long day at work."], "", 11.0), RequestNextQuestion)
        assert gate.on_transcript(["I had a long day at work.", "Then I went home early."], "", 12.0) is None
        gate.generation_failed()
        assert gate.phase == GatePhase.IDLE
        assert not gate.state.is_generating


class TestUserActions:
    def test_refresh_ignores_current_and_requests_new_topic(self):
        gate = shown_gate()
        action = gate.refresh(3.0)
        assert action == RequestNextQuestion(
            preferred_kind=QuestionKind.NEW_TOPIC,
            reason=TriggerReason.REFRESH,
            recent_text="",
        )
        assert gate.history[0].status == QuestionStatus.IGNORED
        assert gate.refresh(4.0) is None

    def test_dismiss_marks_ignored(self):
        gate = shown_gate()
        gate.dismiss()
        assert gate.phase == GatePhase.IDLE
        assert gate.history[0].status == QuestionStatus.IGNORED
        assert len(gate.history) == 1

    def test_completed_gate_ignores_everything(self):
        gate = shown_gate()
        gate.complete()
        assert gate.is_completed
        assert gate.on_transcript(["It was busy but good."], "", 50.0) is None
        assert gate.on_audio_level(0.0, 50.0) is None
        assert gate.refresh(50.0) is None
        assert gate.validation_finished(True, 50.0) is None
        assert gate.question_shown(QuestionItem.from_template(FIRST_QUESTION), 50.0) is False
        assert len(gate.history) == 1

    def test_reset_starts_fresh_session(self):
        gate = shown_gate()
        gate.complete()
        gate.reset(100.0)
        assert gate.phase == GatePhase.IDLE
        assert gate.history == ()
        assert gate.state.session_started_at == 100.0


def test_seen_sentences_are_bounded():
    gate = TriggerGate(started_at=0.0, seen_sentence_limit=2, minimum_intervals={p: 0.0 for p in Proactivity})
    lines: list[str] = []
    for index in range(4):
        lines.append(f"This is sentence number {index}.")
        gate.on_transcript(lines, "", 20.0 + index)
        gate.generation_failed()
    assert len(gate.state.seen_sentence_boundaries) == 2
    assert "This is sentence number 3." in gate.state.seen_sentence_boundaries
