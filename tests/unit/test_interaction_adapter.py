"""
Unit tests for the interaction adapter.
"""

import pytest

from tutor.models.context import TutorContext
from tutor.services.interaction_adapter import MAX_DATA_CHARS, describe_interaction


class FirstChoice:
    def choice(self, seq):
        return seq[0]


class TestSubmissions:
    def test_correct_answer(self, lesson_context):
        prompt = describe_interaction("answer_submitted", {"answer": "x", "isCorrect": True}, lesson_context)

        assert prompt.correct is True
        assert prompt.message.startswith("I submitted an answer for Lesson 1: Variables. I got it right.")
        assert '"answer": "x"' in prompt.message

    def test_wrong_answer(self, lesson_context):
        prompt = describe_interaction("quiz_submitted", {"correct": False}, lesson_context)
        assert prompt.correct is False
        assert "I got it wrong." in prompt.message

    def test_unknown_correctness(self, lesson_context):
        prompt = describe_interaction("fill_blank_submitted", {}, lesson_context)
        assert prompt.correct is None
        assert prompt.message == "I submitted a fill-in-the-blank exercise for Lesson 1: Variables."

    def test_long_payload_is_truncated(self, lesson_context):
        prompt = describe_interaction("answer_submitted", {"answer": "y" * 2000}, lesson_context)
        details = prompt.message.split("Details: ", 1)[1]
        assert len(details) == MAX_DATA_CHARS + 3
        assert details.endswith("...")


class TestNextActions:
    def test_requests_a_diverse_type(self, lesson_context):
        lesson_context.current_lesson.record_content_type("multiple-choice")

        prompt = describe_interaction("next_question", {}, lesson_context, rng=FirstChoice())

        assert prompt.content_type == "progress-quiz"
        assert "Use an interactive_component of type 'progress-quiz'." in prompt.message

    def test_works_without_lesson(self):
        context = TutorContext()
        prompt = describe_interaction("next_problem", None, context, rng=FirstChoice())
        assert prompt.content_type == "step-solver"
        assert "this topic" in prompt.message


class TestOtherActions:
    @pytest.mark.parametrize("action", ["hint", "explain_more", "examples_requested"])
    def test_help_actions_name_topic(self, action, lesson_context):
        prompt = describe_interaction(action, {}, lesson_context)
        assert prompt.message.endswith("(Topic: Lesson 1: Variables)")

    def test_reset(self, lesson_context):
        prompt = describe_interaction("quiz_reset", {}, lesson_context)
        assert "try again" in prompt.message

    def test_unknown_action_is_described_generically(self, lesson_context):
        prompt = describe_interaction("  slider_moved ", {"value": 3}, lesson_context)
        assert prompt.action == "slider_moved"
        assert prompt.message == 'I interacted with the Lesson 1: Variables content (slider_moved). Details: {"value": 3}'
