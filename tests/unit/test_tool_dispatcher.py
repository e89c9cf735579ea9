"""
Unit tests for ToolDispatcher.

Each tool is a state transition over a TutorContext. Tool-logic failures
come back as error results, never exceptions.
"""

import random

import pytest
from unittest.mock import AsyncMock, Mock, patch

from tutor.exceptions import SessionInitializationError
from tutor.models.context import TutorContext, UserProfile
from tutor.models.lesson_plan import ALL_COMPLETE_MESSAGE, PlanState
from tutor.orchestration.tool_dispatcher import ToolDispatcher


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_dispatcher(session_manager=None):
    return ToolDispatcher(session_manager=session_manager, rng=random.Random(3))


def mock_session_manager(side_effect=None):
    manager = Mock()
    manager.get_or_create_session = AsyncMock(side_effect=side_effect)
    return manager


# ---------------------------------------------------------------------------
# Dispatch mechanics
# ---------------------------------------------------------------------------

class TestDispatchErrors:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, lesson_context):
        outcome = await build_dispatcher().dispatch("launch_rocket", {}, lesson_context)
        assert outcome.result == {"error": "Unknown tool: launch_rocket"}
        assert outcome.to_record() is None

    @pytest.mark.asyncio
    async def test_invalid_parameters(self, lesson_context):
        outcome = await build_dispatcher().dispatch("lesson_complete", {"completed": "maybe"}, lesson_context)
        assert outcome.is_error
        assert outcome.result["error"].startswith("Invalid parameters for lesson_complete")
        assert "lesson_id" in outcome.result["error"]

    @pytest.mark.asyncio
    async def test_non_dict_parameters_treated_as_empty(self, lesson_context):
        outcome = await build_dispatcher().dispatch("review_request", None, lesson_context)
        assert outcome.is_error

    @pytest.mark.asyncio
    async def test_output_json_is_serialized_result(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "clarifying_question", {"question": "Which topic?", "context": "vague"}, lesson_context
        )
        assert '"requiresUserResponse": true' in outcome.output_json()

    @pytest.mark.asyncio
    async def test_handler_failure_becomes_error_result(self, lesson_context):
        with patch("tutor.orchestration.tool_dispatcher.build_content", side_effect=ValueError("bad payload")):
            outcome = await build_dispatcher().dispatch("interactive_component", {"type": "quiz"}, lesson_context)

        assert outcome.result == {"error": "interactive_component failed: bad payload"}
        assert outcome.content == []


# ---------------------------------------------------------------------------
# Subject tools
# ---------------------------------------------------------------------------

class TestNewSubject:
    @pytest.mark.asyncio
    async def test_creates_subject_and_opens_session(self):
        manager = mock_session_manager()
        context = TutorContext(user_id="u1")
        context.add_turn("user", "I want to learn chemistry")

        outcome = await build_dispatcher(manager).dispatch("new_subject", {"name": "Chemistry"}, context)

        assert outcome.result["success"] is True
        assert context.subject.name == "Chemistry"
        assert context.lesson_plan is None
        manager.get_or_create_session.assert_awaited_once_with(
            context.subject.id, "Chemistry", replay_message="I want to learn chemistry"
        )
        assert context.history[-1].role == "assistant"
        assert "main goals for Chemistry" in context.history[-1].content

    @pytest.mark.asyncio
    async def test_resets_plan_and_progress(self, lesson_context):
        lesson_context.progress.record_attempt(True)
        await build_dispatcher().dispatch("new_subject", {"subject_name": "Biology"}, lesson_context)
        assert lesson_context.subject.name == "Biology"
        assert lesson_context.lesson_plan is None
        assert lesson_context.progress.total_attempts == 0

    @pytest.mark.asyncio
    async def test_session_failure_is_not_fatal(self):
        manager = mock_session_manager(side_effect=SessionInitializationError("s", ["gpt-4o"], "authentication"))
        context = TutorContext()

        outcome = await build_dispatcher(manager).dispatch("new_subject", {"name": "Art"}, context)

        assert outcome.result["success"] is True
        assert outcome.result["sessionPending"] is True
        assert context.subject.name == "Art"

    @pytest.mark.asyncio
    async def test_blank_name_is_rejected(self, lesson_context):
        subject_id = lesson_context.subject_id

        outcome = await build_dispatcher().dispatch("new_subject", {"name": "   "}, lesson_context)

        assert outcome.result["error"].startswith("Invalid parameters for new_subject")
        assert lesson_context.subject_id == subject_id

    @pytest.mark.asyncio
    async def test_initial_level_sets_profile(self):
        context = TutorContext()
        await build_dispatcher().dispatch("new_subject", {"name": "Art", "initial_level": "advanced"}, context)
        assert context.learner_level == "advanced"


class TestSubjectComplete:
    @pytest.mark.asyncio
    async def test_marks_subject_complete(self, lesson_context):
        outcome = await build_dispatcher().dispatch("subject_complete", {"subject_id": "x"}, lesson_context)
        assert outcome.result["subjectCompleted"] is True
        assert lesson_context.subject.is_active is False
        assert lesson_context.subject.progress == 100.0

    @pytest.mark.asyncio
    async def test_requires_subject(self):
        outcome = await build_dispatcher().dispatch("subject_complete", {}, TutorContext())
        assert outcome.result == {"error": "No active subject"}


# ---------------------------------------------------------------------------
# Lesson plan tools
# ---------------------------------------------------------------------------

class TestNewLessonPlan:
    @pytest.mark.asyncio
    async def test_uses_parameter_goals(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "new_lesson_plan",
            {"subject": "Algebra", "difficulty_level": "intermediate", "learning_goals": ["Slopes", "Lines"]},
            lesson_context,
        )
        plan = lesson_context.lesson_plan
        assert outcome.result["totalLessons"] == 2
        assert plan.difficulty == "intermediate"
        assert plan.lessons[0].title == "Lesson 1: Slopes"
        assert lesson_context.progress.total_lessons == 2

    @pytest.mark.asyncio
    async def test_falls_back_to_profile_goals_and_level(self):
        context = TutorContext(profile=UserProfile(learning_goals=["Chords"], self_assessed_level="advanced"))
        await build_dispatcher().dispatch("new_lesson_plan", {}, context)
        assert context.lesson_plan.lessons[0].title == "Lesson 1: Chords"
        assert context.lesson_plan.difficulty == "advanced"

    @pytest.mark.asyncio
    async def test_no_goals_gives_intro_lesson(self):
        context = TutorContext()
        await build_dispatcher().dispatch("new_lesson_plan", {"subject": "Poetry"}, context)
        assert context.lesson_plan.total_lessons == 1
        assert context.lesson_plan.difficulty == "beginner"


class TestUpdateLessonPlan:
    @pytest.mark.asyncio
    async def test_requires_plan(self):
        outcome = await build_dispatcher().dispatch("update_lesson_plan", {"reason": "x"}, TutorContext())
        assert outcome.result == {"error": "No lesson plan to update"}

    @pytest.mark.asyncio
    async def test_adds_and_removes(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "update_lesson_plan",
            {"reason": "Struggling", "adjustments": ["slower"], "new_lessons": ["Graphs"],
             "remove_lessons": ["Lesson 3: Inequalities"]},
            lesson_context,
        )
        titles = [lesson.title for lesson in lesson_context.lesson_plan.lessons]
        assert outcome.result["removed"] == ["Lesson 3: Inequalities"]
        assert titles[-1] == "Graphs"
        assert lesson_context.lesson_plan.lessons[-1].description == "Updated lesson: Graphs"
        assert len({lesson.id for lesson in lesson_context.lesson_plan.lessons}) == len(titles)
        assert lesson_context.current_lesson.id == "lesson_1"


class TestLessonComplete:
    @pytest.mark.asyncio
    async def test_requires_plan(self):
        outcome = await build_dispatcher().dispatch(
            "lesson_complete", {"lesson_id": "lesson_1", "completed": True}, TutorContext()
        )
        assert outcome.result == {"error": "No active lesson plan"}

    @pytest.mark.asyncio
    async def test_unknown_lesson(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "lesson_complete", {"lesson_id": "lesson_9", "completed": True}, lesson_context
        )
        assert outcome.result == {"error": "Lesson not found"}

    @pytest.mark.asyncio
    async def test_completion_without_score(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "lesson_complete", {"lesson_id": "lesson_1", "completed": True}, lesson_context
        )
        assert outcome.result["completed"] is True
        assert outcome.result["summary"]["lessonId"] == "lesson_1"
        assert lesson_context.progress.total_attempts == 1
        assert lesson_context.subject.progress == pytest.approx(100 / 3)

    @pytest.mark.asyncio
    async def test_failing_score_overrides_completed_flag(self, lesson_context):
        lesson_context.profile.self_assessed_level = "advanced"
        outcome = await build_dispatcher().dispatch(
            "lesson_complete",
            {"lesson_id": "lesson_1", "completed": True, "performance_score": 60},
            lesson_context,
        )
        assert outcome.result["completed"] is False
        assert outcome.result["threshold"] == 90
        assert lesson_context.lesson_plan.lessons[0].completed is False

    @pytest.mark.asyncio
    async def test_passing_score_on_last_lesson_adds_subject_summary(self, lesson_context):
        plan = lesson_context.lesson_plan
        plan.complete_lesson("lesson_1")
        plan.complete_lesson("lesson_2")
        outcome = await build_dispatcher().dispatch(
            "lesson_complete",
            {"lesson_id": "lesson_3", "completed": True, "performance_score": 95},
            lesson_context,
        )
        assert outcome.result["completed"] is True
        assert outcome.result["subjectSummary"]["contentType"] == "subject"


class TestNextLesson:
    @pytest.mark.asyncio
    async def test_incomplete_lesson_blocks_advance(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "next_lesson", {"current_lesson_id": "lesson_1"}, lesson_context
        )
        assert "not yet completed" in outcome.result["error"]
        assert lesson_context.lesson_plan.current_lesson_index == 0
        assert outcome.content == []

    @pytest.mark.asyncio
    async def test_advance_produces_explainer_and_practice(self, lesson_context):
        lesson_context.lesson_plan.complete_lesson("lesson_1")

        outcome = await build_dispatcher().dispatch(
            "next_lesson", {"current_lesson_id": "lesson_1"}, lesson_context
        )

        result = outcome.result
        assert result["nextLesson"]["id"] == "lesson_2"
        assert result["lessonNumber"] == 2
        assert result["totalLessons"] == 3
        assert result["explainerComponent"]["componentType"] == "explainer"
        assert result["explainerComponent"]["content"]["overview"] == "Overview of Lesson 2: Equations"
        assert [item.type for item in outcome.content][0] == "explainer"
        assert outcome.content[1].type != "explainer"
        assert lesson_context.current_lesson.recent_content_types == [
            "explainer", outcome.content[1].type,
        ]

    @pytest.mark.asyncio
    async def test_advance_from_last_lesson_completes_plan(self, lesson_context):
        plan = lesson_context.lesson_plan
        for lesson in plan.lessons:
            plan.complete_lesson(lesson.id)
        plan.current_lesson_index = 2

        outcome = await build_dispatcher().dispatch("next_lesson", {"current_lesson_id": "lesson_3"}, lesson_context)

        assert outcome.result["completed"] is True
        assert outcome.result["message"] == ALL_COMPLETE_MESSAGE
        assert plan.current_lesson_index == 3
        assert plan.state is PlanState.COMPLETE

    @pytest.mark.asyncio
    async def test_already_complete_plan(self, lesson_context):
        plan = lesson_context.lesson_plan
        for lesson in plan.lessons:
            plan.complete_lesson(lesson.id)
        plan.current_lesson_index = 3

        outcome = await build_dispatcher().dispatch("next_lesson", {}, lesson_context)

        assert outcome.result == {"success": True, "completed": True, "message": ALL_COMPLETE_MESSAGE}


# ---------------------------------------------------------------------------
# Content and conversation tools
# ---------------------------------------------------------------------------

class TestInteractiveComponent:
    @pytest.mark.asyncio
    async def test_normalizes_and_records_type(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "interactive_component",
            {"type": "quiz", "content": {"title": "Quick check"}, "learning_objective": "Variables"},
            lesson_context,
        )
        assert outcome.result["type"] == "interactive_component"
        assert outcome.result["componentType"] == "progress-quiz"
        assert outcome.result["content"]["questions"]
        assert outcome.content[0].subject_id == lesson_context.subject_id
        assert lesson_context.current_lesson.recent_content_types == ["progress-quiz"]

    @pytest.mark.asyncio
    async def test_accepts_component_type_alias(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "interactive_component", {"component_type": "explainer", "content": {}}, lesson_context
        )
        assert outcome.result["componentType"] == "explainer"
        assert outcome.result["learningObjective"] == "Lesson 1: Variables"


class TestConversationTools:
    @pytest.mark.asyncio
    async def test_clarifying_question(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "clarifying_question", {"question": "Which part?", "context": "vague", "options": ["a", "b"]},
            lesson_context,
        )
        assert outcome.result == {
            "type": "clarifying_question",
            "question": "Which part?",
            "context": "vague",
            "options": ["a", "b"],
            "requiresUserResponse": True,
        }

    @pytest.mark.asyncio
    async def test_review_request_defaults(self, lesson_context):
        outcome = await build_dispatcher().dispatch("review_request", {"topics": ["Variables"]}, lesson_context)
        assert outcome.result["type"] == "review_session"
        assert outcome.result["reviewType"] == "comprehensive"
        assert outcome.result["weakAreas"] == []

    @pytest.mark.asyncio
    async def test_summary_request_kinds(self, lesson_context):
        dispatcher = build_dispatcher()
        progress = await dispatcher.dispatch("summary_request", {"content_type": "progress"}, lesson_context)
        lesson = await dispatcher.dispatch("summary_request", {"content_type": "lesson"}, lesson_context)
        concept = await dispatcher.dispatch("summary_request", {"summary_type": "concept", "scope": "x"},
                                            lesson_context)
        assert progress.result["contentType"] == "progress"
        assert lesson.result["lessonId"] == "lesson_1"
        assert concept.result["content"] == "Concept Summary: x"

    @pytest.mark.asyncio
    async def test_rephrase_request(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "rephrase_request", {"original_content": "Hard text", "style": "visual"}, lesson_context
        )
        assert outcome.result["type"] == "rephrase"
        assert outcome.result["message"] == "Rephrasing content in a visual way..."

    @pytest.mark.asyncio
    async def test_feedback_log_records_turn_and_attempt(self, lesson_context):
        outcome = await build_dispatcher().dispatch(
            "feedback_log",
            {"interaction_type": "quiz", "user_response": "b", "success_rate": 80, "engagement_level": "high"},
            lesson_context,
        )
        assert outcome.result["logged"] is True
        assert lesson_context.history[-1].content == "Logged feedback: quiz"
        assert lesson_context.history[-1].tool_calls[0].tool_name == "feedback_log"
        assert lesson_context.progress.correct_answers == 1
