"""
Unit tests for prompt templates and run-instruction building.
"""

import pytest

from tutor.exceptions import PromptTemplateError
from tutor.models.context import TutorContext
from tutor.models.lesson_plan import Concept
from tutor.prompts.templates import PromptTemplate
from tutor.prompts.tool_schemas import TUTOR_TOOLS
from tutor.utils.prompt_utils import (
    assistant_instructions,
    assistant_name,
    build_contextual_instructions,
)


class TestPromptTemplate:
    def test_render_with_defaults(self):
        template = PromptTemplate("Learn {subject} at {pace} pace", name="t", defaults={"pace": "your own"})
        assert template.render(subject="Algebra") == "Learn Algebra at your own pace"

    def test_missing_variable_raises(self):
        template = PromptTemplate("Learn {subject}", name="t")
        with pytest.raises(PromptTemplateError) as exc_info:
            template.render()
        assert exc_info.value.missing_vars == ["subject"]


class TestAssistantPrompts:
    def test_name(self):
        assert assistant_name("Biology") == "Adaptive Tutor - Biology"

    def test_instructions_are_subject_scoped(self):
        instructions = assistant_instructions("Biology")
        assert "teaching Biology" in instructions
        assert "INTERACTIVE CONTENT PRIORITY" in instructions


class TestContextualInstructions:
    def test_empty_context_adds_nothing(self):
        assert build_contextual_instructions(TutorContext()) is None

    def test_describes_subject_and_lesson(self, lesson_context):
        text = build_contextual_instructions(lesson_context)

        assert text.startswith("Additional context for this conversation:")
        assert "Current subject: Algebra" in text
        assert "Current lesson: 1 of 3" in text
        assert "Current lesson id: lesson_1 (Lesson 1: Variables)" in text
        assert "interactive_component" in text
        assert "Learning goals: Variables, Equations, Inequalities" in text

    def test_completed_lesson_hints_next_lesson(self, lesson_context):
        assert "may advance with next_lesson" not in build_contextual_instructions(lesson_context)
        lesson_context.lesson_plan.complete_lesson("lesson_1")
        assert "may advance with next_lesson" in build_contextual_instructions(lesson_context)

    def test_final_lesson_is_flagged(self, lesson_context):
        assert "final lesson" not in build_contextual_instructions(lesson_context)
        lesson_context.lesson_plan.current_lesson_index = 2
        assert "This is the final lesson of the plan." in build_contextual_instructions(lesson_context)

    def test_current_concept_is_named(self, lesson_context):
        lesson_context.current_lesson.concepts = [
            Concept(id="c1", title="What a variable is"),
            Concept(id="c2", title="Naming variables"),
        ]
        lesson_context.current_lesson.advance_concept()
        assert "Current concept: Naming variables" in build_contextual_instructions(lesson_context)

    def test_struggling_learner(self, lesson_context):
        lesson_context.progress.record_attempt(False, threshold=0.7)
        text = build_contextual_instructions(lesson_context)
        assert "Current accuracy: 0%" in text
        assert "struggling" in text

    def test_overrides_are_appended(self, lesson_context):
        lesson_context.instruction_overrides = ["Use metric units", "  "]
        text = build_contextual_instructions(lesson_context)
        assert "Use metric units" in text
        assert not text.endswith("\n  ")


class TestToolSchemas:
    def test_every_tool_is_a_function(self):
        names = [tool["function"]["name"] for tool in TUTOR_TOOLS]
        assert len(names) == len(set(names)) == 12
        assert all(tool["type"] == "function" for tool in TUTOR_TOOLS)

    def test_interactive_component_lists_types(self):
        tool = next(t for t in TUTOR_TOOLS if t["function"]["name"] == "interactive_component")
        type_schema = tool["function"]["parameters"]["properties"]["type"]
        assert "explainer" in type_schema["enum"]
        assert "type" in tool["function"]["parameters"]["required"]
