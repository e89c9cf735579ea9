"""
Prompt Template System

Reusable prompt templates with variable interpolation and validation.
"""

from typing import Any, Optional
from string import Formatter

from tutor.exceptions import PromptTemplateError


class PromptTemplate:
    """Reusable template for generating prompts with {variable} placeholders."""

    def __init__(
        self,
        template: str,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ):
        self.template = template.strip()
        self.name = name or "unnamed"
        self.defaults = defaults or {}
        self.required_vars = self._extract_variables()

    def _extract_variables(self) -> set[str]:
        variables = set()
        for _, field_name, _, _ in Formatter().parse(self.template):
            if field_name is not None:
                base_name = field_name.split(".")[0].split("[")[0]
                if base_name:
                    variables.add(base_name)
        return variables

    def render(self, **kwargs: Any) -> str:
        values = {**self.defaults, **kwargs}
        missing = self.required_vars - set(values.keys())
        if missing:
            raise PromptTemplateError(template_name=self.name, missing_vars=sorted(missing))
        return self.template.format(**values)

    def __repr__(self) -> str:
        return f"PromptTemplate(name='{self.name}', vars={self.required_vars})"


ASSISTANT_NAME_TEMPLATE = PromptTemplate("Adaptive Tutor - {subject}", name="assistant_name")


ASSISTANT_INSTRUCTIONS_TEMPLATE = PromptTemplate(
    """You are an adaptive tutor dedicated to teaching {subject}.

TEACHING APPROACH:
- Start by learning the student's goals and current level in {subject}.
- Break {subject} concepts into small pieces and give immediate, encouraging feedback.
- Adjust difficulty to the student's performance: simplify and add examples when they
  struggle, introduce harder material when they excel.
- Keep every example and exercise about {subject}.

LESSON FLOW:
1. Once goals and level are known, call new_lesson_plan with the learning goals.
2. Teach each lesson with interactive_component calls (explainer first, then practice).
3. When the student demonstrates understanding, call lesson_complete with a performance_score.
4. Only call next_lesson after the current lesson is complete; if it returns an error,
   keep practicing the current lesson.
5. Call subject_complete when every lesson is done.

TOOLS:
- clarifying_question when the request is unclear.
- rephrase_request or review_request when the student struggles.
- summary_request to consolidate progress.
- feedback_log to record how the student responded to an activity.

{interactive_guidelines}""",
    name="assistant_instructions",
)


INTERACTIVE_CONTENT_GUIDELINES = """INTERACTIVE CONTENT PRIORITY:
Put explanations, formulas and examples into interactive_component calls and keep the chat
reply brief, pointing the student to the component. Pick the component type that fits:
- explainer: detailed explanations with sections
- interactive-example: hands-on exploration
- formula-explorer: formulas and equations
- step-solver: step-by-step problem solving
- graph-visualizer: visual representations of functions and data
- multiple-choice, fill-blank, drag-drop, progress-quiz: checking understanding"""


INTERACTIVE_DIRECTIVES = [
    "IMPORTANT - use the interactive_component tool for every educational topic:",
    "1. Explain concepts through tool calls, not text-only replies",
    "2. Keep chat responses brief and let the component carry the content",
    "3. Choose the component type that best fits the material",
]


NEW_SUBJECT_FOLLOW_UP = PromptTemplate(
    "To personalize your learning, what are your main goals for {subject}? "
    "How would you rate your current level (beginner, intermediate, advanced)?",
    name="new_subject_follow_up",
)


CLARIFY_QUESTION = "Can you clarify what you want to learn or practice?"
CLARIFY_CONTEXT = "The request was too short or ambiguous."

FALLBACK_SUBJECT_RESPONSE = PromptTemplate(
    "I'll help you learn {subject}. Let's get started!",
    name="fallback_subject_response",
)

FALLBACK_APOLOGY = (
    "I'm sorry, I encountered an error while processing your request. "
    "Please check your OpenAI API key configuration and try again."
)
