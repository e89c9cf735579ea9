"""Tutor models."""
from tutor.models.subject import Subject, create_subject
from tutor.models.lesson_plan import Concept, Lesson, LessonPlan, PlanState, create_lesson_plan
from tutor.models.progress import LearningProgress
from tutor.models.content import InteractiveContent, CONTENT_TYPES
from tutor.models.context import ToolCallRecord, ConversationTurn, UserProfile, TutorContext, TOOL_NAMES
from tutor.models.turn_logs import TurnLogEntry, TurnLogStore, get_turn_log_store
