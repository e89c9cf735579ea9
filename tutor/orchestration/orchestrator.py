"""
Tutor Orchestrator

Drives one learner turn: picks the subject session, runs the assistant,
dispatches its tool calls in batches, and folds the results back into the
TutorContext. Every failure ends in the degraded fallback so the learner
always gets a reply.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from config import Settings, get_settings
from tutor.exceptions import PersistenceError, RunFailedError, RunTimeoutError, TutorAgentError
from tutor.models.content import InteractiveContent
from tutor.models.context import ConversationTurn, ToolCallRecord, TutorContext
from tutor.models.messages import RetryAffordance
from tutor.models.turn_logs import TurnLogEntry, TurnLogStore, get_turn_log_store
from tutor.orchestration.fallback import build_fallback, fallback_reason
from tutor.orchestration.tool_dispatcher import DispatchOutcome, ToolDispatcher
from tutor.prompts.templates import CLARIFY_CONTEXT, CLARIFY_QUESTION
from tutor.services.content_normalizer import build_content
from tutor.utils.async_utils import run_blocking
from tutor.utils.prompt_utils import build_contextual_instructions

if TYPE_CHECKING:
    from shared.services.llm_service import LLMService
    from tutor.orchestration.session_manager import LLMSessionManager
    from tutor.services.persistence_service import PersistenceService

logger = logging.getLogger("tutor.orchestrator")


PENDING_RUN_STATUSES = ("queued", "in_progress", "cancelling")

MIN_MESSAGE_LENGTH = 5

# Whole-message requests too vague to act on.
VAGUE_MESSAGES = frozenset({
    "help", "help me", "help please", "please help", "what", "how",
    "explain", "explain this", "explain it", "why", "huh", "i don't know", "idk",
})

CONTENT_REPLY = "Take a look at the interactive content below."
UNASSIGNED_SUBJECT = "unassigned"


def is_ambiguous(message: str) -> bool:
    """True for messages too short or too vague to send to the tutor."""
    text = (message or "").strip()
    if len(text) < MIN_MESSAGE_LENGTH:
        return True
    return text.lower().rstrip(".!?") in VAGUE_MESSAGES


class TurnResult(BaseModel):
    """Everything a caller needs after one turn."""

    response_text: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    content: list[InteractiveContent] = Field(default_factory=list)
    context: TutorContext
    degraded: bool = False
    retry: Optional[RetryAffordance] = None


class TutorOrchestrator:
    """Process-wide turn driver; holds no per-learner state besides locks."""

    def __init__(
        self,
        llm_service: Optional["LLMService"],
        session_manager: Optional["LLMSessionManager"],
        dispatcher: Optional[ToolDispatcher] = None,
        persistence: Optional["PersistenceService"] = None,
        settings: Optional[Settings] = None,
        turn_logs: Optional[TurnLogStore] = None,
    ):
        self.llm = llm_service
        self.session_manager = session_manager
        self.dispatcher = dispatcher or ToolDispatcher(session_manager)
        self.persistence = persistence
        self.settings = settings or get_settings()
        self.turn_logs = turn_logs or get_turn_log_store()

        self._turn_locks: dict[str, asyncio.Lock] = {}
        self._pending_saves: dict[str, list[tuple[str, tuple]]] = {}
        self._save_tails: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    @property
    def llm_available(self) -> bool:
        return self.llm is not None and self.session_manager is not None and self.settings.llm_configured

    # ─── Turn entry point ─────────────────────────────────────────────

    async def respond(
        self,
        user_message: str,
        context: Optional[TutorContext] = None,
        overrides: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        retry_action: Optional[RetryAffordance] = None,
    ) -> TurnResult:
        """
        Run one learner turn against `context` (mutated in place).

        Never raises for remote or tool failures; those produce a degraded
        result carrying a retry affordance.
        """
        context = context if context is not None else TutorContext()
        turn_id = uuid.uuid4().hex[:12]

        if self.session_manager is not None:
            await self.session_manager.wait_for_pending()

        async with self.turn_lock(context):
            return await self._run_turn(
                user_message,
                context,
                overrides,
                timeout if timeout is not None else self.settings.run_timeout,
                retry_action or RetryAffordance(action="respond", data={"message": user_message}),
                turn_id,
            )

    async def _run_turn(
        self,
        user_message: str,
        context: TutorContext,
        overrides: Optional[dict[str, Any]],
        timeout: float,
        retry_action: RetryAffordance,
        turn_id: str,
    ) -> TurnResult:
        start = time.time()
        override_error: Optional[ValidationError] = None
        try:
            context.merge_overrides(overrides)
        except ValidationError as e:
            override_error = e

        replay_message = context.first_user_message()
        history_start = len(context.history)
        subject_before = context.subject_id
        context.add_turn("user", user_message)
        if context.subject is not None:
            context.subject.touch()

        self._log_turn(context, turn_id, "turn_started", input_summary=user_message[:200])

        if override_error is not None:
            result = self._fallback(user_message, context, turn_id, error=override_error, retry_action=retry_action)
        elif is_ambiguous(user_message):
            result = await self._clarify(context, turn_id)
        elif not self.llm_available or context.subject is None:
            result = self._fallback(user_message, context, turn_id, error=None, retry_action=None)
        else:
            try:
                result = await self._run_assistant(user_message, context, timeout, replay_message, turn_id)
            except (TutorAgentError, asyncio.TimeoutError) as e:
                result = self._fallback(user_message, context, turn_id, error=e, retry_action=retry_action)
            except Exception as e:
                logger.error(f"Unexpected error during turn {turn_id}: {e}", exc_info=True)
                result = self._fallback(user_message, context, turn_id, error=e, retry_action=retry_action)

        context.sync_progress()
        self._schedule_save(
            context,
            context.history[history_start:],
            result.content,
            new_subject=context.subject_id != subject_before,
        )

        self._log_turn(
            context,
            turn_id,
            "turn_completed",
            duration_ms=int((time.time() - start) * 1000),
            metadata={
                "tool_calls": [record.tool_name for record in result.tool_calls],
                "interactive_count": len(result.content),
                "degraded": result.degraded,
            },
        )
        return result

    # ─── Normal path ──────────────────────────────────────────────────

    async def _run_assistant(
        self,
        user_message: str,
        context: TutorContext,
        timeout: float,
        replay_message: Optional[str],
        turn_id: str,
    ) -> TurnResult:
        subject = context.subject
        handle = await self.session_manager.get_or_create_session(
            subject.id, subject.name, replay_message=replay_message
        )

        await run_blocking(self.llm.add_message, handle.thread_id, user_message)
        run = await run_blocking(
            self.llm.create_run,
            handle.thread_id,
            handle.assistant_id,
            build_contextual_instructions(context),
        )
        logger.info(json.dumps({
            "step": "RUN",
            "status": "started",
            "turn_id": turn_id,
            "subject_id": subject.id,
            "run_id": run.id,
        }))

        outcomes: list[tuple[Optional[str], DispatchOutcome]] = []
        try:
            await asyncio.wait_for(
                self._drive_run(handle.thread_id, run, context, outcomes, turn_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            await self._cancel_run(handle.thread_id, run.id)
            raise RunTimeoutError(run.id, timeout) from e

        text = await run_blocking(self.llm.get_latest_assistant_text, handle.thread_id)

        records = [r for r in (outcome.to_record(call_id) for call_id, outcome in outcomes) if r is not None]
        content = [item for _, outcome in outcomes for item in outcome.content]

        if not content:
            safety_net = self._safety_net(context, turn_id)
            if safety_net is not None:
                explainer, record = safety_net
                content.append(explainer)
                records.append(record)

        if not text:
            text = CONTENT_REPLY if content else ""
        context.add_turn("assistant", text, records)
        return TurnResult(response_text=text, tool_calls=records, content=content, context=context)

    async def _drive_run(
        self,
        thread_id: str,
        run: Any,
        context: TutorContext,
        outcomes: list[tuple[Optional[str], DispatchOutcome]],
        turn_id: str,
    ) -> None:
        """Poll the run to completion, answering tool requests in batches."""
        rounds = 0
        while True:
            run = await self._poll(thread_id, run)

            if run.status == "completed":
                return

            if run.status == "requires_action":
                if rounds >= self.settings.max_tool_rounds:
                    await self._cancel_run(thread_id, run.id)
                    raise RunFailedError(run.id, run.status, "Too many tool rounds")
                rounds += 1

                tool_outputs = []
                for call in run.required_action.submit_tool_outputs.tool_calls:
                    outcome = await self._dispatch_call(call, context, turn_id)
                    outcomes.append((call.id, outcome))
                    tool_outputs.append({"tool_call_id": call.id, "output": outcome.output_json()})

                run = await run_blocking(self.llm.submit_tool_outputs, thread_id, run.id, tool_outputs)
                continue

            last_error = getattr(run, "last_error", None)
            raise RunFailedError(run.id, run.status, getattr(last_error, "message", None))

    async def _poll(self, thread_id: str, run: Any) -> Any:
        while run.status in PENDING_RUN_STATUSES:
            await asyncio.sleep(self.settings.run_poll_interval)
            run = await run_blocking(self.llm.retrieve_run, thread_id, run.id)
        return run

    async def _cancel_run(self, thread_id: str, run_id: str) -> None:
        """Stop an abandoned run; an active run blocks new messages on its thread."""
        try:
            await run_blocking(self.llm.cancel_run, thread_id, run_id)
        except TutorAgentError as e:
            logger.warning(f"Could not cancel run {run_id} on thread {thread_id}: {e}")

    async def _dispatch_call(self, call: Any, context: TutorContext, turn_id: str) -> DispatchOutcome:
        name = call.function.name
        start = time.time()
        try:
            arguments = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            outcome = DispatchOutcome(
                tool_name=name,
                result={"error": f"Invalid parameters for {name}: arguments are not valid JSON ({e.msg})"},
            )
        else:
            outcome = await self.dispatcher.dispatch(name, arguments, context)

        self._log_turn(
            context,
            turn_id,
            "tool_call",
            tool_name=name,
            output=outcome.result,
            duration_ms=int((time.time() - start) * 1000),
            metadata={"error": outcome.is_error, "content_items": len(outcome.content)},
        )
        return outcome

    def _safety_net(
        self, context: TutorContext, turn_id: str
    ) -> Optional[tuple[InteractiveContent, ToolCallRecord]]:
        """Default explainer for the current lesson when a turn produced no content."""
        lesson = context.current_lesson
        if lesson is None:
            return None
        difficulty = lesson.difficulty or (context.lesson_plan.difficulty if context.lesson_plan else None)
        explainer = build_content(
            "explainer",
            {
                "title": lesson.title,
                "overview": lesson.description or f"Overview of {lesson.title}",
                "sections": [{
                    "heading": f"Introduction to {lesson.title}",
                    "paragraphs": [lesson.description] if lesson.description else [],
                }],
            },
            lesson.title,
            difficulty,
            context.subject_id,
        )
        lesson.record_content_type(explainer.type)
        record = ToolCallRecord(
            tool_name="interactive_component",
            parameters={"type": "explainer", "learning_objective": lesson.title, "safety_net": True},
            result=explainer.to_payload(),
        )
        self._log_turn(context, turn_id, "safety_net", metadata={"lesson_id": lesson.id})
        return explainer, record

    # ─── Short-circuit paths ──────────────────────────────────────────

    async def _clarify(self, context: TutorContext, turn_id: str) -> TurnResult:
        outcome = await self.dispatcher.dispatch(
            "clarifying_question",
            {"question": CLARIFY_QUESTION, "context": CLARIFY_CONTEXT},
            context,
        )
        records = [outcome.to_record()]
        context.add_turn("assistant", CLARIFY_QUESTION, records)
        self._log_turn(context, turn_id, "clarifying_question")
        return TurnResult(response_text=CLARIFY_QUESTION, tool_calls=records, context=context)

    def _fallback(
        self,
        user_message: str,
        context: TutorContext,
        turn_id: str,
        error: Optional[BaseException],
        retry_action: Optional[RetryAffordance],
    ) -> TurnResult:
        reason = fallback_reason(error)
        if error is not None:
            logger.error(json.dumps({
                "step": "FALLBACK",
                "turn_id": turn_id,
                "subject_id": context.subject_id,
                "reason": reason,
                "error": str(error),
            }))

        # An established subject is never replaced by an offline guess.
        text, records = build_fallback(user_message, context, detect_subject=context.subject is None)
        context.add_turn("assistant", text, records)
        self._log_turn(context, turn_id, "fallback", metadata={"reason": reason})
        return TurnResult(
            response_text=text,
            tool_calls=records,
            context=context,
            degraded=True,
            retry=retry_action if error is not None else None,
        )

    # ─── Persistence ──────────────────────────────────────────────────

    def _schedule_save(
        self,
        context: TutorContext,
        turns: list[ConversationTurn],
        content: list[InteractiveContent],
        new_subject: bool = False,
    ) -> None:
        """
        Queue this turn's writes in the background; failures stay pending.

        Saves for one subject run in the order their turns finished.
        """
        if self.persistence is None or context.user_id is None or context.subject_id is None:
            return
        user_id, subject_id = context.user_id, context.subject_id
        snapshot = context.model_copy(deep=True)

        operations: list[tuple[str, tuple]] = []
        if new_subject:
            operations.append((
                "save_subject",
                (user_id, snapshot.subject, snapshot.lesson_plan, snapshot.progress),
            ))
        operations.extend(("save_message", (user_id, subject_id, turn)) for turn in turns)
        operations.extend(("save_content_item", (user_id, subject_id, item)) for item in content)
        operations.append(("save_context", (user_id, subject_id, snapshot)))

        previous = self._save_tails.get(subject_id)
        task = asyncio.ensure_future(self._save(subject_id, operations, previous))
        self._save_tails[subject_id] = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(lambda t: self._release_tail(subject_id, t))

    def _release_tail(self, subject_id: str, task: asyncio.Task) -> None:
        if self._save_tails.get(subject_id) is task:
            del self._save_tails[subject_id]

    async def _save(
        self,
        subject_id: str,
        operations: list[tuple[str, tuple]],
        previous: Optional[asyncio.Task] = None,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        pending = self._pending_saves.pop(subject_id, [])
        if pending:
            logger.info(f"Retrying {len(pending)} pending persistence operations for subject {subject_id}")
            # Only the newest context snapshot is worth writing.
            pending = [op for op in pending if op[0] != "save_context"]

        failed: list[tuple[str, tuple]] = []
        for name, args in pending + operations:
            try:
                await run_blocking(getattr(self.persistence, name), *args)
            except PersistenceError as e:
                logger.error(f"Background {name} for subject {subject_id} failed; will retry next turn: {e}")
                failed.append((name, args))

        if failed:
            self._pending_saves.setdefault(subject_id, []).extend(failed)

    def pending_saves(self, subject_id: str) -> int:
        return len(self._pending_saves.get(subject_id, []))

    async def flush(self) -> None:
        """Wait for queued background saves."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ─── Housekeeping ─────────────────────────────────────────────────

    def turn_lock(self, context: TutorContext) -> asyncio.Lock:
        """Lock serializing turns and direct context edits for one subject."""
        key = context.subject_id or f"user:{context.user_id}"
        lock = self._turn_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._turn_locks[key] = lock
        return lock

    def _log_turn(
        self,
        context: TutorContext,
        turn_id: str,
        event_type: str,
        tool_name: Optional[str] = None,
        input_summary: Optional[str] = None,
        output: Optional[dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.turn_logs.add_log(TurnLogEntry(
            subject_id=context.subject_id or UNASSIGNED_SUBJECT,
            turn_id=turn_id,
            event_type=event_type,
            tool_name=tool_name,
            input_summary=input_summary,
            output=output,
            duration_ms=duration_ms,
            metadata=metadata or {},
        ))

    async def clear_subject_resources(self, subject_id: str) -> None:
        """Tear down a subject's session and in-process state."""
        if self.session_manager is not None:
            await self.session_manager.clear_subject(subject_id)
        self._turn_locks.pop(subject_id, None)
        self._pending_saves.pop(subject_id, None)
        self.turn_logs.clear_subject(subject_id)

    def reset(self) -> None:
        if self.session_manager is not None:
            self.session_manager.reset()
        self._turn_locks.clear()
        self._pending_saves.clear()
