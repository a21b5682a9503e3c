"""
Investigation Controller - stateful orchestration of investigations

Drives an investigation from a problem description to a terminal result:
classify, plan, then execute one phase per continue call until no phase
remains and the result is synthesized.

State machine:
    created -> in-progress -> completed | failed
    in-progress <-> paused

Every mutating call for one investigation id runs under that id's lock,
so concurrent calls for the same investigation are serialized. Pause is a
gate checked at phase boundaries: a paused investigation refuses to
continue until resumed, and a phase already running is never interrupted.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional, Union

from pydantic import ValidationError

from .adapters.ai import AIProvider, LLMReasoningAdapter
from .adapters.session import InMemorySessionManager, SessionManager, SessionOptions
from .classifier import ProblemClassifier
from .concurrency import InvestigationLockManager
from .config import InvengineConfig, get_config
from .datasources import DataSourceProvider, create_datasource
from .exceptions import (
    ExportNotFoundError,
    InvestigationNotFoundError,
    InvestigationPausedError,
    InvestigationStateError,
    InvestigationTimeoutError,
    PlanValidationError,
    RequiredQueryFailedError,
    ValidationFailure,
)
from .executor import PhaseExecutor, SignificancePolicy
from .exporter import InvestigationExporter
from .llm_client import LLMRouter
from .models import (
    ClassificationResult,
    ExportedReport,
    InvestigationContext,
    InvestigationOptions,
    InvestigationPhase,
    InvestigationPlan,
    InvestigationProblem,
    InvestigationProgress,
    InvestigationResponse,
    InvestigationResult,
    NextAction,
    PlanValidation,
    new_id,
    utcnow,
)
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_async
from .planner import PlanGenerator
from .prompts import PromptManager
from .store import InMemoryInvestigationStore, InvestigationStore
from .synthesis import InvestigationSynthesizer
from .validation import validate_plan

logger = logging.getLogger(__name__)

CONFIRM_OPTIONS = ["Yes, proceed", "Review plan", "Cancel"]


class InvestigationController:
    """
    Main investigation orchestrator

    Collaborators are injected; ``create_controller`` wires the defaults
    from configuration.
    """

    def __init__(
        self,
        ai_provider: AIProvider,
        data_source: DataSourceProvider,
        session_manager: Optional[SessionManager] = None,
        store: Optional[InvestigationStore] = None,
        config: Optional[InvengineConfig] = None,
        prompt_manager: Optional[PromptManager] = None,
        significance_policy: Optional[SignificancePolicy] = None,
        lock_manager: Optional[InvestigationLockManager] = None,
    ):
        self.config = config or get_config()
        self.ai_provider = ai_provider
        self.data_source = data_source
        self.session_manager = session_manager or InMemorySessionManager()
        self.store = store or InMemoryInvestigationStore()
        self.locks = lock_manager or InvestigationLockManager()

        prompt_manager = prompt_manager or PromptManager(self.config.prompts.prompts_dir)
        self.classifier = ProblemClassifier(ai_provider, prompt_manager, self.config)
        self.planner = PlanGenerator(ai_provider, prompt_manager, self.config)
        self.executor = PhaseExecutor(
            data_source,
            ai_provider,
            significance_policy=significance_policy,
            session_manager=self.session_manager,
            config=self.config,
        )
        self.synthesizer = InvestigationSynthesizer()
        self.exporter = InvestigationExporter()

    # Pass-throughs

    async def classify_problem(self, description: str) -> ClassificationResult:
        return await self.classifier.classify(description)

    async def generate_investigation_plan(
        self, problem: InvestigationProblem
    ) -> InvestigationPlan:
        return await self.planner.generate(problem)

    def validate_investigation_plan(self, plan: InvestigationPlan) -> PlanValidation:
        return validate_plan(plan, self.config)

    # Lifecycle

    @trace_async("controller.start_investigation")
    async def start_investigation(
        self,
        problem: Union[InvestigationProblem, str],
        options: Optional[InvestigationOptions] = None,
        validate: bool = False,
    ) -> InvestigationResponse:
        """
        Classify and plan a new investigation without executing any phase

        Args:
            problem: Problem description or a full InvestigationProblem
            options: Interaction and budget options
            validate: Reject structurally invalid plans with PlanValidationError

        Returns:
            Response with status ``created``, the plan and the next action
        """
        options = options or InvestigationOptions(
            language=self.config.investigation.default_language
        )

        if options.resume_from_id:
            logger.info(f"Resuming investigation {options.resume_from_id}")
            return await self.resume_investigation(options.resume_from_id)

        problem = self._coerce_problem(problem)
        logger.info(f"Starting investigation: {problem.description}")

        if problem.type is None:
            classification = await self.classifier.classify(problem.description)
            problem = problem.model_copy(update={"type": classification.type})

        plan = await self.planner.generate(problem)

        if validate:
            validation = validate_plan(plan, self.config)
            if not validation.is_valid:
                logger.error(f"Investigation plan rejected: {validation.issues}")
                raise PlanValidationError(validation.issues)

        investigation_id = new_id()
        session = await self.session_manager.create_session(
            SessionOptions(language=options.language)
        )

        deadline = None
        if options.max_execution_time is not None:
            deadline = utcnow() + timedelta(minutes=options.max_execution_time)

        context = InvestigationContext(
            plan_id=plan.id,
            session_id=session.session_id,
            progress=InvestigationProgress(
                total_phases=len(plan.phases),
                total_queries=plan.total_queries,
                current_status="created",
            ),
            deadline=deadline,
        )

        async with self._hold(investigation_id):
            await self.store.put_plan(plan)
            await self.store.put_context(investigation_id, context)

        set_attribute("investigation.id", investigation_id)
        set_attribute("investigation.type", plan.detected_type)
        metrics = get_metrics()
        if metrics:
            metrics.record_investigation_started(plan.detected_type, plan.source)

        if options.interactive and not options.skip_confirmation:
            next_action = NextAction(
                type="confirm",
                message=(
                    f"Investigation plan generated with {len(plan.phases)} phases. "
                    "Would you like to proceed?"
                ),
                options=CONFIRM_OPTIONS,
            )
        else:
            next_action = NextAction(
                type="wait", message="Investigation started and running automatically."
            )

        logger.info(
            f"Investigation {investigation_id} created with {len(plan.phases)} phases "
            f"and {plan.total_queries} queries"
        )
        return InvestigationResponse(
            investigation_id=investigation_id,
            status="created",
            plan=plan,
            progress=context.progress.model_copy(),
            next_action=next_action,
        )

    @trace_async("controller.continue_investigation")
    async def continue_investigation(
        self, investigation_id: str, user_input: Optional[str] = None
    ) -> InvestigationResponse:
        """
        Execute the next phase; synthesize the result once none remain

        Raises:
            InvestigationNotFoundError: Unknown id
            InvestigationPausedError: The investigation is paused
            InvestigationStateError: The investigation has failed
            RequiredQueryFailedError: A required query failed in this phase
            InvestigationTimeoutError: The execution budget ran out
        """
        if user_input:
            logger.info(f"Continue {investigation_id} with user input: {user_input}")

        async with self._hold(investigation_id):
            return await self._continue_locked(investigation_id)

    @trace_async("controller.pause_investigation")
    async def pause_investigation(self, investigation_id: str) -> None:
        async with self._hold(investigation_id):
            context = await self._require_context(investigation_id)
            status = context.progress.current_status
            if status == "failed":
                raise InvestigationStateError(
                    f"Cannot pause failed investigation: {investigation_id}"
                )
            if status == "paused":
                return

            context.progress.current_status = "paused"
            context.last_updated_at = utcnow()
            await self.store.put_context(investigation_id, context)
        logger.info(f"Investigation {investigation_id} paused")

    @trace_async("controller.resume_investigation")
    async def resume_investigation(self, investigation_id: str) -> InvestigationResponse:
        """Clear the pause gate and run the next phase"""
        async with self._hold(investigation_id):
            if await self.store.get_result(investigation_id) is not None:
                return await self._continue_locked(investigation_id)

            context = await self._require_context(investigation_id)
            if context.progress.current_status == "failed":
                raise InvestigationStateError(
                    f"Cannot resume failed investigation: {investigation_id}"
                )

            context.progress.current_status = "in-progress"
            context.last_updated_at = utcnow()
            await self.store.put_context(investigation_id, context)
            logger.info(f"Investigation {investigation_id} resumed")

            return await self._continue_locked(investigation_id)

    @trace_async("controller.cancel_investigation")
    async def cancel_investigation(self, investigation_id: str) -> None:
        """Delete a live investigation; waits for an in-flight phase to finish"""
        async with self._hold(investigation_id):
            context = await self.store.get_context(investigation_id)
            if context is None:
                if await self.store.get_result(investigation_id) is not None:
                    raise InvestigationStateError(
                        f"Cannot cancel completed investigation: {investigation_id}"
                    )
                raise InvestigationNotFoundError(investigation_id)

            await self.session_manager.end_session(context.session_id)
            await self.store.delete_context(investigation_id)
            await self.store.delete_plan(context.plan_id)

            metrics = get_metrics()
            if metrics:
                metrics.record_investigation_failed(
                    "cancelled", closed=context.progress.current_status != "failed"
                )

        add_event("investigation_cancelled", {"investigation.id": investigation_id})
        logger.info(f"Investigation {investigation_id} cancelled")

    async def get_investigation_status(self, investigation_id: str) -> InvestigationResponse:
        result = await self.store.get_result(investigation_id)
        if result is not None:
            return InvestigationResponse(
                investigation_id=investigation_id,
                status="completed",
                progress=result.context.progress,
                result=result,
            )

        context = await self._require_context(investigation_id)
        return InvestigationResponse(
            investigation_id=investigation_id,
            status=context.progress.current_status,
            progress=context.progress,
        )

    async def get_investigation_history(self) -> list[InvestigationResult]:
        return await self.store.list_results()

    @trace_async("controller.export_investigation")
    async def export_investigation(
        self, investigation_id: str, format: str = "json"
    ) -> ExportedReport:
        result = await self.store.get_result(investigation_id)
        if result is None:
            raise ExportNotFoundError(investigation_id)
        return self.exporter.export(result, format)

    # Internals

    def _coerce_problem(
        self, problem: Union[InvestigationProblem, str]
    ) -> InvestigationProblem:
        if isinstance(problem, InvestigationProblem):
            return problem
        try:
            return InvestigationProblem(description=problem)
        except ValidationError as e:
            raise ValidationFailure(f"Invalid problem description: {e}") from e

    @asynccontextmanager
    async def _hold(self, investigation_id: str):
        """Hold the per-id lock; drop it once the id has no live context"""
        try:
            async with self.locks.hold(investigation_id):
                yield
        finally:
            if await self.store.get_context(investigation_id) is None:
                self.locks.discard(investigation_id)

    async def _require_context(self, investigation_id: str) -> InvestigationContext:
        context = await self.store.get_context(investigation_id)
        if context is None:
            raise InvestigationNotFoundError(investigation_id)
        return context

    async def _continue_locked(self, investigation_id: str) -> InvestigationResponse:
        result = await self.store.get_result(investigation_id)
        if result is not None:
            return self._completed_response(investigation_id, result)

        context = await self._require_context(investigation_id)
        status = context.progress.current_status
        if status == "paused":
            raise InvestigationPausedError(
                f"Investigation is paused: {investigation_id}",
                {"investigation_id": investigation_id},
            )
        if status == "failed":
            raise InvestigationStateError(
                f"Investigation has failed: {investigation_id}",
                {"investigation_id": investigation_id},
            )

        plan = await self.store.get_plan(context.plan_id)
        if plan is None:
            raise InvestigationNotFoundError(
                investigation_id, f"Plan not found: {context.plan_id}"
            )

        context.progress.current_status = "in-progress"
        phase = self._next_phase(plan, context)
        if phase is None:
            return await self._complete(investigation_id, plan, context)

        await self._execute_phase(investigation_id, plan, phase, context)

        context.progress.completed_phases += 1
        context.progress.completion_percentage = (
            context.progress.completed_phases / context.progress.total_phases * 100
        )
        context.last_updated_at = utcnow()

        if self._next_phase(plan, context) is None:
            return await self._complete(investigation_id, plan, context)

        await self.store.put_context(investigation_id, context)
        return InvestigationResponse(
            investigation_id=investigation_id,
            status="in-progress",
            progress=context.progress.model_copy(),
            next_action=NextAction(
                type="wait",
                message=f"Completed phase: {phase.name}. Continuing with next phase...",
            ),
        )

    @staticmethod
    def _next_phase(
        plan: InvestigationPlan, context: InvestigationContext
    ) -> Optional[InvestigationPhase]:
        if context.progress.completed_phases >= len(plan.phases):
            return None
        return plan.phases[context.progress.completed_phases]

    async def _execute_phase(
        self,
        investigation_id: str,
        plan: InvestigationPlan,
        phase: InvestigationPhase,
        context: InvestigationContext,
    ) -> None:
        metrics = get_metrics()
        started = time.monotonic()

        timeout = None
        if context.deadline is not None:
            timeout = (context.deadline - utcnow()).total_seconds()

        try:
            if timeout is not None and timeout <= 0:
                raise asyncio.TimeoutError()
            await asyncio.wait_for(
                self.executor.execute_phase(phase, context), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            context.progress.current_status = "failed"
            context.last_updated_at = utcnow()
            await self.store.put_context(investigation_id, context)
            logger.error(f"Investigation {investigation_id} exceeded its execution time")
            if metrics:
                metrics.record_investigation_failed("timeout")
            raise InvestigationTimeoutError(
                f"Investigation exceeded maximum execution time: {investigation_id}",
                {"investigation_id": investigation_id, "phase": phase.name},
            ) from e
        except RequiredQueryFailedError:
            context.last_updated_at = utcnow()
            await self.store.put_context(investigation_id, context)
            logger.error(
                f"Investigation {investigation_id} halted in phase {phase.name}"
            )
            if metrics:
                metrics.record_investigation_failed("required_query", closed=False)
            raise

        if metrics:
            metrics.record_phase_completed(plan.detected_type, time.monotonic() - started)
        add_event("phase_completed", {"phase.name": phase.name})

    async def _complete(
        self,
        investigation_id: str,
        plan: InvestigationPlan,
        context: InvestigationContext,
    ) -> InvestigationResponse:
        context.progress.current_status = "completed"
        context.progress.completion_percentage = 100.0
        context.last_updated_at = utcnow()

        result = self.synthesizer.synthesize(investigation_id, plan, context)

        await self.session_manager.end_session(context.session_id)
        await self.store.put_result(investigation_id, result)
        await self.store.delete_context(investigation_id)

        metrics = get_metrics()
        if metrics:
            metrics.record_investigation_completed(
                plan.detected_type, float(result.total_execution_time)
            )
        logger.info(f"Investigation {investigation_id} completed")
        return self._completed_response(investigation_id, result)

    @staticmethod
    def _completed_response(
        investigation_id: str, result: InvestigationResult
    ) -> InvestigationResponse:
        return InvestigationResponse(
            investigation_id=investigation_id,
            status="completed",
            progress=result.context.progress,
            result=result,
            next_action=NextAction(
                type="complete", message="Investigation completed successfully!"
            ),
        )


def create_controller(config: Optional[InvengineConfig] = None) -> InvestigationController:
    """Wire a controller from configuration"""
    config = config or get_config()
    prompt_manager = PromptManager(config.prompts.prompts_dir)
    ai_provider = LLMReasoningAdapter(LLMRouter(config), prompt_manager, config)
    return InvestigationController(
        ai_provider=ai_provider,
        data_source=create_datasource(config),
        session_manager=InMemorySessionManager(),
        store=InMemoryInvestigationStore(),
        config=config,
        prompt_manager=prompt_manager,
    )
