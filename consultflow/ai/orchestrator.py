"""
Execution Orchestrator — runs a delivery phase's bound agent.

Per attempt:  running → completed | failed

    1. precondition: the phase has a bound agent with a usable model config
       (else AgentNotBound / ValidationError, and no run record is created)
    2. insert PhaseExecution(status=running), committed
    3. stream the completion: prior phase conversation + the phase instruction,
       system prompt = agent persona or instructions
    4. decode frames incrementally (consultflow.ai.stream)
    5. concatenate fragments
    6. non-empty text → PhaseOutput(version_type=ai, execution_id=run.id)
    7. run → completed  (6 and 7 share one commit, so a completed run is
       never visible before its output)
    8. any failure → rollback, run → failed with the message, raise ExecutionError

Concurrent runs against the same phase are not prevented; several ``running``
rows for one phase mean the caller triggered twice.

Usage:
    orchestrator = get_orchestrator()
    result = orchestrator.run(tenant_id, project_id, 3, requested_by="u-1")
    execution, future = orchestrator.submit(tenant_id, project_id, 3, requested_by="u-1")
"""

from __future__ import annotations

import logging
from contextlib import closing
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from consultflow.ai.agent_config import AgentModelConfig
from consultflow.ai.completion_client import CompletionClient, CompletionServiceError
from consultflow.ai.stream import SSEFrameDecoder
from consultflow.ai.task_runner import ExecutionTaskRunner
from consultflow.core.exceptions import AgentNotBound, ExecutionError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.models import db
from consultflow.models.agent import Agent
from consultflow.models.delivery import PhaseExecution, Project
from consultflow.services import conversation_service, output_service
from consultflow.services.helpers.scoped_queries import get_phase, get_scoped

logger = logging.getLogger(__name__)

EXTENSION_KEY = "consultflow.orchestrator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def phase_instruction(registry: DeliveryPhaseRegistry, phase_number: int) -> str:
    """Default user turn sent when a phase is executed without a custom prompt."""
    phase = registry.get(phase_number)
    return (
        f'You are executing the "{phase.phase_name}" phase '
        f"(phase {phase.phase_number}/{len(registry)}) of the delivery pipeline. "
        "Produce the technical content for this phase."
    )


class PhaseExecutionOrchestrator:
    """Runs phase executions synchronously (run) or on a worker pool (submit)."""

    def __init__(
        self,
        client: CompletionClient | None = None,
        *,
        registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
        runner: ExecutionTaskRunner | None = None,
        default_model: str | None = None,
    ) -> None:
        self._client = client
        self.registry = registry
        self.runner = runner
        self.default_model = default_model

    @property
    def client(self) -> CompletionClient:
        if self._client is None:
            self._client = CompletionClient.from_config(current_app.config)
        return self._client

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, tenant_id: int, project_id: int, phase_number: int,
            requested_by=None, *, prompt: str | None = None) -> dict:
        """Execute the phase and block until the run is terminal.

        Returns:
            {"execution": <completed run>, "output": <ai output>|None}

        Raises:
            AgentNotBound / ValidationError / NotFoundError: precondition failed,
                no run record exists.
            ExecutionError: the run was created and is now ``failed``.
        """
        execution_id, context = self.start(tenant_id, project_id, phase_number,
                                           requested_by, prompt=prompt)
        return self.complete(execution_id, context)

    def submit(self, tenant_id: int, project_id: int, phase_number: int,
               requested_by=None, *, prompt: str | None = None):
        """Create the run record now and stream on the worker pool.

        Returns:
            (execution dict in ``running`` state, concurrent.futures.Future)
        """
        if self.runner is None:
            raise RuntimeError("PhaseExecutionOrchestrator has no task runner configured")
        execution_id, context = self.start(tenant_id, project_id, phase_number,
                                           requested_by, prompt=prompt)
        execution = db.session.get(PhaseExecution, execution_id).to_dict()
        future = self.runner.submit(execution_id, self.complete, execution_id, context)
        return execution, future

    def start(self, tenant_id: int, project_id: int, phase_number: int,
              requested_by=None, *, prompt: str | None = None) -> tuple[int, dict]:
        """Check the precondition and insert the ``running`` record (steps 1–2)."""
        number = self.registry.validate_phase_number(phase_number)
        get_scoped(Project, project_id, tenant_id=tenant_id)
        phase = get_phase(tenant_id, project_id, number)
        if phase.agent_id is None:
            raise AgentNotBound(project_id, number)

        agent = get_scoped(Agent, phase.agent_id, tenant_id=tenant_id)
        config = AgentModelConfig.parse(
            agent.model_config,
            default_model=self.default_model or current_app.config.get("DEFAULT_AGENT_MODEL"),
        )

        execution = PhaseExecution(
            tenant_id=tenant_id,
            project_id=project_id,
            phase_number=number,
            agent_id=agent.id,
            status="running",
            requested_by=str(requested_by) if requested_by is not None else None,
        )
        db.session.add(execution)
        db.session.commit()
        logger.info(
            "Phase execution started (agent=%s model=%s)", agent.id, config.model_identifier,
            extra={"tenant_id": tenant_id, "project_id": project_id,
                   "phase_number": number, "execution_id": execution.id},
        )
        context = {
            "tenant_id": tenant_id,
            "project_id": project_id,
            "phase_number": number,
            "requested_by": requested_by,
            "prompt": prompt or phase_instruction(self.registry, number),
            "system_prompt": agent.system_prompt,
            "model": config.model_identifier,
            "extensions": config.extensions,
            "temperature": agent.temperature,
        }
        return execution.id, context

    def complete(self, execution_id: int, context: dict) -> dict:
        """Stream, persist and mark the run terminal (steps 3–8)."""
        try:
            text = self._stream_text(execution_id, context)
            output = self._finalize(execution_id, context, text)
        except Exception as exc:
            db.session.rollback()
            self._mark_failed(execution_id, context, exc)
            raise ExecutionError(
                execution_id, str(exc) or type(exc).__name__,
                status_code=getattr(exc, "status_code", None),
            ) from exc

        execution = db.session.get(PhaseExecution, execution_id)
        return {
            "execution": execution.to_dict(),
            "output": output,
        }

    # ── Internal ─────────────────────────────────────────────────────────

    def _stream_text(self, execution_id: int, context: dict) -> str:
        history = conversation_service.get_history(
            context["tenant_id"], context["project_id"], context["phase_number"],
        )
        messages = history + [{"role": "user", "content": context["prompt"]}]

        decoder = SSEFrameDecoder()
        parts: list[str] = []
        stream = self.client.stream_chat(
            messages,
            system_prompt=context["system_prompt"],
            model=context["model"],
            temperature=context["temperature"],
            extra=context["extensions"],
        )
        with closing(stream):
            for chunk in stream:
                parts.extend(decoder.feed(chunk))
                if decoder.done:
                    break
        parts.extend(decoder.finish())
        if decoder.dropped_frames:
            logger.warning(
                "Execution %d dropped %d unparsable frame(s)", execution_id, decoder.dropped_frames,
                extra={"execution_id": execution_id},
            )
        if not decoder.done and not parts:
            raise CompletionServiceError("Completion stream ended without content")
        return "".join(parts)

    def _finalize(self, execution_id: int, context: dict, text: str) -> dict | None:
        tenant_id = context["tenant_id"]
        project_id = context["project_id"]
        number = context["phase_number"]

        output = None
        if text:
            output = output_service.save_output(
                tenant_id, project_id, number, "ai", text,
                created_by=context["requested_by"], execution_id=execution_id,
                registry=self.registry, commit=False,
            )
            for role, content in (("user", context["prompt"]), ("assistant", text)):
                conversation_service.add_message(
                    tenant_id, project_id, number, role, content,
                    registry=self.registry, commit=False,
                )

        execution = db.session.get(PhaseExecution, execution_id)
        execution.status = "completed"
        execution.completed_at = _utcnow()
        db.session.commit()
        logger.info(
            "Phase execution completed (%d chars)", len(text),
            extra={"tenant_id": tenant_id, "project_id": project_id,
                   "phase_number": number, "execution_id": execution_id},
        )
        return output

    def _mark_failed(self, execution_id: int, context: dict, exc: Exception) -> None:
        execution = db.session.get(PhaseExecution, execution_id)
        execution.status = "failed"
        execution.error_message = (str(exc) or type(exc).__name__)[:2000]
        execution.completed_at = _utcnow()
        db.session.commit()
        logger.error(
            "Phase execution failed: %s", exc,
            extra={"tenant_id": context["tenant_id"], "project_id": context["project_id"],
                   "phase_number": context["phase_number"], "execution_id": execution_id},
        )


# ── Execution history reads ──────────────────────────────────────────────────


def list_executions(tenant_id: int, project_id: int, phase_number: int | None = None) -> list[dict]:
    """Run records newest first, optionally for one phase."""
    get_scoped(Project, project_id, tenant_id=tenant_id)
    stmt = select(PhaseExecution).where(
        PhaseExecution.tenant_id == tenant_id,
        PhaseExecution.project_id == project_id,
    )
    if phase_number is not None:
        stmt = stmt.where(PhaseExecution.phase_number == phase_number)
    stmt = stmt.order_by(PhaseExecution.created_at.desc(), PhaseExecution.id.desc())
    return [e.to_dict() for e in db.session.execute(stmt).scalars().all()]


def get_execution(tenant_id: int, project_id: int, execution_id: int) -> dict:
    return get_scoped(PhaseExecution, execution_id, tenant_id=tenant_id,
                      project_id=project_id).to_dict()


# ── App wiring ───────────────────────────────────────────────────────────────


def init_orchestrator(app) -> PhaseExecutionOrchestrator:
    """Attach a shared orchestrator (with its worker pool) to the app."""
    orchestrator = PhaseExecutionOrchestrator(
        CompletionClient.from_config(app.config),
        runner=ExecutionTaskRunner(max_workers=app.config.get("EXECUTION_WORKERS", 4)),
        default_model=app.config.get("DEFAULT_AGENT_MODEL"),
    )
    app.extensions[EXTENSION_KEY] = orchestrator
    return orchestrator


def get_orchestrator() -> PhaseExecutionOrchestrator:
    return current_app.extensions[EXTENSION_KEY]
