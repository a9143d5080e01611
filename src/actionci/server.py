from __future__ import annotations

import threading
import time
from typing import Any, Literal, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from . import settings
from .executor import CommandRunner
from .loader import load_pipeline
from .model import Event, JobResult, Pipeline
from .runner import PipelineRun
from .triggers import evaluate
from .ui.console import get_console

# -------------------- Schemas --------------------

class EventRequest(BaseModel):
    kind: Literal["pull_request", "push"]
    target_branch: str = Field(min_length=1)

class EventResponse(BaseModel):
    run: bool
    run_id: str | None = None
    jobs: list[str] = Field(default_factory=list)
    superseded: str | None = None

class StepOutcomeModel(BaseModel):
    step: str
    kind: str
    status: str
    output: str
    exit_code: int | None
    error: str | None

class JobResultModel(BaseModel):
    job: str
    status: str
    duration: float
    steps: list[StepOutcomeModel]

class RunResponse(BaseModel):
    run_id: str
    kind: str
    target_branch: str
    status: str  # running|succeeded|failed
    cancelled: bool
    jobs: dict[str, JobResultModel] = Field(default_factory=dict)


def _job_model(result: JobResult) -> JobResultModel:
    return JobResultModel(
        job=result.job,
        status=result.status,
        duration=result.duration,
        steps=[
            StepOutcomeModel(
                step=s.step,
                kind=s.kind,
                status=s.status,
                output=s.output,
                exit_code=s.exit_code,
                error=s.error,
            )
            for s in result.steps
        ],
    )


class _Registry:
    """
    In-memory bookkeeping of active runs, keyed by (event kind, branch).

    A run is forgotten as soon as its terminal status has been reported. A
    newer event of the same kind on the same branch cancels the older run,
    and finished runs that were superseded or outlived `retention` seconds
    are dropped even if nobody asked for their status.
    """

    def __init__(self, retention: float | None = None) -> None:
        self._lock = threading.Lock()
        self.retention = retention
        self.runs: dict[str, tuple[PipelineRun, Event]] = {}
        self.by_key: dict[tuple[str, str], str] = {}

    def add(self, run: PipelineRun, event: Event) -> Optional[str]:
        key = (event.kind, event.target_branch)
        with self._lock:
            previous = self.by_key.get(key)
            superseded = None
            if previous in self.runs:
                old, _ = self.runs[previous]
                if not old.done:
                    old.cancel()
                    superseded = previous
            self.runs[run.id] = (run, event)
            self.by_key[key] = run.id
            self._sweep(superseded=True)
            return superseded

    def get(self, run_id: str) -> tuple[PipelineRun, Event]:
        with self._lock:
            self._sweep(superseded=False)
            if run_id not in self.runs:
                raise HTTPException(status_code=404, detail="Run not found")
            return self.runs[run_id]

    def discard(self, run_id: str) -> None:
        with self._lock:
            self._drop(run_id)

    def _sweep(self, superseded: bool) -> None:
        # Caller holds the lock. A superseded run stays readable until the next event.
        now = time.monotonic()
        for run_id, (run, event) in list(self.runs.items()):
            if not run.done:
                continue
            current = self.by_key.get((event.kind, event.target_branch)) == run_id
            expired = self.retention is not None and now - run.finished_at >= self.retention
            if expired or (superseded and not current):
                self._drop(run_id)

    def _drop(self, run_id: str) -> None:
        _run, event = self.runs.pop(run_id)
        key = (event.kind, event.target_branch)
        if self.by_key.get(key) == run_id:
            del self.by_key[key]


def create_app(
    pipeline: Pipeline | None = None,
    *,
    workspace: str | None = None,
    repo_url: str | None = None,
    work_root: str | None = None,
    max_workers: int | None = None,
    timeout: float | None = None,
    cancel_on_failure: bool = False,
    retention: float | None = None,
    runner: CommandRunner | None = None,
) -> FastAPI:
    """
    Build the webhook app. Arguments left as None fall back to the
    ACTIONCI_* environment settings.

    Serve with: uvicorn actionci.server:create_app --factory
    """
    if pipeline is None:
        pipeline = load_pipeline(settings.WORKFLOW)

    options: dict[str, Any] = dict(
        workspace=workspace or settings.WORKSPACE,
        repo_url=repo_url or settings.REPO_URL,
        work_root=work_root or settings.WORK_ROOT,
        max_workers=max_workers or settings.MAX_WORKERS,
        timeout=timeout if timeout is not None else settings.STEP_TIMEOUT,
        cancel_on_failure=cancel_on_failure,
        runner=runner,
    )
    registry = _Registry(retention if retention is not None else settings.RUN_RETENTION)
    app = FastAPI(title=f"actionci: {pipeline.name}")
    app.state.registry = registry

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/events", response_model=EventResponse)
    async def receive_event(req: EventRequest):
        event = Event(kind=req.kind, target_branch=req.target_branch)
        decision = evaluate(pipeline, event)
        if not decision.run:
            get_console().print_decision(False, None, [])
            return EventResponse(run=False)

        run = PipelineRun(pipeline, list(decision.jobs), ref=event.target_branch, **options)
        superseded = registry.add(run, event)
        if superseded:
            get_console().print_info(f"Run {superseded} superseded by {run.id} on {event.target_branch}")
        run.start()

        return EventResponse(
            run=True,
            run_id=run.id,
            jobs=[j.name for j in decision.jobs],
            superseded=superseded,
        )

    @app.get("/runs/{run_id}", response_model=RunResponse)
    async def get_run(run_id: str):
        run, event = registry.get(run_id)
        response = RunResponse(
            run_id=run.id,
            kind=event.kind,
            target_branch=event.target_branch,
            status="running",
            cancelled=run.cancelled,
        )
        if run.done:
            result = run.wait(0)
            response.status = result.status
            response.jobs = {name: _job_model(r) for name, r in result.jobs.items()}
            # Reported once, then discarded.
            registry.discard(run_id)
        return response

    @app.post("/runs/{run_id}/cancel")
    async def cancel_run(run_id: str):
        run, _event = registry.get(run_id)
        if run.done:
            raise HTTPException(status_code=409, detail="Run already finished")
        run.cancel()
        return {"ok": True}

    return app
