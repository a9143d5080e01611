# runner.py
from __future__ import annotations

import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

from .executor import CommandRunner, run_job
from .model import FAILED, SUCCEEDED, Event, Job, JobResult, Pipeline, PipelineResult
from .triggers import evaluate
from .ui.console import get_console


def aggregate(results: Dict[str, JobResult]) -> str:
    """Overall status: Succeeded iff every job succeeded."""
    return SUCCEEDED if all(r.status == SUCCEEDED for r in results.values()) else FAILED


class PipelineRun:
    """
    One invocation of every declared job in response to a matching event.

    Jobs are submitted to a thread pool and run independently; `wait()` is the
    join barrier that collects every JobResult. A run owns a cancel event that
    all of its jobs observe, so `cancel()` (e.g. when a newer event supersedes
    this run) terminates in-flight commands.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        jobs: List[Job],
        *,
        workspace: str | Path = ".",
        work_root: Optional[str | Path] = None,
        repo_url: Optional[str] = None,
        ref: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        max_workers: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel_on_failure: bool = False,
        runner: Optional[CommandRunner] = None,
    ):
        self.id = uuid.uuid4().hex
        self.pipeline = pipeline
        self.jobs = list(jobs)
        self.workspace = Path(workspace)
        self.work_root = Path(work_root) if work_root is not None else None
        self.repo_url = repo_url
        self.ref = ref
        self.env = dict(env or {})
        self.max_workers = max_workers or max(1, len(self.jobs))
        self.timeout = timeout
        self.cancel_on_failure = cancel_on_failure
        self.runner = runner

        self.cancel_event = threading.Event()
        self.results: Dict[str, JobResult] = {}
        self.finished_at: Optional[float] = None
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _workspace_for(self, job: Job) -> Path:
        # With a remote repository each job clones into its own directory.
        if self.repo_url and self.work_root is not None:
            return self.work_root / job.name
        return self.workspace

    def _run_one(self, job: Job) -> JobResult:
        return run_job(
            job,
            self._workspace_for(job),
            working_directory=self.pipeline.working_directory,
            repo_url=self.repo_url,
            ref=self.ref,
            env=self.env,
            timeout=self.timeout,
            cancel=self.cancel_event,
            runner=self.runner,
        )

    def execute(self) -> PipelineResult:
        """Run every job to a terminal state and aggregate (blocking)."""
        results: Dict[str, JobResult] = {}
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures: Dict[Future, str] = {pool.submit(self._run_one, job): job.name for job in self.jobs}

                for fut in as_completed(futures):
                    name = futures[fut]
                    try:
                        result = fut.result()
                    except Exception as e:
                        # Keep the siblings' results; this job alone is Failed.
                        get_console().print_exception(e)
                        result = JobResult(job=name, status=FAILED, steps=[], duration=0.0)
                    results[name] = result
                    if result.status == FAILED and self.cancel_on_failure:
                        get_console().print_info(f"Cancelling remaining jobs after failure of {name}")
                        self.cancel_event.set()

            # Report in declaration order, independent of completion order.
            self.results = {job.name: results[job.name] for job in self.jobs}
            return PipelineResult(ran=True, status=aggregate(self.results), jobs=dict(self.results))
        finally:
            self.finished_at = time.monotonic()
            self._done.set()

    def start(self) -> "PipelineRun":
        """Execute in a background thread; use `wait()` to collect the result."""
        self._thread = threading.Thread(target=self._background, name=f"actionci-run-{self.id[:8]}", daemon=True)
        self._thread.start()
        return self

    def _background(self) -> None:
        try:
            self.execute()
        except Exception as e:
            get_console().print_exception(e)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[PipelineResult]:
        """Block until every job is terminal; None if `timeout` elapsed first."""
        if not self._done.wait(timeout):
            return None
        if len(self.results) != len(self.jobs):
            # execute() raised before finishing; the error was already reported.
            return PipelineResult(ran=True, status=FAILED, jobs=dict(self.results))
        return PipelineResult(ran=True, status=aggregate(self.results), jobs=dict(self.results))


def run_pipeline(
    pipeline: Pipeline,
    event: Event,
    *,
    workspace: str | Path = ".",
    work_root: Optional[str | Path] = None,
    repo_url: Optional[str] = None,
    ref: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_on_failure: bool = False,
    runner: Optional[CommandRunner] = None,
) -> PipelineResult:
    """
    Evaluate `event` against the pipeline's triggers and, on a match, run
    every declared job concurrently.

    A failing job does not affect its siblings unless `cancel_on_failure`
    is set, in which case the remaining in-flight jobs are cancelled.

    Returns:
        PipelineResult(ran=False) when no trigger matches, otherwise the
        per-job results and their AND-aggregate.
    """
    console = get_console()
    decision = evaluate(pipeline, event)
    console.print_decision(
        decision.run,
        str(decision.matched_rule) if decision.matched_rule else None,
        [j.name for j in decision.jobs],
    )
    if not decision.run:
        return PipelineResult(ran=False)

    console.print_run_started(pipeline.name, event.kind, event.target_branch, len(decision.jobs))
    run = PipelineRun(
        pipeline,
        list(decision.jobs),
        workspace=workspace,
        work_root=work_root,
        repo_url=repo_url,
        ref=ref,
        env=env,
        max_workers=max_workers,
        timeout=timeout,
        cancel_on_failure=cancel_on_failure,
        runner=runner,
    )
    return run.execute()
