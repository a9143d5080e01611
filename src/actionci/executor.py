# executor.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from . import git
from .model import (
    FAILED,
    SKIPPED,
    SUCCEEDED,
    Checkout,
    InstallToolchain,
    Job,
    JobResult,
    RunCommands,
    Step,
    StepOutcome,
)
from .toolchain import install_args
from .ui.console import get_console

Command = Union[str, List[str]]

TOOL_HINTS = {
    "git": "Install Git or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cargo": "Install a Rust toolchain via rustup or fix PATH.",
    "rustfmt": "Add the rustfmt component to the toolchain step.",
    "cargo-clippy": "Add the clippy component to the toolchain step.",
}

# How often a running process is checked for timeout / cancellation.
POLL_INTERVAL = 0.1


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class StepError(Exception):
    """A step did not complete. Fatal to the containing job only."""
    job: str
    step: str
    message: str
    output: str = ""
    exit_code: Optional[int] = None

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed: {self.message}"


@dataclass
class ManagedActionFailure(StepError):
    """Checkout or toolchain installation failed."""


@dataclass
class CommandFailure(StepError):
    command: str = ""

    def __str__(self) -> str:
        if self.exit_code is None:
            return super().__str__()
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.command}"


@dataclass
class StepTimeout(StepError):
    pass


@dataclass
class JobCancelled(StepError):
    pass


# ----------------------------------------------------------------------
# Process layer
# ----------------------------------------------------------------------

@dataclass
class ProcessResult:
    exit_code: Optional[int]
    output: str
    timed_out: bool = False
    cancelled: bool = False


CommandRunner = Callable[..., ProcessResult]


def _stop(proc: subprocess.Popen) -> str:
    # Kill the whole process group so shell children die with the shell.
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (AttributeError, ProcessLookupError):
        proc.kill()
    out, _ = proc.communicate()
    return out or ""


def run_process(
    cmd: Command,
    cwd: Path,
    *,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> ProcessResult:
    """
    Run one command and capture its combined stdout/stderr.

    A string is run through the shell (a workflow `run:` line); a list is
    executed directly (managed actions). The process is killed when `timeout`
    seconds pass or `cancel` gets set, whichever comes first.

    Raises:
        FileNotFoundError: the executable of a list command does not exist.
    """
    proc = subprocess.Popen(
        cmd,
        shell=isinstance(cmd, str),
        cwd=str(cwd),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        # Tool output is not guaranteed to be UTF-8 (e.g. `ls` on odd file names).
        encoding="utf-8",
        errors="replace",
        start_new_session=True,
    )
    deadline = None if timeout is None else time.monotonic() + timeout

    while True:
        try:
            out, _ = proc.communicate(timeout=POLL_INTERVAL)
            return ProcessResult(exit_code=proc.returncode, output=out or "")
        except subprocess.TimeoutExpired:
            pass

        if cancel is not None and cancel.is_set():
            out = _stop(proc)
            return ProcessResult(exit_code=proc.returncode, output=out, cancelled=True)
        if deadline is not None and time.monotonic() >= deadline:
            out = _stop(proc)
            return ProcessResult(exit_code=proc.returncode, output=out, timed_out=True)


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

@dataclass
class _JobContext:
    job: Job
    workspace: Path
    working_directory: Optional[str]
    repo_url: Optional[str]
    ref: Optional[str]
    env: Dict[str, str]
    timeout: Optional[float]
    cancel: Optional[threading.Event]
    runner: CommandRunner

    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


def _display(cmd: Command) -> str:
    return cmd if isinstance(cmd, str) else " ".join(cmd)


def _tool_of(cmd: Command) -> str:
    if isinstance(cmd, list):
        return cmd[0]
    parts = cmd.split()
    return parts[0] if parts else ""


def _invoke(
    ctx: _JobContext,
    step: Step,
    cmd: Command,
    cwd: Path,
    buf: List[str],
    failure: type,
) -> None:
    """Run one command for `step`; raise `failure` (or a timeout/cancel error) if it does not succeed."""
    job = ctx.job.name
    shown = _display(cmd)

    if ctx.cancelled():
        raise JobCancelled(job=job, step=step.name, message="cancelled", output="".join(buf))
    if not cwd.is_dir():
        raise failure(job=job, step=step.name, message=f"working directory not found: {cwd}", output="".join(buf))

    buf.append(f"$ {shown}\n")
    try:
        res = ctx.runner(cmd, cwd, env=ctx.env, timeout=ctx.timeout, cancel=ctx.cancel)
    except FileNotFoundError:
        tool = _tool_of(cmd)
        hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
        raise failure(
            job=job,
            step=step.name,
            message=f"{tool} is not available. {hint}",
            output="".join(buf),
        )
    buf.append(res.output)
    output = "".join(buf)

    if res.cancelled:
        raise JobCancelled(job=job, step=step.name, message=f"cancelled while running: {shown}", output=output)
    if res.timed_out:
        raise StepTimeout(
            job=job,
            step=step.name,
            message=f"timed out after {ctx.timeout}s: {shown}",
            output=output,
        )
    if res.exit_code != 0:
        message = f"{shown} exited with {res.exit_code}"
        if res.exit_code == 127:
            tool = _tool_of(cmd)
            message += f". {TOOL_HINTS.get(tool, f'Install {tool} or fix PATH.')}"
        if failure is CommandFailure:
            raise CommandFailure(
                job=job,
                step=step.name,
                message=message,
                output=output,
                exit_code=res.exit_code,
                command=shown,
            )
        raise failure(job=job, step=step.name, message=message, output=output, exit_code=res.exit_code)


def _run_checkout(ctx: _JobContext, step: Checkout, buf: List[str]) -> None:
    ws = ctx.workspace

    if not ctx.repo_url:
        # Local mode: the workspace *is* the checkout, just make sure of it.
        _invoke(ctx, step, git.verify_worktree_args(), ws, buf, ManagedActionFailure)
        return

    if (ws / ".git").exists():
        _invoke(ctx, step, git.fetch_args(), ws, buf, ManagedActionFailure)
    else:
        ws.parent.mkdir(parents=True, exist_ok=True)
        _invoke(ctx, step, git.clone_args(ctx.repo_url, ws), ws.parent, buf, ManagedActionFailure)

    if ctx.ref:
        _invoke(ctx, step, git.checkout_args(ctx.ref), ws, buf, ManagedActionFailure)


def _run_toolchain(ctx: _JobContext, step: InstallToolchain, buf: List[str]) -> None:
    for cmd in install_args(step):
        _invoke(ctx, step, cmd, ctx.workspace, buf, ManagedActionFailure)


def _run_commands(ctx: _JobContext, step: RunCommands, buf: List[str]) -> None:
    rel = step.working_directory or ctx.job.working_directory or ctx.working_directory or "."
    cwd = ctx.workspace / rel
    for line in step.commands:
        _invoke(ctx, step, line, cwd, buf, CommandFailure)


_HANDLERS = {
    Checkout: _run_checkout,
    InstallToolchain: _run_toolchain,
    RunCommands: _run_commands,
}


def run_job(
    job: Job,
    workspace: str | Path,
    *,
    working_directory: Optional[str] = None,
    repo_url: Optional[str] = None,
    ref: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    runner: Optional[CommandRunner] = None,
) -> JobResult:
    """
    Run the steps of `job` strictly in order.

    Args:
        job: the job to run
        workspace: directory the job operates in (checkout destination)
        working_directory: default directory for command steps, relative to
            the workspace; job and step overrides take precedence
        repo_url / ref: when set, checkout clones/fetches this repository
        env: extra environment variables for every command
        timeout: per-command timeout in seconds (None = unbounded)
        cancel: event that, once set, terminates the job
        runner: process runner, defaults to `run_process`

    Returns:
        JobResult. The first failing step makes the job Failed; the steps
        after it are reported as skipped and never started.
    """
    console = get_console()
    merged_env = os.environ.copy()
    merged_env.update(env or {})

    ctx = _JobContext(
        job=job,
        workspace=Path(workspace).resolve(),
        working_directory=working_directory,
        repo_url=repo_url,
        ref=ref,
        env=merged_env,
        timeout=timeout,
        cancel=cancel,
        runner=runner or run_process,
    )

    started = time.monotonic()
    status = SUCCEEDED
    outcomes: List[StepOutcome] = []
    console.print_job_start(job.name)

    for step in job.steps:
        if status == FAILED:
            outcomes.append(StepOutcome(step=step.name, kind=step.kind, status=SKIPPED))
            continue

        console.print_step(job.name, step.name)
        buf: List[str] = []
        try:
            _HANDLERS[type(step)](ctx, step, buf)
        except StepError as e:
            status = FAILED
            outcomes.append(
                StepOutcome(
                    step=step.name,
                    kind=step.kind,
                    status=FAILED,
                    output=e.output,
                    exit_code=e.exit_code,
                    error=str(e),
                )
            )
            console.print_failure(job.name, step.name, e.message, exit_code=e.exit_code, output=e.output)
            continue
        except Exception as e:
            # Anything else (a broken runner, an OS error) still only fails this job.
            status = FAILED
            err = StepError(job=job.name, step=step.name, message=f"unexpected error: {e!r}", output="".join(buf))
            outcomes.append(
                StepOutcome(step=step.name, kind=step.kind, status=FAILED, output=err.output, error=str(err))
            )
            console.print_failure(job.name, step.name, err.message, exit_code=None, output=err.output)
            continue

        outcomes.append(
            StepOutcome(step=step.name, kind=step.kind, status=SUCCEEDED, output="".join(buf), exit_code=0)
        )

    duration = time.monotonic() - started
    console.print_job_finished(job.name, status, duration)
    return JobResult(job=job.name, status=status, steps=outcomes, duration=duration)
