# src/actionci/dsl.py
from __future__ import annotations

from typing import Iterable, List, Optional

from .model import (
    PULL_REQUEST,
    PUSH,
    Checkout,
    InstallToolchain,
    Job,
    Pipeline,
    PipelineDefinitionError,
    RunCommands,
    Step,
    TriggerRule,
    parse_pattern,
)
from .toolchain import parse_components


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def checkout() -> Checkout:
    return Checkout()


def toolchain(
    version: str = "stable",
    *,
    profile: str = "minimal",
    override: bool = False,
    components: Iterable[str] | str | None = None,
    name: str = "toolchain",
) -> InstallToolchain:
    """Install `version` with rustup; `components` may be a list or `"a, b"`."""
    return InstallToolchain(
        name=name,
        profile=profile,
        toolchain=version,
        override=override,
        components=parse_components(components),
    )


def sh(name: str, *commands: str, cwd: str | None = None) -> RunCommands:
    """A command-list step: sh("build", "cargo build", "cargo build --examples")."""
    if not commands:
        raise PipelineDefinitionError(f"sh({name!r}) needs at least one command")
    return RunCommands(name=name, commands=tuple(commands), working_directory=cwd)


# ---------------------------------------------------------------------
# Jobs + triggers
# ---------------------------------------------------------------------

def job(name: str, *steps: Step, title: str | None = None, cwd: str | None = None) -> Job:
    if not steps:
        raise PipelineDefinitionError(f"job({name!r}) must have at least one step")
    return Job(name=name, steps=tuple(steps), display_name=title, working_directory=cwd)


def on_push(*branches: str) -> TriggerRule:
    return TriggerRule(kind=PUSH, patterns=tuple(parse_pattern(b) for b in branches))


def on_pull_request(*branches: str) -> TriggerRule:
    return TriggerRule(kind=PULL_REQUEST, patterns=tuple(parse_pattern(b) for b in branches))


def pipeline(
    name: str,
    *jobs: Job,
    triggers: Iterable[TriggerRule],
    working_directory: str | None = None,
) -> Pipeline:
    """
    Pipeline definition helper.

    Users can write, in actionci_workflow.py:

        from actionci.dsl import pipeline, job, sh, checkout, on_push

        PIPELINE = pipeline(
            "ci",
            job("test", checkout(), sh("test", "cargo test")),
            triggers=[on_push("main")],
        )
    """
    return Pipeline(
        name=name,
        triggers=tuple(triggers),
        jobs=tuple(jobs),
        working_directory=working_directory,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._title: Optional[str] = None
        self._cwd: Optional[str] = None
        self._steps: List[Step] = []

    def titled(self, title: str):
        self._title = title
        return self

    def in_directory(self, cwd: str):
        self._cwd = cwd
        return self

    def checkout(self):
        self._steps.append(Checkout())
        return self

    def toolchain(self, version: str, **kwargs):
        self._steps.append(toolchain(version, **kwargs))
        return self

    def run(self, name: str, *commands: str, cwd: str | None = None):
        self._steps.append(sh(name, *commands, cwd=cwd))
        return self

    def build(self) -> Job:
        if not self._steps:
            raise PipelineDefinitionError(f"Job '{self.name}' has no steps")
        return Job(name=self.name, steps=tuple(self._steps), display_name=self._title, working_directory=self._cwd)


def build(name: str) -> JobBuilder:
    """Convenience: build('test').checkout().run('test', 'cargo test').build()"""
    return JobBuilder(name)
