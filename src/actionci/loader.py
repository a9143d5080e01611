# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List

import yaml

from .dsl import pipeline as dsl_pipeline
from .model import (
    EVENT_KINDS,
    Checkout,
    Glob,
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

CHECKOUT_ACTION = "actions/checkout"
TOOLCHAIN_ACTION = "actions-rs/toolchain"


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a workflow file.

    Supported:
      - *.py: defines pipeline() -> Pipeline, or PIPELINE = Pipeline(...)
      - *.yml / *.yaml: a GitHub-Actions-style workflow
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise PipelineDefinitionError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix == ".py":
        return _load_python(wf_path)
    if wf_path.suffix in (".yml", ".yaml"):
        with wf_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return parse_workflow(data, default_name=wf_path.stem)

    raise PipelineDefinitionError(f"Workflow must be a .py, .yml or .yaml file, got: {wf_path.name}")


def _load_python(wf_path: Path) -> Pipeline:
    module_name = f"actionci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    result = None
    factory = globals_dict.get("pipeline")
    if "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]
    elif callable(factory) and factory is not dsl_pipeline:
        # `from actionci.dsl import pipeline` alone is the helper, not a definition.
        result = factory()

    if not isinstance(result, Pipeline):
        raise PipelineDefinitionError(
            "Workflow must return/define a Pipeline. "
            "Define pipeline() -> Pipeline or PIPELINE = pipeline(...)."
        )
    return result


# ----------------------------------------------------------------------
# YAML workflow parsing
# ----------------------------------------------------------------------

def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PipelineDefinitionError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _parse_triggers(raw: Any) -> List[TriggerRule]:
    # `on: push` / `on: [push, pull_request]` / `on: {push: {branches: [...]}}`
    if isinstance(raw, str):
        raw = {raw: None}
    elif isinstance(raw, list):
        raw = {kind: None for kind in raw}
    raw = _mapping(raw, "on")

    rules: List[TriggerRule] = []
    for kind, cfg in raw.items():
        if kind not in EVENT_KINDS:
            # Other event kinds can never reach this runner.
            continue
        branches = _mapping(cfg, f"on.{kind}").get("branches")
        if branches is None:
            patterns = (Glob("*"),)
        else:
            if isinstance(branches, str):
                branches = [branches]
            patterns = tuple(parse_pattern(str(b)) for b in branches)
        rules.append(TriggerRule(kind=kind, patterns=patterns))
    return rules


def _flag(value: Any, where: str) -> bool:
    # Accepts YAML booleans and their quoted spellings.
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "on", "1"):
        return True
    if text in ("false", "no", "off", "0", ""):
        return False
    raise PipelineDefinitionError(f"{where} must be true or false, got {value!r}")


def _run_directory(section: Any, where: str) -> str | None:
    run = _mapping(_mapping(section, where).get("run"), f"{where}.run")
    wd = run.get("working-directory")
    return str(wd) if wd is not None else None


def _parse_step(job_id: str, idx: int, raw: Any) -> Step:
    where = f"jobs.{job_id}.steps[{idx}]"
    raw = _mapping(raw, where)

    if "uses" in raw:
        action = str(raw["uses"]).split("@", 1)[0]
        with_ = _mapping(raw.get("with"), f"{where}.with")

        if action == CHECKOUT_ACTION:
            return Checkout(name=raw.get("name", "checkout"))
        if action == TOOLCHAIN_ACTION:
            return InstallToolchain(
                name=raw.get("name", "toolchain"),
                profile=str(with_.get("profile", "minimal")),
                toolchain=str(with_.get("toolchain", "stable")),
                override=_flag(with_.get("override", False), f"{where}.with.override"),
                components=parse_components(with_.get("components")),
            )
        raise PipelineDefinitionError(f"{where}: unsupported action {raw['uses']!r}")

    if "run" in raw:
        commands = tuple(line.strip() for line in str(raw["run"]).splitlines() if line.strip())
        if not commands:
            raise PipelineDefinitionError(f"{where}: run block is empty")
        wd = raw.get("working-directory")
        return RunCommands(
            name=raw.get("name", f"Run {commands[0]}"),
            commands=commands,
            working_directory=str(wd) if wd is not None else None,
        )

    raise PipelineDefinitionError(f"{where}: a step needs either 'uses' or 'run'")


def parse_workflow(data: Any, default_name: str = "workflow") -> Pipeline:
    """Build a Pipeline from an already-parsed GitHub-Actions-style workflow."""
    data = _mapping(data, "workflow")

    # YAML 1.1 reads a bare `on:` key as the boolean True.
    raw_on = data.get("on", data.get(True))
    if raw_on is None:
        raise PipelineDefinitionError("workflow has no 'on' section")

    jobs_raw = _mapping(data.get("jobs"), "jobs")
    if not jobs_raw:
        raise PipelineDefinitionError("workflow declares no jobs")

    jobs: List[Job] = []
    for job_id, job_raw in jobs_raw.items():
        job_raw = _mapping(job_raw, f"jobs.{job_id}")
        steps_raw = job_raw.get("steps") or []
        if not isinstance(steps_raw, list) or not steps_raw:
            raise PipelineDefinitionError(f"jobs.{job_id} must have a non-empty list of steps")
        jobs.append(
            Job(
                name=str(job_id),
                steps=tuple(_parse_step(job_id, i, s) for i, s in enumerate(steps_raw)),
                display_name=job_raw.get("name"),
                working_directory=_run_directory(job_raw.get("defaults"), f"jobs.{job_id}.defaults"),
            )
        )

    return Pipeline(
        name=str(data.get("name", default_name)),
        triggers=tuple(_parse_triggers(raw_on)),
        jobs=tuple(jobs),
        working_directory=_run_directory(data.get("defaults"), "defaults"),
    )
