# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Dict, List, Optional, Tuple, Union

PULL_REQUEST = "pull_request"
PUSH = "push"
EVENT_KINDS = (PULL_REQUEST, PUSH)

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


class PipelineDefinitionError(ValueError):
    """Raised when a pipeline declaration is malformed."""
    pass


# ---------------------------------------------------------------------
# Events + trigger rules
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Event:
    """A repository event: a push to, or a pull request against, a branch."""
    kind: str
    target_branch: str

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind {self.kind!r}, expected one of {list(EVENT_KINDS)}")


@dataclass(frozen=True)
class Exact:
    name: str

    def matches(self, branch: str) -> bool:
        return branch == self.name

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Contains:
    """Matches any branch name containing `substring` (written as `*substring*`)."""
    substring: str

    def matches(self, branch: str) -> bool:
        return self.substring in branch

    def __str__(self) -> str:
        return f"*{self.substring}*"


@dataclass(frozen=True)
class Glob:
    """Any other wildcard shape, e.g. `release/*`."""
    pattern: str

    def matches(self, branch: str) -> bool:
        return fnmatchcase(branch, self.pattern)

    def __str__(self) -> str:
        return self.pattern


BranchPattern = Union[Exact, Contains, Glob]


def parse_pattern(text: str) -> BranchPattern:
    """
    Turn a branch pattern as written in a workflow into a tagged pattern.

      "main"     -> Exact("main")
      "*ci*"     -> Contains("ci")
      "release/*" -> Glob("release/*")
    """
    if not text:
        raise PipelineDefinitionError("Branch pattern must not be empty")
    if "*" not in text:
        return Exact(text)

    inner = text[1:-1]
    if len(text) > 2 and text.startswith("*") and text.endswith("*") and "*" not in inner:
        return Contains(inner)
    return Glob(text)


@dataclass(frozen=True)
class TriggerRule:
    kind: str
    patterns: Tuple[BranchPattern, ...]

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise PipelineDefinitionError(f"Unknown trigger kind {self.kind!r}")

    def matches(self, event: Event) -> bool:
        if event.kind != self.kind:
            return False
        return any(p.matches(event.target_branch) for p in self.patterns)

    def __str__(self) -> str:
        return f"{self.kind}: {', '.join(str(p) for p in self.patterns)}"


# ---------------------------------------------------------------------
# Steps + jobs
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Checkout:
    """Managed action: make the repository contents available in the workspace."""
    name: str = "checkout"
    kind = "checkout"


@dataclass(frozen=True)
class InstallToolchain:
    """Managed action: install (and optionally select) a toolchain."""
    name: str = "toolchain"
    profile: str = "minimal"
    toolchain: str = "stable"
    override: bool = False
    components: Tuple[str, ...] = ()
    kind = "toolchain"


@dataclass(frozen=True)
class RunCommands:
    """An ordered list of shell command lines; the step fails on the first non-zero exit."""
    name: str
    commands: Tuple[str, ...]
    working_directory: Optional[str] = None
    kind = "run"


Step = Union[Checkout, InstallToolchain, RunCommands]


@dataclass(frozen=True)
class Job:
    """A CI job: a name plus steps that run strictly in order."""
    name: str
    steps: Tuple[Step, ...]
    display_name: Optional[str] = None
    working_directory: Optional[str] = None

    @property
    def title(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class Pipeline:
    """
    An immutable pipeline declaration.

    `working_directory` is the default for every RunCommands step unless the
    job or the step overrides it.
    """
    name: str
    triggers: Tuple[TriggerRule, ...]
    jobs: Tuple[Job, ...]
    working_directory: Optional[str] = None

    def __post_init__(self) -> None:
        names = [j.name for j in self.jobs]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise PipelineDefinitionError(f"Duplicate job names found: {dupes}")

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class RunDecision:
    run: bool
    jobs: Tuple[Job, ...] = ()
    matched_rule: Optional[TriggerRule] = None


@dataclass
class StepOutcome:
    step: str
    kind: str
    status: str
    output: str = ""
    exit_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class JobResult:
    job: str
    status: str
    steps: List[StepOutcome] = field(default_factory=list)
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def failed_step(self) -> Optional[StepOutcome]:
        for outcome in self.steps:
            if outcome.status == FAILED:
                return outcome
        return None


@dataclass
class PipelineResult:
    ran: bool
    status: Optional[str] = None  # None when the pipeline was skipped
    jobs: Dict[str, JobResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.ran and self.status == SUCCEEDED
