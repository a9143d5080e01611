# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from actionci.git import current_branch
from actionci.loader import load_pipeline
from actionci.model import EVENT_KINDS, Checkout, Event, InstallToolchain, Pipeline, PipelineDefinitionError
from actionci.runner import run_pipeline
from actionci.triggers import evaluate
from actionci.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "actionci_workflow.py"


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix not in (".py", ".yml", ".yaml"):
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  actionci run --workflow .github/workflows/ci.yml",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {DEFAULT_WORKFLOW}", "  *_workflow.py"],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify a workflow explicitly:\n  actionci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  actionci run --workflow {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(workflow: str | None) -> Pipeline:
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return load_pipeline(workflow_path)
    except PipelineDefinitionError as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        sys.exit(1)


def _resolve_branch(branch: str | None, workspace: str) -> str:
    if branch:
        return branch
    console = get_console()
    try:
        name = current_branch(cwd=workspace)
    except (subprocess.CalledProcessError, FileNotFoundError):
        name = "HEAD"
    if name == "HEAD":
        console.print_error(
            "Could not determine branch",
            "Not on a git branch (or git is unavailable).",
            suggestion="Please specify --branch explicitly:\n  actionci run --event push --branch main",
        )
        sys.exit(1)
    console.print_debug(f"Using current git branch: {name}")
    return name


workflow_option = click.option(
    "--workflow",
    default=None,
    help=f"Workflow file (.py, .yml, .yaml); defaults to {DEFAULT_WORKFLOW} if present",
)
event_option = click.option(
    "--event",
    "event_kind",
    type=click.Choice(EVENT_KINDS),
    default="push",
    show_default=True,
    help="Repository event kind",
)
branch_option = click.option("--branch", default=None, help="Target branch (defaults to the current git branch)")
workspace_option = click.option("--workspace", default=".", show_default=True, help="Checked-out repository root")


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and full step output)",
)
@click.pass_context
def cli(ctx, debug):
    """actionci: trigger-driven CI pipeline runner."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@workflow_option
@event_option
@branch_option
@workspace_option
@click.option("--workers", default=None, type=int, help="Number of parallel jobs (default: all)")
@click.option("--timeout", default=None, type=float, help="Per-command timeout in seconds")
@click.option(
    "--cancel-on-failure/--no-cancel-on-failure",
    default=False,
    show_default=True,
    help="Cancel sibling jobs once any job fails",
)
@click.option("--repo", default=None, help="Repository URL to clone per job (default: run in --workspace)")
@click.option("--ref", default=None, help="Git ref to check out when --repo is given (default: --branch)")
@click.option("--work-root", default=".actionci/work", show_default=True, help="Per-job clone directory for --repo")
@click.pass_context
def run(ctx, workflow, event_kind, branch, workspace, workers, timeout, cancel_on_failure, repo, ref, work_root):
    """Evaluate an event and run the pipeline if it triggers."""
    console = get_console()
    pipeline = _load(workflow)
    event = Event(kind=event_kind, target_branch=_resolve_branch(branch, workspace))

    try:
        result = run_pipeline(
            pipeline,
            event,
            workspace=workspace,
            work_root=work_root,
            repo_url=repo,
            ref=ref or (event.target_branch if repo else None),
            max_workers=workers,
            timeout=timeout,
            cancel_on_failure=cancel_on_failure,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    if not result.ran:
        console.print_info("Pipeline skipped.")
        return

    console.print_results({name: r.status for name, r in result.jobs.items()})
    if not result.succeeded:
        sys.exit(1)


@cli.command("evaluate")
@workflow_option
@event_option
@branch_option
@workspace_option
def evaluate_cmd(workflow, event_kind, branch, workspace):
    """Print whether an event would trigger the pipeline, without running it."""
    console = get_console()
    pipeline = _load(workflow)
    event = Event(kind=event_kind, target_branch=_resolve_branch(branch, workspace))
    decision = evaluate(pipeline, event)
    console.print_decision(
        decision.run,
        str(decision.matched_rule) if decision.matched_rule else None,
        [j.name for j in decision.jobs],
    )


@cli.command()
@workflow_option
def show(workflow):
    """Print the triggers, jobs and steps of a pipeline."""
    console = get_console()
    pipeline = _load(workflow)

    console.print_header(pipeline.name)
    for rule in pipeline.triggers:
        console.print_info(f"on {rule}")
    if pipeline.working_directory:
        console.print_info(f"working directory: {pipeline.working_directory}")

    for job in pipeline.jobs:
        console.print_info(f"\n{job.name} ({job.title})")
        for step in job.steps:
            if isinstance(step, Checkout):
                console.print_info(f"  - {step.name}")
            elif isinstance(step, InstallToolchain):
                extra = f" [{', '.join(step.components)}]" if step.components else ""
                console.print_info(f"  - {step.name}: {step.toolchain} ({step.profile}){extra}")
            else:
                console.print_info(f"  - {step.name}")
                for line in step.commands:
                    console.print_info(f"      $ {line}")


if __name__ == "__main__":
    cli()
