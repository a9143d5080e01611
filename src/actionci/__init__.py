from .dsl import build, checkout, job, on_pull_request, on_push, pipeline, sh, toolchain, JobBuilder
from .executor import run_job
from .loader import load_pipeline
from .model import Event, Job, Pipeline, PipelineResult, JobResult, RunDecision
from .runner import PipelineRun, run_pipeline
from .triggers import evaluate

__all__ = [
    "build", "checkout", "job", "on_pull_request", "on_push", "pipeline", "sh", "toolchain", "JobBuilder",
    "run_job", "load_pipeline", "Event", "Job", "Pipeline", "PipelineResult", "JobResult", "RunDecision",
    "PipelineRun", "run_pipeline", "evaluate",
]
