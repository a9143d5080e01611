# triggers.py
from __future__ import annotations

from .model import Event, Pipeline, RunDecision


def evaluate(pipeline: Pipeline, event: Event) -> RunDecision:
    """
    Decide whether `event` starts a run of `pipeline`.

    Pure function of (rules, event): returns a Run decision carrying every
    declared job (in declaration order) as soon as one trigger rule matches,
    otherwise a Skip decision with no jobs.
    """
    for rule in pipeline.triggers:
        if rule.matches(event):
            return RunDecision(run=True, jobs=tuple(pipeline.jobs), matched_rule=rule)
    return RunDecision(run=False)
