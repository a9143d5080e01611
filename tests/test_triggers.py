"""Tests for trigger evaluation."""

import pytest

from actionci.model import Event
from actionci.presets import cargo_nightly_pipeline
from actionci.triggers import evaluate

JOB_NAMES = ["clippy", "doc", "check", "fmt", "build", "test"]


@pytest.fixture
def ci_pipeline():
    return cargo_nightly_pipeline()


@pytest.mark.parametrize(
    "event",
    [
        Event("push", "main"),
        Event("push", "ci"),
        Event("push", "feature-ci-test"),
        Event("pull_request", "main"),
    ],
)
def test_matching_events_run_every_job_once(ci_pipeline, event) -> None:
    decision = evaluate(ci_pipeline, event)
    assert decision.run
    assert [j.name for j in decision.jobs] == JOB_NAMES
    assert decision.matched_rule is not None
    assert decision.matched_rule.kind == event.kind


@pytest.mark.parametrize(
    "event",
    [
        Event("push", "release-v2"),
        Event("push", "Main"),
        Event("pull_request", "feature-ci-test"),
        Event("pull_request", "develop"),
    ],
)
def test_non_matching_events_skip(ci_pipeline, event) -> None:
    decision = evaluate(ci_pipeline, event)
    assert not decision.run
    assert decision.jobs == ()
    assert decision.matched_rule is None


def test_evaluate_is_pure(ci_pipeline) -> None:
    event = Event("push", "main")
    assert evaluate(ci_pipeline, event) == evaluate(ci_pipeline, event)
    assert ci_pipeline == cargo_nightly_pipeline()
