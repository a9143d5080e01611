"""Tests for branch patterns, trigger rules and pipeline declarations."""

import pytest

from actionci.dsl import build, checkout, job, on_pull_request, on_push, pipeline, sh, toolchain
from actionci.model import (
    Contains,
    Event,
    Exact,
    Glob,
    InstallToolchain,
    PipelineDefinitionError,
    RunCommands,
    TriggerRule,
    parse_pattern,
)


class TestParsePattern:
    def test_plain_name_is_exact(self) -> None:
        assert parse_pattern("main") == Exact("main")

    def test_surrounding_stars_is_contains(self) -> None:
        assert parse_pattern("*ci*") == Contains("ci")

    def test_other_wildcards_are_globs(self) -> None:
        assert parse_pattern("release/*") == Glob("release/*")
        assert parse_pattern("*") == Glob("*")
        assert parse_pattern("*a*b*") == Glob("*a*b*")

    def test_only_star_is_a_wildcard(self) -> None:
        assert parse_pattern("v1.?") == Exact("v1.?")
        assert parse_pattern("[wip]") == Exact("[wip]")
        assert parse_pattern("*[ci]*") == Contains("[ci]")
        assert parse_pattern("*[ci]*").matches("feature-[ci]-x")
        assert not parse_pattern("v1.?").matches("v1.2")

    def test_empty_pattern_rejected(self) -> None:
        with pytest.raises(PipelineDefinitionError):
            parse_pattern("")


class TestMatching:
    def test_exact_is_case_sensitive(self) -> None:
        assert Exact("main").matches("main")
        assert not Exact("main").matches("Main")
        assert not Exact("main").matches("main2")

    @pytest.mark.parametrize("branch", ["ci", "feature-ci-test", "ci-fix", "my-ci"])
    def test_contains_matches_substring(self, branch: str) -> None:
        assert Contains("ci").matches(branch)

    @pytest.mark.parametrize("branch", ["main", "release-v2", "CI", "c-i"])
    def test_contains_rejects_others(self, branch: str) -> None:
        assert not Contains("ci").matches(branch)

    def test_glob(self) -> None:
        assert Glob("release/*").matches("release/1.0")
        assert not Glob("release/*").matches("hotfix/1.0")

    def test_rule_requires_kind_and_branch(self) -> None:
        rule = on_push("main", "*ci*")
        assert rule.matches(Event("push", "main"))
        assert rule.matches(Event("push", "feature-ci-test"))
        assert not rule.matches(Event("pull_request", "main"))
        assert not rule.matches(Event("push", "release-v2"))

    def test_rule_str(self) -> None:
        assert str(on_push("main", "*ci*")) == "push: main, *ci*"


def test_event_kind_validated() -> None:
    with pytest.raises(ValueError):
        Event("tag", "main")


def test_trigger_kind_validated() -> None:
    with pytest.raises(PipelineDefinitionError):
        TriggerRule(kind="schedule", patterns=(Exact("main"),))


class TestPipelineDeclaration:
    def test_duplicate_job_names_rejected(self) -> None:
        with pytest.raises(PipelineDefinitionError, match="Duplicate job names"):
            pipeline(
                "p",
                job("a", sh("x", "true")),
                job("a", sh("y", "true")),
                triggers=[on_push("main")],
            )

    def test_job_requires_steps(self) -> None:
        with pytest.raises(PipelineDefinitionError):
            job("empty")

    def test_sh_requires_commands(self) -> None:
        with pytest.raises(PipelineDefinitionError):
            sh("nothing")

    def test_step_order_preserved(self) -> None:
        j = job("j", checkout(), toolchain("nightly"), sh("a", "one", "two"), sh("b", "three"))
        assert [s.name for s in j.steps] == ["checkout", "toolchain", "a", "b"]
        assert j.steps[2].commands == ("one", "two")

    def test_toolchain_components_from_string(self) -> None:
        step = toolchain("nightly", override=True, components="clippy, rustfmt")
        assert step == InstallToolchain(
            name="toolchain", profile="minimal", toolchain="nightly", override=True, components=("clippy", "rustfmt")
        )

    def test_pipeline_lookup(self) -> None:
        p = pipeline("p", job("a", sh("x", "true")), triggers=[on_pull_request("main")])
        assert p.job("a").name == "a"
        with pytest.raises(KeyError):
            p.job("missing")


def test_job_builder() -> None:
    j = (
        build("lint")
        .titled("Lint")
        .in_directory("crate")
        .checkout()
        .toolchain("nightly", components=["clippy"])
        .run("clippy", "cargo clippy", cwd="other")
        .build()
    )
    assert j.title == "Lint"
    assert j.working_directory == "crate"
    assert [s.kind for s in j.steps] == ["checkout", "toolchain", "run"]
    assert j.steps[2] == RunCommands(name="clippy", commands=("cargo clippy",), working_directory="other")

    with pytest.raises(PipelineDefinitionError):
        build("empty").build()
