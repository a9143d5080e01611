"""Tests for the webhook server."""

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from actionci.executor import ProcessResult
from actionci.presets import cargo_nightly_pipeline
from actionci.server import create_app

FMT = "cargo +nightly fmt --all -- --check"


def wait_for_result(client: TestClient, run_id: str, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/runs/{run_id}").json()
        if body["status"] != "running":
            return body
        time.sleep(0.05)
    raise AssertionError(f"run {run_id} did not finish")


class WaitForCancel:
    """Every command blocks until the run is cancelled."""

    def __call__(self, cmd, cwd, *, env=None, timeout=None, cancel=None):
        cancel.wait(10)
        return ProcessResult(exit_code=-9, output="", cancelled=True)


@pytest.fixture
def make_client(workspace: Path):
    def factory(runner, **options):
        return TestClient(create_app(cargo_nightly_pipeline(), workspace=str(workspace), runner=runner, **options))

    return factory


def test_health(make_client, make_runner) -> None:
    client = make_client(make_runner())
    assert client.get("/health").json() == {"status": "ok"}


def test_push_runs_pipeline_and_reports_once(make_client, make_runner) -> None:
    client = make_client(make_runner(fail={FMT: 1}))

    resp = client.post("/events", json={"kind": "push", "target_branch": "main"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["run"] is True
    assert body["jobs"] == ["clippy", "doc", "check", "fmt", "build", "test"]

    result = wait_for_result(client, body["run_id"])
    assert result["status"] == "failed"
    assert result["jobs"]["fmt"]["status"] == "failed"
    assert result["jobs"]["fmt"]["steps"][2]["exit_code"] == 1
    assert all(result["jobs"][name]["status"] == "succeeded" for name in ("clippy", "doc", "check", "build", "test"))

    # terminal status is reported once, then the run is gone
    assert client.get(f"/runs/{body['run_id']}").status_code == 404


def test_non_matching_event_is_skipped(make_client, make_runner) -> None:
    runner = make_runner()
    client = make_client(runner)

    resp = client.post("/events", json={"kind": "push", "target_branch": "release-v2"})
    assert resp.json() == {"run": False, "run_id": None, "jobs": [], "superseded": None}
    assert runner.calls == []


def test_invalid_event_rejected(make_client, make_runner) -> None:
    client = make_client(make_runner())
    assert client.post("/events", json={"kind": "tag", "target_branch": "main"}).status_code == 422
    assert client.post("/events", json={"kind": "push", "target_branch": ""}).status_code == 422


def test_newer_event_supersedes_running_run(make_client) -> None:
    client = make_client(WaitForCancel())

    first = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()
    second = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()
    assert second["superseded"] == first["run_id"]

    old = wait_for_result(client, first["run_id"])
    assert old["status"] == "failed"
    assert old["cancelled"] is True

    assert client.post(f"/runs/{second['run_id']}/cancel").json() == {"ok": True}
    new = wait_for_result(client, second["run_id"])
    assert new["status"] == "failed"


def test_unknown_run(make_client, make_runner) -> None:
    client = make_client(make_runner())
    assert client.get("/runs/does-not-exist").status_code == 404
    assert client.post("/runs/does-not-exist/cancel").status_code == 404


def registered(client: TestClient):
    return client.app.state.registry.runs


def test_cancel_endpoint_stops_run(make_client) -> None:
    client = make_client(WaitForCancel())
    run_id = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()["run_id"]

    assert client.post(f"/runs/{run_id}/cancel").json() == {"ok": True}
    run, _event = registered(client)[run_id]
    assert run.wait(10) is not None

    # already finished
    assert client.post(f"/runs/{run_id}/cancel").status_code == 409

    body = client.get(f"/runs/{run_id}").json()
    assert body["status"] == "failed"
    assert body["cancelled"] is True
    for result in body["jobs"].values():
        assert result["status"] == "failed"
        assert result["steps"][0]["status"] == "failed"
        assert "cancelled" in result["steps"][0]["error"]
        assert all(s["status"] == "skipped" for s in result["steps"][1:])


def test_push_and_pull_request_on_same_branch_do_not_supersede(make_client) -> None:
    client = make_client(WaitForCancel())

    push = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()
    pr = client.post("/events", json={"kind": "pull_request", "target_branch": "main"}).json()
    assert pr["superseded"] is None

    push_run, _ = registered(client)[push["run_id"]]
    assert not push_run.cancelled

    for run_id in (push["run_id"], pr["run_id"]):
        client.post(f"/runs/{run_id}/cancel")
        assert wait_for_result(client, run_id)["status"] == "failed"


def test_unpolled_finished_run_is_dropped_by_next_event(make_client, make_runner) -> None:
    client = make_client(make_runner())

    first = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()["run_id"]
    run, _ = registered(client)[first]
    assert run.wait(10) is not None

    second = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()
    assert second["superseded"] is None
    assert first not in registered(client)
    assert client.get(f"/runs/{first}").status_code == 404
    assert wait_for_result(client, second["run_id"])["status"] == "succeeded"
    assert registered(client) == {}


def test_finished_runs_expire_after_retention(make_client, make_runner) -> None:
    client = make_client(make_runner(), retention=0)

    run_id = client.post("/events", json={"kind": "push", "target_branch": "main"}).json()["run_id"]
    run, _ = registered(client)[run_id]
    assert run.wait(10) is not None

    client.post("/events", json={"kind": "push", "target_branch": "ci-fix"})
    assert run_id not in registered(client)
