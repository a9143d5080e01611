# presets.py
# Ready-made pipelines. `cargo_nightly_pipeline` is the check-and-lint pipeline
# for a Rust crate built on the nightly toolchain.
from __future__ import annotations

from .dsl import checkout, job, on_pull_request, on_push, pipeline, sh, toolchain
from .model import Pipeline


def _nightly(*components: str):
    return toolchain("nightly", profile="minimal", override=True, components=components)


def cargo_nightly_pipeline(working_directory: str = "symex") -> Pipeline:
    return pipeline(
        "Check and Lint",
        job(
            "clippy",
            checkout(),
            _nightly("clippy"),
            sh(
                "cargo_clippy",
                "rustup target list",
                "cargo +nightly clippy",
                "cargo +nightly clippy --examples",
            ),
            title="clippy",
        ),
        job(
            "doc",
            checkout(),
            _nightly("clippy"),
            sh("doc", "rustup target list", "cargo +nightly doc"),
            title="Generate docs",
        ),
        job(
            "check",
            checkout(),
            _nightly(),
            sh("cargo_check", "cargo +nightly check", "cargo +nightly check --examples"),
            title="Check",
        ),
        job(
            "fmt",
            checkout(),
            _nightly("rustfmt"),
            sh("fmt check", "cargo +nightly fmt --all -- --check"),
            title="Rustfmt",
        ),
        job(
            "build",
            checkout(),
            _nightly(),
            sh(
                "cargo build",
                "ls -la",
                "cargo +nightly build --release",
                "cargo +nightly build --examples --release",
            ),
            title="build",
        ),
        job(
            "test",
            checkout(),
            _nightly(),
            sh("cargo test", "ls -la", "cargo +nightly test"),
            title="test",
        ),
        triggers=[
            on_pull_request("main"),
            on_push("main", "*ci*"),
        ],
        working_directory=working_directory,
    )
