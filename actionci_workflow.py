# actionci_workflow.py
# Check-and-lint pipeline for the symex crate (nightly toolchain).
from __future__ import annotations

from actionci.presets import cargo_nightly_pipeline


def pipeline():
    return cargo_nightly_pipeline(working_directory="symex")
