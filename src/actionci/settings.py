from __future__ import annotations
import os

WORKFLOW = os.environ.get("ACTIONCI_WORKFLOW", "actionci_workflow.py")
WORKSPACE = os.environ.get("ACTIONCI_WORKSPACE", ".")
REPO_URL = os.environ.get("ACTIONCI_REPO_URL") or None
WORK_ROOT = os.environ.get("ACTIONCI_WORK_ROOT", ".actionci/work")
MAX_WORKERS = int(os.environ["ACTIONCI_MAX_WORKERS"]) if os.environ.get("ACTIONCI_MAX_WORKERS") else None
STEP_TIMEOUT = float(os.environ["ACTIONCI_STEP_TIMEOUT"]) if os.environ.get("ACTIONCI_STEP_TIMEOUT") else None
RUN_RETENTION = float(os.environ.get("ACTIONCI_RUN_RETENTION", "3600"))
