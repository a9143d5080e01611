# toolchain.py
from __future__ import annotations

from typing import List

from .model import InstallToolchain


def install_args(step: InstallToolchain) -> List[List[str]]:
    """
    Turn a toolchain step into the rustup invocations that realise it.

    The first command installs the toolchain with its profile and components;
    when `override` is set a second command pins it for the workspace so that
    plain `cargo` resolves to it.
    """
    install = ["rustup", "toolchain", "install", step.toolchain, "--profile", step.profile]
    for component in step.components:
        install.extend(["--component", component])

    cmds = [install]
    if step.override:
        cmds.append(["rustup", "override", "set", step.toolchain])
    return cmds


def parse_components(raw) -> tuple[str, ...]:
    """Components as written in a workflow: `clippy, rustfmt` or a YAML list."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = [str(p) for p in raw]
    return tuple(p.strip() for p in parts if p.strip())
