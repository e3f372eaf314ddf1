from __future__ import annotations

import re
import subprocess
from typing import Optional, Sequence

from ..config import PipelineConfig
from ..errors import EnvironmentSetupFailure
from .commands import CommandResult, CommandRunner, run_command


_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)\.(\d+)")


def _invoke(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    step: str,
    timeout: Optional[float] = None,
) -> CommandResult:
    try:
        return runner(argv, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        raise EnvironmentSetupFailure(f"failed to launch {argv[0]!r}: {e}", step=step)


def parse_major_version(text: str) -> Optional[int]:
    m = _VERSION_RE.search(text or "")
    if not m:
        return None
    return int(m.group(1))


def ensure_runtime(cfg: PipelineConfig, runner: CommandRunner = run_command) -> str:
    """Check the JavaScript runtime the CLI tool needs is on PATH.

    Returns the reported version string. Node publishes LTS lines on even
    majors only; an odd major is allowed but reported.
    """
    argv = list(cfg.runtime_command)
    res = _invoke(runner, argv, step="provision_runtime", timeout=cfg.cli.timeout_s)
    if not res.ok:
        raise EnvironmentSetupFailure(
            f"runtime check {' '.join(argv)!r} exited rc={res.returncode}: {res.diagnostic()}",
            step="provision_runtime",
        )
    version = (res.stdout or "").strip()
    major = parse_major_version(version)
    if major is not None and major % 2 == 1:
        print(f"[runtime][WARN] runtime {version} is not an LTS line")
    return version


def install_cli(cfg: PipelineConfig, runner: CommandRunner = run_command) -> Optional[str]:
    """Install the managed-script CLI. Returns the installed package spec, or None when skipped."""
    if not cfg.cli.install:
        return None
    argv = list(cfg.cli.installer) + [cfg.cli.package]
    res = _invoke(runner, argv, step="install_cli", timeout=cfg.cli.timeout_s)
    if not res.ok:
        raise EnvironmentSetupFailure(
            f"failed to install {cfg.cli.package}: rc={res.returncode}: {res.diagnostic()}",
            step="install_cli",
        )
    return cfg.cli.package
