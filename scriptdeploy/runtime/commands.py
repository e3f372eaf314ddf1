from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence


@dataclass(frozen=True)
class CommandResult:
    argv: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def diagnostic(self, limit: int = 2000) -> str:
        """Best diagnostic text for an error message: stderr, else stdout, truncated."""
        text = (self.stderr or "").strip() or (self.stdout or "").strip()
        return text[:limit]


class CommandRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        ...


def run_command(
    argv: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """Run ``argv`` and capture its output. Never raises on a non-zero exit.

    Launch problems (missing executable, timeout) propagate as
    ``FileNotFoundError`` / ``OSError`` / ``subprocess.TimeoutExpired`` so the
    caller can map them to its own error type.
    """
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)
    proc = subprocess.run(
        list(argv),
        cwd=str(cwd) if cwd is not None else None,
        env=full_env,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )
    return CommandResult(argv=list(argv), returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")
