from __future__ import annotations

import json
import subprocess
from pathlib import Path

from ..config import PipelineConfig
from ..errors import CheckoutFailure
from ..models import CheckoutInfo
from ..runtime.commands import CommandRunner, run_command


def _read_script_id(project_file: Path) -> str:
    if not project_file.exists():
        raise CheckoutFailure(f"managed-script project file not found: {project_file}")
    try:
        data = json.loads(project_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CheckoutFailure(f"managed-script project file unreadable: {project_file}: {e}")
    if not isinstance(data, dict):
        raise CheckoutFailure(f"managed-script project file must be a JSON object: {project_file}")
    script_id = str(data.get("scriptId") or "").strip()
    if not script_id:
        raise CheckoutFailure(f"managed-script project file has no scriptId: {project_file}")
    return script_id


def resolve_checkout(cfg: PipelineConfig, runner: CommandRunner = run_command) -> CheckoutInfo:
    """Confirm the source tree is present and record the commit being deployed."""
    project_dir = cfg.project_dir
    if not project_dir.is_dir():
        raise CheckoutFailure(f"project directory not found: {project_dir}")

    try:
        res = runner(["git", "rev-parse", "HEAD"], cwd=project_dir)
    except (OSError, subprocess.SubprocessError) as e:
        raise CheckoutFailure(f"failed to launch git: {e}")
    if not res.ok:
        raise CheckoutFailure(f"git rev-parse HEAD failed rc={res.returncode}: {res.diagnostic()}")
    commit = (res.stdout or "").strip()
    if not commit:
        raise CheckoutFailure("git rev-parse HEAD returned no commit")

    script_id = _read_script_id(project_dir / cfg.project_file)
    return CheckoutInfo(project_dir=str(project_dir), commit=commit, script_id=script_id)
