from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Type

from ..config import CliConfig
from ..errors import CredentialRejected, DeployFailure, PipelineError, SyncFailure
from ..models import DeploymentTarget, ExistingDeployment, NewDeployment
from ..runtime.commands import CommandResult, CommandRunner, run_command
from ..secrets.credential import ScopedCredential


# clasp 2.x prints "- <id> @<version>."; 3.x prints "Deployed <id> @<version>".
_DEPLOYED_RE = re.compile(r"(?:^-\s+|Deployed\s+)([A-Za-z0-9_-]{8,})\s+@(\w+)", re.MULTILINE)


@dataclass(frozen=True)
class DeployResult:
    target: DeploymentTarget
    description: str
    deployment_id: str = ""
    version: str = ""


def parse_deployment_output(text: str) -> Tuple[str, str]:
    """Return (deployment_id, version) from the CLI's deploy output, or empty strings."""
    m = _DEPLOYED_RE.search(text or "")
    if not m:
        return "", ""
    return m.group(1), m.group(2)


class ClaspClient:
    """Thin wrapper over the ``clasp`` CLI.

    Every call runs in ``project_dir`` (where ``.clasp.json`` lives). When a
    credential handle is passed its path is given to the CLI explicitly
    through ``auth_flag``.
    """

    def __init__(self, cfg: CliConfig, *, project_dir: Path, runner: CommandRunner = run_command):
        self.cfg = cfg
        self.project_dir = Path(project_dir)
        self.runner = runner

    def argv(self, credential: Optional[ScopedCredential], *args: str) -> List[str]:
        out = [self.cfg.command]
        if credential is not None and self.cfg.auth_flag:
            out += [self.cfg.auth_flag, str(credential.path)]
        out.extend(args)
        return out

    def _call(self, argv: Sequence[str], error_cls: Type[PipelineError], what: str) -> CommandResult:
        try:
            res = self.runner(argv, cwd=self.project_dir, timeout=self.cfg.timeout_s)
        except (OSError, subprocess.SubprocessError) as e:
            raise error_cls(f"{what}: failed to launch {argv[0]!r}: {e}")
        if not res.ok:
            raise error_cls(f"{what} failed rc={res.returncode}: {res.diagnostic()}")
        return res

    def check_auth(self, credential: ScopedCredential, check_args: Sequence[str]) -> CommandResult:
        return self._call(self.argv(credential, *check_args), CredentialRejected, "auth check")

    def push(self, credential: Optional[ScopedCredential]) -> CommandResult:
        args = ["push"]
        if self.cfg.force_push:
            args.append("--force")
        return self._call(self.argv(credential, *args), SyncFailure, "push")

    def deploy(self, credential: Optional[ScopedCredential], target: DeploymentTarget, description: str) -> DeployResult:
        if isinstance(target, ExistingDeployment):
            args = ["deploy", "--deploymentId", target.deployment_id, "--description", description]
        elif isinstance(target, NewDeployment):
            args = ["deploy", "--description", description]
        else:
            raise DeployFailure(f"unsupported deployment target: {target!r}")

        res = self._call(self.argv(credential, *args), DeployFailure, "deploy")
        dep_id, version = parse_deployment_output(res.stdout)
        if not dep_id and isinstance(target, ExistingDeployment):
            dep_id = target.deployment_id
        return DeployResult(target=target, description=description, deployment_id=dep_id, version=version)
