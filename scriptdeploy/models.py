from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

StepStatus = Literal["COMPLETED", "FAILED", "SKIPPED"]

# Pipeline step names, in execution order.
STEP_CHECKOUT = "checkout"
STEP_PROVISION_RUNTIME = "provision_runtime"
STEP_INSTALL_CLI = "install_cli"
STEP_MATERIALIZE_CREDENTIAL = "materialize_credential"
STEP_SYNC_SOURCE = "sync_source"
STEP_PUBLISH_DEPLOYMENT = "publish_deployment"
STEP_VERIFY_DEPLOYMENT = "verify_deployment"
STEP_CLEANUP_CREDENTIAL = "cleanup_credential"


@dataclass(frozen=True)
class NewDeployment:
    """Publish a brand-new deployment."""

    kind: Literal["new"] = "new"


@dataclass(frozen=True)
class ExistingDeployment:
    """Update an existing deployment in place."""

    deployment_id: str
    kind: Literal["existing"] = "existing"

    def __post_init__(self) -> None:
        if not str(self.deployment_id or "").strip():
            raise ValueError("ExistingDeployment requires a non-empty deployment_id")


DeploymentTarget = Union[NewDeployment, ExistingDeployment]


def deployment_target_from_identifier(identifier: Optional[str]) -> DeploymentTarget:
    """Decide the publish branch once: a non-blank identifier selects the update path."""
    ident = str(identifier or "").strip()
    if ident:
        return ExistingDeployment(deployment_id=ident)
    return NewDeployment()


@dataclass(frozen=True)
class TriggerEvent:
    """The VCS event that started a run (GitHub Actions naming)."""

    event_name: str
    ref: str

    @property
    def branch(self) -> str:
        prefix = "refs/heads/"
        if self.ref.startswith(prefix):
            return self.ref[len(prefix):]
        return ""


@dataclass(frozen=True)
class CheckoutInfo:
    project_dir: str
    commit: str
    script_id: str = ""


@dataclass
class StepRecord:
    name: str
    status: StepStatus
    started_at: str = ""
    ended_at: str = ""
    message: str = ""


@dataclass
class RunReport:
    """Outcome of one pipeline run. Serialised as the optional JSON report."""

    status: str = "PENDING"  # PENDING|SKIPPED|SUCCEEDED|FAILED
    trigger: Optional[TriggerEvent] = None
    checkout: Optional[CheckoutInfo] = None
    runtime_version: str = ""
    target: Optional[DeploymentTarget] = None
    description: str = ""
    deployment_id: str = ""
    steps: List[StepRecord] = field(default_factory=list)
    error: str = ""
    error_step: str = ""

    def step(self, name: str) -> Optional[StepRecord]:
        for s in self.steps:
            if s.name == name:
                return s
        return None

    def executed(self, name: str) -> bool:
        s = self.step(name)
        return s is not None and s.status != "SKIPPED"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
