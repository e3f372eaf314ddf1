from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for deployment pipeline errors."""

    step: str = "pipeline"

    def __init__(self, message: str, *, step: Optional[str] = None):
        super().__init__(message)
        if step:
            self.step = step


class ConfigError(PipelineError):
    """Raised when the pipeline config file is missing, unreadable, or fails validation."""

    step = "config"


class CheckoutFailure(PipelineError):
    """Raised when the source tree or its HEAD commit cannot be resolved."""

    step = "checkout"


class EnvironmentSetupFailure(PipelineError):
    """Raised when the runtime is unavailable or the CLI tool failed to install."""

    step = "provision_runtime"


class CredentialMalformed(PipelineError):
    """Raised when the supplied credential is missing or not valid JSON."""

    step = "materialize_credential"


class CredentialRejected(PipelineError):
    """Raised when the CLI tool's own auth check refuses the credential."""

    step = "materialize_credential"


class SyncFailure(PipelineError):
    """Raised when pushing the source tree to the remote project failed."""

    step = "sync_source"


class DeployFailure(PipelineError):
    """Raised when creating or updating the deployment record failed."""

    step = "publish_deployment"


class VerificationFailure(PipelineError):
    """Raised when the post-deploy smoke check did not get an accepted response."""

    step = "verify_deployment"
