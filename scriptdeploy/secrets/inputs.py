from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..config import InputsConfig


@dataclass(frozen=True)
class PipelineInputs:
    """Secret values injected by the runner for one pipeline run."""

    credential_json: str = field(repr=False)
    deployment_id: str = ""


def read_inputs(cfg: InputsConfig, environ: Optional[Mapping[str, str]] = None) -> PipelineInputs:
    """Read the credential and optional deployment id from the environment.

    Values are taken verbatim apart from line endings introduced by copy/paste;
    validation happens when the credential is materialized.
    """
    env = os.environ if environ is None else environ
    credential = str(env.get(cfg.credential_env, "") or "").rstrip("\r\n")
    deployment_id = str(env.get(cfg.deployment_id_env, "") or "").strip()
    return PipelineInputs(credential_json=credential, deployment_id=deployment_id)
