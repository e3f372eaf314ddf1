from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import jsonschema
import yaml

from ..errors import ConfigError
from ..utils.yamlio import read_yaml


CONFIG_ENV_VAR = "SCRIPTDEPLOY_CONFIG"
DEFAULT_CONFIG_REL_PATH = Path("config") / "deploy.yml"

# Built-in defaults. A config file only needs to carry the keys it changes.
DEFAULTS: Dict[str, Any] = {
    "trigger": {
        "event": "push",
        "branch": "main",
    },
    "project": {
        "project_file": ".clasp.json",
    },
    "inputs": {
        "credential_env": "CLASPRC_JSON",
        "deployment_id_env": "DEPLOYMENT_ID",
    },
    "credential": {
        "path": "~/.clasprc.json",
        "echo_on_invalid": True,
        "auth_check": [],
    },
    "runtime": {
        "command": ["node", "--version"],
    },
    "cli": {
        "command": "clasp",
        "package": "@google/clasp",
        "installer": ["npm", "install", "-g"],
        "install": True,
        "force_push": True,
        "auth_flag": "--auth",
        "timeout_s": None,
    },
    "deployment": {
        "description_prefix": "Auto-deployment ",
    },
    "smoke_check": {
        "enabled": False,
        "url_template": "https://script.google.com/macros/s/{deployment_id}/exec",
        "timeout_s": 30,
        "accept_status": [200],
    },
}


@dataclass(frozen=True)
class TriggerConfig:
    event: str
    branch: str


@dataclass(frozen=True)
class InputsConfig:
    credential_env: str
    deployment_id_env: str


@dataclass(frozen=True)
class CredentialConfig:
    path: Path
    echo_on_invalid: bool
    auth_check: Tuple[str, ...]


@dataclass(frozen=True)
class CliConfig:
    command: str
    package: str
    installer: Tuple[str, ...]
    install: bool
    force_push: bool
    auth_flag: str
    timeout_s: Optional[float]


@dataclass(frozen=True)
class SmokeCheckConfig:
    enabled: bool
    url_template: str
    timeout_s: float
    accept_status: Tuple[int, ...]


@dataclass(frozen=True)
class PipelineConfig:
    project_dir: Path
    trigger: TriggerConfig
    project_file: str
    inputs: InputsConfig
    credential: CredentialConfig
    runtime_command: Tuple[str, ...]
    cli: CliConfig
    description_prefix: str
    smoke_check: SmokeCheckConfig
    source_path: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _nonempty_str() -> Dict[str, Any]:
    return {"type": "string", "minLength": 1}


def _argv() -> Dict[str, Any]:
    return {"type": "array", "items": _nonempty_str()}


def _section(props: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "object", "properties": props, "additionalProperties": False}


def _config_schema() -> Dict[str, Any]:
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "properties": {
            "trigger": _section({"event": _nonempty_str(), "branch": _nonempty_str()}),
            "project": _section({"project_file": _nonempty_str()}),
            "inputs": _section({"credential_env": _nonempty_str(), "deployment_id_env": _nonempty_str()}),
            "credential": _section(
                {
                    "path": _nonempty_str(),
                    "echo_on_invalid": {"type": "boolean"},
                    "auth_check": _argv(),
                }
            ),
            "runtime": _section({"command": {**_argv(), "minItems": 1}}),
            "cli": _section(
                {
                    "command": _nonempty_str(),
                    "package": _nonempty_str(),
                    "installer": {**_argv(), "minItems": 1},
                    "install": {"type": "boolean"},
                    "force_push": {"type": "boolean"},
                    "auth_flag": {"type": "string"},
                    "timeout_s": {"type": ["number", "null"], "exclusiveMinimum": 0},
                }
            ),
            "deployment": _section({"description_prefix": {"type": "string", "pattern": "^Auto-deployment "}}),
            "smoke_check": _section(
                {
                    "enabled": {"type": "boolean"},
                    "url_template": {"type": "string", "pattern": "\\{deployment_id\\}"},
                    "timeout_s": {"type": "number", "exclusiveMinimum": 0},
                    "accept_status": {
                        "type": "array",
                        "minItems": 1,
                        "items": {"type": "integer", "minimum": 100, "maximum": 599},
                    },
                }
            ),
        },
        "additionalProperties": False,
    }


def resolve_config_path(project_dir: Path, cli_path: Optional[str] = None) -> Tuple[Path, bool]:
    """Resolve the pipeline config path.

    Precedence:
      1) CLI flag --config
      2) SCRIPTDEPLOY_CONFIG
      3) <project_dir>/config/deploy.yml

    Returns the path and whether it was requested explicitly. An explicit path
    must exist; the default path may be absent, in which case built-in
    defaults apply.
    """
    if cli_path and str(cli_path).strip():
        return Path(str(cli_path).strip()).expanduser().resolve(), True

    env_path = str(os.environ.get(CONFIG_ENV_VAR, "") or "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve(), True

    return (project_dir / DEFAULT_CONFIG_REL_PATH).resolve(), False


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def validate_config_dict(data: Dict[str, Any]) -> None:
    try:
        jsonschema.validate(instance=data, schema=_config_schema())
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"pipeline config schema validation failed at {where}: {e.message}")


def build_pipeline_config(project_dir: Path, data: Dict[str, Any], source_path: str = "") -> PipelineConfig:
    """Validate ``data`` (a partial config) and merge it over the defaults."""
    validate_config_dict(data)
    merged = _merge(DEFAULTS, data)

    cred = merged["credential"]
    cli = merged["cli"]
    smoke = merged["smoke_check"]
    timeout = cli.get("timeout_s")

    return PipelineConfig(
        project_dir=project_dir,
        trigger=TriggerConfig(event=merged["trigger"]["event"], branch=merged["trigger"]["branch"]),
        project_file=merged["project"]["project_file"],
        inputs=InputsConfig(
            credential_env=merged["inputs"]["credential_env"],
            deployment_id_env=merged["inputs"]["deployment_id_env"],
        ),
        credential=CredentialConfig(
            path=Path(cred["path"]).expanduser(),
            echo_on_invalid=bool(cred["echo_on_invalid"]),
            auth_check=tuple(cred["auth_check"]),
        ),
        runtime_command=tuple(merged["runtime"]["command"]),
        cli=CliConfig(
            command=cli["command"],
            package=cli["package"],
            installer=tuple(cli["installer"]),
            install=bool(cli["install"]),
            force_push=bool(cli["force_push"]),
            auth_flag=str(cli["auth_flag"] or "").strip(),
            timeout_s=float(timeout) if timeout is not None else None,
        ),
        description_prefix=merged["deployment"]["description_prefix"],
        smoke_check=SmokeCheckConfig(
            enabled=bool(smoke["enabled"]),
            url_template=smoke["url_template"],
            timeout_s=float(smoke["timeout_s"]),
            accept_status=tuple(int(s) for s in smoke["accept_status"]),
        ),
        source_path=source_path,
        raw=merged,
    )


def load_pipeline_config(project_dir: Path, cli_path: Optional[str] = None) -> PipelineConfig:
    """Load and validate the pipeline config for ``project_dir``.

    Environment overrides:
      - SCRIPTDEPLOY_CONFIG (file path)
    """
    project_dir = Path(project_dir).resolve()
    path, explicit = resolve_config_path(project_dir, cli_path)
    if not path.exists():
        if explicit:
            raise ConfigError(f"pipeline config not found: {path}")
        return build_pipeline_config(project_dir, {})

    try:
        data = read_yaml(path)
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigError(f"pipeline config parse error: {path}: {e}")

    return build_pipeline_config(project_dir, data, source_path=str(path))


def config_as_dict(cfg: PipelineConfig) -> Dict[str, Any]:
    out = copy.deepcopy(cfg.raw) if cfg.raw else {}
    out["project_dir"] = str(cfg.project_dir)
    out["source_path"] = cfg.source_path
    return out
