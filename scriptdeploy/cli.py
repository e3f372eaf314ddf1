from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import PipelineConfig, config_as_dict, load_pipeline_config
from .errors import ConfigError, PipelineError
from .pipeline import DeploymentPipeline
from .secrets.credential import ScopedCredential
from .secrets.inputs import read_inputs
from .source.trigger import describe_mismatch, is_triggered, trigger_from_env
from .utils.fs import atomic_write_text


def _load_config(args: argparse.Namespace) -> PipelineConfig:
    project_dir = Path(args.project_dir).resolve()
    return load_pipeline_config(project_dir, cli_path=args.config)


def _write_report(path: Optional[str], payload: dict) -> None:
    if not path:
        return
    atomic_write_text(Path(path), json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n")


def cmd_run(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    trigger = trigger_from_env(event=args.event, ref=args.ref)
    inputs = read_inputs(cfg.inputs)
    pipeline = DeploymentPipeline(cfg)
    try:
        report = pipeline.run(trigger, inputs)
    finally:
        _write_report(args.report_json, pipeline.report.to_dict())
    if report.status == "SUCCEEDED":
        print(f"[scriptdeploy] deployed {report.deployment_id or '(id not reported)'}: {report.description}")
    return 0


def cmd_check_trigger(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    trigger = trigger_from_env(event=args.event, ref=args.ref)
    if is_triggered(trigger, cfg.trigger):
        print(f"[scriptdeploy] triggered: event={trigger.event_name} ref={trigger.ref}")
        return 0
    print(f"[scriptdeploy] not triggered: {describe_mismatch(trigger, cfg.trigger)}")
    return 1


def cmd_validate_credential(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    inputs = read_inputs(cfg.inputs)
    with ScopedCredential(cfg.credential.path, inputs.credential_json, echo_on_invalid=cfg.credential.echo_on_invalid) as cred:
        cred.materialize()
    print(f"[scriptdeploy] credential from {cfg.inputs.credential_env} is valid JSON")
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    print(json.dumps(config_as_dict(cfg), indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="scriptdeploy", description="Push and deploy a managed-script project on push to main.")
    p.add_argument("--project-dir", default=".", help="Directory holding the script sources and .clasp.json")
    p.add_argument("--config", default=None, help="Pipeline config YAML (default: $SCRIPTDEPLOY_CONFIG or config/deploy.yml)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("run", help="Run the deployment pipeline")
    sp.add_argument("--event", default=None, help="Trigger event name (default: $GITHUB_EVENT_NAME)")
    sp.add_argument("--ref", default=None, help="Trigger ref or branch (default: $GITHUB_REF)")
    sp.add_argument("--report-json", default=None, help="Write the run report to this path")
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("check-trigger", help="Exit 0 if the current event would run the pipeline")
    sp.add_argument("--event", default=None)
    sp.add_argument("--ref", default=None)
    sp.set_defaults(func=cmd_check_trigger)

    sp = sub.add_parser("validate-credential", help="Materialize, validate and remove the credential")
    sp.set_defaults(func=cmd_validate_credential)

    sp = sub.add_parser("show-config", help="Print the resolved pipeline config")
    sp.set_defaults(func=cmd_show_config)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args) or 0)
    except ConfigError as e:
        print(f"[scriptdeploy][FAILED] config: {e}", file=sys.stderr)
        return 2
    except PipelineError as e:
        print(f"[scriptdeploy][FAILED] {e.step}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
