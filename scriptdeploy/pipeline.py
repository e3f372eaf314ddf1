"""Deployment pipeline orchestration.

Steps run strictly in order and the first failure aborts the rest:

  checkout -> provision_runtime -> install_cli -> materialize_credential
  -> sync_source -> publish_deployment -> verify_deployment (optional)

The credential file lives inside a ``ScopedCredential`` block, so
``cleanup_credential`` happens on every exit path, including unexpected
exceptions. Cleanup problems are reported but never fail the run.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional

import requests

from .clasp.client import ClaspClient
from .config import PipelineConfig
from .errors import PipelineError
from .models import (
    STEP_CHECKOUT,
    STEP_CLEANUP_CREDENTIAL,
    STEP_INSTALL_CLI,
    STEP_MATERIALIZE_CREDENTIAL,
    STEP_PROVISION_RUNTIME,
    STEP_PUBLISH_DEPLOYMENT,
    STEP_SYNC_SOURCE,
    STEP_VERIFY_DEPLOYMENT,
    RunReport,
    StepRecord,
    TriggerEvent,
    deployment_target_from_identifier,
)
from .runtime.commands import CommandRunner, run_command
from .runtime.toolchain import ensure_runtime, install_cli
from .secrets.credential import ScopedCredential
from .secrets.inputs import PipelineInputs
from .source.checkout import resolve_checkout
from .source.trigger import describe_mismatch, is_triggered
from .utils.time import utcnow_iso
from .verify.smoke import check_deployment


def build_description(prefix: str, now: Optional[datetime] = None) -> str:
    return f"{prefix}{utcnow_iso(now)}"


class DeploymentPipeline:
    """One pipeline run. ``report`` is populated as steps complete, also on failure."""

    def __init__(
        self,
        cfg: PipelineConfig,
        *,
        runner: CommandRunner = run_command,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cfg = cfg
        self.runner = runner
        self.session = session
        self.clock = clock
        self.client = ClaspClient(cfg.cli, project_dir=cfg.project_dir, runner=runner)
        self.report = RunReport()

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock is not None else None

    @contextmanager
    def _step(self, name: str) -> Iterator[StepRecord]:
        rec = StepRecord(name=name, status="COMPLETED", started_at=utcnow_iso())
        try:
            yield rec
        except PipelineError as e:
            e.step = name
            rec.status = "FAILED"
            rec.message = str(e)
            raise
        except BaseException as e:
            rec.status = "FAILED"
            rec.message = f"{e.__class__.__name__}: {e}"
            raise
        finally:
            rec.ended_at = utcnow_iso()
            self.report.steps.append(rec)
            print(f"[pipeline] step={name} status={rec.status}")

    def _skip(self, name: str, message: str) -> None:
        now = utcnow_iso()
        self.report.steps.append(StepRecord(name=name, status="SKIPPED", started_at=now, ended_at=now, message=message))
        print(f"[pipeline] step={name} status=SKIPPED ({message})")

    def run(self, trigger: TriggerEvent, inputs: PipelineInputs) -> RunReport:
        """Execute the pipeline for ``trigger``.

        Returns the report on success or skip. Raises the failing step's
        ``PipelineError`` otherwise. Any other exception is re-raised as is.
        In both cases ``self.report`` is marked FAILED and keeps the partial
        record.
        """
        cfg = self.cfg
        report = self.report
        report.trigger = trigger

        if not is_triggered(trigger, cfg.trigger):
            report.status = "SKIPPED"
            print(f"[pipeline] not triggered: {describe_mismatch(trigger, cfg.trigger)}")
            return report

        credential = ScopedCredential(
            cfg.credential.path,
            inputs.credential_json,
            echo_on_invalid=cfg.credential.echo_on_invalid,
        )
        try:
            with credential:
                self._run_steps(credential, inputs)
        except PipelineError as e:
            report.status = "FAILED"
            report.error = str(e)
            report.error_step = e.step
            raise
        except BaseException as e:
            report.status = "FAILED"
            report.error = f"{e.__class__.__name__}: {e}"
            report.error_step = self._failed_step_name()
            raise
        finally:
            self._record_cleanup(credential)

        report.status = "SUCCEEDED"
        return report

    def _run_steps(self, credential: ScopedCredential, inputs: PipelineInputs) -> None:
        cfg = self.cfg
        report = self.report

        with self._step(STEP_CHECKOUT):
            report.checkout = resolve_checkout(cfg, self.runner)
            print(f"[pipeline] commit={report.checkout.commit} script_id={report.checkout.script_id}")

        with self._step(STEP_PROVISION_RUNTIME):
            report.runtime_version = ensure_runtime(cfg, self.runner)

        if cfg.cli.install:
            with self._step(STEP_INSTALL_CLI):
                install_cli(cfg, self.runner)
        else:
            self._skip(STEP_INSTALL_CLI, "cli.install is false")

        with self._step(STEP_MATERIALIZE_CREDENTIAL):
            credential.materialize()
            if cfg.credential.auth_check:
                self.client.check_auth(credential, cfg.credential.auth_check)

        with self._step(STEP_SYNC_SOURCE):
            self.client.push(credential)

        target = deployment_target_from_identifier(inputs.deployment_id)
        description = build_description(cfg.description_prefix, self._now())
        report.target = target
        report.description = description

        with self._step(STEP_PUBLISH_DEPLOYMENT) as rec:
            result = self.client.deploy(credential, target, description)
            report.deployment_id = result.deployment_id
            rec.message = f"{target.kind} deployment_id={result.deployment_id or '?'} version={result.version or '?'}"

        if cfg.smoke_check.enabled:
            with self._step(STEP_VERIFY_DEPLOYMENT):
                check_deployment(cfg.smoke_check, report.deployment_id, session=self.session)
        else:
            self._skip(STEP_VERIFY_DEPLOYMENT, "smoke_check.enabled is false")

    def _failed_step_name(self) -> str:
        for rec in reversed(self.report.steps):
            if rec.status == "FAILED":
                return rec.name
        return "pipeline"

    def _record_cleanup(self, credential: ScopedCredential) -> None:
        now = utcnow_iso()
        if credential.released:
            rec = StepRecord(name=STEP_CLEANUP_CREDENTIAL, status="COMPLETED", started_at=now, ended_at=now)
        else:
            rec = StepRecord(
                name=STEP_CLEANUP_CREDENTIAL,
                status="FAILED",
                started_at=now,
                ended_at=now,
                message=f"credential file may remain at {credential.path} (non-fatal)",
            )
        self.report.steps.append(rec)
        print(f"[pipeline] step={STEP_CLEANUP_CREDENTIAL} status={rec.status}")

