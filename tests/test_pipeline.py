from __future__ import annotations

import contextlib
import io
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from _testutil import FakeRunner, ensure_repo_on_path, failed, make_config, make_project, push_trigger


VALID_CREDENTIAL = '{"token":"abc"}'


class PipelineTestBase(unittest.TestCase):
    def setUp(self) -> None:
        ensure_repo_on_path()
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        self.project = make_project(self.tmp / "project")
        self.cred_path = self.tmp / "home" / ".clasprc.json"
        self._quiet = contextlib.ExitStack()
        self.stdout = self._quiet.enter_context(contextlib.redirect_stdout(io.StringIO()))
        self.stderr = self._quiet.enter_context(contextlib.redirect_stderr(io.StringIO()))

    def tearDown(self) -> None:
        self._quiet.close()
        self._td.cleanup()

    def build(self, credential: str, /, deployment_id: str = "", runner=None, **sections):
        from scriptdeploy.pipeline import DeploymentPipeline
        from scriptdeploy.secrets.inputs import PipelineInputs

        cfg = make_config(self.project, self.cred_path, **sections)
        runner = runner if runner is not None else FakeRunner()
        clock = lambda: datetime(2026, 10, 16, 12, 30, 5, tzinfo=timezone.utc)  # noqa: E731
        pipeline = DeploymentPipeline(cfg, runner=runner, clock=clock)
        inputs = PipelineInputs(credential_json=credential, deployment_id=deployment_id)
        return pipeline, runner, inputs


class TestPipelineBranches(PipelineTestBase):
    def test_empty_identifier_creates_new_deployment(self) -> None:
        from scriptdeploy.models import NewDeployment

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, "")
        report = pipeline.run(push_trigger(), inputs)

        self.assertEqual(report.status, "SUCCEEDED")
        self.assertIsInstance(report.target, NewDeployment)
        deploys = runner.argv_for("clasp deploy")
        self.assertEqual(len(deploys), 1)
        self.assertNotIn("--deploymentId", deploys[0])
        self.assertTrue(report.description.startswith("Auto-deployment "))
        self.assertEqual(report.description, "Auto-deployment 2026-10-16T12:30:05Z")
        self.assertEqual(report.deployment_id, "AKfycbNEWDEPLOYMENT123")

    def test_identifier_updates_existing_deployment(self) -> None:
        from scriptdeploy.models import ExistingDeployment

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, "AKDe123")
        report = pipeline.run(push_trigger(), inputs)

        self.assertEqual(report.status, "SUCCEEDED")
        self.assertEqual(report.target, ExistingDeployment(deployment_id="AKDe123"))
        deploys = runner.argv_for("clasp deploy")
        self.assertEqual(len(deploys), 1)
        argv = deploys[0]
        self.assertEqual(argv[argv.index("--deploymentId") + 1], "AKDe123")
        self.assertEqual(argv[argv.index("--description") + 1], report.description)

    def test_whitespace_identifier_counts_as_empty(self) -> None:
        from scriptdeploy.models import NewDeployment

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, "   ")
        report = pipeline.run(push_trigger(), inputs)
        self.assertIsInstance(report.target, NewDeployment)
        self.assertNotIn("--deploymentId", runner.argv_for("clasp deploy")[0])

    def test_step_order(self) -> None:
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL)
        report = pipeline.run(push_trigger(), inputs)

        self.assertEqual(
            runner.keys(),
            ["git rev-parse", "node --version", "npm install", "clasp push", "clasp deploy"],
        )
        self.assertEqual(
            [s.name for s in report.steps],
            [
                "checkout",
                "provision_runtime",
                "install_cli",
                "materialize_credential",
                "sync_source",
                "publish_deployment",
                "verify_deployment",
                "cleanup_credential",
            ],
        )
        self.assertEqual(report.step("verify_deployment").status, "SKIPPED")
        self.assertEqual(report.checkout.commit, "0123456789abcdef0123456789abcdef01234567")
        self.assertEqual(report.runtime_version, "v20.11.1")

    def test_push_is_forced_and_runs_in_project_dir(self) -> None:
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL)
        pipeline.run(push_trigger(), inputs)

        for argv, cwd in runner.calls:
            if argv[0] == "clasp":
                self.assertEqual(Path(cwd).resolve(), self.project.resolve())
        push = runner.argv_for("clasp push")[0]
        self.assertIn("--force", push)
        self.assertEqual(push[1:3], ["--auth", str(self.cred_path)])


class TestPipelineCredential(PipelineTestBase):
    def test_credential_exists_during_push_and_is_removed_after(self) -> None:
        seen = {}

        def on_push(argv):
            seen["exists"] = self.cred_path.exists()
            seen["content"] = self.cred_path.read_text(encoding="utf-8")

        runner = FakeRunner(hooks={"clasp push": on_push})
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, runner=runner)
        report = pipeline.run(push_trigger(), inputs)

        self.assertTrue(seen["exists"])
        self.assertEqual(seen["content"].strip(), VALID_CREDENTIAL)
        self.assertFalse(self.cred_path.exists())
        self.assertEqual(report.step("cleanup_credential").status, "COMPLETED")

    def test_malformed_credential_fails_before_sync(self) -> None:
        from scriptdeploy.errors import CredentialMalformed

        pipeline, runner, inputs = self.build("not-json", "AKDe123")
        with self.assertRaises(CredentialMalformed) as ctx:
            pipeline.run(push_trigger(), inputs)

        self.assertEqual(ctx.exception.step, "materialize_credential")
        self.assertNotIn("clasp push", runner.keys())
        self.assertNotIn("clasp deploy", runner.keys())
        self.assertFalse(self.cred_path.exists())

        report = pipeline.report
        self.assertEqual(report.status, "FAILED")
        self.assertEqual(report.error_step, "materialize_credential")
        self.assertFalse(report.executed("sync_source"))
        self.assertFalse(report.executed("publish_deployment"))
        self.assertIn("Invalid JSON in credentials", self.stderr.getvalue())
        self.assertIn("not-json", self.stderr.getvalue())

    def test_malformed_credential_redacted_when_configured(self) -> None:
        from scriptdeploy.errors import CredentialMalformed

        pipeline, runner, inputs = self.build(
            "not-json-secret", credential={"echo_on_invalid": False}
        )
        with self.assertRaises(CredentialMalformed):
            pipeline.run(push_trigger(), inputs)
        self.assertNotIn("not-json-secret", self.stderr.getvalue())
        self.assertIn("redacted", self.stderr.getvalue())

    def test_undecodable_credential_fails_before_sync(self) -> None:
        from scriptdeploy.errors import CredentialMalformed

        payload = b'{"token":"\xff"}'.decode("utf-8", "surrogateescape")
        pipeline, runner, inputs = self.build(payload)
        with self.assertRaises(CredentialMalformed) as ctx:
            pipeline.run(push_trigger(), inputs)

        self.assertEqual(ctx.exception.step, "materialize_credential")
        self.assertNotIn("clasp push", runner.keys())
        self.assertFalse(self.cred_path.exists())
        self.assertEqual(pipeline.report.status, "FAILED")
        self.assertEqual(pipeline.report.error_step, "materialize_credential")
        self.assertIn("Invalid JSON in credentials", self.stderr.getvalue())

    def test_empty_credential_is_malformed(self) -> None:
        from scriptdeploy.errors import CredentialMalformed

        pipeline, runner, inputs = self.build("")
        with self.assertRaises(CredentialMalformed):
            pipeline.run(push_trigger(), inputs)
        self.assertNotIn("clasp push", runner.keys())
        self.assertFalse(self.cred_path.exists())

    def test_auth_check_rejection(self) -> None:
        from scriptdeploy.errors import CredentialRejected

        runner = FakeRunner(results={"clasp login": failed(["clasp", "login"], "not logged in")})
        pipeline, runner, inputs = self.build(
            VALID_CREDENTIAL, runner=runner, credential={"auth_check": ["login", "--status"]}
        )
        with self.assertRaises(CredentialRejected) as ctx:
            pipeline.run(push_trigger(), inputs)
        self.assertIn("not logged in", str(ctx.exception))
        self.assertNotIn("clasp push", runner.keys())
        self.assertFalse(self.cred_path.exists())


class TestPipelineFailures(PipelineTestBase):
    def _assert_failed_at(self, runner, exc_type, step: str, absent_keys) -> None:
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, "AKDe123", runner=runner)
        with self.assertRaises(exc_type):
            pipeline.run(push_trigger(), inputs)
        self.assertFalse(self.cred_path.exists())
        self.assertEqual(pipeline.report.error_step, step)
        self.assertEqual(pipeline.report.step(step).status, "FAILED")
        for key in absent_keys:
            self.assertNotIn(key, runner.keys())
        self.assertEqual(pipeline.report.steps[-1].name, "cleanup_credential")

    def test_checkout_failure(self) -> None:
        from scriptdeploy.errors import CheckoutFailure

        runner = FakeRunner(results={"git rev-parse": failed(["git"], "not a git repository")})
        self._assert_failed_at(runner, CheckoutFailure, "checkout", ["node --version", "clasp push"])

    def test_runtime_missing(self) -> None:
        from scriptdeploy.errors import EnvironmentSetupFailure

        runner = FakeRunner(results={"node --version": FileNotFoundError("node")})
        self._assert_failed_at(runner, EnvironmentSetupFailure, "provision_runtime", ["npm install", "clasp push"])

    def test_cli_install_failure(self) -> None:
        from scriptdeploy.errors import EnvironmentSetupFailure

        runner = FakeRunner(results={"npm install": failed(["npm"], "E404")})
        self._assert_failed_at(runner, EnvironmentSetupFailure, "install_cli", ["clasp push", "clasp deploy"])

    def test_sync_failure(self) -> None:
        from scriptdeploy.errors import SyncFailure

        runner = FakeRunner(results={"clasp push": failed(["clasp"], "quota exceeded")})
        self._assert_failed_at(runner, SyncFailure, "sync_source", ["clasp deploy"])

    def test_deploy_failure(self) -> None:
        from scriptdeploy.errors import DeployFailure

        runner = FakeRunner(results={"clasp deploy": failed(["clasp"], "deployment not found")})
        self._assert_failed_at(runner, DeployFailure, "publish_deployment", [])

    def test_unexpected_exception_still_cleans_up(self) -> None:
        runner = FakeRunner(results={"clasp push": RuntimeError("unexpected")})
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, runner=runner)
        with self.assertRaises(RuntimeError):
            pipeline.run(push_trigger(), inputs)
        self.assertFalse(self.cred_path.exists())
        self.assertEqual(pipeline.report.step("sync_source").status, "FAILED")
        self.assertEqual(pipeline.report.status, "FAILED")
        self.assertEqual(pipeline.report.error_step, "sync_source")
        self.assertEqual(pipeline.report.error, "RuntimeError: unexpected")

    def test_interrupt_marks_step_failed(self) -> None:
        runner = FakeRunner(results={"clasp deploy": KeyboardInterrupt()})
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, runner=runner)
        with self.assertRaises(KeyboardInterrupt):
            pipeline.run(push_trigger(), inputs)

        report = pipeline.report
        self.assertEqual(report.step("sync_source").status, "COMPLETED")
        self.assertEqual(report.step("publish_deployment").status, "FAILED")
        self.assertEqual(report.step("publish_deployment").message, "KeyboardInterrupt: ")
        self.assertEqual(report.status, "FAILED")
        self.assertEqual(report.error_step, "publish_deployment")
        self.assertEqual(report.step("cleanup_credential").status, "COMPLETED")
        self.assertFalse(self.cred_path.exists())

    def test_cleanup_failure_is_not_fatal(self) -> None:
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL)
        with mock.patch("scriptdeploy.secrets.credential.remove_file", side_effect=PermissionError("denied")):
            report = pipeline.run(push_trigger(), inputs)

        self.assertEqual(report.status, "SUCCEEDED")
        self.assertEqual(report.step("cleanup_credential").status, "FAILED")
        self.assertIn("failed to remove credential file", self.stderr.getvalue())


class TestPipelineTriggerAndOptions(PipelineTestBase):
    def test_non_main_push_is_skipped(self) -> None:
        from scriptdeploy.models import TriggerEvent

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL)
        report = pipeline.run(TriggerEvent(event_name="push", ref="refs/heads/feature"), inputs)

        self.assertEqual(report.status, "SKIPPED")
        self.assertEqual(runner.calls, [])
        self.assertEqual(report.steps, [])
        self.assertFalse(self.cred_path.exists())

    def test_pull_request_is_skipped(self) -> None:
        from scriptdeploy.models import TriggerEvent

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL)
        report = pipeline.run(TriggerEvent(event_name="pull_request", ref="refs/heads/main"), inputs)
        self.assertEqual(report.status, "SKIPPED")
        self.assertEqual(runner.calls, [])

    def test_install_disabled(self) -> None:
        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, cli={"install": False})
        report = pipeline.run(push_trigger(), inputs)
        self.assertNotIn("npm install", runner.keys())
        self.assertEqual(report.step("install_cli").status, "SKIPPED")

    def test_smoke_check_enabled(self) -> None:
        session = mock.Mock()
        session.get.return_value = mock.Mock(status_code=200, text="ok")

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, smoke_check={"enabled": True})
        pipeline.session = session
        report = pipeline.run(push_trigger(), inputs)

        self.assertEqual(report.status, "SUCCEEDED")
        self.assertEqual(report.step("verify_deployment").status, "COMPLETED")
        url = session.get.call_args[0][0]
        self.assertEqual(url, "https://script.google.com/macros/s/AKfycbNEWDEPLOYMENT123/exec")

    def test_smoke_check_failure(self) -> None:
        from scriptdeploy.errors import VerificationFailure

        session = mock.Mock()
        session.get.return_value = mock.Mock(status_code=500, text="error")

        pipeline, runner, inputs = self.build(VALID_CREDENTIAL, smoke_check={"enabled": True})
        pipeline.session = session
        with self.assertRaises(VerificationFailure):
            pipeline.run(push_trigger(), inputs)
        self.assertFalse(self.cred_path.exists())
        self.assertEqual(pipeline.report.error_step, "verify_deployment")


class TestBuildDescription(unittest.TestCase):
    def test_prefix_and_timestamp(self) -> None:
        ensure_repo_on_path()
        from scriptdeploy.pipeline import build_description

        d = build_description("Auto-deployment ")
        self.assertTrue(d.startswith("Auto-deployment "))
        self.assertTrue(len(d) > len("Auto-deployment "))
        self.assertNotIn(" ", d[len("Auto-deployment "):])


if __name__ == "__main__":
    unittest.main()
