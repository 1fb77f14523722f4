import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from bratsutils.entrypoints.cli import EXIT_CONFIG, EXIT_LAUNCH, EXIT_TIMEOUT, app

REQUIRED = (
    "BOSH_BINARY_PATH",
    "BOSH_DIRECTOR_RELEASE_PATH",
    "STEMCELL_OS",
    "BOSH_ENVIRONMENT",
    "BOSH_DEPLOYMENT_PATH",
)


def _script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path


@pytest.fixture
def suite_env(tmp_path, monkeypatch):
    scripts = tmp_path / "scripts"
    scripts.mkdir()
    monkeypatch.setenv("BOSH_BINARY_PATH", "/usr/local/bin/bosh")
    monkeypatch.setenv("BOSH_DIRECTOR_RELEASE_PATH", "/tmp/bosh-dev.tgz")
    monkeypatch.setenv("STEMCELL_OS", "ubuntu-jammy")
    monkeypatch.setenv("BOSH_ENVIRONMENT", "10.0.0.6")
    monkeypatch.setenv("BOSH_DEPLOYMENT_PATH", str(tmp_path / "bosh-deployment"))
    monkeypatch.setenv("BRATS_ASSETS_PATH", str(tmp_path / "assets"))
    monkeypatch.setenv("BRATS_SCRIPTS_PATH", str(scripts))
    monkeypatch.delenv("PYTEST_XDIST_WORKER", raising=False)
    return scripts


def test_cli_run_success():
    result = CliRunner().invoke(app, ["run", "--", "sh", "-c", "echo done; exit 0"])
    assert result.exit_code == 0
    assert "done" in result.output


def test_cli_run_mismatch_exits_nonzero():
    result = CliRunner().invoke(app, ["run", "--expect-exit", "0", "--", "sh", "-c", "exit 2"])
    assert result.exit_code == 1
    assert "exit_code_mismatch" in result.output


def test_cli_run_passes_child_flags_through():
    result = CliRunner().invoke(app, ["run", "sh", "-c", "echo child; exit 2", "--timeout", "5"])
    assert result.exit_code == 1
    assert "child" in result.output
    assert "exit_code_mismatch" in result.output


def test_cli_run_json_output():
    result = CliRunner().invoke(
        app,
        ["run", "--json", "--pattern", "bad config", "--expect-exit", "1", "--", "sh", "-c", 'echo "bad config"; exit 1'],
    )
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["outcome"] == "exit_code_matched"
    assert payload["exit_code"] == 1
    assert "bad config" in payload["output"]


def test_cli_run_timeout():
    result = CliRunner().invoke(
        app, ["run", "--json", "--timeout", "0.3", "--terminate-on-timeout", "--", "sh", "-c", "sleep 10"]
    )
    assert result.exit_code == EXIT_TIMEOUT
    assert json.loads(result.stdout)["outcome"] == "timed_out"


def test_cli_run_missing_executable(tmp_path):
    result = CliRunner().invoke(app, ["run", str(tmp_path / "missing")])
    assert result.exit_code == EXIT_LAUNCH
    assert "Could not start" in result.output


def test_cli_director_commands_need_configuration(monkeypatch):
    for name in REQUIRED:
        monkeypatch.delenv(name, raising=False)
    result = CliRunner().invoke(app, ["stop-director"])
    assert result.exit_code == EXIT_CONFIG
    assert "Expected BOSH_BINARY_PATH" in result.output


def test_cli_start_director_runs_script_for_worker(suite_env):
    _script(suite_env / "start-inner-bosh-parallel.sh", 'echo "deploying worker $1 with $2"\n')
    result = CliRunner().invoke(app, ["start-director", "--worker-index", "3", "--", "--recreate"])
    assert result.exit_code == 0
    assert "deploying worker 3 with --recreate" in result.output


def test_cli_start_director_expecting_failure(suite_env):
    _script(suite_env / "start-inner-bosh-parallel.sh", 'echo "Error: bad config"\nexit 1\n')
    result = CliRunner().invoke(app, ["start-director", "--expect-error", "bad config"])
    assert result.exit_code == 0


def test_cli_stop_director_surfaces_failure(suite_env):
    _script(suite_env / "destroy-inner-bosh.sh", "exit 3\n")
    result = CliRunner().invoke(app, ["stop-director"])
    assert result.exit_code == 1
    assert "exited with 3, expected 0" in result.output


def test_cli_upload_director_release_exports_path(suite_env):
    _script(suite_env / "create-and-upload-release.sh", 'echo "release=$bosh_release_path"\n')
    result = CliRunner().invoke(app, ["upload-director-release"])
    assert result.exit_code == 0
    assert "release=/tmp/bosh-dev.tgz" in result.output


def test_cli_create_db_requires_db_credentials(suite_env, monkeypatch):
    monkeypatch.delenv("GCP_MYSQL_EXTERNAL_DB_HOST", raising=False)
    result = CliRunner().invoke(app, ["create-db", "gcp_mysql"])
    assert result.exit_code == EXIT_CONFIG
    assert "GCP_MYSQL_EXTERNAL_DB_HOST" in result.output
