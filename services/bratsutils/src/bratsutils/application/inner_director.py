from __future__ import annotations

import logging

from bratsutils.application.expectations import expect_exit, expect_failure
from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.external_db import ExternalDBConfig
from bratsutils.domain.outcome import AwaitResult
from bratsutils.domain.suite import SuiteConfig
from bratsutils.ports.process_supervisor import ProcessSupervisorPort

log = logging.getLogger(__name__)

START_TIMEOUT = 25 * 60
STOP_TIMEOUT = 15 * 60
CREATE_RELEASE_TIMEOUT = 5 * 60
UPLOAD_STEMCELL_TIMEOUT = 5 * 60
UPLOAD_RELEASE_TIMEOUT = 2 * 60

START_SCRIPT = "start-inner-bosh-parallel.sh"
STOP_SCRIPT = "destroy-inner-bosh.sh"
CREATE_RELEASE_SCRIPT = "create-and-upload-release.sh"
XENIAL_OPS_FILE = "inner-bosh-xenial-ops.yml"


def bosh_command(suite: SuiteConfig, *args: str) -> ExternalCommand:
    return ExternalCommand.of(suite.bosh_binary_path, *args)


def outer_bosh_command(suite: SuiteConfig, *args: str) -> ExternalCommand:
    return ExternalCommand.of(suite.outer_bosh_binary_path, *args)


def start_inner_bosh_command(suite: SuiteConfig, *args: str) -> ExternalCommand:
    effective = [str(suite.worker_index), *args]
    if suite.uses_xenial:
        effective += ["-o", str(suite.asset_path(XENIAL_OPS_FILE))]
    return ExternalCommand.of(suite.script_path(START_SCRIPT), *effective)


def start_inner_bosh(
    suite: SuiteConfig,
    supervisor: ProcessSupervisorPort,
    *args: str,
    expected_error: str | None = None,
) -> AwaitResult:
    """Deploy this worker's inner director.

    With ``expected_error`` the deploy must fail: the script has to print the
    pattern and then exit 1.
    """
    command = start_inner_bosh_command(suite, *args)
    log.info("Starting inner director %s", suite.director_name)
    if expected_error is not None:
        return expect_failure(supervisor, command, START_TIMEOUT, expected_error, exit_code=1)
    return expect_exit(supervisor, command, START_TIMEOUT)


def create_and_upload_release(suite: SuiteConfig, supervisor: ProcessSupervisorPort) -> AwaitResult:
    command = ExternalCommand.of(
        suite.script_path(CREATE_RELEASE_SCRIPT),
        str(suite.worker_index),
        env={"bosh_release_path": suite.director_release_path},
    )
    return expect_exit(supervisor, command, CREATE_RELEASE_TIMEOUT)


def stop_inner_bosh(suite: SuiteConfig, supervisor: ProcessSupervisorPort) -> AwaitResult:
    log.info("Destroying inner director %s", suite.director_name)
    command = ExternalCommand.of(suite.script_path(STOP_SCRIPT), str(suite.worker_index))
    return expect_exit(supervisor, command, STOP_TIMEOUT)


def upload_stemcell(
    suite: SuiteConfig, supervisor: ProcessSupervisorPort, stemcell_url: str
) -> AwaitResult:
    command = bosh_command(suite, "-n", "upload-stemcell", stemcell_url)
    return expect_exit(supervisor, command, UPLOAD_STEMCELL_TIMEOUT)


def upload_release(
    suite: SuiteConfig, supervisor: ProcessSupervisorPort, release_url: str
) -> AwaitResult:
    command = bosh_command(suite, "-n", "upload-release", release_url)
    return expect_exit(supervisor, command, UPLOAD_RELEASE_TIMEOUT)


def external_db_options(suite: SuiteConfig, db: ExternalDBConfig) -> list[str]:
    options = [
        "-o", str(suite.bosh_deployment_asset_path("misc/external-db.yml")),
        "-o", str(suite.bosh_deployment_asset_path("experimental/db-enable-tls.yml")),
        "-o", str(suite.asset_path(db.connection_options_file)),
        "--vars-file", str(suite.asset_path(db.connection_var_file)),
        f"--var-file=db_ca={db.ca_cert_path}",
        "-v", f"external_db_host={db.host}",
        "-v", f"external_db_user={db.user}",
        "-v", f"external_db_password={db.password}",
        "-v", f"external_db_name={db.db_name}",
    ]
    if db.mutual_tls:
        options += [
            "-o", str(suite.bosh_deployment_asset_path("experimental/db-enable-mutual-tls.yml")),
            "-o", str(suite.asset_path("tls-skip-host-verify.yml")),
            f"--var-file=db_client_certificate={db.client_cert_path}",
            f"--var-file=db_client_private_key={db.client_key_path}",
        ]
    return options
