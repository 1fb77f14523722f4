from __future__ import annotations

import logging
from typing import Mapping

from bratsutils.adapters.certificates.stage import CertificateStage
from bratsutils.adapters.environment.suite_env import assert_env_exists
from bratsutils.adapters.errors import CommandFailed
from bratsutils.application.expectations import expect_exit
from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.external_db import (
    DatabaseType,
    ExternalDBConfig,
    database_name,
    database_type_for,
)
from bratsutils.domain.suite import SuiteConfig
from bratsutils.ports.process_supervisor import ProcessSupervisorPort

log = logging.getLogger(__name__)

DB_COMMAND_TIMEOUT = 2 * 60
CA_LOOKUP_TIMEOUT = 60


def _read_ca(
    dbaas: str,
    suite: SuiteConfig,
    var_file: str,
    supervisor: ProcessSupervisorPort,
    env: Mapping[str, str],
) -> str:
    ca = env.get(f"{dbaas.upper()}_EXTERNAL_DB_CA", "")
    if ca:
        return ca
    command = ExternalCommand.of(
        suite.outer_bosh_binary_path,
        "int",
        suite.asset_path(var_file),
        "--path",
        "/db_ca",
    )
    result = supervisor.capture(command, CA_LOOKUP_TIMEOUT)
    if result.exit_code != 0:
        raise CommandFailed(
            f"Could not read /db_ca from {var_file}",
            details={"exit_code": result.exit_code, "stderr": result.stderr},
        )
    return result.stdout


def load_external_db_config(
    dbaas: str,
    suite: SuiteConfig,
    stage: CertificateStage,
    supervisor: ProcessSupervisorPort,
    env: Mapping[str, str],
    mutual_tls: bool = False,
) -> ExternalDBConfig:
    prefix = dbaas.upper()
    db_type = database_type_for(dbaas)
    host = assert_env_exists(env, f"{prefix}_EXTERNAL_DB_HOST")
    user = assert_env_exists(env, f"{prefix}_EXTERNAL_DB_USER")
    password = assert_env_exists(env, f"{prefix}_EXTERNAL_DB_PASSWORD")
    var_file = f"external_db/{dbaas}.yml"

    ca_cert_path = stage.write("db_ca", _read_ca(dbaas, suite, var_file, supervisor, env))
    client_cert_path = None
    client_key_path = None
    if mutual_tls:
        client_cert = assert_env_exists(env, f"{prefix}_EXTERNAL_DB_CLIENT_CERTIFICATE")
        client_key = assert_env_exists(env, f"{prefix}_EXTERNAL_DB_CLIENT_PRIVATE_KEY")
        client_cert_path = stage.write("client_cert", client_cert)
        client_key_path = stage.write("client_key", client_key)

    return ExternalDBConfig(
        host=host,
        type=db_type,
        user=user,
        password=password,
        db_name=database_name(db_type, suite.worker_index),
        ca_cert_path=ca_cert_path,
        connection_var_file=var_file,
        connection_options_file=f"external_db/{dbaas}_connection_options.yml",
        client_cert_path=client_cert_path,
        client_key_path=client_key_path,
    )


def mysql_args(db: ExternalDBConfig, sql: str) -> list[str]:
    args = [
        "-h",
        db.host,
        f"--user={db.user}",
        f"--password={db.password}",
        "-e",
        sql,
        f"--ssl-ca={db.ca_cert_path}",
    ]
    if db.mutual_tls:
        args += [
            f"--ssl-cert={db.client_cert_path or ''}",
            f"--ssl-key={db.client_key_path or ''}",
            "--ssl-mode=VERIFY_CA",
        ]
    else:
        args.append("--ssl-mode=VERIFY_IDENTITY")
    return args


def postgres_connection_string(db: ExternalDBConfig) -> str:
    parts = [
        "dbname=postgres",
        f"host={db.host}",
        f"user={db.user}",
        f"password={db.password}",
        f"sslrootcert={db.ca_cert_path}",
    ]
    if db.mutual_tls:
        parts += [
            f"sslcert={db.client_cert_path or ''}",
            f"sslkey={db.client_key_path or ''}",
            "sslmode=verify-ca",
        ]
    else:
        parts.append("sslmode=verify-full")
    return " ".join(parts)


def _psql(db: ExternalDBConfig, sql: str) -> ExternalCommand:
    return ExternalCommand.of("psql", postgres_connection_string(db), "-c", sql)


def _mysql(db: ExternalDBConfig, sql: str) -> ExternalCommand:
    return ExternalCommand.of("mysql", *mysql_args(db, sql))


def create_db(db: ExternalDBConfig | None, supervisor: ProcessSupervisorPort) -> None:
    if db is None:
        return
    log.info("Creating %s database %s on %s", db.type.value, db.db_name, db.host)
    drop = f"drop database if exists {db.db_name};"
    create = f"create database {db.db_name};"
    if db.type == DatabaseType.MYSQL:
        expect_exit(supervisor, _mysql(db, f"{drop} {create}"), DB_COMMAND_TIMEOUT)
    else:
        expect_exit(supervisor, _psql(db, drop), DB_COMMAND_TIMEOUT)
        expect_exit(supervisor, _psql(db, create), DB_COMMAND_TIMEOUT)


def delete_db(db: ExternalDBConfig | None, supervisor: ProcessSupervisorPort) -> None:
    if db is None:
        return
    log.info("Dropping %s database %s on %s", db.type.value, db.db_name, db.host)
    drop = f"drop database if exists {db.db_name};"
    if db.type == DatabaseType.MYSQL:
        expect_exit(supervisor, _mysql(db, drop), DB_COMMAND_TIMEOUT)
    else:
        expect_exit(supervisor, _psql(db, drop), DB_COMMAND_TIMEOUT)
