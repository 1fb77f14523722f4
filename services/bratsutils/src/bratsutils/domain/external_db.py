from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class DatabaseType(str, Enum):
    MYSQL = "mysql"
    POSTGRES = "postgres"


def database_type_for(dbaas: str) -> DatabaseType:
    if dbaas.endswith(DatabaseType.MYSQL.value):
        return DatabaseType.MYSQL
    return DatabaseType.POSTGRES


def database_name(db_type: DatabaseType, worker_index: int) -> str:
    return f"db_{db_type.value}_{worker_index}"


@dataclass(frozen=True)
class ExternalDBConfig:
    host: str
    type: DatabaseType
    user: str
    password: str
    db_name: str
    ca_cert_path: Path
    connection_var_file: str
    connection_options_file: str
    client_cert_path: Path | None = None
    client_key_path: Path | None = None

    @property
    def mutual_tls(self) -> bool:
        return self.client_cert_path is not None or self.client_key_path is not None
