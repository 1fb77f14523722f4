from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

INNER_DIRECTOR_USER = "jumpbox"
INNER_DIRECTOR_SUBNET = "10.245.0"
INNER_DIRECTOR_IP_OFFSET = 10
XENIAL_STEMCELL_OS = "ubuntu-xenial"


@dataclass(frozen=True)
class SuiteConfig:
    """Settings shared by every helper in one test worker.

    Built once at suite startup and passed explicitly; the worker index keeps
    parallel workers from colliding on director paths, IPs and database names.
    """

    worker_index: int
    outer_bosh_binary_path: str
    director_release_path: str
    stemcell_os: str
    bosh_environment: str
    bosh_deployment_path: Path
    assets_path: Path
    scripts_path: Path
    inner_bosh_root: Path = Path("/tmp/inner-bosh/director")

    def __post_init__(self) -> None:
        if self.worker_index < 1:
            raise ValueError(f"worker index must be >= 1, got {self.worker_index}")

    @property
    def inner_bosh_path(self) -> Path:
        return self.inner_bosh_root / str(self.worker_index)

    @property
    def bosh_binary_path(self) -> Path:
        return self.inner_bosh_path / "bosh"

    @property
    def jumpbox_private_key_path(self) -> Path:
        return self.inner_bosh_path / "jumpbox_private_key.pem"

    @property
    def inner_director_ip(self) -> str:
        return f"{INNER_DIRECTOR_SUBNET}.{INNER_DIRECTOR_IP_OFFSET + self.worker_index}"

    @property
    def inner_director_user(self) -> str:
        return INNER_DIRECTOR_USER

    @property
    def director_name(self) -> str:
        return f"bosh-{self.worker_index}"

    @property
    def uses_xenial(self) -> bool:
        return self.stemcell_os == XENIAL_STEMCELL_OS

    def asset_path(self, name: str) -> Path:
        return (self.assets_path / name).resolve()

    def bosh_deployment_asset_path(self, relative: str) -> Path:
        return self.bosh_deployment_path / relative

    def script_path(self, name: str) -> Path:
        return self.scripts_path / name
