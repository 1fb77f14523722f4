from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping

from bratsutils.adapters.errors import MissingConfiguration
from bratsutils.domain.suite import SuiteConfig

log = logging.getLogger(__name__)

DEFAULT_ASSETS_PATH = "../assets"
DEFAULT_SCRIPTS_PATH = "../../../../../../../ci/docker/main-bosh-docker"
DEFAULT_INNER_BOSH_ROOT = "/tmp/inner-bosh/director"

_XDIST_WORKER = re.compile(r"^gw(\d+)$")


def assert_env_exists(env: Mapping[str, str], name: str) -> str:
    try:
        return env[name]
    except KeyError:
        raise MissingConfiguration(
            f"Expected {name}",
            details={"variable": name},
            hint=f"Export {name} before running the suite",
        ) from None


def worker_index_from_env(env: Mapping[str, str]) -> int:
    """Map the pytest-xdist worker id (gw0, gw1, ...) to a 1-based index."""
    worker = env.get("PYTEST_XDIST_WORKER", "")
    match = _XDIST_WORKER.match(worker)
    if match is None:
        return 1
    return int(match.group(1)) + 1


def load_suite_config(env: Mapping[str, str], worker_index: int) -> SuiteConfig:
    outer_bosh = assert_env_exists(env, "BOSH_BINARY_PATH")
    release_path = assert_env_exists(env, "BOSH_DIRECTOR_RELEASE_PATH")
    stemcell_os = assert_env_exists(env, "STEMCELL_OS")
    environment = assert_env_exists(env, "BOSH_ENVIRONMENT")
    deployment_path = assert_env_exists(env, "BOSH_DEPLOYMENT_PATH")
    config = SuiteConfig(
        worker_index=worker_index,
        outer_bosh_binary_path=outer_bosh,
        director_release_path=release_path,
        stemcell_os=stemcell_os,
        bosh_environment=environment,
        bosh_deployment_path=Path(deployment_path),
        assets_path=Path(env.get("BRATS_ASSETS_PATH", DEFAULT_ASSETS_PATH)),
        scripts_path=Path(env.get("BRATS_SCRIPTS_PATH", DEFAULT_SCRIPTS_PATH)),
        inner_bosh_root=Path(env.get("BRATS_INNER_BOSH_ROOT", DEFAULT_INNER_BOSH_ROOT)),
    )
    log.debug(
        "Worker %d uses director %s at %s",
        config.worker_index,
        config.director_name,
        config.inner_director_ip,
    )
    return config
