from pathlib import Path

import pytest

from bratsutils.domain.suite import SuiteConfig


def _suite(worker_index: int, stemcell_os: str = "ubuntu-jammy") -> SuiteConfig:
    return SuiteConfig(
        worker_index=worker_index,
        outer_bosh_binary_path="/bin/bosh",
        director_release_path="/tmp/release.tgz",
        stemcell_os=stemcell_os,
        bosh_environment="10.0.0.6",
        bosh_deployment_path=Path("/deployments"),
        assets_path=Path("/assets"),
        scripts_path=Path("/scripts"),
    )


def test_per_worker_names_do_not_collide():
    suite = _suite(3)
    assert suite.inner_bosh_path == Path("/tmp/inner-bosh/director/3")
    assert suite.bosh_binary_path == Path("/tmp/inner-bosh/director/3/bosh")
    assert suite.jumpbox_private_key_path.name == "jumpbox_private_key.pem"
    assert suite.inner_director_ip == "10.245.0.13"
    assert suite.inner_director_user == "jumpbox"
    assert suite.director_name == "bosh-3"
    assert _suite(4).inner_director_ip != suite.inner_director_ip


def test_worker_index_is_one_based():
    with pytest.raises(ValueError):
        _suite(0)


def test_asset_paths():
    suite = _suite(1, stemcell_os="ubuntu-xenial")
    assert suite.uses_xenial
    assert suite.asset_path("external_db/rds_mysql.yml") == Path("/assets/external_db/rds_mysql.yml")
    assert suite.bosh_deployment_asset_path("misc/external-db.yml") == Path(
        "/deployments/misc/external-db.yml"
    )
    assert suite.script_path("destroy-inner-bosh.sh") == Path("/scripts/destroy-inner-bosh.sh")
