"""Tests for ScanConfig."""

from pathlib import Path

from depaudit.core.config import DEFAULT_LICENSE_ALLOW, DEFAULT_SCAN_TIMEOUT_SEC, ScanConfig


def test_defaults():
    config = ScanConfig.from_env({})
    assert config.scan_timeout_sec == DEFAULT_SCAN_TIMEOUT_SEC
    assert config.license_allow == DEFAULT_LICENSE_ALLOW
    assert config.cache_dir is None
    assert config.git_token is None


def test_from_env():
    config = ScanConfig.from_env(
        {
            "DEPAUDIT_WORKDIR": "/srv/depaudit",
            "DEPAUDIT_CACHE_DIR": "/srv/cache",
            "DEPAUDIT_NPM_REGISTRY": "https://npm.internal",
            "DEPAUDIT_GIT_TOKEN": "tok",
            "DEPAUDIT_SCAN_TIMEOUT": "90",
            "DEPAUDIT_OSV_API_URL": "https://osv.internal/",
            "DEPAUDIT_LICENSE_DENY": "GPL-3.0, AGPL-3.0",
        }
    )
    assert config.workdir_root == Path("/srv/depaudit")
    assert config.npm_registry == "https://npm.internal"
    assert config.scan_timeout_sec == 90.0
    assert config.osv_api_url == "https://osv.internal"
    assert config.license_deny == frozenset({"gpl-3.0", "agpl-3.0"})


def test_token_not_in_repr():
    config = ScanConfig(git_token="hunter2")
    assert "hunter2" not in repr(config)


def test_paths(tmp_path):
    config = ScanConfig(workdir_root=tmp_path)
    assert config.project_workdir("p1") == tmp_path / "p1"
    assert config.scan_log_dir("s1") == tmp_path / "logs" / "s1"


def test_cache_subdir_created(tmp_path):
    config = ScanConfig(cache_dir=tmp_path / "cache")
    path = config.cache_subdir("npm")
    assert path == tmp_path / "cache" / "npm"
    assert path.is_dir()
    assert ScanConfig().cache_subdir("npm") is None
