import os
import stat

import pytest

from fazuh.thumbsup.config import Config
from fazuh.thumbsup.config import create_config
from fazuh.thumbsup.config import is_file_secure
from fazuh.thumbsup.error import ConfigError

AUR_VARS = (
    "AUR_USERNAME",
    "AUR_PASSWORD",
    "AUR_URL",
    "AUR_PAGE_SIZE",
    "AUR_TIMEOUT",
    "AUR_MAX_ATTEMPTS",
    "AUR_BACKOFF",
    "AUR_WORKERS",
    "AUR_VERIFY_EXISTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in AUR_VARS:
        monkeypatch.delenv(var, raising=False)
    Config._instance = None
    yield
    Config._instance = None


def write_env(path, content, mode=0o600):
    path.write_text(content)
    os.chmod(path, mode)
    return path


def test_load(tmp_path):
    env = write_env(
        tmp_path / "aur.env",
        "AUR_USERNAME=foo\nAUR_PASSWORD=bar\nAUR_PAGE_SIZE=50\nAUR_VERIFY_EXISTS=no\n",
    )

    conf = Config().load(env)

    assert conf.username == "foo"
    assert conf.credentials.password == "bar"
    assert conf.page_size == 50
    assert conf.timeout == 30.0
    assert conf.max_attempts == 3
    assert conf.workers == 8
    assert conf.aur_url == "https://aur.archlinux.org"
    assert not conf.verify_exists


def test_config_is_singleton():
    assert Config() is Config()


def test_file_overrides_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("AUR_USERNAME", "from-env")
    monkeypatch.setenv("AUR_TIMEOUT", "5")
    env = write_env(tmp_path / "aur.env", "AUR_USERNAME=from-file\nAUR_PASSWORD=bar\n")

    conf = Config().load(env)

    assert conf.username == "from-file"
    assert conf.timeout == 5.0


def test_insecure_file(tmp_path):
    env = write_env(tmp_path / "aur.env", "AUR_USERNAME=foo\nAUR_PASSWORD=bar\n", mode=0o644)

    with pytest.raises(ConfigError, match="not secure"):
        Config().load(env)


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="does not exist"):
        Config().load(tmp_path / "missing.env")


def test_missing_password(tmp_path):
    env = write_env(tmp_path / "aur.env", "AUR_USERNAME=foo\n")

    with pytest.raises(ConfigError, match="Password"):
        Config().load(env)


@pytest.mark.parametrize("line", ["AUR_PAGE_SIZE=lots", "AUR_WORKERS=0", "AUR_TIMEOUT=-1"])
def test_invalid_numbers(tmp_path, line):
    env = write_env(tmp_path / "aur.env", f"AUR_USERNAME=foo\nAUR_PASSWORD=bar\n{line}\n")

    with pytest.raises(ConfigError):
        Config().load(env)


def test_create_config(tmp_path):
    path = tmp_path / "config" / "aur.env"

    create_config(path, "foo", 'pa"ss\\word')

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert is_file_secure(path)
    conf = Config().load(path)
    assert conf.username == "foo"
    assert conf.password == 'pa"ss\\word'


def test_create_config_refuses_overwrite(tmp_path):
    path = write_env(tmp_path / "aur.env", "AUR_USERNAME=old\n")

    with pytest.raises(ConfigError, match="already exists"):
        create_config(path, "foo", "bar")

    assert path.read_text() == "AUR_USERNAME=old\n"


def test_create_config_keeps_dollar_signs(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", "/home/foo")
    path = tmp_path / "aur.env"

    create_config(path, "foo", "a${HOME}b$USER")

    assert Config().load(path).password == "a${HOME}b$USER"
