import pytest

from cleanlink.config import Settings, resolve_telegram_token
from cleanlink.core.errors import ConfigError


@pytest.fixture(autouse=True)
def no_token_env(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("CLEANLINK_TELEGRAM_BOT_TOKEN", raising=False)


def test_defaults():
    s = Settings(_env_file=None)
    assert s.skip_marker == "nocut"
    assert s.album_max_concurrency == 10
    assert s.tiktok_mirror == "vm.dstn.to"


def test_token_from_plain_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", " 1:abc \n")
    s = Settings(_env_file=None, token_file=str(tmp_path / "none.txt"))
    assert resolve_telegram_token(s) == "1:abc"


def test_prefixed_env_also_works(monkeypatch, tmp_path):
    monkeypatch.setenv("CLEANLINK_TELEGRAM_BOT_TOKEN", "2:def")
    s = Settings(_env_file=None, token_file=str(tmp_path / "none.txt"))
    assert resolve_telegram_token(s) == "2:def"


def test_token_from_file(tmp_path):
    path = tmp_path / "token.txt"
    path.write_text("3:ghi\n")
    s = Settings(_env_file=None, token_file=str(path))
    assert resolve_telegram_token(s) == "3:ghi"


def test_missing_token_is_config_error(tmp_path):
    s = Settings(_env_file=None, token_file=str(tmp_path / "none.txt"))
    with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
        resolve_telegram_token(s)
