from __future__ import annotations

import pytest

from appointbook.config import load_settings

_VARS = ("APPOINTBOOK_DATA_FILE", "APPOINTBOOK_LOG_LEVEL", "SAVE_RETRY_ATTEMPTS")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # setenv first so monkeypatch remembers the original state and also
    # undoes whatever load_dotenv() writes into os.environ during the test.
    for name in _VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_load_settings_defaults(tmp_path) -> None:
    settings = load_settings(dotenv_path=str(tmp_path / "absent.env"))

    assert settings.data_file == "appointments.csv"
    assert settings.log_level == "INFO"
    assert settings.save_retry_attempts == 3


def test_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("APPOINTBOOK_DATA_FILE", "/data/calendar.csv")
    monkeypatch.setenv("APPOINTBOOK_LOG_LEVEL", "debug")
    monkeypatch.setenv("SAVE_RETRY_ATTEMPTS", "5")

    settings = load_settings(dotenv_path=str(tmp_path / "absent.env"))

    assert settings.data_file == "/data/calendar.csv"
    assert settings.log_level == "DEBUG"
    assert settings.save_retry_attempts == 5


def test_load_settings_reads_dotenv_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    dotenv = tmp_path / ".env"
    dotenv.write_text("APPOINTBOOK_DATA_FILE=from-dotenv.csv\n")

    settings = load_settings(dotenv_path=str(dotenv))

    assert settings.data_file == "from-dotenv.csv"


def test_load_settings_does_not_override_existing_env_with_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("APPOINTBOOK_DATA_FILE", "from-env.csv")

    dotenv = tmp_path / ".env"
    dotenv.write_text("APPOINTBOOK_DATA_FILE=from-dotenv.csv\n")

    settings = load_settings(dotenv_path=str(dotenv))
    assert settings.data_file == "from-env.csv"


def test_load_settings_rejects_unknown_log_level(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("APPOINTBOOK_LOG_LEVEL", "chatty")

    with pytest.raises(RuntimeError, match=r"Invalid APPOINTBOOK_LOG_LEVEL"):
        load_settings(dotenv_path=str(tmp_path / "absent.env"))


@pytest.mark.parametrize("raw, message", [("abc", r"Invalid SAVE_RETRY_ATTEMPTS"), ("0", r"must be >= 1")])
def test_load_settings_rejects_bad_retry_attempts(monkeypatch: pytest.MonkeyPatch, tmp_path, raw: str, message: str) -> None:
    monkeypatch.setenv("SAVE_RETRY_ATTEMPTS", raw)

    with pytest.raises(RuntimeError, match=message):
        load_settings(dotenv_path=str(tmp_path / "absent.env"))
