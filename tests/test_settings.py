import json

from chat_relay.models import ConnectionSettings
from chat_relay.settings import API_KEY_KEY, BASE_URL_KEY, MODEL_KEY, SettingsStorage


def test_missing_file_gives_defaults(tmp_path):
    storage = SettingsStorage(tmp_path / "settings.json")
    assert storage.load() == ConnectionSettings("", "https://api.openai.com/v1/", "gpt-4o-mini")


def test_environment_seeds_unsaved_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:1234/v1")
    monkeypatch.setenv("OPENAI_MODEL", "local")
    settings = SettingsStorage(tmp_path / "settings.json").load()
    assert settings == ConnectionSettings("sk-env", "http://localhost:1234/v1/", "local")


def test_save_and_reload(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    storage = SettingsStorage(path)
    storage.save(ConnectionSettings("sk-1", "https://x/v1/", "gpt-4o"))

    assert json.loads(path.read_text()) == {
        API_KEY_KEY: "sk-1",
        BASE_URL_KEY: "https://x/v1/",
        MODEL_KEY: "gpt-4o",
    }
    assert SettingsStorage(path).load() == ConnectionSettings("sk-1", "https://x/v1/", "gpt-4o")


def test_last_writer_wins(tmp_path):
    path = tmp_path / "settings.json"
    first, second = SettingsStorage(path), SettingsStorage(path)
    first.set(MODEL_KEY, "a")
    second.set(MODEL_KEY, "b")
    assert first.get(MODEL_KEY) == "b"


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    assert SettingsStorage(path).load().model == "gpt-4o-mini"


def test_settings_path_from_env(tmp_path, monkeypatch):
    target = tmp_path / "custom.json"
    monkeypatch.setenv("CHAT_RELAY_SETTINGS", str(target))
    storage = SettingsStorage()
    storage.set(API_KEY_KEY, "sk")
    assert target.exists()
