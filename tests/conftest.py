from pathlib import Path

import pytest

from georank.observability.log import configure_logging
from georank.seed import seed_entities
from georank.settings import load_settings


@pytest.fixture(autouse=True, scope="session")
def _structured_logging():
    configure_logging(Path("config/logging.yaml"))


@pytest.fixture()
def settings_path(tmp_path, monkeypatch):
    for name in ("GEORANK_GEOCODER_URL", "GEORANK_GEOCODER_USER_AGENT", "GEORANK_GEOCODER_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    data_root = tmp_path / "data"
    path = tmp_path / "settings.toml"
    path.write_text(
        "[app]\n"
        f"data_root = '{data_root.as_posix()}'\n"
        f"metrics_dir = '{(data_root / 'metrics').as_posix()}'\n"
        "[cache]\n"
        f"dir = '{(data_root / 'cache').as_posix()}'\n"
        "ttl_days = 30\n"
        "[geocoder]\n"
        "enabled = false\n"
        "user_agent = 'test-agent'\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def settings(settings_path):
    return load_settings(settings_path)


@pytest.fixture()
def entities_path(tmp_path) -> Path:
    return seed_entities(tmp_path / "data" / "properties.json")
