import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from georank.admin import cli
from georank.geo.coordinates import Coordinate, CoordinateSource
from georank.geocode.cache import GeocodeCache
from georank.geocode.store import FileKeyValueStore
from georank.observability.metrics import MetricsRegistry


@pytest.fixture()
def populated_cache(settings):
    long_ago = datetime.now(timezone.utc) - timedelta(days=45)
    old = Coordinate(latitude=30.01, longitude=31.2, source=CoordinateSource.GEOCODED)
    fresh = Coordinate(latitude=30.0074, longitude=31.4913, source=CoordinateSource.GEOCODED)
    stale_cache = GeocodeCache(FileKeyValueStore(settings.cache.dir), clock=lambda: long_ago)
    asyncio.run(stale_cache.put("old listing, giza", old))
    cache = GeocodeCache(FileKeyValueStore(settings.cache.dir))
    asyncio.run(cache.put("fifth settlement", fresh))
    return settings


def test_admin_cache_stats(populated_cache, capsys):
    args = cli.build_parser().parse_args(["cache-stats"])
    cli.cmd_cache_stats(args, populated_cache)
    output = json.loads(capsys.readouterr().out)
    assert output["total_cached"] == 2
    assert output["by_source"] == {"geocoded": 2}


def test_admin_cache_purge(populated_cache, capsys):
    args = cli.build_parser().parse_args(["cache-purge"])
    cli.cmd_cache_purge(args, populated_cache)
    output = json.loads(capsys.readouterr().out)
    assert output["purged"] == 1
    assert output["total_cached"] == 1


def test_admin_cache_clear(populated_cache, capsys):
    args = cli.build_parser().parse_args(["cache-clear"])
    cli.cmd_cache_clear(args, populated_cache)
    assert json.loads(capsys.readouterr().out) == {"cleared": 2}
    cli.cmd_cache_stats(args, populated_cache)
    assert json.loads(capsys.readouterr().out)["total_cached"] == 0


def test_admin_explain(settings, capsys):
    args = cli.build_parser().parse_args(["explain", "--name", "New Cairo Compound"])
    cli.cmd_explain(args, settings)
    output = json.loads(capsys.readouterr().out)
    assert output["matched"] is True
    assert output["kind"] == "substring"
    assert output["key"] == "cairo"


def test_admin_explain_unmatched(settings, capsys):
    args = cli.build_parser().parse_args(["explain", "--name", "Atlantis"])
    cli.cmd_explain(args, settings)
    assert json.loads(capsys.readouterr().out) == {"name": "Atlantis", "matched": False}


def test_admin_runs(tmp_path, settings, capsys):
    metrics = MetricsRegistry()
    metrics.incr("entities_ranked", 6)
    metrics.incr("unresolved")
    metrics.export(path=settings.app.metrics_dir / "rank.json", run_id="rank")
    (settings.app.metrics_dir / "garbage.json").write_text("{", encoding="utf-8")

    args = cli.build_parser().parse_args(["runs"])
    cli.cmd_runs(args, settings)
    output = json.loads(capsys.readouterr().out)
    assert list(output) == ["rank"]
    assert output["rank"]["entities_ranked"] == 6
    assert output["rank"]["unresolved"] == 1


def test_admin_main_uses_config(settings_path, capsys):
    cli.main(["--config", str(settings_path), "explain", "--name", "zamalek"])
    output = json.loads(capsys.readouterr().out)
    assert output["kind"] == "exact"
    assert output["latitude"] == 30.0618
