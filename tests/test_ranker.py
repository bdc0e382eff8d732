import asyncio

import pytest
from structlog.contextvars import bind_contextvars, get_contextvars

from georank.entities import LocatableEntity
from georank.errors import RankingCancelled
from georank.geo.coordinates import Coordinate, CoordinateSource
from georank.geo.resolver import CoordinateResolver, ResolutionStrategy
from georank.location.device import FixedLocationProvider, LocationService
from georank.ranking.ranker import CancellationToken, ProximityRanker, annotate, sort_by_distance

CAIRO = Coordinate(latitude=30.0444, longitude=31.2357)


class MappedStrategy(ResolutionStrategy):
    """Resolve from a fixed id → coordinate mapping; unknown ids stay unresolved."""

    name = "mapped"

    def __init__(self, mapping, on_attempt=None):
        self.mapping = mapping
        self.on_attempt = on_attempt
        self.seen = []

    def attempt(self, entity):
        self.seen.append(entity.id)
        if self.on_attempt is not None:
            self.on_attempt(entity)
        return self.mapping.get(entity.id)


def _entity(entity_id, **fields):
    return LocatableEntity.model_validate({"id": entity_id, **fields})


def _north_of_cairo(degrees):
    return Coordinate(latitude=CAIRO.latitude + degrees, longitude=CAIRO.longitude)


def _mapped_ranker(mapping, **kwargs):
    strategy = MappedStrategy(mapping, **kwargs)
    return ProximityRanker(CoordinateResolver(strategies=[strategy]), concurrency=1), strategy


def test_unknown_distances_sort_last_in_input_order():
    mapping = {"B": _north_of_cairo(0.045), "D": _north_of_cairo(0.018)}
    ranker, _ = _mapped_ranker(mapping)
    entities = [_entity("A"), _entity("B"), _entity("C"), _entity("D")]

    results = asyncio.run(ranker.rank(CAIRO, entities))

    assert [result.entity.id for result in results] == ["D", "B", "A", "C"]
    assert results[0].distance_km == pytest.approx(2.0, abs=0.01)
    assert results[1].distance_km == pytest.approx(5.0, abs=0.01)
    assert [result.distance_label for result in results[2:]] == ["Distance unknown", "Distance unknown"]
    assert ranker.metrics.get("unresolved") == 2
    assert ranker.metrics.get("entities_ranked") == 4


def test_equal_distances_keep_input_order():
    point = _north_of_cairo(0.01)
    ranker, _ = _mapped_ranker({"first": point, "second": point, "third": point})
    results = asyncio.run(ranker.rank(CAIRO, [_entity("first"), _entity("second"), _entity("third")]))
    assert [result.entity.id for result in results] == ["first", "second", "third"]


def test_sort_by_distance_is_pure():
    near = annotate(CAIRO, _entity("near"), _north_of_cairo(0.01))
    unknown = annotate(CAIRO, _entity("unknown"), None)
    results = [unknown, near]
    assert sort_by_distance(results) == [near, unknown]
    assert results == [unknown, near]


def test_zamalek_listing_is_labelled_with_distance():
    entity = _entity("zamalek", latitude="30.0618", longitude="31.2194", title="Nile view")
    results = asyncio.run(ProximityRanker(CoordinateResolver()).rank(CAIRO, [entity]))
    assert results[0].distance_km == pytest.approx(2.49, abs=0.01)
    assert results[0].distance_label == f"{results[0].distance_km} km away"
    assert results[0].coordinate.source is CoordinateSource.EXPLICIT
    assert results[0].to_dict()["entity"]["title"] == "Nile view"


def test_entity_without_signals_still_gets_a_distance():
    results = asyncio.run(ProximityRanker(CoordinateResolver()).rank(CAIRO, [_entity("bare")]))
    assert results[0].distance_km is not None
    assert results[0].coordinate.source is CoordinateSource.CITY_DEFAULT


def test_missing_entities_rank_as_unknown():
    ranker = ProximityRanker(CoordinateResolver())
    results = asyncio.run(ranker.rank(CAIRO, [None, _entity("zamalek", area_name="Zamalek")]))
    assert [result.entity.id if result.entity else None for result in results] == ["zamalek", None]
    assert results[1].distance_label == "Distance unknown"
    assert results[1].to_dict()["entity"] is None


def test_one_failing_entity_does_not_sink_the_batch():
    def explode(entity):
        if entity.id == "bad":
            raise RuntimeError("corrupt row")

    ranker, _ = _mapped_ranker({"good": _north_of_cairo(0.01), "bad": _north_of_cairo(0.02)}, on_attempt=explode)
    results = asyncio.run(ranker.rank(CAIRO, [_entity("bad"), _entity("good")]))
    assert [result.entity.id for result in results] == ["good", "bad"]
    assert results[1].distance_km is None
    assert ranker.metrics.get("resolution_errors") == 1


def test_cancelled_ranking_raises():
    token = CancellationToken()

    def cancel_on_second(entity):
        if entity.id == "2":
            token.cancel()

    mapping = {str(index): _north_of_cairo(index / 100) for index in range(5)}
    ranker, strategy = _mapped_ranker(mapping, on_attempt=cancel_on_second)
    entities = [_entity(str(index)) for index in range(5)]

    with pytest.raises(RankingCancelled):
        asyncio.run(ranker.rank(CAIRO, entities, cancel=token))
    assert "4" not in strategy.seen


def test_cancel_before_start_resolves_nothing():
    token = CancellationToken()
    token.cancel()
    ranker, strategy = _mapped_ranker({"a": CAIRO})
    with pytest.raises(RankingCancelled):
        asyncio.run(ranker.rank(CAIRO, [_entity("a")], cancel=token))
    assert strategy.seen == []


def test_stream_yields_partial_results_when_cancelled():
    token = CancellationToken()
    mapping = {str(index): _north_of_cairo(0.5 - index / 100) for index in range(4)}
    ranker, _ = _mapped_ranker(mapping)

    async def _run():
        collected = []
        async for result in ranker.stream(CAIRO, [_entity(str(index)) for index in range(4)], cancel=token):
            collected.append(result)
            if len(collected) == 2:
                token.cancel()
        return collected

    collected = asyncio.run(_run())
    assert [result.entity.id for result in collected] == ["0", "1"]


def test_rank_sync_matches_async_ranking():
    entities = [
        _entity("zamalek", area_name="Zamalek"),
        _entity("maadi", address="Road 9", area_name="Maadi"),
        _entity("alex", area_name="Alexandria"),
        None,
    ]
    ranker = ProximityRanker(CoordinateResolver())
    sync_ids = [result.entity.id if result.entity else None for result in ranker.rank_sync(CAIRO, entities)]
    async_ids = [
        result.entity.id if result.entity else None for result in asyncio.run(ranker.rank(CAIRO, entities))
    ]
    assert sync_ids == async_ids
    assert sync_ids[-2:] == ["alex", None]


def test_rank_nearby_reports_denied_permission():
    ranker = ProximityRanker(CoordinateResolver())
    location = LocationService(FixedLocationProvider(CAIRO, granted=False))
    outcome = asyncio.run(ranker.rank_nearby(location, [_entity("a", area_name="Giza")]))
    assert outcome.available is False
    assert outcome.reason == "permission_denied"
    assert outcome.results == []


def test_rank_nearby_reports_missing_position():
    ranker = ProximityRanker(CoordinateResolver())
    outcome = asyncio.run(ranker.rank_nearby(LocationService(FixedLocationProvider(None)), [_entity("a")]))
    assert outcome.available is False
    assert outcome.reason == "location_unavailable"


def test_rank_nearby_ranks_from_device_position():
    ranker = ProximityRanker(CoordinateResolver())
    entities = [_entity("alex", area_name="Alexandria"), _entity("zamalek", area_name="Zamalek")]
    location = LocationService(FixedLocationProvider(CAIRO))
    outcome = asyncio.run(ranker.rank_nearby(location, entities))
    assert outcome.available is True
    assert outcome.user == CAIRO
    assert [result.entity.id for result in outcome.results] == ["zamalek", "alex"]


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        ProximityRanker(CoordinateResolver(), concurrency=0)


def test_rank_nearby_remembers_last_position():
    location = LocationService(FixedLocationProvider(CAIRO))
    ranker = ProximityRanker(CoordinateResolver())
    asyncio.run(ranker.rank_nearby(location, [_entity("a", area_name="Giza")]))
    assert location.last_known() == CAIRO
    assert location.permission_granted is True


def test_rank_keeps_caller_log_context():
    ranker = ProximityRanker(CoordinateResolver())

    async def _run():
        bind_contextvars(request_id="req-42")
        await ranker.rank(CAIRO, [_entity("a", area_name="Giza")])
        return get_contextvars()

    assert asyncio.run(_run()) == {"request_id": "req-42"}
