"""Distance ranking of locatable entities relative to the user."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, List, Optional

import structlog

from georank.entities import LocatableEntity
from georank.errors import LocationUnavailableError, PermissionDeniedError, RankingCancelled
from georank.geo.coordinates import Coordinate
from georank.geo.distance import distance_km, format_distance
from georank.geo.resolver import CoordinateResolver
from georank.location.device import LocationService
from georank.observability.metrics import MetricsRegistry, record_duration
from georank.observability.tracing import clear_context, set_context

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RankedResult:
    entity: Optional[LocatableEntity]
    coordinate: Optional[Coordinate]
    distance_km: Optional[float]
    distance_label: str

    def to_dict(self) -> dict:
        return {
            "entity": self.entity.to_record() if self.entity is not None else None,
            "coordinate": self.coordinate.to_dict() if self.coordinate is not None else None,
            "distance_km": self.distance_km,
            "distance_label": self.distance_label,
        }


@dataclass
class NearbyRanking:
    """Ranking relative to the device position; `available` is False without one."""

    available: bool
    results: List[RankedResult] = field(default_factory=list)
    user: Optional[Coordinate] = None
    reason: Optional[str] = None
    detail: Optional[str] = None


class CancellationToken:
    """Cooperative cancellation flag checked between per-entity resolutions."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RankingCancelled("ranking cancelled")


def annotate(user: Coordinate, entity: Optional[LocatableEntity], coordinate: Optional[Coordinate]) -> RankedResult:
    distance = distance_km(user, coordinate) if coordinate is not None else None
    return RankedResult(
        entity=entity,
        coordinate=coordinate,
        distance_km=distance,
        distance_label=format_distance(distance),
    )


def sort_by_distance(results: Iterable[RankedResult]) -> List[RankedResult]:
    """Nearest first, unknown distances last; ties keep their input order."""
    return sorted(results, key=lambda result: (result.distance_km is None, result.distance_km or 0.0))


class ProximityRanker:
    """Resolve, measure, label and sort entities by distance from the user."""

    def __init__(
        self,
        resolver: CoordinateResolver,
        *,
        concurrency: int = 8,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._resolver = resolver
        self._concurrency = concurrency
        self._metrics = metrics or MetricsRegistry()

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def resolver(self) -> CoordinateResolver:
        return self._resolver

    def _record(self, coordinate: Optional[Coordinate]) -> None:
        if coordinate is None:
            self._metrics.incr("unresolved")
        else:
            self._metrics.incr(f"resolved_{coordinate.source.value}")

    async def _resolve_one(
        self,
        entity: Optional[LocatableEntity],
        cancel: Optional[CancellationToken],
    ) -> Optional[Coordinate]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            coordinate = await self._resolver.resolve_async(entity)
        except Exception:
            # one bad record must not sink the batch
            self._metrics.incr("resolution_errors")
            LOGGER.exception("resolution_failed", entity_id=getattr(entity, "id", None))
            coordinate = None
        self._record(coordinate)
        return coordinate

    async def rank(
        self,
        user: Coordinate,
        entities: Iterable[Optional[LocatableEntity]],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> List[RankedResult]:
        """Rank all entities; all-or-nothing, raising `RankingCancelled` if cancelled."""
        items = list(entities)
        set_context(ranking_id=uuid.uuid4().hex, entity_count=len(items))
        try:
            with record_duration(self._metrics, "rank_duration_ms"):
                semaphore = asyncio.Semaphore(self._concurrency)

                async def worker(entity: Optional[LocatableEntity]) -> Optional[Coordinate]:
                    async with semaphore:
                        return await self._resolve_one(entity, cancel)

                tasks = [asyncio.create_task(worker(entity)) for entity in items]
                try:
                    coordinates = await asyncio.gather(*tasks)
                except RankingCancelled:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    LOGGER.info("ranking_cancelled", entity_count=len(items))
                    raise
                ranked = sort_by_distance(
                    annotate(user, entity, coordinate) for entity, coordinate in zip(items, coordinates)
                )
        finally:
            clear_context()
        self._metrics.incr("entities_ranked", len(items))
        return ranked

    async def stream(
        self,
        user: Coordinate,
        entities: Iterable[Optional[LocatableEntity]],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[RankedResult]:
        """Yield annotated results in input order; stops quietly when cancelled.

        Results are not sorted. Callers choosing this mode accept partial output.
        """
        for entity in entities:
            if cancel is not None and cancel.cancelled:
                LOGGER.info("ranking_stream_stopped")
                return
            coordinate = await self._resolve_one(entity, None)
            self._metrics.incr("entities_ranked")
            yield annotate(user, entity, coordinate)

    def rank_sync(self, user: Coordinate, entities: Iterable[Optional[LocatableEntity]]) -> List[RankedResult]:
        """Pure ranking without any awaited collaborators."""
        results: List[RankedResult] = []
        for entity in entities:
            try:
                coordinate = self._resolver.resolve(entity)
            except Exception:
                self._metrics.incr("resolution_errors")
                LOGGER.exception("resolution_failed", entity_id=getattr(entity, "id", None))
                coordinate = None
            self._record(coordinate)
            results.append(annotate(user, entity, coordinate))
        self._metrics.incr("entities_ranked", len(results))
        return sort_by_distance(results)

    async def rank_nearby(
        self,
        location: LocationService,
        entities: Iterable[Optional[LocatableEntity]],
        *,
        timeout: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> NearbyRanking:
        """Rank relative to the device position, reporting when none is available."""
        try:
            user = await location.current_position(timeout=timeout)
        except LocationUnavailableError as exc:
            reason = "permission_denied" if isinstance(exc, PermissionDeniedError) else "location_unavailable"
            return NearbyRanking(available=False, reason=reason, detail=str(exc))
        results = await self.rank(user, entities, cancel=cancel)
        return NearbyRanking(available=True, results=results, user=user)
