"""Infers the direction of travel from recent GPS movement."""

import logging
from collections import deque
from typing import List, Optional

from . import geodesy
from .catalog import StationCatalog
from .config import (
    DIRECTION_CONSISTENCY_BONUS,
    DIRECTION_CONSISTENT_TURN_DEG,
    DIRECTION_HISTORY_SIZE,
    DIRECTION_MIN_DISPLACEMENT_M,
    DIRECTION_MIN_SAMPLES,
    DIRECTION_OVERRIDE_CONFIDENCE,
    PROXIMITY_INFERENCE_CONFIDENCE,
    PROXIMITY_UNCLEAR_CONFIDENCE,
)
from .models import DirectionInferenceResult, LocationUpdate, RouteDirection

logger = logging.getLogger(__name__)


def confidence_from_bearing_difference(diff: float) -> float:
    """Linear falloff: 0° is full confidence, 90° or more is none."""
    if diff >= 90:
        return 0.0
    return 1.0 - diff / 90


class DirectionInferenceEngine:
    """
    Compares the vehicle's bearing over a short history against the route's
    overall bearing to decide northbound vs southbound.
    """

    def __init__(self, catalog: StationCatalog, history_size: int = DIRECTION_HISTORY_SIZE):
        self.catalog = catalog
        self._history: deque = deque(maxlen=history_size)

    def add_location_sample(self, location: LocationUpdate) -> None:
        self._history.append(location)

    def clear_history(self) -> None:
        self._history.clear()

    @property
    def history(self) -> List[LocationUpdate]:
        return list(self._history)

    def route_bearing(self) -> Optional[float]:
        """Bearing from the first to the last station in northbound order."""
        stations = self.catalog.stations_by_direction(RouteDirection.NORTHBOUND)
        if len(stations) < 2:
            return None
        start, end = stations[0], stations[-1]
        return geodesy.initial_bearing(start.lat, start.lng, end.lat, end.lng)

    def infer_direction(self) -> DirectionInferenceResult:
        """
        Infer direction from the accumulated samples.

        Returns:
            DirectionInferenceResult. inferred_direction is None when there is
            not enough data; the reasoning string says why.
        """
        if len(self._history) < DIRECTION_MIN_SAMPLES:
            return DirectionInferenceResult(
                reasoning=f"Need more samples ({len(self._history)}/{DIRECTION_MIN_SAMPLES})",
            )

        first, last = self._history[0], self._history[-1]
        displacement = geodesy.distance(first.latitude, first.longitude, last.latitude, last.longitude)
        if displacement < DIRECTION_MIN_DISPLACEMENT_M:
            return DirectionInferenceResult(
                reasoning=f"Not enough movement ({displacement:.0f}m < {DIRECTION_MIN_DISPLACEMENT_M:.0f}m)",
            )

        bearing = geodesy.initial_bearing(first.latitude, first.longitude, last.latitude, last.longitude)

        northbound_bearing = self.route_bearing()
        if northbound_bearing is None:
            return DirectionInferenceResult(bearing=bearing, reasoning="No stations available")
        southbound_bearing = (northbound_bearing + 180) % 360

        northbound_diff = geodesy.bearing_difference(bearing, northbound_bearing)
        southbound_diff = geodesy.bearing_difference(bearing, southbound_bearing)

        if northbound_diff < southbound_diff:
            direction = RouteDirection.NORTHBOUND
            diff, route = northbound_diff, northbound_bearing
        else:
            direction = RouteDirection.SOUTHBOUND
            diff, route = southbound_diff, southbound_bearing

        confidence = self._adjust_confidence_by_consistency(confidence_from_bearing_difference(diff))
        reasoning = (
            f"Moving {bearing:.0f}° (route {direction.value}: {route:.0f}°, diff: {diff:.0f}°)"
        )
        logger.debug(f"Direction inference: {reasoning}, confidence {confidence:.2f}")

        return DirectionInferenceResult(
            inferred_direction=direction,
            confidence=confidence,
            bearing=bearing,
            reasoning=reasoning,
            should_override=confidence >= DIRECTION_OVERRIDE_CONFIDENCE,
        )

    def _adjust_confidence_by_consistency(self, base_confidence: float) -> float:
        """Add up to +0.2 for the share of legs that keep the previous leg's heading."""
        samples = list(self._history)
        if len(samples) < 3:
            return base_confidence

        consistent_moves = 0
        last_bearing = None
        for prev, curr in zip(samples, samples[1:]):
            leg_bearing = geodesy.initial_bearing(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
            if last_bearing is not None:
                if geodesy.bearing_difference(leg_bearing, last_bearing) < DIRECTION_CONSISTENT_TURN_DEG:
                    consistent_moves += 1
            last_bearing = leg_bearing

        ratio = consistent_moves / (len(samples) - 2)
        return min(max(base_confidence + ratio * DIRECTION_CONSISTENCY_BONUS, 0.0), 1.0)

    def infer_from_station_proximity(self, latitude: float, longitude: float) -> DirectionInferenceResult:
        """
        Fallback: decide direction from which of the two nearest stations the
        vehicle is closing in on across the last two samples.
        """
        stations = self.catalog.all_stations()
        if len(stations) < 2:
            return DirectionInferenceResult(reasoning="Not enough stations")

        by_distance = sorted(
            stations, key=lambda s: geodesy.distance(latitude, longitude, s.lat, s.lng)
        )
        nearest1, nearest2 = by_distance[0], by_distance[1]

        if len(self._history) < 2:
            return DirectionInferenceResult(reasoning="Need more location history")

        prev, curr = self._history[-2], self._history[-1]

        def closing(station):
            before = geodesy.distance(prev.latitude, prev.longitude, station.lat, station.lng)
            after = geodesy.distance(curr.latitude, curr.longitude, station.lat, station.lng)
            return after - before

        delta1, delta2 = closing(nearest1), closing(nearest2)
        if delta1 < 0 < delta2:
            approaching = nearest1
        elif delta2 < 0 < delta1:
            approaching = nearest2
        else:
            return DirectionInferenceResult(
                confidence=PROXIMITY_UNCLEAR_CONFIDENCE,
                reasoning="Movement unclear between stations",
            )

        lower_order = min(nearest1.north_order, nearest2.north_order)
        if approaching.north_order > lower_order:
            direction = RouteDirection.NORTHBOUND
        else:
            direction = RouteDirection.SOUTHBOUND

        return DirectionInferenceResult(
            inferred_direction=direction,
            confidence=PROXIMITY_INFERENCE_CONFIDENCE,
            reasoning=f"Approaching {approaching.name} (order: {approaching.north_order})",
        )


class DirectionManager:
    """
    Chooses the active direction.

    A manually set direction sticks until the user picks again or re-enables
    auto-inference. Otherwise any result with should_override replaces it.
    """

    def __init__(self, engine: DirectionInferenceEngine, selected_direction: Optional[RouteDirection] = None):
        self.engine = engine
        self.selected_direction = selected_direction
        self._managed_direction: Optional[RouteDirection] = None
        self._manual_override = False
        self.last_inference: Optional[DirectionInferenceResult] = None

    @property
    def direction(self) -> Optional[RouteDirection]:
        """The effective direction: managed first, then the configured selection."""
        return self._managed_direction or self.selected_direction

    @property
    def is_manual(self) -> bool:
        return self._manual_override

    def set_direction(self, direction: RouteDirection) -> None:
        self._manual_override = True
        self._managed_direction = direction
        logger.info(f"Direction set manually to {direction.value}")

    def enable_auto_inference(self) -> None:
        self._manual_override = False
        logger.info("Direction auto-inference re-enabled")

    def update_with_location(self, location: LocationUpdate) -> DirectionInferenceResult:
        self.engine.add_location_sample(location)
        inference = self.engine.infer_direction()
        self.last_inference = inference

        if (not self._manual_override and inference.should_override
                and inference.inferred_direction is not None):
            if inference.inferred_direction != self._managed_direction:
                logger.info(f"Direction inferred as {inference.inferred_direction.value} ({inference})")
            self._managed_direction = inference.inferred_direction
        return inference

    def reset(self) -> None:
        self.engine.clear_history()
        self._manual_override = False
        self._managed_direction = None
        self.last_inference = None
