"""
Tunable constants for StopTrack.

Values are grouped by the component that consumes them. TrackerConfig bundles
the ones a deployment may want to override.
"""

from dataclasses import dataclass

# =============================================================================
# GEODESY
# =============================================================================

EARTH_RADIUS_M = 6_371_000.0

# =============================================================================
# SPEED SMOOTHING
# =============================================================================

LIVE_SPEED_SAMPLES = 5  # samples averaged by the location tracker
ETA_SPEED_SAMPLES = 10  # samples averaged by the ETA engine

# =============================================================================
# STATION PROGRESSION (meters)
# =============================================================================

STATION_RADIUS_M = 100.0  # at station
APPROACH_RADIUS_M = 300.0  # approaching
EXIT_RADIUS_M = 150.0  # a closer pass than this counts as a visit
MAX_MISSED_STATIONS = 2  # longest gap healed as skipped

# =============================================================================
# DIRECTION INFERENCE
# =============================================================================

DIRECTION_MIN_SAMPLES = 3
DIRECTION_HISTORY_SIZE = 10
DIRECTION_MIN_DISPLACEMENT_M = 50.0
DIRECTION_OVERRIDE_CONFIDENCE = 0.85
DIRECTION_CONSISTENCY_BONUS = 0.2
DIRECTION_CONSISTENT_TURN_DEG = 45.0
PROXIMITY_INFERENCE_CONFIDENCE = 0.75
PROXIMITY_UNCLEAR_CONFIDENCE = 0.3

# =============================================================================
# ETA (m/s)
# =============================================================================

STATIONARY_SPEED_MPS = 0.5
SLOW_TRAFFIC_SPEED_MPS = 2.0
GOOD_TRAFFIC_SPEED_MPS = 15.0
ROUTE_SLOWDOWN_FACTOR = 1.2  # intermediate stops not modeled explicitly
CURRENT_SPEED_WEIGHT = 0.3
AVERAGE_SPEED_WEIGHT = 0.7
MIN_SAMPLES_FOR_AVERAGE = 3

# =============================================================================
# EDGE CASES
# =============================================================================

GPS_CHECK_INTERVAL_S = 5.0
GPS_WEAK_AFTER_S = 15.0
GPS_LOST_AFTER_S = 30.0
LOW_SPEED_MPS = 2.0
STATIONARY_MPS = 0.5
SLOW_UPDATES_BEFORE_WARNING = 5
OFF_ROUTE_DISTANCE_M = 500.0

# =============================================================================
# ALERTS
# =============================================================================

MIN_ALERT_THRESHOLD = 1
MAX_ALERT_THRESHOLD = 5
DEFAULT_ALERT_THRESHOLD = 2


def validate_alert_threshold(threshold: int) -> int:
    """Return the threshold, or raise ValueError if it is outside [1, 5]."""
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValueError(f"Alert threshold must be an integer, got {threshold!r}")
    if not MIN_ALERT_THRESHOLD <= threshold <= MAX_ALERT_THRESHOLD:
        raise ValueError(
            f"Alert threshold must be between {MIN_ALERT_THRESHOLD} and "
            f"{MAX_ALERT_THRESHOLD}, got {threshold}"
        )
    return threshold


@dataclass
class TrackerConfig:
    """Overridable tracking parameters."""
    station_radius_m: float = STATION_RADIUS_M
    approach_radius_m: float = APPROACH_RADIUS_M
    exit_radius_m: float = EXIT_RADIUS_M
    max_missed_stations: int = MAX_MISSED_STATIONS
    live_speed_samples: int = LIVE_SPEED_SAMPLES
    eta_speed_samples: int = ETA_SPEED_SAMPLES
    gps_check_interval_s: float = GPS_CHECK_INTERVAL_S
    off_route_distance_m: float = OFF_ROUTE_DISTANCE_M
    alert_threshold: int = DEFAULT_ALERT_THRESHOLD

    def validate(self) -> "TrackerConfig":
        """
        Check that the radii nest and counts are positive.

        Raises:
            ValueError: If any value is out of range.
        """
        if not 0 < self.station_radius_m <= self.exit_radius_m <= self.approach_radius_m:
            raise ValueError(
                "Radii must satisfy 0 < station <= exit <= approach "
                f"(got {self.station_radius_m}, {self.exit_radius_m}, {self.approach_radius_m})"
            )
        if self.max_missed_stations < 0:
            raise ValueError(f"max_missed_stations must be >= 0, got {self.max_missed_stations}")
        if self.live_speed_samples < 1 or self.eta_speed_samples < 1:
            raise ValueError("Speed sample capacities must be positive")
        if self.gps_check_interval_s <= 0:
            raise ValueError(f"gps_check_interval_s must be positive, got {self.gps_check_interval_s}")
        validate_alert_threshold(self.alert_threshold)
        return self
