"""StopTrack - GPS station progression and arrival alerts for a transit route."""

__version__ = "0.1.0"

from .models import (
    RouteDirection,
    Station,
    PositionFix,
    LocationUpdate,
    StationStatus,
    StationPassRecord,
    StationProgressionState,
    DirectionInferenceResult,
    ETAResult,
    AlertState,
    ProximityAlert,
    ArrivalAlert,
    EdgeCaseType,
    WarningSeverity,
    EdgeCaseWarning,
)
from .config import TrackerConfig
from .catalog import StationCatalog
from .position_feed import PositionSource, ReplayPositionSource, GtfsRealtimePositionSource
from .speed import SpeedSmoother
from .location_tracker import LocationTracker
from .direction import DirectionInferenceEngine, DirectionManager
from .progression import StationProgressionEngine
from .detection import StationDetector, StationDetectionResult, StationProximity
from .eta import ETAEngine
from .edge_cases import EdgeCaseMonitor
from .alerts import AlertManager, AlertDispatcher, Notifier, LoggingNotifier
from .journey import JourneyTracker, JourneySnapshot

__all__ = [
    "JourneyTracker",
    "JourneySnapshot",
    "StationCatalog",
    "TrackerConfig",
    "PositionSource",
    "ReplayPositionSource",
    "GtfsRealtimePositionSource",
    "SpeedSmoother",
    "LocationTracker",
    "DirectionInferenceEngine",
    "DirectionManager",
    "StationProgressionEngine",
    "StationDetector",
    "StationDetectionResult",
    "StationProximity",
    "ETAEngine",
    "EdgeCaseMonitor",
    "AlertManager",
    "AlertDispatcher",
    "Notifier",
    "LoggingNotifier",
    "RouteDirection",
    "Station",
    "PositionFix",
    "LocationUpdate",
    "StationStatus",
    "StationPassRecord",
    "StationProgressionState",
    "DirectionInferenceResult",
    "ETAResult",
    "AlertState",
    "ProximityAlert",
    "ArrivalAlert",
    "EdgeCaseType",
    "WarningSeverity",
    "EdgeCaseWarning",
]
