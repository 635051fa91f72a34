from availability_engine.scheduling.analytics import AvailabilityStats, compute_availability_stats
from availability_engine.scheduling.booking_lifecycle import (
    TRANSITIONS,
    BookingLifecycleManager,
    check_transition,
)
from availability_engine.scheduling.conflict_detector import ConflictDetector, detect_in_slots
from availability_engine.scheduling.entry_model import CalendarModel, derive_status
from availability_engine.scheduling.privacy_filter import PrivacyFilter, compute_visible_view
from availability_engine.scheduling.recurring_patterns import (
    PATTERN_TEMPLATES,
    RecurringPatternEngine,
    project_pattern,
)
from availability_engine.scheduling.slot_validation import SlotValidator, ValidationResult

__all__ = [
    "CalendarModel",
    "derive_status",
    "SlotValidator",
    "ValidationResult",
    "ConflictDetector",
    "detect_in_slots",
    "RecurringPatternEngine",
    "PATTERN_TEMPLATES",
    "project_pattern",
    "BookingLifecycleManager",
    "TRANSITIONS",
    "check_transition",
    "PrivacyFilter",
    "compute_visible_view",
    "AvailabilityStats",
    "compute_availability_stats",
]
