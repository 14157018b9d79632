from enum import Enum

# Enums
class TemplateFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"

class EntryStatus(str, Enum):
    INITIATED = "initiated"
    IN_PROGRESS = "inprogress"
    GENERATED = "generated"

class PerformanceBucket(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"

class PerformanceTier(str, Enum):
    TOP = "top"
    MIDDLE = "middle"
    BOTTOM = "bottom"

class NotificationStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    DRY_RUN = "DRY_RUN"
