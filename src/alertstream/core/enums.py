"""Enumerations used across the alerting platform."""

from enum import Enum


class AlertSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    DELETED = "DELETED"


#: Statuses from which only Delete is still accepted.
FINAL_STATUSES: frozenset[AlertStatus] = frozenset(
    {AlertStatus.CLOSED, AlertStatus.DELETED}
)


class EventStoreBackend(str, Enum):
    MEMORY = "memory"
    JSONL = "jsonl"


class ReadStoreBackend(str, Enum):
    MEMORY = "memory"
    ELASTICSEARCH = "elasticsearch"
