"""Inbound alert messages from the broker.

``IncomingAlertMessage`` validates one raw message payload (camelCase
keys as produced upstream, snake_case accepted too) and maps it to a
``CreateAlert`` command.  The broker prefix on ``source`` and the
``initiated_by`` audit tag record where the alert came from.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from alertstream.core.enums import AlertSeverity
from alertstream.core.ids import new_uuid
from alertstream.domain.alert import DESCRIPTION_MAX_LENGTH, DESCRIPTION_MIN_LENGTH
from alertstream.domain.commands import CreateAlert
from alertstream.domain.values import AlertDetails

SOURCE_PREFIX = "KafkaInput-"
INITIATOR_PREFIX = "KafkaConsumer:"


class IncomingAlertMessage(BaseModel):
    """Payload of one message on the alerts input topic."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message_id: str = Field(alias="messageId")  # Unique per upstream message
    source_system: str = Field(alias="sourceSystem")
    severity: AlertSeverity
    description: str = Field(
        min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH,
    )
    timestamp: datetime  # Occurrence time at the source
    details: dict[str, Any] | None = None

    @field_validator("message_id", "source_system", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("severity", mode="before")
    @classmethod
    def severity_upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def to_command(self, alert_id: uuid.UUID | None = None) -> CreateAlert:
        """Map to a ``CreateAlert`` for a fresh alert (or *alert_id*)."""
        return CreateAlert(
            alert_id=alert_id or new_uuid(),
            severity=self.severity,
            description=self.description,
            source=f"{SOURCE_PREFIX}{self.source_system}",
            details=AlertDetails(self.details),
            event_timestamp=self.timestamp,
            initiated_by=f"{INITIATOR_PREFIX}{self.message_id}",
        )
