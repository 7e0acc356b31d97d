"""Turns raw inbound messages into ``CreateAlert`` commands.

Invalid messages are logged and skipped; a command the service rejects
is logged and counted.  Neither stops the stream.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import pydantic

from alertstream.core.errors import AlertingError
from alertstream.ingestion.messages import IncomingAlertMessage
from alertstream.observability.logger import new_trace_id
from alertstream.service import AlertCommandService

logger = logging.getLogger(__name__)


@dataclass
class IngestReport:
    accepted: int = 0
    invalid: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.accepted + self.invalid + self.failed


class AlertIngestor:
    """Validates inbound payloads and sends the resulting commands."""

    def __init__(self, service: AlertCommandService) -> None:
        self._service = service
        self._report = IngestReport()

    @property
    def report(self) -> IngestReport:
        return self._report

    async def ingest(self, payload: str | bytes | dict[str, Any]) -> uuid.UUID | None:
        """Process one message.  Returns the new alert id, or ``None``."""
        new_trace_id()
        try:
            if isinstance(payload, dict):
                message = IncomingAlertMessage.model_validate(payload)
            else:
                message = IncomingAlertMessage.model_validate_json(payload)
        except pydantic.ValidationError as exc:
            self._report.invalid += 1
            for err in exc.errors():
                logger.error(
                    "Invalid inbound alert message: %s - %s",
                    ".".join(str(p) for p in err["loc"]),
                    err["msg"],
                )
            return None

        command = message.to_command()
        try:
            await self._service.send(command)
        except AlertingError as exc:
            self._report.failed += 1
            logger.error(
                "CreateAlert for alert %s (message %s) failed: %s",
                command.alert_id,
                message.message_id,
                exc,
            )
            return None

        self._report.accepted += 1
        logger.info(
            "Alert %s created from message %s",
            command.alert_id,
            message.message_id,
        )
        return command.alert_id

    async def ingest_lines(self, lines: Iterable[str]) -> IngestReport:
        """Ingest JSON Lines; blank lines are skipped."""
        for lineno, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                self._report.invalid += 1
                logger.error("Line %d is not valid JSON: %s", lineno, exc)
                continue
            if not isinstance(payload, dict):
                self._report.invalid += 1
                logger.error("Line %d is not a JSON object", lineno)
                continue
            await self.ingest(payload)
        return self._report
