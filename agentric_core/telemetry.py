"""
Telemetry - Logging Setup and Structured Event Sink

Structured records for lifecycle and error events:
- Console and file logging, plain text or JSON lines
- Bounded in-memory buffer of structured records
- Correlation ids (envelope ids) attached to routing records
- Subscription to the typed system event channel
"""

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import events


class LogLevel(Enum):
    """Log levels for structured records."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class TelemetryRecord:
    """Structured telemetry record."""
    timestamp: datetime
    level: LogLevel
    message: str
    component: str
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'level': self.level.value,
            'message': self.message,
            'component': self.component,
            'correlation_id': self.correlation_id,
            'metadata': self.metadata,
        }


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("correlation_id", "metadata"):
            value = getattr(record, key, None)
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", log_file: str = "", fmt: str = "json") -> None:
    """Install console (stderr) and optional file handlers on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if fmt == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


class TelemetrySink:
    """Structured telemetry with a bounded buffer, fed by the event channel."""

    def __init__(self, component_name: str = "telemetry", buffer_size: int = 10000):
        self.component_name = component_name
        self.logger = logging.getLogger(component_name)
        self.buffer: deque = deque(maxlen=buffer_size)
        self._unsubscribe = None

    def record(self, level: LogLevel, message: str, component: Optional[str] = None,
               correlation_id: Optional[str] = None,
               metadata: Optional[Dict[str, Any]] = None) -> TelemetryRecord:
        entry = TelemetryRecord(
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            component=component or self.component_name,
            correlation_id=correlation_id,
            metadata=metadata or {},
        )
        self.buffer.append(entry)
        log_method = getattr(self.logger, level.value)
        log_method(message, extra={
            'correlation_id': correlation_id,
            'metadata': entry.metadata,
        })
        return entry

    def attach(self, channel: events.EventChannel) -> None:
        """Subscribe to every system event variant."""
        self.detach()
        self._unsubscribe = channel.subscribe_all(self._on_event)

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_event(self, event: events.SystemEvent) -> None:
        if isinstance(event, events.AgentStatusUpdate):
            self.record(LogLevel.DEBUG, f"Agent {event.agent_id} status -> {event.status}",
                        component="agent_status", metadata=asdict(event))
        elif isinstance(event, events.SystemEmergency):
            self.record(LogLevel.CRITICAL, f"System emergency: {event.emergency_type}",
                        component="emergency", metadata=asdict(event))
        elif isinstance(event, events.SystemReady):
            self.record(LogLevel.INFO, f"System ready with {event.agent_count} agents",
                        component="lifecycle", metadata=asdict(event))
        elif isinstance(event, events.SystemError):
            self.record(LogLevel.ERROR, f"System error [{event.error_code}]: {event.message}",
                        component="lifecycle", metadata=asdict(event))

    def get_records(self, level: Optional[LogLevel] = None,
                    component: Optional[str] = None,
                    correlation_id: Optional[str] = None,
                    limit: int = 1000) -> List[TelemetryRecord]:
        records = list(self.buffer)
        if level:
            records = [r for r in records if r.level == level]
        if component:
            records = [r for r in records if r.component == component]
        if correlation_id:
            records = [r for r in records if r.correlation_id == correlation_id]
        return records[-limit:]
