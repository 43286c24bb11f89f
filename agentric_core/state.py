"""
Orchestrator system state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SystemStatus(Enum):
    """Orchestrator lifecycle status."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    OPERATIONAL = "operational"
    ERROR = "error"
    SHUTDOWN = "shutdown"


@dataclass
class SystemState:
    """Mutable process-wide state shared by the router, monitor and coordinator."""
    status: SystemStatus = SystemStatus.UNINITIALIZED
    last_health_check: Optional[str] = None
    total_interactions: int = 0
    # Sticky: only EmergencyCoordinator.clear_emergency resets it
    emergency_mode: bool = False
    last_emergency_type: Optional[str] = None
    last_emergency_at: Optional[str] = None
    emergency_cleared_by: Optional[str] = None
    emergency_cleared_at: Optional[str] = None
    started_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "lastHealthCheck": self.last_health_check,
            "totalInteractions": self.total_interactions,
            "emergencyMode": self.emergency_mode,
            "lastEmergencyType": self.last_emergency_type,
            "lastEmergencyAt": self.last_emergency_at,
            "emergencyClearedBy": self.emergency_cleared_by,
            "emergencyClearedAt": self.emergency_cleared_at,
            "startedAt": self.started_at,
        }
