"""Data models for adapter sessions."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field
from datetime import datetime


class SessionStatus(str, Enum):
    """Adapter session states."""
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class Session(BaseModel):
    """State of one adapter connection attempt."""

    status: SessionStatus = Field(default=SessionStatus.DISCONNECTED)

    adapter_name: Optional[str] = Field(default=None)
    adapter_port: Optional[str] = Field(default=None)
    protocol: Optional[str] = Field(default=None)

    error_message: Optional[str] = Field(default=None)
    connected_at: Optional[datetime] = Field(default=None)

    @property
    def is_connected(self) -> bool:
        return self.status == SessionStatus.CONNECTED

    @property
    def duration_seconds(self) -> Optional[float]:
        """Seconds since the session connected."""
        if self.connected_at and self.is_connected:
            return (datetime.now() - self.connected_at).total_seconds()
        return None
