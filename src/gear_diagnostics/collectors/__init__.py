"""Collectors for telemetry, trouble codes and recalls."""

from .live import TelemetrySampler, Subscription
from .dtc import DTCManager, adapter_freeze_frame_fetcher
from .recalls import RecallLookup, Recall

__all__ = [
    "TelemetrySampler",
    "Subscription",
    "DTCManager",
    "adapter_freeze_frame_fetcher",
    "RecallLookup",
    "Recall",
]
