# -*- codeing = utf-8 -*-
# @Create: 2026-10-18 9:30 a.m.
# @Update: 2026-10-18 10:40 a.m.
"""Concurrent HTTP site monitoring with throttled alerting."""

from . import http_probe, log_recorder, notifier
from .service import Supervisor, SiteMonitor
from .state_machine import (
    CycleEvent,
    LogLine,
    ProbeResult,
    SiteState,
    SiteStateMachine,
    SiteStatus,
)

__all__ = [
    "CycleEvent",
    "LogLine",
    "ProbeResult",
    "SiteMonitor",
    "SiteState",
    "SiteStateMachine",
    "SiteStatus",
    "Supervisor",
    "http_probe",
    "log_recorder",
    "notifier",
]
