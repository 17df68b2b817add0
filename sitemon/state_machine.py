"""Per-site health state machine."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from configuration import SiteConfig

SUCCESS_STATUS_CODE = 200
VERBOSE_FAILURE_LIMIT = 4
ALERT_EVERY = 12
NO_RESPONSE_CODE = "000"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class SiteStatus(Enum):
    """Health of a site as seen by its monitor."""

    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe; ``status_code`` is ``None`` when nothing answered."""

    status_code: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status_code == SUCCESS_STATUS_CODE

    @property
    def code_text(self) -> str:
        if self.status_code is None:
            return NO_RESPONSE_CODE
        return str(self.status_code)


@dataclass
class SiteState:
    status: SiteStatus = SiteStatus.UP
    consecutive_failures: int = 0
    last_success_at: Optional[_dt.datetime] = None
    last_alert_at: Optional[_dt.datetime] = None


@dataclass(frozen=True)
class LogLine:
    """A line the monitor must write for the current cycle.

    ``per_site`` writes it to the site's own log, ``aggregate`` to the shared
    aggregate log; ``notify`` mirrors it to the notification sink.
    """

    message: str
    aggregate: bool = False
    notify: bool = False
    per_site: bool = True


@dataclass(frozen=True)
class CycleEvent:
    site: SiteConfig
    result: ProbeResult
    status: SiteStatus
    previous_status: SiteStatus
    consecutive_failures: int
    downtime_seconds: int
    occurred_at: _dt.datetime
    lines: Tuple[LogLine, ...] = field(default_factory=tuple)
    notifications: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_status_change(self) -> bool:
        return self.status is not self.previous_status

    @property
    def is_alert(self) -> bool:
        return self.status is SiteStatus.DOWN and is_alert_cycle(
            self.consecutive_failures)


def is_alert_cycle(consecutive_failures: int) -> bool:
    return consecutive_failures > 0 and consecutive_failures % ALERT_EVERY == 0


def format_timestamp(value: Optional[_dt.datetime]) -> str:
    if value is None:
        return "never"
    return value.strftime(TIMESTAMP_FORMAT)


class SiteStateMachine:
    """Own one site's ``SiteState`` and turn probe results into log/notify events.

    The machine starts optimistic (``UP``). A non-200 result moves it to
    ``DOWN`` and counts the failure; a 200 result moves it back to ``UP`` and
    reports the downtime, computed as ``failures * interval`` rather than
    measured.
    """

    def __init__(self, site: SiteConfig):
        self._site = site
        self._state = SiteState()

    @property
    def site(self) -> SiteConfig:
        return self._site

    @property
    def state(self) -> SiteState:
        return self._state

    def started_line(self) -> LogLine:
        return LogLine(f"Monitoring started for {self._site.identifier}",
                       aggregate=True,
                       per_site=False)

    def transition(self, result: ProbeResult,
                   occurred_at: _dt.datetime) -> CycleEvent:
        previous_status = self._state.status
        if result.succeeded:
            lines, notifications, downtime = self._on_success(occurred_at)
        else:
            lines, notifications, downtime = self._on_failure(
                result, occurred_at)

        return CycleEvent(
            site=self._site,
            result=result,
            status=self._state.status,
            previous_status=previous_status,
            consecutive_failures=self._state.consecutive_failures,
            downtime_seconds=downtime,
            occurred_at=occurred_at,
            lines=tuple(lines),
            notifications=tuple(notifications),
        )

    def _on_success(self, occurred_at: _dt.datetime):
        state = self._state
        lines = []
        notifications = []
        downtime = 0

        if state.status is SiteStatus.DOWN:
            downtime = state.consecutive_failures * self._site.interval
            lines.append(LogLine(self._recovery_message(downtime),
                                 aggregate=True))
            notifications.append(
                f"{self._site.identifier} is back online. "
                f"Downtime was {downtime} seconds")

        state.status = SiteStatus.UP
        state.consecutive_failures = 0
        state.last_success_at = occurred_at
        state.last_alert_at = None
        return lines, notifications, downtime

    def _recovery_message(self, downtime: int) -> str:
        # "Last fail" names the last ALERT of this outage; short outages have none.
        if self._state.last_alert_at is None:
            return f"{self._site.identifier} recovered after {downtime} seconds"
        return (f"{self._site.identifier} recovered. "
                f"Last fail: {format_timestamp(self._state.last_alert_at)} "
                f"lasted {downtime} seconds")

    def _on_failure(self, result: ProbeResult, occurred_at: _dt.datetime):
        state = self._state
        state.status = SiteStatus.DOWN
        state.consecutive_failures += 1
        downtime = state.consecutive_failures * self._site.interval

        # Lines emitted while DOWN are always mirrored to the notifier.
        lines = []
        if state.consecutive_failures <= VERBOSE_FAILURE_LIMIT:
            lines.append(
                LogLine(
                    f"{self._site.identifier} response FAIL with code "
                    f"{result.code_text}",
                    notify=True,
                ))
        if is_alert_cycle(state.consecutive_failures):
            lines.append(
                LogLine(
                    f"ALERT: {self._site.identifier} DOWN! for {downtime} "
                    f"seconds. Last ok: {format_timestamp(state.last_success_at)}",
                    aggregate=True,
                    notify=True,
                ))
            state.last_alert_at = occurred_at
        return lines, [], downtime
