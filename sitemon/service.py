# -*- codeing = utf-8 -*-
# @Create: 2026-10-18 10:20 a.m.
# @Update: 2026-10-18 10:20 a.m.
"""Per-site monitor loops and the supervisor that runs them."""

from __future__ import annotations

import datetime as _dt
import logging
import os
import socket
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from configuration import Settings, SiteConfig

from . import log_recorder
from .http_probe import HttpProbe, Probe
from .notifier import Notifier, NullNotifier
from .state_machine import CycleEvent, LogLine, ProbeResult, SiteStateMachine

LOGGER = logging.getLogger(__name__)

SHUTDOWN_REASON = "Received signal SIGTERM"
_WAIT_POLL_SECONDS = 0.5


class SiteMonitor:
    """Probe one site on a fixed cadence and report what its state machine decides."""

    def __init__(
        self,
        site: SiteConfig,
        *,
        probe: Probe,
        recorder: log_recorder.LogRecorder,
        notifier: Notifier,
        log_dir: Path,
        aggregate_log: Path,
        clock: Optional[Callable[[], _dt.datetime]] = None,
        event_handler: Optional[Callable[[CycleEvent], None]] = None,
    ) -> None:
        self._site = site
        self._probe = probe
        self._recorder = recorder
        self._notifier = notifier
        self._log_path = log_recorder.site_log_path(log_dir, site.identifier)
        self._aggregate_log = Path(aggregate_log)
        self._clock = clock or _dt.datetime.now
        self._event_handler = event_handler or (lambda event: None)
        self._machine = SiteStateMachine(site)

    @property
    def site(self) -> SiteConfig:
        return self._site

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def state_machine(self) -> SiteStateMachine:
        return self._machine

    def run(self, stop_event: threading.Event) -> None:
        """Loop until ``stop_event`` is set; one probe per ``interval`` seconds."""

        self._emit(self._machine.started_line(), self._clock())
        while not stop_event.is_set():
            self.run_cycle()
            if stop_event.wait(self._site.interval):
                break
        LOGGER.debug("monitor.loop.stopped site=%s", self._site.identifier)

    def run_cycle(self) -> CycleEvent:
        try:
            result = self._probe.run(self._site)
        except Exception as exc:
            LOGGER.exception(
                "monitor.site.probe_error site=%s error=%s",
                self._site.identifier,
                exc,
            )
            result = ProbeResult(None)

        now = self._clock()
        event = self._machine.transition(result, now)
        self._handle_event(event)
        return event

    def _handle_event(self, event: CycleEvent) -> None:
        for line in event.lines:
            self._emit(line, event.occurred_at)
        for text in event.notifications:
            self._notify(text)
        try:
            self._event_handler(event)
        except Exception as exc:  # pragma: no cover - defensive safeguard
            LOGGER.exception(
                "monitor.site.event_handler_error site=%s status=%s error=%s",
                self._site.identifier,
                event.status.name,
                exc,
            )

    def _emit(self, line: LogLine, when: _dt.datetime) -> None:
        formatted = None
        if line.per_site:
            formatted = self._recorder.append(self._log_path, line.message,
                                              when)
        if line.aggregate:
            formatted = self._recorder.append(
                self._aggregate_log,
                line.message,
                when,
                quiet=line.per_site,
            ) or formatted
        if line.notify:
            self._notify(formatted or log_recorder.format_line(line.message, when))

    def _notify(self, text: str) -> None:
        try:
            self._notifier.send(text)
        except Exception as exc:
            LOGGER.exception("monitor.site.notification_error site=%s error=%s",
                             self._site.identifier, exc)


class Supervisor:
    """Start one monitor thread per site and coordinate shutdown.

    ``start`` blocks until every monitor has finished or a shutdown was
    requested. Shutdown does not wait for in-flight probes: monitor threads
    are daemons and are simply abandoned.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        recorder: Optional[log_recorder.LogRecorder] = None,
        notifier: Optional[Notifier] = None,
        probe: Optional[Probe] = None,
        clock: Optional[Callable[[], _dt.datetime]] = None,
        event_handler: Optional[Callable[[CycleEvent], None]] = None,
        hostname: Optional[str] = None,
        pid: Optional[int] = None,
    ) -> None:
        self._settings = settings
        self._clock = clock or _dt.datetime.now
        self._recorder = recorder or log_recorder.LogRecorder(clock=self._clock)
        self._notifier = notifier or NullNotifier()
        self._probe = probe or HttpProbe(settings.request_timeout)
        self._event_handler = event_handler
        self._hostname = hostname or socket.gethostname()
        self._pid = os.getpid() if pid is None else pid

        self._threads: List[threading.Thread] = []
        self._monitors: List[SiteMonitor] = []
        self._stop_event = threading.Event()
        self._lock = threading.RLock()
        self._shutdown_requested = False

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    @property
    def monitors(self) -> List[SiteMonitor]:
        return list(self._monitors)

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def build_monitor(self, site: SiteConfig) -> SiteMonitor:
        return SiteMonitor(
            site,
            probe=self._probe,
            recorder=self._recorder,
            notifier=self._notifier,
            log_dir=self._settings.log_dir,
            aggregate_log=self._settings.aggregate_log,
            clock=self._clock,
            event_handler=self._event_handler,
        )

    def start(self, sites: Optional[Iterable[SiteConfig]] = None) -> None:
        self.launch(sites)
        self.wait()

    def launch(self, sites: Optional[Iterable[SiteConfig]] = None) -> None:
        """Spawn the monitor threads without waiting for them."""

        if self._threads:
            raise RuntimeError("Supervisor is already running")

        site_list = list(self._settings.sites if sites is None else sites)
        self._stop_event.clear()
        self._shutdown_requested = False
        self._announce_start(site_list)

        for site in site_list:
            monitor = self.build_monitor(site)
            thread = threading.Thread(
                name=f"sitemon:{site.identifier}",
                target=monitor.run,
                args=(self._stop_event, ),
                daemon=True,
            )
            thread.start()
            self._monitors.append(monitor)
            self._threads.append(thread)
        LOGGER.info("monitor.supervisor.started sites=%d pid=%s",
                    len(site_list), self._pid)

    def wait(self) -> None:
        """Block until all monitors have ended or shutdown was requested."""

        while self.running:
            if self._stop_event.wait(_WAIT_POLL_SECONDS):
                break

    def shutdown(self, reason: str = SHUTDOWN_REASON) -> None:
        """Log the shutdown once and cancel every monitor without joining it."""

        with self._lock:
            if self._shutdown_requested:
                return
            self._shutdown_requested = True

        message = f"{reason}. Finishing the script on {self._hostname}..."
        line = self._recorder.append(self._settings.aggregate_log, message)
        self._safe_notify(line or message)
        self._stop_event.set()
        LOGGER.info("monitor.supervisor.shutdown monitors=%d",
                    len(self._threads))

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel every monitor and wait for the threads to exit."""

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()
        self._monitors.clear()

    def _announce_start(self, sites: List[SiteConfig]) -> None:
        if self._settings.flush_log_on_start:
            for site in sites:
                self._recorder.truncate(
                    log_recorder.site_log_path(self._settings.log_dir,
                                               site.identifier))
        self._recorder.append(self._settings.aggregate_log,
                              f"Script is started. PID {self._pid}")
        self._safe_notify(
            f"Script is started on {self._hostname}. PID {self._pid}")

    def _safe_notify(self, text: str) -> None:
        try:
            self._notifier.send(text)
        except Exception as exc:  # pragma: no cover - defensive safeguard
            LOGGER.exception("monitor.supervisor.notification_error error=%s",
                             exc)
