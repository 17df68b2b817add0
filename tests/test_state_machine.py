import datetime
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from configuration import SiteConfig  # noqa: E402
from sitemon.state_machine import (  # noqa: E402
    ProbeResult,
    SiteStateMachine,
    SiteStatus,
    is_alert_cycle,
)

BASE_TIME = datetime.datetime(2024, 5, 1, 12, 0, 0)


def _feed(machine, codes):
    events = []
    for offset, code in enumerate(codes):
        when = BASE_TIME + datetime.timedelta(seconds=offset)
        events.append(machine.transition(ProbeResult(code), when))
    return events


def test_initial_state_is_optimistic():
    machine = SiteStateMachine(SiteConfig("example.com/", 5))

    assert machine.state.status is SiteStatus.UP
    assert machine.state.consecutive_failures == 0
    assert machine.state.last_success_at is None
    assert machine.state.last_alert_at is None


def test_outage_and_recovery_scenario():
    machine = SiteStateMachine(SiteConfig("example.com/", 5))

    events = _feed(machine, [200, 200, 500, 500, 200])

    assert [(e.status, e.consecutive_failures) for e in events] == [
        (SiteStatus.UP, 0),
        (SiteStatus.UP, 0),
        (SiteStatus.DOWN, 1),
        (SiteStatus.DOWN, 2),
        (SiteStatus.UP, 0),
    ]
    recovery = events[-1]
    assert recovery.is_status_change
    assert recovery.downtime_seconds == 10
    assert recovery.notifications == (
        "example.com/ is back online. Downtime was 10 seconds", )
    assert all(not line.notify for line in recovery.lines)
    assert recovery.lines[0].message == "example.com/ recovered after 10 seconds"
    assert machine.state.last_success_at == BASE_TIME + datetime.timedelta(
        seconds=4)


def test_routine_success_is_silent():
    machine = SiteStateMachine(SiteConfig("example.com/", 5))

    events = _feed(machine, [200, 200, 200])

    for event in events:
        assert event.lines == ()
        assert event.notifications == ()
        assert not event.is_status_change


def test_long_outage_alerts_once_per_twelve_failures():
    machine = SiteStateMachine(SiteConfig("example.com/", 10))

    events = _feed(machine, [503] * 13)

    verbose = [e.consecutive_failures for e in events
               if any("response FAIL" in line.message for line in e.lines)]
    assert verbose == [1, 2, 3, 4]

    alerts = [e for e in events
              if any(line.message.startswith("ALERT") for line in e.lines)]
    assert len(alerts) == 1
    alert_event = alerts[0]
    assert alert_event.consecutive_failures == 12
    assert alert_event.downtime_seconds == 120
    assert alert_event.is_alert
    (alert_line, ) = alert_event.lines
    assert alert_line.message == (
        "ALERT: example.com/ DOWN! for 120 seconds. Last ok: never")
    assert alert_line.aggregate and alert_line.notify
    assert machine.state.last_alert_at == alert_event.occurred_at

    for event in events[4:11] + events[12:]:
        assert event.lines == ()
    assert all(event.notifications == () for event in events)


def test_failure_lines_are_mirrored_and_report_code():
    machine = SiteStateMachine(SiteConfig("example.com/", 5))

    event = machine.transition(ProbeResult(301), BASE_TIME)
    (line, ) = event.lines
    assert line.message == "example.com/ response FAIL with code 301"
    assert line.notify
    assert not line.aggregate

    event = machine.transition(ProbeResult(None), BASE_TIME)
    assert event.lines[0].message.endswith("with code 000")


def test_alert_reports_last_success_timestamp():
    machine = SiteStateMachine(SiteConfig("example.com/", 1))
    machine.transition(ProbeResult(200), BASE_TIME)

    events = _feed(machine, [500] * 12)

    assert events[-1].lines[-1].message.endswith(
        "Last ok: 2024-05-01 12:00:00")


@pytest.mark.parametrize("code", [201, 204, 302, 404, 500, None])
def test_only_exact_200_counts_as_success(code):
    assert ProbeResult(code).succeeded is False
    assert ProbeResult(200).succeeded is True


def test_counter_tracks_failures_since_last_success():
    machine = SiteStateMachine(SiteConfig("example.com/", 3))
    codes = [500, 500, 200, 404, None, 500, 200, 200, 500]

    expected = 0
    for code in codes:
        event = machine.transition(ProbeResult(code), BASE_TIME)
        expected = 0 if code == 200 else expected + 1
        assert event.consecutive_failures == expected
        assert (event.status is SiteStatus.UP) == (expected == 0)


def test_recovery_line_names_last_alert_of_the_outage():
    machine = SiteStateMachine(SiteConfig("example.com", 10))

    events = _feed(machine, [500] * 13 + [200, 500, 200])

    alert_time = BASE_TIME + datetime.timedelta(seconds=11)
    assert events[13].lines[0].message == (
        "example.com recovered. Last fail: 2024-05-01 12:00:11 lasted 130 seconds")
    assert events[11].occurred_at == alert_time
    assert events[15].lines[0].message == "example.com recovered after 10 seconds"
    assert machine.state.last_alert_at is None


def test_recovery_fires_once_per_outage():
    machine = SiteStateMachine(SiteConfig("example.com/", 2))

    events = _feed(machine, [500, 200, 200, 500, 500, 500, 200, 200])

    recoveries = [e for e in events if e.notifications]
    assert [e.downtime_seconds for e in recoveries] == [2, 6]


def test_alert_cycle_predicate():
    assert not is_alert_cycle(0)
    assert not is_alert_cycle(11)
    assert is_alert_cycle(12)
    assert is_alert_cycle(24)
    assert not is_alert_cycle(25)
