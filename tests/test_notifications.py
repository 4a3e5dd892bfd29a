from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ats_agent.notifications import (  # noqa: E402
    NAVIGATION_FAILED,
    NAVIGATION_STARTING,
    EventChannel,
    TelemetryWriter,
)


def test_events_reach_subscribers_and_sink(tmp_path: Path) -> None:
    sink = TelemetryWriter(tmp_path / "run.jsonl")
    channel = EventChannel(sink=sink)
    received = []
    channel.subscribe(received.append)

    channel.navigation_starting("job-1", "https://jobs.example.test/apply")
    channel.navigation_failed("job-1", "account_required", "Create an account first")
    sink.close()

    assert [event["type"] for event in received] == [NAVIGATION_STARTING, NAVIGATION_FAILED]
    assert received[1]["payload"] == {"jobId": "job-1", "reason": "account_required", "message": "Create an account first"}

    lines = [json.loads(line) for line in (tmp_path / "run.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == [NAVIGATION_STARTING, NAVIGATION_FAILED]
    assert all("timestamp" in line for line in lines)


def test_failing_subscriber_does_not_block_others() -> None:
    channel = EventChannel()
    received = []

    def broken(event) -> None:
        raise RuntimeError("listener crashed")

    channel.subscribe(broken)
    channel.subscribe(received.append)

    channel.navigation_complete("job-2", "Application form filled and submitted")

    assert len(received) == 1
    assert channel.events == received
