from datetime import datetime, timedelta, timezone

from ybuild.builder.report import render_summary
from ybuild.common.dto.build import CommandTimer, TargetTimer
from ybuild.common.exceptions.build_exceptions import ExecutionError


START = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _timers():
    return [
        TargetTimer(
            name="default",
            timers=[
                CommandTimer(command="make", start_time=START, end_time=START + timedelta(seconds=5)),
                CommandTimer(
                    command="make test",
                    start_time=START + timedelta(seconds=5),
                    end_time=START + timedelta(seconds=65),
                ),
            ],
        )
    ]


def test_success_summary():
    summary = render_summary(_timers(), START, START + timedelta(seconds=70))
    lines = summary.splitlines()

    header = next(line for line in lines if "Command" in line)
    assert header.split() == ["Start", "End", "Elapsed", "Target", "Command"]
    assert any(line.split()[-2:] == ["default", "make"] and "5s" in line.split() for line in lines)
    assert any(line.split()[-3:] == ["default", "make", "test"] and "1m" in line.split() for line in lines)
    assert any(line.strip() == "1m 10s   TOTAL" for line in lines)
    assert lines[-1] == " -- BUILD SUCCEEDED -- "


def test_failure_summary_names_the_error():
    error = ExecutionError(message="Command failed with exit code 2", command="make test", exit_code=2)

    summary = render_summary(_timers(), START, START + timedelta(seconds=70), error)

    assert " -- BUILD FAILED -- " in summary
    assert "Command failed with exit code 2" in summary
    assert "BUILD SUCCEEDED" not in summary


def test_empty_timers_still_render_total():
    summary = render_summary([], START, START + timedelta(seconds=1))

    assert "TOTAL" in summary
    assert "BUILD SUCCEEDED" in summary
