from datetime import datetime
from typing import Optional, List

from ybuild.common.config.constants import TIME_FORMAT
from ybuild.common.dto.build import TargetTimer
from ybuild.common.utils.time_utils import format_clock, format_duration


SUCCESS_BANNER = " -- BUILD SUCCEEDED -- "
FAILURE_BANNER = " -- BUILD FAILED -- "

ROW_FORMAT = "{:>15}{:>15}{:>15}   {:<20}{}"


def render_summary(
    target_timers: List[TargetTimer],
    started_at: datetime,
    finished_at: datetime,
    error: Optional[Exception] = None,
) -> str:
    total = finished_at - started_at
    lines = [
        "",
        f"Build finished at {format_clock(finished_at, TIME_FORMAT)}, taking {format_duration(total)}",
        "",
        ROW_FORMAT.format("Start", "End", "Elapsed", "Target", "Command"),
    ]

    for target in target_timers:
        for timer in target.timers:
            lines.append(ROW_FORMAT.format(
                format_clock(timer.start_time, TIME_FORMAT),
                format_clock(timer.end_time, TIME_FORMAT),
                format_duration(timer.elapsed),
                target.name,
                timer.command,
            ))

    lines.append("")
    lines.append(ROW_FORMAT.format("", "", format_duration(total), "TOTAL", "").rstrip())
    lines.append("")
    lines.append("")

    if error is not None:
        lines.append(FAILURE_BANNER)
        lines.append(str(error))
    else:
        lines.append(SUCCESS_BANNER)

    return "\n".join(lines) + "\n"
