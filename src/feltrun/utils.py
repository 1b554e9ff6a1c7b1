# SPDX-License-Identifier: AGPL-3.0

from timeit import default_timer as timer


def green(text: str) -> str:
    return f"\033[32m{text}\033[0m"


def red(text: str) -> str:
    return f"\033[31m{text}\033[0m"


def yellow(text: str) -> str:
    return f"\033[33m{text}\033[0m"


color_good = green
color_warn = yellow
color_error = red


def color_status(status: str) -> str:
    match status:
        case "ok":
            return color_good(status)
        case "fail":
            return color_error(status)
        case "ignored":
            return color_warn(status)
        case _:
            return status


def indent_text(text: str, n: int = 4) -> str:
    return "\n".join(" " * n + line for line in text.splitlines())


class NamedTimer:
    """Wall clock timer with named phases, reported with --statistics."""

    def __init__(self, name: str):
        self.name = name
        self.start_time = timer()
        self.end_time = None
        self.sub_timers: list[NamedTimer] = []

    def stop(self):
        for sub_timer in self.sub_timers:
            sub_timer.stop()

        # stopping twice keeps the first end time
        self.end_time = self.end_time or timer()

    def create_subtimer(self, name: str) -> "NamedTimer":
        if any(sub_timer.name == name for sub_timer in self.sub_timers):
            raise ValueError(f"Timer with name {name} already exists.")

        # phases are sequential
        if self.sub_timers:
            self.sub_timers[-1].stop()

        sub_timer = NamedTimer(name)
        self.sub_timers.append(sub_timer)
        return sub_timer

    def elapsed(self) -> float:
        end_time = self.end_time if self.end_time is not None else timer()
        return end_time - self.start_time

    def report(self) -> str:
        phases = ", ".join(
            f"{t.name}: {format_time(t.elapsed())}" for t in self.sub_timers
        )
        phases = f" ({phases})" if phases else ""
        return f"{self.name}: {format_time(self.elapsed())}{phases}"

    def __str__(self):
        return self.report()


def format_time(seconds: float) -> str:
    """
    Returns a pretty string for an elapsed time in seconds.

    Examples:
        62.003 -> 1m02s
        1.5 -> 1.500s
        0.123456789 -> 123.457ms
        0.000001234 -> 1.234µs
    """
    if seconds >= 60:
        minutes, rest = divmod(int(seconds), 60)
        return f"{minutes}m{rest:02}s"

    for scale, unit in ((1, "s"), (1e-3, "ms"), (1e-6, "µs")):
        if seconds >= scale:
            return f"{seconds / scale:.3f}{unit}"

    return f"{seconds * 1e9:.3f}ns"
