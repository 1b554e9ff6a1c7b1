# SPDX-License-Identifier: AGPL-3.0

import threading
from .backend import RunPanic, RunResultValue
from .classifier import Failed, Ignored, Passed, TestResult
from .exceptions import BackendFault
from .logs import debug
from .render import format_panic_values, render_return_values


def running_header(num_tests: int) -> str:
    suffix = "" if num_tests == 1 else "s"
    return f"running {num_tests} test{suffix}"


def format_test_line(result: TestResult) -> str:
    line = f"test {result.name} ... {result.status}"
    if result.gas_usage is not None:
        line += f" (gas usage est.: {result.gas_usage})"
    return line


def describe_failure(value: RunResultValue) -> str:
    match value:
        case RunPanic(values):
            return f"Panicked with {format_panic_values(values)}."
        case _:
            return f"Returned {render_return_values(value.values)}, expected a panic."


class TestsSummary:
    """
    Accumulates the results of a test run.

    Results are merged one at a time under a lock. The first BackendFault
    poisons the summary: later results are dropped, and finalize() raises it.
    """

    __test__ = False

    def __init__(self, num_tests: int):
        self._lock = threading.Lock()
        self._notes = [running_header(num_tests)]
        self._passed: list[str] = []
        self._failed: list[str] = []
        self._ignored: list[str] = []
        self._failed_run_results: list[RunResultValue] = []
        self._fault: BackendFault | None = None

        # number of tests dropped by the filter, informational
        self.filtered_out = 0

    def update(self, test_result: TestResult | BackendFault) -> None:
        with self._lock:
            if self._fault is not None:
                debug(f"summary poisoned, dropping {test_result}")
                return

            if isinstance(test_result, BackendFault):
                self._fault = test_result
                return

            self._notes.append(format_test_line(test_result))

            match test_result.verdict:
                case Passed():
                    self._passed.append(test_result.name)
                case Failed(value):
                    self._failed.append(test_result.name)
                    self._failed_run_results.append(value)
                case Ignored():
                    self._ignored.append(test_result.name)

    @property
    def poisoned(self) -> bool:
        return self._fault is not None

    def finalize(self) -> "TestsSummary":
        """Returns the summary, or raises the fault that poisoned it."""
        if self._fault is not None:
            raise self._fault
        return self

    @property
    def notes(self) -> str:
        return "\n".join(self._notes)

    @property
    def passed(self) -> list[str]:
        return list(self._passed)

    @property
    def failed(self) -> list[str]:
        return list(self._failed)

    @property
    def ignored(self) -> list[str]:
        return list(self._ignored)

    @property
    def failed_run_results(self) -> list[RunResultValue]:
        return list(self._failed_run_results)

    @property
    def success(self) -> bool:
        return not self._failed

    def failure_report(self) -> str:
        """Human readable reasons for every failed test."""
        lines = []
        for name, value in zip(self._failed, self._failed_run_results, strict=True):
            lines.append(f"{name}: {describe_failure(value)}")
        return "\n".join(lines)

    def result_line(self) -> str:
        outcome = "ok" if self.success else "FAILED"
        return (
            f"test result: {outcome}. {len(self._passed)} passed; "
            f"{len(self._failed)} failed; {len(self._ignored)} ignored; "
            f"{self.filtered_out} filtered out;"
        )
