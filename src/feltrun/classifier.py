# SPDX-License-Identifier: AGPL-3.0

from dataclasses import dataclass
from typing import TypeAlias

from .backend import ExecutionBackend, RunPanic, RunResultValue, RunSuccess
from .compiler import (
    ExpectAnyPanic,
    ExpectExactPanic,
    ExpectSuccess,
    TestCase,
    TestExpectation,
)
from .exceptions import BackendFault
from .logs import debug


@dataclass(frozen=True)
class Passed:
    pass


@dataclass(frozen=True)
class Failed:
    # the raw outcome, kept for diagnostics
    value: RunResultValue


@dataclass(frozen=True)
class Ignored:
    pass


TestVerdict: TypeAlias = Passed | Failed | Ignored


@dataclass(frozen=True)
class TestResult:
    """The result of a ran test."""

    __test__ = False

    name: str
    verdict: TestVerdict

    # the gas usage of the run, if the backend metered it
    gas_usage: int | None = None

    @property
    def status(self) -> str:
        match self.verdict:
            case Passed():
                return "ok"
            case Failed():
                return "fail"
            case Ignored():
                return "ignored"


def classify(expectation: TestExpectation, value: RunResultValue) -> TestVerdict:
    """Match the observed outcome of a test against its declared expectation."""
    match expectation, value:
        case ExpectSuccess(), RunSuccess():
            return Passed()
        case ExpectSuccess(), RunPanic():
            return Failed(value)
        case ExpectAnyPanic(), RunPanic():
            return Passed()
        case ExpectExactPanic(expected), RunPanic(values) if values == expected:
            return Passed()
        case ExpectExactPanic(), RunPanic():
            return Failed(value)
        case ExpectAnyPanic() | ExpectExactPanic(), RunSuccess():
            return Failed(value)

    raise TypeError(f"unexpected test expectation or outcome: {expectation}, {value}")


def effective_test(test: TestCase, include_ignored: bool) -> TestCase:
    if include_ignored and test.ignored:
        return TestCase(test.expectation, ignored=False, available_gas=test.available_gas)
    return test


def run_single_test(
    name: str, test: TestCase, backend: ExecutionBackend
) -> TestResult:
    """Runs a single test and returns its classified result.

    Ignored tests never reach the backend. Raises BackendFault if the backend
    can't run the test function.
    """
    if test.ignored:
        return TestResult(name, Ignored())

    try:
        result = backend.run_function(name, (), test.available_gas)
    except BackendFault as err:
        raise BackendFault(f"Failed to run the function `{name}`. {err}") from err

    verdict = classify(test.expectation, result.value)
    debug(f"{name}: {result.value} -> {verdict}")

    return TestResult(name, verdict, result.gas_counter)
