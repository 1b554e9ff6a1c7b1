import threading

import pytest

from feltrun.backend import RunPanic, RunSuccess
from feltrun.classifier import Failed, Ignored, Passed, TestResult
from feltrun.exceptions import BackendFault
from feltrun.felt import encode_short_string
from feltrun.summary import TestsSummary, format_test_line, running_header


def test_running_header():
    assert running_header(0) == "running 0 tests"
    assert running_header(1) == "running 1 test"
    assert running_header(2) == "running 2 tests"


def test_format_test_line():
    assert format_test_line(TestResult("lib::a", Passed())) == "test lib::a ... ok"
    assert (
        format_test_line(TestResult("lib::b", Failed(RunPanic()), gas_usage=42))
        == "test lib::b ... fail (gas usage est.: 42)"
    )
    assert format_test_line(TestResult("lib::c", Ignored())) == "test lib::c ... ignored"


def test_summary_partitions_results():
    panic = RunPanic((encode_short_string("boom"),))

    summary = TestsSummary(3)
    summary.update(TestResult("lib::a", Passed(), gas_usage=5))
    summary.update(TestResult("lib::b", Failed(panic)))
    summary.update(TestResult("lib::c", Ignored()))

    assert summary.finalize() is summary
    assert summary.notes == "\n".join(
        [
            "running 3 tests",
            "test lib::a ... ok (gas usage est.: 5)",
            "test lib::b ... fail",
            "test lib::c ... ignored",
        ]
    )
    assert summary.passed == ["lib::a"]
    assert summary.failed == ["lib::b"]
    assert summary.ignored == ["lib::c"]
    assert summary.failed_run_results == [panic]
    assert not summary.success


def test_poisoned_summary_raises_first_fault():
    summary = TestsSummary(3)
    summary.update(TestResult("lib::a", Passed()))

    first = BackendFault("first")
    summary.update(first)
    summary.update(BackendFault("second"))

    # results after the fault are dropped
    summary.update(TestResult("lib::c", Passed()))

    assert summary.poisoned
    assert summary.passed == ["lib::a"]

    with pytest.raises(BackendFault) as exc_info:
        summary.finalize()
    assert exc_info.value is first


def test_failure_report():
    summary = TestsSummary(2)
    summary.update(TestResult("lib::a", Failed(RunPanic((encode_short_string("boom"),)))))
    summary.update(TestResult("lib::b", Failed(RunSuccess((1, 2)))))

    assert summary.failure_report() == "\n".join(
        [
            "lib::a: Panicked with ['boom'].",
            "lib::b: Returned [1, 2], expected a panic.",
        ]
    )


def test_result_line():
    summary = TestsSummary(3)
    summary.filtered_out = 4
    summary.update(TestResult("lib::a", Passed()))
    summary.update(TestResult("lib::b", Ignored()))

    assert summary.success
    assert summary.result_line() == (
        "test result: ok. 1 passed; 0 failed; 1 ignored; 4 filtered out;"
    )

    summary.update(TestResult("lib::c", Failed(RunPanic())))
    assert summary.result_line().startswith("test result: FAILED. 1 passed; 1 failed;")


def test_concurrent_updates():
    num_threads, per_thread = 8, 50
    summary = TestsSummary(num_threads * per_thread)

    def worker(thread_id: int):
        for i in range(per_thread):
            verdict = Passed() if i % 2 == 0 else Failed(RunPanic())
            summary.update(TestResult(f"lib::t{thread_id}_{i}", verdict))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(num_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    total = num_threads * per_thread
    assert len(summary.passed) + len(summary.failed) == total
    assert len(summary.failed_run_results) == len(summary.failed)
    assert len(summary.notes.splitlines()) == total + 1
