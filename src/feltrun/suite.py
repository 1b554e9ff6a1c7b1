# SPDX-License-Identifier: AGPL-3.0

from concurrent.futures import ThreadPoolExecutor

from .backend import BackendFactory, ExecutionBackend, hosted_backend_factory
from .classifier import TestResult, effective_test, run_single_test
from .compiler import CompilationMode, Compiler, NamedTests, TestCase
from .config import Config, default_config
from .exceptions import BackendFault
from .frontend import HostedCompiler
from .logs import NO_TESTS_FOUND, debug, warn_code
from .project import setup_input_string_project
from .summary import TestsSummary


def filter_tests(named_tests: NamedTests, config: Config) -> tuple[NamedTests, int]:
    """
    Select the tests to run.

    Returns the selected tests, in discovery order, and the number of tests
    that were filtered out.
    """
    selected = []
    for name, test in named_tests:
        if config.filter and config.filter not in name:
            continue

        if config.ignored:
            # run the ignored tests, and only those
            if not test.ignored:
                continue
            test = effective_test(test, include_ignored=True)
        else:
            test = effective_test(test, config.include_ignored)

        selected.append((name, test))

    return selected, len(named_tests) - len(selected)


def _run_one(
    name: str, test: TestCase, backend: ExecutionBackend
) -> TestResult | BackendFault:
    try:
        return run_single_test(name, test, backend)
    except BackendFault as err:
        return err


def run_tests(
    source: str,
    config: Config | None = None,
    compiler: Compiler | None = None,
    backend_factory: BackendFactory | None = None,
) -> TestsSummary:
    """
    Compile the source in test mode and run the tests it declares.

    Raises CompilationError if the source doesn't compile, and BackendFault if
    the backend fails to run any of the tests. Failing tests are not errors,
    they are reported in the returned summary.
    """
    config = config or default_config()
    compiler = compiler or HostedCompiler()
    backend_factory = backend_factory or hosted_backend_factory(config.max_steps)

    unit = setup_input_string_project(source, config.crate_name)
    artifact = compiler.compile(unit, CompilationMode.TEST)

    named_tests, filtered_out = filter_tests(artifact.named_tests, config)
    debug(f"{len(named_tests)} tests selected, {filtered_out} filtered out")

    if config.filter and not named_tests:
        warn_code(NO_TESTS_FOUND, f"no test matches the filter '{config.filter}'")

    # the header is computed before anything runs
    summary = TestsSummary(len(named_tests))
    summary.filtered_out = filtered_out

    try:
        backend = backend_factory(artifact)
    except BackendFault as err:
        summary.update(err)
        return summary.finalize()

    # run the tests in parallel, then merge the results in discovery order
    threads = max(1, config.threads)
    with ThreadPoolExecutor(max_workers=threads) as executor:
        results = executor.map(
            lambda named_test: _run_one(*named_test, backend), named_tests
        )

        for result in results:
            summary.update(result)
            if summary.poisoned:
                # later results would be dropped anyway
                executor.shutdown(wait=False, cancel_futures=True)
                break

    return summary.finalize()
