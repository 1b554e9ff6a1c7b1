# SPDX-License-Identifier: AGPL-3.0

import json
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from importlib import metadata

from .config import (
    Config,
    ConfigSource,
    arg_parser,
    default_config,
    resolve_config_files,
    toml_parser,
)
from .constants import VERBOSITY_TRACE_TESTS
from .exceptions import (
    BackendFault,
    CompilationError,
    EntryPointAmbiguous,
    EntryPointNotFound,
    FeltrunException,
)
from .logs import (
    BACKEND_FAULT,
    COMPILATION_FAILED,
    ENTRY_POINT,
    INTERNAL_ERROR,
    ErrorCode,
    debug,
    error,
    error_with_code,
    set_debug,
)
from .runner import run_program
from .suite import run_tests
from .summary import TestsSummary
from .ui import status_display
from .utils import NamedTimer, color_error, color_good, color_status, indent_text

NOTE_PATTERN = re.compile(r"^(test .* \.\.\. )(ok|fail|ignored)(.*)$")


@dataclass(frozen=True)
class MainResult:
    exitcode: int
    success: bool = False

    # run output, test notes, or the error message
    message: str = ""

    passed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def load_config(_args) -> Config:
    config = default_config()

    # parse CLI args first, so that can get `--help` out of the way
    # but don't apply the CLI overrides yet
    cli_overrides = arg_parser().parse_args(_args)

    # then for each config file, parse it and override the args
    for config_file in resolve_config_files(_args):
        if not os.path.exists(config_file):
            error(f"Config file not found: {config_file}")
            sys.exit(2)

        overrides = toml_parser().parse_file(config_file)
        config = config.with_overrides(ConfigSource.config_file, **overrides)

    # finally apply the CLI overrides
    return config.with_overrides(ConfigSource.command_line, **vars(cli_overrides))


def read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()

    with open(path) as f:
        return f.read()


def error_code_for(err: FeltrunException) -> ErrorCode:
    match err:
        case CompilationError():
            return COMPILATION_FAILED
        case EntryPointNotFound() | EntryPointAmbiguous():
            return ENTRY_POINT
        case BackendFault():
            return BACKEND_FAULT
        case _:
            return INTERNAL_ERROR


def colored_note(line: str) -> str:
    if m := NOTE_PATTERN.match(line):
        prefix, status, suffix = m.groups()
        return f"{prefix}{color_status(status)}{suffix}"
    return line


def print_summary(summary: TestsSummary, args: Config) -> None:
    for line in summary.notes.splitlines():
        print(colored_note(line))

    if summary.failed:
        print("\nfailures:")
        print(indent_text(summary.failure_report()))

        if args.verbose >= VERBOSITY_TRACE_TESTS:
            print("\nraw failures:")
            for name, value in zip(
                summary.failed, summary.failed_run_results, strict=True
            ):
                print(indent_text(f"{name}: {value}"))

    result_line = summary.result_line()
    print(f"\n{color_good(result_line) if summary.success else color_error(result_line)}")


def _main(_args=None) -> MainResult:
    timer = NamedTimer("total")

    #
    # command line arguments
    #

    args = load_config(_args)

    if args.version:
        print(f"feltrun {metadata.version('feltrun')}")
        return MainResult(0, success=True)

    set_debug(args.debug)
    debug(f"config:\n{args.formatted_layers()}")

    if args.source is None:
        error("No source given, use --source FILE (or --source - to read from stdin)")
        return MainResult(1)

    def on_exit(result: MainResult) -> MainResult:
        if args.statistics:
            print(f"\n[time] {timer.report()}")

        if args.json_output:
            debug(f"Writing output to {args.json_output}")
            with open(args.json_output, "w") as json_file:
                json.dump(asdict(result), json_file, indent=4)

        return result

    #
    # read
    #

    timer.create_subtimer("read")
    try:
        source = read_source(args.source)
    except OSError as err:
        message = f"Failed to read {args.source}: {err}"
        error(message)
        return on_exit(MainResult(1, message=message))

    #
    # run
    #

    timer.create_subtimer("run")
    try:
        if args.test:
            with status_display(
                f"Running tests in {args.source}", enabled=not args.no_status
            ):
                summary = run_tests(source, args)

            print_summary(summary, args)
            result = MainResult(
                0 if summary.success else 1,
                success=summary.success,
                message=summary.notes,
                passed=summary.passed,
                failed=summary.failed,
            )
        else:
            output = run_program(source, args)
            print(output, end="" if output.endswith("\n") else "\n")
            result = MainResult(0, success=True, message=output)

    except FeltrunException as err:
        error_with_code(error_code_for(err), str(err))
        result = MainResult(1, message=str(err))

    timer.stop()
    return on_exit(result)


# entrypoint for the `feltrun` script
def main() -> int:
    return _main().exitcode


if __name__ == "__main__":
    sys.exit(main())
