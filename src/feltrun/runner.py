# SPDX-License-Identifier: AGPL-3.0

from .backend import (
    BackendFactory,
    RunPanic,
    RunResult,
    RunSuccess,
    hosted_backend_factory,
)
from .compiler import CompilationMode, Compiler, Program
from .config import Config, default_config
from .exceptions import BackendFault, EntryPointAmbiguous, EntryPointNotFound
from .frontend import HostedCompiler
from .logs import debug
from .project import setup_input_string_project
from .render import format_panic_values, render_memory, render_return_values


def find_entry_point(program: Program, suffix: str) -> str:
    """Returns the qualified name of the single function ending with suffix."""
    candidates = program.find_functions(suffix)

    match candidates:
        case []:
            raise EntryPointNotFound(suffix)
        case [name]:
            return name
        case _:
            raise EntryPointAmbiguous(suffix, candidates)


def format_run_result(result: RunResult, print_memory: bool = False) -> str:
    match result.value:
        case RunSuccess(values):
            output = f"Run completed successfully, returning {render_return_values(values)}\n"
        case RunPanic(values):
            output = f"Run panicked with {format_panic_values(values)}.\n"

    if print_memory:
        output += render_memory(result.memory)

    return output


def run_program(
    source: str,
    config: Config | None = None,
    compiler: Compiler | None = None,
    backend_factory: BackendFactory | None = None,
) -> str:
    """
    Compile the source and run its entry point.

    Returns the display text of the run, whether it completed or panicked.
    Raises CompilationError, EntryPointNotFound, EntryPointAmbiguous or
    BackendFault when the entry point could not be run at all.
    """
    config = config or default_config()
    compiler = compiler or HostedCompiler()
    backend_factory = backend_factory or hosted_backend_factory(config.max_steps)

    unit = setup_input_string_project(source, config.crate_name)
    artifact = compiler.compile(unit, CompilationMode.EXECUTE)

    entry_point = find_entry_point(artifact.program, config.entry_point)
    debug(f"entry point: {entry_point}")

    backend = backend_factory(artifact)

    try:
        # no arguments, and no gas cap
        result = backend.run_function(entry_point, (), None)
    except BackendFault as err:
        raise BackendFault(f"Failed to run the function `{entry_point}`. {err}") from err

    return format_run_result(result, config.print_memory)
