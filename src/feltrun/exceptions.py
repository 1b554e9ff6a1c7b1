# SPDX-License-Identifier: AGPL-3.0

"""
feltrun Exceptions
==================

Fatal errors raised while compiling or running a snippet.

A test that panics or otherwise misses its expectation is *not* an error: it is
recorded as a failed verdict in the test summary and the run still succeeds.
"""

from .constants import ENTRY_POINT_SUFFIX


class FeltrunException(Exception):
    """
    Base class for errors that abort the current request.

    The string form of the exception is the human-readable message returned to
    the caller.
    """

    pass


class ProjectError(FeltrunException):
    """
    Raised when the source text cannot be registered as a virtual crate.

    This is an internal fault, not a diagnostic about the user's code.
    """

    pass


class CompilationError(FeltrunException):
    """
    Raised when the front end rejects the source.

    The diagnostics text is kept verbatim; the message adds a static prefix so
    that callers can tell compilation failures from runtime failures.
    """

    prefix = "Compilation failed."

    def __init__(self, diagnostics: str):
        self.diagnostics = diagnostics
        super().__init__(f"{self.prefix}\n\n{diagnostics}")


class EntryPointNotFound(FeltrunException):
    def __init__(self, suffix: str = ENTRY_POINT_SUFFIX):
        self.suffix = suffix
        super().__init__(f"Function with suffix `{suffix}` to run not found.")


class EntryPointAmbiguous(FeltrunException):
    def __init__(self, suffix: str, candidates: list[str]):
        self.suffix = suffix
        self.candidates = candidates
        super().__init__(
            f"Function with suffix `{suffix}` is ambiguous, candidates: "
            f"{', '.join(candidates)}."
        )


class BackendFault(FeltrunException):
    """
    Raised when the execution backend itself could not run a function, as
    opposed to running it and observing a panic.

    In test mode this poisons the whole suite.
    """

    pass


class OutOfSteps(BackendFault):
    """
    Raised when a program without a gas budget exceeds the configured step limit.
    """

    pass
