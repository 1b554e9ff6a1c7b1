# SPDX-License-Identifier: AGPL-3.0

from dataclasses import dataclass, field
from types import MappingProxyType

from .constants import DEFAULT_CRATE_NAME, PATH_SEPARATOR, SOURCE_FILE_EXTENSION
from .exceptions import ProjectError
from .logs import debug

ROOT_MODULE = "lib"


@dataclass(frozen=True)
class SourceUnit:
    """A single-file crate built from raw source text."""

    crate_name: str

    # virtual directory: file name -> contents
    files: MappingProxyType = field(repr=False)

    @property
    def main_file(self) -> str:
        return f"{ROOT_MODULE}.{SOURCE_FILE_EXTENSION}"

    @property
    def text(self) -> str:
        return self.files[self.main_file]


def setup_input_string_project(
    source: str, crate_name: str = DEFAULT_CRATE_NAME
) -> SourceUnit:
    """Wrap the given source text into a crate with a single root module file.

    The contents are not validated here, syntax errors are reported by the compiler.
    """
    if not crate_name or PATH_SEPARATOR in crate_name or not crate_name.isidentifier():
        raise ProjectError(f"Invalid crate name: {crate_name!r}")

    if not isinstance(source, str):
        raise ProjectError(f"Expected source text, got {type(source).__name__}")

    main_file = f"{ROOT_MODULE}.{SOURCE_FILE_EXTENSION}"
    debug(f"registering crate {crate_name} ({main_file}, {len(source)} chars)")

    return SourceUnit(
        crate_name=crate_name,
        files=MappingProxyType({main_file: source}),
    )
