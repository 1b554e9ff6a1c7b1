# SPDX-License-Identifier: AGPL-3.0

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol, TypeAlias

from .felt import Felt
from .project import SourceUnit


class CompilationMode(Enum):
    EXECUTE = "execute"

    # additionally enables test discovery and contract annotations
    TEST = "test"


#
# test expectations
#


@dataclass(frozen=True)
class ExpectSuccess:
    pass


@dataclass(frozen=True)
class ExpectAnyPanic:
    pass


@dataclass(frozen=True)
class ExpectExactPanic:
    values: tuple[Felt, ...]


TestExpectation: TypeAlias = ExpectSuccess | ExpectAnyPanic | ExpectExactPanic


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    expectation: TestExpectation = ExpectSuccess()
    ignored: bool = False

    # None means unconstrained
    available_gas: int | None = None


@dataclass(frozen=True)
class FunctionInfo:
    # fully qualified name, e.g. lib::tests::test_foo
    name: str
    lineno: int = 0
    num_params: int = 0

    @property
    def short_name(self) -> str:
        return self.name.rsplit("::", 1)[-1]


@dataclass(frozen=True)
class ContractInfo:
    name: str
    class_hash: Felt
    entry_points: tuple[str, ...] = ()


@dataclass(frozen=True)
class Program:
    """
    Backend-executable form of a crate.

    The core only looks at the function table; `code` is opaque and only
    meaningful to a backend built for the compiler that produced it.
    """

    functions: MappingProxyType
    code: Any = field(default=None, repr=False, compare=False)

    def find_functions(self, suffix: str) -> list[str]:
        return [name for name in self.functions if name.endswith(suffix)]

    def __contains__(self, name: str) -> bool:
        return name in self.functions


NamedTests: TypeAlias = list[tuple[str, TestCase]]


@dataclass(frozen=True)
class CompiledArtifact:
    program: Program

    # discovered tests, in source order
    named_tests: NamedTests = field(default_factory=list)

    # class hash -> contract info
    contracts_info: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({})
    )


class Compiler(Protocol):
    def compile(self, unit: SourceUnit, mode: CompilationMode) -> CompiledArtifact:
        """Compile the unit or raise CompilationError with the diagnostics."""
        ...
