# SPDX-License-Identifier: AGPL-3.0

"""
Reference compiler for felt programs written in python syntax.

A program is a module made of function definitions, namespaces (classes without
bases) and constants. Tests and contracts are declared with decorators:

    @test
    @should_panic(expected=("boom",))
    @available_gas(100000)
    def test_boom():
        panic("boom")

    @contract
    class Counter:
        def get(self):
            return 42
"""

import ast
import hashlib
from dataclasses import dataclass, field
from types import MappingProxyType

from .compiler import (
    CompilationMode,
    CompiledArtifact,
    ContractInfo,
    ExpectAnyPanic,
    ExpectExactPanic,
    ExpectSuccess,
    FunctionInfo,
    Program,
    TestCase,
)
from .constants import PATH_SEPARATOR
from .exceptions import CompilationError
from .felt import encode_message, to_felt
from .logs import debug
from .project import SourceUnit

TEST_ATTR = "test"
IGNORE_ATTR = "ignore"
SHOULD_PANIC_ATTR = "should_panic"
AVAILABLE_GAS_ATTR = "available_gas"
CONTRACT_ATTR = "contract"

TEST_CLASS_HASH = "TEST_CLASS_HASH"

# called first in every except and finally block, see GuardHandlers
HALT_GUARD = "__halt_guard__"

CONSTANT_NODES = (
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Tuple,
    ast.UnaryOp,
    ast.BinOp,
    ast.operator,
    ast.unaryop,
)


@dataclass(frozen=True)
class Diagnostic:
    message: str
    lineno: int
    col_offset: int = 0
    end_col_offset: int | None = None

    def format(self, filename: str, lines: list[str]) -> str:
        line = lines[self.lineno - 1] if 0 < self.lineno <= len(lines) else ""
        width = (
            self.end_col_offset - self.col_offset
            if self.end_col_offset is not None
            and self.end_col_offset > self.col_offset
            else 1
        )
        marker = " " * self.col_offset + "^" * width
        return (
            f"error: {self.message}\n"
            f" --> {filename}:{self.lineno}:{self.col_offset + 1}\n"
            f"{line}\n"
            f"{marker}\n"
        )


def at(node: ast.AST, message: str) -> Diagnostic:
    end_col = node.end_col_offset if node.end_lineno == node.lineno else None
    return Diagnostic(message, node.lineno, node.col_offset, end_col)


def is_reserved(name: str) -> bool:
    return name.startswith("__")


def reserved_name(node: ast.AST, name: str) -> Diagnostic:
    return at(node, f"Names starting with `__` are reserved: `{name}`.")


def class_hash_of(qualified_name: str) -> int:
    digest = hashlib.sha256(qualified_name.encode("utf-8")).digest()
    # 250 bits, always below the field prime
    return int.from_bytes(digest, "big") >> 6


@dataclass(frozen=True)
class HostedCode:
    """Payload of a Program built by HostedCompiler."""

    code: object
    filename: str
    crate_name: str

    # qualified contract name -> class hash
    contracts: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))


@dataclass
class Attributes:
    names: list[str] = field(default_factory=list)
    expectation: object = ExpectSuccess()
    available_gas: int | None = None

    @property
    def is_test(self) -> bool:
        return TEST_ATTR in self.names

    @property
    def ignored(self) -> bool:
        return IGNORE_ATTR in self.names


def literal_felts(node: ast.expr) -> list[int] | None:
    """Felts of a literal expected-panic value: a string, an int, or a tuple of those."""
    try:
        value = ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError):
        return None

    items = value if isinstance(value, tuple) else (value,)
    felts = []
    for item in items:
        if isinstance(item, str):
            felts.extend(encode_message(item))
        elif isinstance(item, int):
            felts.append(to_felt(item))
        else:
            return None
    return felts


class ItemCollector:
    """Walks the module, validates items and records functions, tests and contracts."""

    def __init__(self, unit: SourceUnit, mode: CompilationMode):
        self.crate_name = unit.crate_name
        self.mode = mode
        self.diagnostics: list[Diagnostic] = []
        self.functions: dict[str, FunctionInfo] = {}
        self.named_tests: list[tuple[str, TestCase]] = []
        self.contracts: dict[str, ContractInfo] = {}

    @property
    def discover_tests(self) -> bool:
        return self.mode == CompilationMode.TEST

    def qualified(self, path: tuple[str, ...], name: str) -> str:
        return PATH_SEPARATOR.join((self.crate_name, *path, name))

    def visit_module(self, tree: ast.Module) -> None:
        self.visit_body(tree.body, path=())

    def visit_body(self, body: list[ast.stmt], path: tuple[str, ...]) -> None:
        seen = {}
        for index, stmt in enumerate(body):
            name = getattr(stmt, "name", None)
            if name is not None:
                if name in seen:
                    self.diagnostics.append(
                        at(stmt, f"The name `{name}` is defined multiple times.")
                    )
                if is_reserved(name) and not isinstance(stmt, ast.FunctionDef):
                    self.diagnostics.append(reserved_name(stmt, name))
                seen[name] = stmt

            match stmt:
                case ast.FunctionDef():
                    self.visit_function(stmt, path)
                case ast.ClassDef():
                    self.visit_class(stmt, path)
                case ast.AsyncFunctionDef():
                    self.diagnostics.append(
                        at(stmt, "Async functions are not supported.")
                    )
                case ast.Import() | ast.ImportFrom():
                    self.diagnostics.append(at(stmt, "Imports are not supported."))
                case ast.Assign() | ast.AnnAssign():
                    self.visit_constant(stmt)
                case ast.Pass():
                    pass
                case ast.Expr(value=ast.Constant(value=str())) if index == 0:
                    # docstring
                    pass
                case _:
                    self.diagnostics.append(
                        at(stmt, "Only item definitions are allowed at module level.")
                    )

    def visit_constant(self, stmt: ast.Assign | ast.AnnAssign) -> None:
        targets = stmt.targets if isinstance(stmt, ast.Assign) else [stmt.target]
        if not all(isinstance(target, ast.Name) for target in targets):
            self.diagnostics.append(at(stmt, "Constants must be assigned to a name."))
            return

        for target in targets:
            if is_reserved(target.id):
                self.diagnostics.append(reserved_name(target, target.id))

        value = stmt.value
        if value is None or not all(
            isinstance(node, CONSTANT_NODES) for node in ast.walk(value)
        ):
            self.diagnostics.append(
                at(stmt, "Only constant expressions are supported for constants.")
            )

    def visit_class(self, node: ast.ClassDef, path: tuple[str, ...]) -> None:
        if node.bases or node.keywords:
            self.diagnostics.append(at(node, "Class bases are not supported."))
            return

        is_contract = False
        for decorator in node.decorator_list:
            if isinstance(decorator, ast.Name) and decorator.id == CONTRACT_ATTR:
                is_contract = True
            else:
                self.diagnostics.append(at(decorator, "Unsupported attribute."))

        if is_contract:
            self.visit_contract(node, path)
        else:
            self.visit_body(node.body, (*path, node.name))

    def visit_contract(self, node: ast.ClassDef, path: tuple[str, ...]) -> None:
        qualified_name = self.qualified(path, node.name)
        entry_points = []
        for stmt in node.body:
            match stmt:
                case ast.FunctionDef():
                    if stmt.decorator_list:
                        self.diagnostics.append(
                            at(stmt.decorator_list[0], "Unsupported attribute.")
                        )
                    self.visit_function_body(stmt)
                    if not stmt.name.startswith("_"):
                        entry_points.append(stmt.name)
                case ast.Assign() | ast.AnnAssign():
                    self.visit_constant(stmt)
                case ast.Pass() | ast.Expr(value=ast.Constant(value=str())):
                    pass
                case _:
                    self.diagnostics.append(
                        at(stmt, "Only methods are allowed in a contract.")
                    )

        if self.discover_tests:
            self.contracts[qualified_name] = ContractInfo(
                name=qualified_name,
                class_hash=class_hash_of(qualified_name),
                entry_points=tuple(entry_points),
            )

    def visit_function(self, node: ast.FunctionDef, path: tuple[str, ...]) -> None:
        qualified_name = self.qualified(path, node.name)
        attrs = self.parse_attributes(node)
        self.visit_function_body(node)

        if attrs.is_test and node.args.args:
            self.diagnostics.append(
                at(node, "Test functions cannot have parameters.")
            )

        if attrs.is_test and not self.discover_tests:
            # tests are only compiled in test mode
            return

        self.functions[qualified_name] = FunctionInfo(
            name=qualified_name,
            lineno=node.lineno,
            num_params=len(node.args.args),
        )

        if attrs.is_test:
            self.named_tests.append(
                (
                    qualified_name,
                    TestCase(
                        expectation=attrs.expectation,
                        ignored=attrs.ignored,
                        available_gas=attrs.available_gas,
                    ),
                )
            )

    def visit_function_body(self, node: ast.FunctionDef) -> None:
        for child in ast.walk(node):
            match child:
                case ast.Import() | ast.ImportFrom():
                    self.diagnostics.append(at(child, "Imports are not supported."))
                case (
                    ast.FunctionDef(name=name)
                    | ast.ClassDef(name=name)
                    | ast.Name(id=name)
                    | ast.Attribute(attr=name)
                    | ast.arg(arg=name)
                ) if is_reserved(name):
                    self.diagnostics.append(reserved_name(child, name))

    def parse_attributes(self, node: ast.FunctionDef) -> Attributes:
        attrs = Attributes()

        for decorator in node.decorator_list:
            match decorator:
                case ast.Name(id=name) if name in (TEST_ATTR, IGNORE_ATTR):
                    attrs.names.append(name)
                case ast.Name(id=name) if name == SHOULD_PANIC_ATTR:
                    attrs.names.append(name)
                    attrs.expectation = ExpectAnyPanic()
                case ast.Call(func=ast.Name(id=name)) if name == SHOULD_PANIC_ATTR:
                    attrs.names.append(name)
                    attrs.expectation = self.parse_should_panic(decorator)
                case ast.Call(func=ast.Name(id=name)) if name == AVAILABLE_GAS_ATTR:
                    attrs.names.append(name)
                    attrs.available_gas = self.parse_available_gas(decorator)
                case _:
                    self.diagnostics.append(at(decorator, "Unsupported attribute."))

        duplicates = {name for name in attrs.names if attrs.names.count(name) > 1}
        for name in sorted(duplicates):
            self.diagnostics.append(at(node, f"Attribute `{name}` is repeated."))

        if not attrs.is_test:
            for name in attrs.names:
                self.diagnostics.append(
                    at(node, f"Attribute `{name}` is only supported on test functions.")
                )

        return attrs

    def parse_should_panic(self, call: ast.Call) -> object:
        if call.args or any(kw.arg != "expected" for kw in call.keywords):
            self.diagnostics.append(
                at(call, "Expected `should_panic` or `should_panic(expected=...)`.")
            )
            return ExpectAnyPanic()

        if not call.keywords:
            return ExpectAnyPanic()

        felts = literal_felts(call.keywords[0].value)
        if felts is None:
            self.diagnostics.append(
                at(
                    call.keywords[0].value,
                    "Expected panic data must be a string, an integer or a tuple of those.",
                )
            )
            return ExpectAnyPanic()

        return ExpectExactPanic(tuple(felts))

    def parse_available_gas(self, call: ast.Call) -> int | None:
        match call:
            case ast.Call(args=[ast.Constant(value=int() as gas)], keywords=[]) if (
                gas >= 0 and not isinstance(gas, bool)
            ):
                return gas

        self.diagnostics.append(
            at(call, "Expected `available_gas(N)` with a non-negative integer.")
        )
        return None


class StripTests(ast.NodeTransformer):
    """Removes test functions, so that they are not part of a non-test build."""

    def visit_FunctionDef(self, node: ast.FunctionDef):
        for decorator in node.decorator_list:
            if isinstance(decorator, ast.Name) and decorator.id == TEST_ATTR:
                return None
        return node

    def visit_ClassDef(self, node: ast.ClassDef):
        self.generic_visit(node)
        if not node.body:
            node.body = [ast.Pass()]
        return node


class InjectClassHashes(ast.NodeTransformer):
    """Adds a TEST_CLASS_HASH constant to every contract class."""

    def __init__(self, crate_name: str, contracts: dict[str, ContractInfo]):
        self.crate_name = crate_name
        self.contracts = contracts
        self.path: list[str] = []

    def visit_ClassDef(self, node: ast.ClassDef):
        self.path.append(node.name)
        self.generic_visit(node)
        qualified_name = PATH_SEPARATOR.join([self.crate_name, *self.path])
        self.path.pop()

        if (info := self.contracts.get(qualified_name)) is not None:
            node.body.insert(
                0,
                ast.Assign(
                    targets=[ast.Name(id=TEST_CLASS_HASH, ctx=ast.Store())],
                    value=ast.Constant(value=info.class_hash),
                    lineno=node.lineno,
                ),
            )
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef):
        return node


class GuardHandlers(ast.NodeTransformer):
    """Calls the halt guard first in every except and finally block."""

    def guard(self, anchor: ast.AST) -> ast.stmt:
        # same line as the block, so the call costs no extra gas
        call = ast.Expr(
            value=ast.Call(
                func=ast.Name(id=HALT_GUARD, ctx=ast.Load()), args=[], keywords=[]
            )
        )
        return ast.copy_location(call, anchor)

    def visit_ExceptHandler(self, node: ast.ExceptHandler):
        self.generic_visit(node)
        node.body.insert(0, self.guard(node))
        return node

    def visit_Try(self, node: ast.Try):
        self.generic_visit(node)
        if node.finalbody:
            node.finalbody.insert(0, self.guard(node.finalbody[0]))
        return node

    visit_TryStar = visit_Try


class HostedCompiler:
    def compile(self, unit: SourceUnit, mode: CompilationMode) -> CompiledArtifact:
        filename = unit.main_file
        source = unit.text
        lines = source.splitlines()

        debug(f"compiling {unit.crate_name} in {mode.value} mode")

        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as err:
            raise CompilationError(syntax_diagnostic(err).format(filename, lines))

        collector = ItemCollector(unit, mode)
        collector.visit_module(tree)

        if collector.diagnostics:
            diagnostics = "\n".join(d.format(filename, lines) for d in collector.diagnostics)
            raise CompilationError(diagnostics)

        if mode == CompilationMode.TEST:
            tree = InjectClassHashes(unit.crate_name, collector.contracts).visit(tree)
        else:
            tree = StripTests().visit(tree)
        tree = GuardHandlers().visit(tree)
        ast.fix_missing_locations(tree)

        code = compile(tree, filename, "exec")

        hosted = HostedCode(
            code=code,
            filename=filename,
            crate_name=unit.crate_name,
            contracts=MappingProxyType(
                {name: info.class_hash for name, info in collector.contracts.items()}
            ),
        )

        debug(
            f"compiled {len(collector.functions)} functions, "
            f"{len(collector.named_tests)} tests, {len(collector.contracts)} contracts"
        )

        return CompiledArtifact(
            program=Program(functions=MappingProxyType(collector.functions), code=hosted),
            named_tests=collector.named_tests,
            contracts_info=MappingProxyType(
                {info.class_hash: info for info in collector.contracts.values()}
            ),
        )


def syntax_diagnostic(err: SyntaxError) -> Diagnostic:
    lineno = err.lineno or 1
    col_offset = max((err.offset or 1) - 1, 0)
    end_col_offset = None
    if err.end_offset and err.end_lineno == err.lineno:
        end_col_offset = max(err.end_offset - 1, col_offset + 1)
    message = err.msg[:1].upper() + err.msg[1:]
    return Diagnostic(message, lineno, col_offset, end_col_offset)
