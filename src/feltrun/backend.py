# SPDX-License-Identifier: AGPL-3.0

import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import Protocol, TypeAlias

from .compiler import CompiledArtifact
from .constants import PATH_SEPARATOR
from .exceptions import BackendFault, OutOfSteps
from .felt import Felt, encode_message, encode_short_string, flatten_felts, to_felt
from .frontend import HALT_GUARD, HostedCode
from .logs import debug

#
# execution outcomes
#


@dataclass(frozen=True)
class RunSuccess:
    values: tuple[Felt, ...] = ()


@dataclass(frozen=True)
class RunPanic:
    values: tuple[Felt, ...] = ()


RunResultValue: TypeAlias = RunSuccess | RunPanic


@dataclass(frozen=True)
class RunResult:
    value: RunResultValue

    # gas consumed, if the backend metered the run
    gas_counter: int | None = None

    # raw memory cells in address order, None for unallocated cells
    memory: tuple[Felt | None, ...] = field(default=(), repr=False)


class ExecutionBackend(Protocol):
    def run_function(
        self,
        name: str,
        args: Sequence[Felt] = (),
        available_gas: int | None = None,
    ) -> RunResult:
        """Run a function to completion, raise BackendFault if it can't be run."""
        ...


BackendFactory: TypeAlias = Callable[[CompiledArtifact], ExecutionBackend]


#
# hosted runtime
#

OUT_OF_GAS = encode_short_string("Out of gas")
ASSERTION_FAILED = encode_short_string("assertion failed")
CLASS_HASH_NOT_DECLARED = encode_short_string("CLASS_HASH_NOT_DECLARED")
CONTRACT_NOT_DEPLOYED = encode_short_string("CONTRACT_NOT_DEPLOYED")


class Panic(BaseException):
    """
    Raised by `panic(...)` inside a program.

    Derives from BaseException so that programs can't swallow it with `except Exception`.
    """

    def __init__(self, values: Sequence[Felt]):
        self.values = tuple(values)
        super().__init__(*self.values)


class OutOfGas(BaseException):
    pass


class StepLimitExceeded(BaseException):
    pass


def panic(*data) -> None:
    raise Panic(flatten_felts(list(data)))


def attribute(*args, **kwargs):
    """Runtime no-op for test and contract attributes, bare or called."""
    if len(args) == 1 and callable(args[0]) and not kwargs:
        return args[0]
    return lambda fn: fn


def success_value(name: str, returned) -> RunSuccess:
    try:
        return RunSuccess(tuple(flatten_felts(returned)))
    except (TypeError, ValueError) as err:
        raise BackendFault(
            f"Function `{name}` returned an unsupported value: {err}"
        ) from err


def assertion_payload(err: AssertionError) -> list[Felt]:
    if not err.args or err.args[0] is None:
        return [ASSERTION_FAILED]

    msg = err.args[0]
    if isinstance(msg, int):
        return [to_felt(msg)]

    return encode_message(str(msg))


class StarknetState:
    """Deployed contracts of a single run."""

    def __init__(self):
        self.classes: dict[Felt, type] = {}
        self.deployed: dict[Felt, object] = {}

    def deploy(self, class_hash: Felt, *calldata):
        cls = self.classes.get(class_hash)
        if cls is None:
            raise Panic([CLASS_HASH_NOT_DECLARED])

        address = len(self.deployed) + 1
        instance = cls()
        instance.contract_address = address

        if (constructor := getattr(instance, "constructor", None)) is not None:
            constructor(*calldata)

        self.deployed[address] = instance
        return instance

    def get_contract(self, address: Felt):
        instance = self.deployed.get(address)
        if instance is None:
            raise Panic([CONTRACT_NOT_DEPLOYED])
        return instance


class GasMeter:
    """
    Counts executed lines of the program, one gas unit per line.

    Only frames whose code belongs to the program file are metered. The hook is
    installed with sys.settrace, so it only applies to the current thread.
    """

    def __init__(self, filename: str, available_gas: int | None, max_steps: int = 0):
        self.filename = filename
        self.available_gas = available_gas
        self.max_steps = max_steps
        self.steps = 0
        self.out_of_gas = False
        self.out_of_steps = False
        self.memory: list[Felt | None] = []
        self._previous = None

    def __enter__(self):
        self._previous = sys.gettrace()
        sys.settrace(self._trace_call)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        sys.settrace(self._previous)

    @property
    def halted(self) -> bool:
        return self.out_of_gas or self.out_of_steps

    def gas_counter(self) -> int | None:
        if self.available_gas is None:
            return None
        return min(self.steps, self.available_gas)

    def _trace_call(self, frame, event, arg):
        if frame.f_code.co_filename != self.filename:
            return None
        return self._trace_frame

    def _trace_frame(self, frame, event, arg):
        if event == "line":
            self._step()
        elif event == "return":
            self._write_frame(arg)
        return self._trace_frame

    def _step(self):
        self.steps += 1

        if self.available_gas is not None and self.steps > self.available_gas:
            self.out_of_gas = True

        elif self.max_steps and self.steps > self.max_steps:
            self.out_of_steps = True

        self.check_halted()

    def check_halted(self):
        """
        Raises again once the run is halted.

        CPython drops a trace function that raises, so after the first halt the
        meter is gone. The compiler calls this at the top of every except and
        finally block, so a program can't catch the halt and keep running.
        """
        if self.out_of_gas:
            raise OutOfGas()

        if self.out_of_steps:
            raise StepLimitExceeded()

    def _write_frame(self, returned):
        # every frame starts with an unallocated cell
        self.memory.append(None)
        try:
            self.memory.extend(flatten_felts(returned))
        except (TypeError, ValueError):
            pass


class HostedBackend:
    """Runs programs compiled by HostedCompiler."""

    def __init__(self, artifact: CompiledArtifact, max_steps: int = 0):
        hosted = artifact.program.code
        if not isinstance(hosted, HostedCode):
            raise BackendFault("Failed setting up runner: unsupported program.")

        self.program = artifact.program
        self.hosted = hosted
        self.max_steps = max_steps

    def load(
        self, halt_guard: Callable[[], None] = lambda: None
    ) -> tuple[dict, StarknetState]:
        """Load the program in a fresh namespace, so that runs don't share state."""
        state = StarknetState()
        namespace = {
            "__name__": self.hosted.crate_name,
            HALT_GUARD: halt_guard,
            "panic": panic,
            "deploy": state.deploy,
            "get_contract": state.get_contract,
            "test": attribute,
            "ignore": attribute,
            "should_panic": attribute,
            "available_gas": attribute,
            "contract": attribute,
        }

        try:
            exec(self.hosted.code, namespace)
        except Exception as err:
            raise BackendFault(
                f"Failed to load the program: {type(err).__name__}: {err}"
            ) from err

        for name, class_hash in self.hosted.contracts.items():
            state.classes[class_hash] = self.resolve(namespace, name)

        return namespace, state

    def resolve(self, namespace: dict, name: str):
        parts = name.split(PATH_SEPARATOR)[1:]
        try:
            obj = namespace[parts[0]]
            for part in parts[1:]:
                obj = getattr(obj, part)
        except (KeyError, AttributeError, IndexError) as err:
            raise BackendFault(f"Function `{name}` not found.") from err
        return obj

    def run_function(
        self,
        name: str,
        args: Sequence[Felt] = (),
        available_gas: int | None = None,
    ) -> RunResult:
        info = self.program.functions.get(name)
        if info is None:
            raise BackendFault(f"Function `{name}` not found.")

        if len(args) != info.num_params:
            raise BackendFault(
                f"Function `{name}` expects {info.num_params} arguments, got {len(args)}."
            )

        meter = GasMeter(self.hosted.filename, available_gas, self.max_steps)
        namespace, _ = self.load(meter.check_halted)
        function = self.resolve(namespace, name)

        debug(f"running {name} (available gas: {available_gas})")

        try:
            with meter:
                returned = function(*args)
        except Panic as err:
            value = RunPanic(err.values)
        except (OutOfGas, StepLimitExceeded):
            value = None
        except AssertionError as err:
            value = RunPanic(tuple(assertion_payload(err)))
        except Exception as err:
            value = RunPanic(tuple(encode_message(type(err).__name__)))
        except BaseException as err:
            # exit() and the other non-Exception errors a program can raise
            value = RunPanic(tuple(encode_message(type(err).__name__)))
        else:
            value = None if meter.halted else success_value(name, returned)

        if meter.out_of_steps:
            raise OutOfSteps(
                f"Function `{name}` exceeded the step limit ({self.max_steps})."
            )

        if meter.out_of_gas:
            value = RunPanic((OUT_OF_GAS,))

        return RunResult(
            value=value,
            gas_counter=meter.gas_counter(),
            memory=tuple(meter.memory),
        )


def hosted_backend_factory(max_steps: int = 0) -> BackendFactory:
    return partial(HostedBackend, max_steps=max_steps)
