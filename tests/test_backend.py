import pytest

from feltrun.backend import (
    ASSERTION_FAILED,
    CLASS_HASH_NOT_DECLARED,
    OUT_OF_GAS,
    HostedBackend,
    RunPanic,
    RunSuccess,
    hosted_backend_factory,
)
from feltrun.compiler import CompilationMode, CompiledArtifact, Program
from feltrun.exceptions import BackendFault, OutOfSteps
from feltrun.felt import encode_byte_array, encode_short_string
from feltrun.project import setup_input_string_project

SOURCE = '''
def add(a, b):
    return a + b


def main():
    return add(1, 2)


def pair():
    return (1, (2, 3))


def nothing():
    pass


def boom():
    panic("boom", 1000)


def failing_assert():
    assert 1 == 2


def failing_assert_with_message():
    assert 1 == 2, "one is not two"


def failing_assert_with_long_message():
    assert 1 == 2, "this message is longer than thirty-one bytes"


def divide_by_zero():
    return 1 // 0


def unsupported_return():
    return 1.5


def spin():
    while True:
        pass


def swallow():
    try:
        while True:
            pass
    except BaseException:
        return 1


def swallow_forever():
    while True:
        try:
            while True:
                pass
        except BaseException:
            pass


def swallow_in_finally():
    try:
        while True:
            pass
    finally:
        while True:
            pass


def leave():
    raise SystemExit(3)


def quit_program():
    exit()


def interrupt():
    raise KeyboardInterrupt


def count(n):
    total = 0
    for i in range(n):
        total += i
    return total


@contract
class Counter:
    def constructor(self, start):
        self.value = start

    def get(self):
        return self.value


def deploy_counter():
    counter = deploy(Counter.TEST_CLASS_HASH, 5)
    return (counter.contract_address, get_contract(counter.contract_address).get())


def deploy_unknown():
    deploy(1234)
'''


@pytest.fixture
def artifact(compiler):
    unit = setup_input_string_project(SOURCE)
    return compiler.compile(unit, CompilationMode.TEST)


@pytest.fixture
def backend(artifact):
    return HostedBackend(artifact, max_steps=100_000)


def test_success(backend):
    result = backend.run_function("lib::main")
    assert result.value == RunSuccess((3,))

    # nested values are flattened, None returns nothing
    assert backend.run_function("lib::pair").value == RunSuccess((1, 2, 3))
    assert backend.run_function("lib::nothing").value == RunSuccess(())


def test_arguments(backend):
    assert backend.run_function("lib::add", (40, 2)).value == RunSuccess((42,))


def test_panic(backend):
    result = backend.run_function("lib::boom")
    assert result.value == RunPanic((encode_short_string("boom"), 1000))


def test_assertions_panic(backend):
    assert backend.run_function("lib::failing_assert").value == RunPanic(
        (ASSERTION_FAILED,)
    )
    assert backend.run_function("lib::failing_assert_with_message").value == RunPanic(
        (encode_short_string("one is not two"),)
    )
    assert backend.run_function(
        "lib::failing_assert_with_long_message"
    ).value == RunPanic(
        tuple(encode_byte_array("this message is longer than thirty-one bytes"))
    )


def test_exceptions_panic_with_their_name(backend):
    result = backend.run_function("lib::divide_by_zero")
    assert result.value == RunPanic((encode_short_string("ZeroDivisionError"),))


def test_gas_is_only_reported_with_a_budget(backend):
    assert backend.run_function("lib::main").gas_counter is None

    metered = backend.run_function("lib::main", (), 1000)
    assert metered.value == RunSuccess((3,))
    assert 0 < metered.gas_counter < 1000


def test_gas_grows_with_work(backend):
    small = backend.run_function("lib::count", (1,), 10_000).gas_counter
    large = backend.run_function("lib::count", (10,), 10_000).gas_counter
    assert small < large


def test_gas_is_deterministic(backend):
    runs = [backend.run_function("lib::count", (5,), 10_000) for _ in range(3)]
    assert len({run.gas_counter for run in runs}) == 1


def test_out_of_gas(backend):
    result = backend.run_function("lib::spin", (), 50)
    assert result.value == RunPanic((OUT_OF_GAS,))
    assert result.gas_counter == 50


def test_out_of_gas_cannot_be_caught(backend):
    result = backend.run_function("lib::swallow", (), 50)
    assert result.value == RunPanic((OUT_OF_GAS,))


def test_out_of_gas_cannot_be_caught_in_a_loop(backend):
    result = backend.run_function("lib::swallow_forever", (), 50)
    assert result.value == RunPanic((OUT_OF_GAS,))
    assert result.gas_counter == 50


@pytest.mark.parametrize("name", ["lib::swallow_forever", "lib::swallow_in_finally"])
def test_step_limit_cannot_be_caught(artifact, name):
    backend = HostedBackend(artifact, max_steps=100)
    with pytest.raises(OutOfSteps):
        backend.run_function(name)


@pytest.mark.parametrize(
    "name, error",
    [
        ("lib::leave", "SystemExit"),
        ("lib::quit_program", "SystemExit"),
        ("lib::interrupt", "KeyboardInterrupt"),
    ],
)
def test_base_exceptions_panic_with_their_name(backend, name, error):
    result = backend.run_function(name)
    assert result.value == RunPanic((encode_short_string(error),))


def test_step_limit_is_a_fault(artifact):
    backend = HostedBackend(artifact, max_steps=100)
    with pytest.raises(OutOfSteps):
        backend.run_function("lib::spin")


def test_memory_trace(backend):
    # one unallocated cell per frame, followed by the values it returned
    result = backend.run_function("lib::main")
    assert result.memory == (None, 3, None, 3)


def test_contracts(backend):
    result = backend.run_function("lib::deploy_counter")
    assert result.value == RunSuccess((1, 5))

    # every run starts from a fresh state
    result = backend.run_function("lib::deploy_counter")
    assert result.value == RunSuccess((1, 5))


def test_undeclared_class_hash(backend):
    result = backend.run_function("lib::deploy_unknown")
    assert result.value == RunPanic((CLASS_HASH_NOT_DECLARED,))


def test_unknown_function(backend):
    with pytest.raises(BackendFault, match="not found"):
        backend.run_function("lib::missing")


def test_wrong_number_of_arguments(backend):
    with pytest.raises(BackendFault, match="expects 2 arguments"):
        backend.run_function("lib::add", (1,))


def test_unsupported_return_value(backend):
    with pytest.raises(BackendFault, match="unsupported value"):
        backend.run_function("lib::unsupported_return")


def test_unsupported_program():
    artifact = CompiledArtifact(program=Program(functions={}, code=None))
    with pytest.raises(BackendFault, match="Failed setting up runner"):
        hosted_backend_factory()(artifact)
