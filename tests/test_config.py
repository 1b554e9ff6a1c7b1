import dataclasses
import os
import pickle

import pytest

from feltrun.config import (
    DEFAULT_CONFIG_FILE,
    Config,
    ConfigSource,
    arg_parser,
    resolve_config_files,
)
from feltrun.config import (
    toml_parser as get_toml_parser,
)

void = ConfigSource.void


@pytest.fixture
def void_config():
    return Config(_parent=None, _source=void)


@pytest.fixture
def parser():
    return arg_parser()


@pytest.fixture
def toml_parser():
    return get_toml_parser()


def test_fresh_config_has_only_None_values(void_config):
    for field in void_config.__dataclass_fields__.values():
        if field.metadata.get("internal"):
            continue
        assert getattr(void_config, field.name) is None


def test_default_config(config):
    assert config.crate_name == "lib"
    assert config.entry_point == "::main"
    assert config.print_memory is False
    assert config.test is False
    assert config.filter == ""
    assert config.threads >= 1


def test_default_config_immutable(config):
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.threads = 42


def test_unknown_keys_config_constructor_raise():
    with pytest.raises(TypeError):
        Config(_parent=None, _source=void, unknown_key=42)


def test_unknown_keys_config_object_raise(void_config):
    with pytest.raises(AttributeError):
        void_config.unknown_key  # noqa: B018 (not a useless expression)


def test_count_arg(config, parser):
    args = parser.parse_args(["-vvvvvv"])
    assert args.verbose == 6

    config_from_args = config.with_overrides(ConfigSource.command_line, **vars(args))
    assert config_from_args.verbose == 6


def test_bool_args_are_unset_by_default(config, parser):
    args = parser.parse_args([])
    assert args.print_memory is None

    # so that they don't shadow lower layers
    config = config.with_overrides(ConfigSource.config_file, print_memory=True)
    config = config.with_overrides(ConfigSource.command_line, **vars(args))
    assert config.print_memory is True


def test_cli_options(config, parser):
    args = parser.parse_args(
        ["--source", "-", "-t", "-f", "add", "--threads", "3", "--print-memory"]
    )
    config = config.with_overrides(ConfigSource.command_line, **vars(args))

    assert config.source == "-"
    assert config.test is True
    assert config.filter == "add"
    assert config.threads == 3
    assert config.print_memory is True


def test_override(config):
    verbose_before = config.verbose

    override = config.with_overrides(ConfigSource.command_line, verbose=42)

    # the override is reflected in the new config
    assert override.verbose == 42

    # the default config is unchanged
    assert config.verbose == verbose_before

    # default values are still available in the override config
    assert override.threads == config.threads


def test_toml_parser_expects_single_section(toml_parser):
    # extra section
    with pytest.raises(SystemExit):
        toml_parser.parse_str("[global]\na = 1\n[extra]\nb = 2")

    # missing global
    with pytest.raises(SystemExit):
        toml_parser.parse_str("a = 1\nb = 2")

    # single section is not expected one
    with pytest.raises(SystemExit):
        toml_parser.parse_str("[weird]\na = 1\nb = 2")

    # works
    toml_parser.parse_str("[global]")


def test_config_file_default_location_is_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    # no config file in the working directory
    assert resolve_config_files(args=[]) == []

    # unless we ask for it anyway
    config_files = resolve_config_files(args=[], include_missing=True)
    assert config_files == [os.path.join(tmp_path, DEFAULT_CONFIG_FILE)]


def test_config_file_explicit():
    # when we pass a --config argument explicitly
    args = ["--config", "path/to/fake.toml", "--extra-args", "ignored"]
    config_files = resolve_config_files(args)

    # then we expect the config file to be the one we passed
    assert config_files == ["path/to/fake.toml"]


def test_config_file_invalid_key(config, toml_parser):
    # invalid keys result in an error and exit
    with pytest.raises(SystemExit) as exc_info:
        data = toml_parser.parse_str("[global]\ninvalid_key = 42")
        config = config.with_overrides(ConfigSource.config_file, **data)
    assert exc_info.value.code == 2


def test_config_file_snake_case(config, toml_parser):
    config_file_data = toml_parser.parse_str("[global]\ninclude-ignored = true")
    assert config_file_data["include_ignored"] is True

    config = config.with_overrides(ConfigSource.config_file, **config_file_data)
    assert config.include_ignored is True


def test_config_e2e(config, parser, toml_parser):
    # when we apply overrides to the default config
    config_file_data = toml_parser.parse_str("[global]\nverbose = 42\nthreads = 2")
    config = config.with_overrides(ConfigSource.config_file, **config_file_data)

    args = parser.parse_args(["-vvv"])
    config = config.with_overrides(ConfigSource.command_line, **vars(args))

    # then the config object should have the expected values
    assert config.verbose == 3
    assert config.threads == 2
    assert config.max_steps == 10_000_000

    # and each value should have the expected source
    assert config.value_with_source("verbose") == (3, ConfigSource.command_line)
    assert config.value_with_source("threads") == (2, ConfigSource.config_file)
    assert config.value_with_source("max_steps") == (10_000_000, ConfigSource.default)


def test_formatted_layers(config):
    config = config.with_overrides(ConfigSource.command_line, threads=2)
    layers = config.formatted_layers()

    assert layers.startswith(f"{ConfigSource.default}:")
    assert f"{ConfigSource.command_line}:\n  threads: 2" in layers


def test_config_pickle(config, parser):
    args = parser.parse_args(["-vvv"])
    config = config.with_overrides(ConfigSource.command_line, **vars(args))

    # pickle and unpickle the config
    pickled = pickle.dumps(config)
    unpickled = pickle.loads(pickled)

    # then the config object should be the same
    assert config == unpickled
    assert unpickled.value_with_source("verbose") == (3, ConfigSource.command_line)
