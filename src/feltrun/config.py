# SPDX-License-Identifier: AGPL-3.0

import argparse
import os
import sys
from collections import OrderedDict
from dataclasses import MISSING, dataclass, fields
from dataclasses import field as dataclass_field
from typing import Any

import toml

from .constants import DEFAULT_CRATE_NAME, ENTRY_POINT_SUFFIX
from .logs import warn

# common strings
internal = "internal"

# groups
tests, execution, debugging = (
    "Test options",
    "Execution options",
    "Debugging options",
)

DEFAULT_CONFIG_FILE = "feltrun.toml"


class ConfigSource:
    """Names of the configuration layers, from lowest to highest precedence."""

    void = "void"
    default = "default"
    config_file = "config-file"
    command_line = "command-line"


# helper to define config fields
def arg(
    help: str,
    global_default: Any,
    metavar: str | None = None,
    group: str | None = None,
    short: str | None = None,
    countable: bool = False,
    global_default_str: str | None = None,
):
    return dataclass_field(
        default=None,
        metadata={
            "help": help,
            "global_default": global_default,
            "metavar": metavar,
            "group": group,
            "short": short,
            "countable": countable,
            "global_default_str": global_default_str,
        },
    )


@dataclass(frozen=True)
class Config:
    """Configuration object for feltrun.

    Don't instantiate this directly, since all fields have default value None. Instead, use:

     - `default_config()` to get the default configuration with the actual default values
     - `with_overrides()` to create a new configuration object with some fields overridden
    """

    ### Internal fields (not used to generate arg parsers)

    _parent: "Config" = dataclass_field(
        repr=False,
        metadata={
            internal: True,
        },
    )

    _source: str = dataclass_field(
        metadata={
            internal: True,
        },
    )

    ### General options
    #
    # New Config() objects only hold the values that were explicitly set, every
    # other field is None and is looked up in the parent layer. The actual
    # defaults live in the `global_default` metadata and are only materialized
    # by `default_config()`.

    source: str = arg(
        help="path to the source file to run, or '-' to read from stdin",
        global_default=None,
        metavar="FILE",
    )

    config: str = arg(
        help="path to the config file",
        metavar="FILE",
        global_default=lambda: os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE),
        global_default_str=f"./{DEFAULT_CONFIG_FILE}",
    )

    test: bool = arg(
        help="run the tests declared in the source instead of its entry point",
        global_default=False,
        short="t",
    )

    crate_name: str = arg(
        help="name of the crate the source is compiled as",
        global_default=DEFAULT_CRATE_NAME,
        metavar="NAME",
    )

    version: bool = arg(
        help="print the version number",
        global_default=False,
    )

    ### Test options

    filter: str = arg(
        help="only run tests whose qualified name contains the given string",
        global_default="",
        metavar="SUBSTRING",
        group=tests,
        short="f",
    )

    include_ignored: bool = arg(
        help="run ignored tests as well as the others",
        global_default=False,
        group=tests,
    )

    ignored: bool = arg(
        help="run only the ignored tests",
        global_default=False,
        group=tests,
    )

    threads: int = arg(
        help="set the number of threads running tests in parallel",
        metavar="N",
        group=tests,
        global_default=(lambda: os.cpu_count() or 1),
        global_default_str="number of CPUs",
    )

    ### Execution options

    entry_point: str = arg(
        help="suffix of the qualified name of the function to run",
        global_default=ENTRY_POINT_SUFFIX,
        metavar="SUFFIX",
        group=execution,
    )

    print_memory: bool = arg(
        help="print the full memory after running the entry point",
        global_default=False,
        group=execution,
    )

    max_steps: int = arg(
        help="abort programs that execute more lines than this; 0 means unlimited",
        global_default=10_000_000,
        metavar="MAX_STEPS",
        group=execution,
    )

    ### Debugging options

    verbose: int = arg(
        help="increase verbosity levels: -v, -vv, -vvv, ...",
        global_default=0,
        group=debugging,
        short="v",
        countable=True,
    )

    statistics: bool = arg(
        help="print statistics",
        global_default=False,
        group=debugging,
        short="st",
    )

    no_status: bool = arg(
        help="disable progress display",
        global_default=False,
        group=debugging,
    )

    debug: bool = arg(
        help="run in debug mode",
        global_default=False,
        group=debugging,
    )

    json_output: str = arg(
        help="output the result in JSON",
        global_default=None,
        metavar="JSON_FILE_PATH",
        group=debugging,
    )

    ### Methods

    def __getattribute__(self, name):
        """Look up values in parent object if they are not set in the current object.

        This is because we consider the current object to override its parent.

        Because of this, printing a Config object will show a "flattened/resolved" view of the configuration.
        """

        # look up value in current object
        value = object.__getattribute__(self, name)
        if value is not None:
            return value

        # look up value in parent object
        parent = object.__getattribute__(self, "_parent")
        if parent is not None:
            return getattr(parent, name)

        return value

    def with_overrides(self, source: str, /, **overrides):
        """Create a new configuration object with some fields overridden.

        Use vars(namespace) to pass in the arguments from an argparse parser or
        just a dictionary with the overrides (e.g. from a toml file)."""

        try:
            return Config(_parent=self, _source=source, **overrides)
        except TypeError as e:
            # follow argparse error message format and behavior
            warn(f"error: unrecognized argument: {str(e).split()[-1]}")
            sys.exit(2)

    def value_with_source(self, name: str) -> tuple[Any, str]:
        # look up value in current object
        value = object.__getattribute__(self, name)
        if value is not None:
            return (value, self._source)

        # look up value in parent object
        parent = self._parent
        if parent is not None:
            return parent.value_with_source(name)

        return (value, self._source)

    def values(self):
        skip_empty = self._parent is not None

        for field in fields(self):
            if field.metadata.get(internal):
                continue

            field_value = object.__getattribute__(self, field.name)
            if skip_empty and field_value is None:
                continue

            yield field.name, field_value

    def values_by_layer(self) -> dict[str, dict[str, Any]]:
        # source -> {field, value}
        if self._parent is None:
            return OrderedDict([(self._source, dict(self.values()))])

        values = self._parent.values_by_layer()
        values[self._source] = dict(self.values())
        return values

    def formatted_layers(self) -> str:
        lines = []
        for layer, values in self.values_by_layer().items():
            lines.append(f"{layer}:")
            for field, value in values.items():
                lines.append(f"  {field}: {value}")
        return "\n".join(lines)


def resolve_config_files(args: list[str], include_missing: bool = False) -> list[str]:
    config_parser = argparse.ArgumentParser(add_help=False)
    config_parser.add_argument("--config", metavar="FILE")

    # beware: errors will cause a system exit
    args = config_parser.parse_known_args(args)[0]

    # if --config is passed explicitly, use that
    # no check for existence is done here, we don't want to silently ignore
    # missing config files when they are requested explicitly
    if args.config:
        return [args.config]

    default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
    if not include_missing and not os.path.exists(default_config_path):
        return []

    return [default_config_path]


class TomlParser:
    def parse_file(self, toml_file_path: str) -> dict:
        with open(toml_file_path) as f:
            return self.parse_str(f.read(), source=toml_file_path)

    # exposed for easier testing
    def parse_str(self, file_contents: str, source: str = DEFAULT_CONFIG_FILE) -> dict:
        parsed = toml.loads(file_contents)
        return self.parse_dict(parsed, source=source)

    # exposed for easier testing
    def parse_dict(self, parsed: dict, source: str = DEFAULT_CONFIG_FILE) -> dict:
        if len(parsed) != 1:
            warn(
                f"error: expected a single `[global]` section in {source}, "
                f"got {len(parsed)}: {', '.join(parsed.keys())}"
            )
            sys.exit(2)

        data = parsed.get("global")
        if data is None:
            for key in parsed:
                warn(f"error: expected a `[global]` section in {source}, got '{key}'")
                sys.exit(2)

        return {key.replace("-", "_"): value for key, value in data.items()}


def _create_default_config() -> "Config":
    values = {}

    for field in fields(Config):
        # we build the default config by looking at the global_default metadata field
        default = field.metadata.get("global_default", MISSING)
        if default == MISSING:
            continue

        # callable defaults depend on the context, e.g. the working directory
        values[field.name] = default() if callable(default) else default

    return Config(_parent=None, _source=ConfigSource.default, **values)


def _create_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feltrun",
        description="Run a felt program, or the tests it declares.",
    )

    groups = {
        None: parser,
    }

    # add arguments from the Config dataclass
    for field_info in fields(Config):
        # skip internal fields
        if field_info.metadata.get(internal, False):
            continue

        long_name = f"--{field_info.name.replace('_', '-')}"
        names = [long_name]

        short_name = field_info.metadata.get("short", None)
        if short_name:
            names.append(f"-{short_name}")

        arg_help = field_info.metadata.get("help", "")
        metavar = field_info.metadata.get("metavar", None)
        group_name = field_info.metadata.get("group", None)
        if group_name not in groups:
            groups[group_name] = parser.add_argument_group(group_name)

        group = groups[group_name]

        if field_info.type is bool:
            group.add_argument(*names, help=arg_help, action="store_true", default=None)
        elif field_info.metadata.get("countable", False):
            group.add_argument(*names, help=arg_help, action="count")
        else:
            # add the default value to the help text
            default = field_info.metadata.get("global_default", None)
            if default is not None:
                default_str = field_info.metadata.get("global_default_str", None)
                default_str = repr(default) if default_str is None else default_str
                arg_help += f" (default: {default_str})"

            group.add_argument(
                *names, help=arg_help, metavar=metavar, type=field_info.type
            )

    return parser


def _create_toml_parser() -> TomlParser:
    return TomlParser()


# public singleton accessors
def default_config() -> "Config":
    return _default_config


def arg_parser() -> argparse.ArgumentParser:
    return _arg_parser


def toml_parser():
    return _toml_parser


# init module-level singletons
_arg_parser = _create_arg_parser()
_default_config = _create_default_config()
_toml_parser = _create_toml_parser()
