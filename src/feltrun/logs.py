# SPDX-License-Identifier: AGPL-3.0

import logging
from dataclasses import dataclass

from rich.logging import RichHandler

#
# Basic logging
#

logging.basicConfig(
    format="%(message)s",
    handlers=[RichHandler(level=logging.NOTSET, show_time=False, show_path=False)],
)

logger = logging.getLogger("feltrun")


#
# Logging with filtering out duplicate log messages
#


class UniqueLoggingFilter(logging.Filter):
    def __init__(self):
        self.records = set()

    def filter(self, record):
        if record.msg in self.records:
            return False
        self.records.add(record.msg)
        return True


logger_unique = logging.getLogger("feltrun.unique")
logger_unique.addFilter(UniqueLoggingFilter())


def logger_for(allow_duplicate=True) -> logging.Logger:
    return logger if allow_duplicate else logger_unique


def debug(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).debug(text)


def warn(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).warning(text)


def error(text: str, allow_duplicate=True) -> None:
    logger_for(allow_duplicate).error(text)


def set_debug(enabled: bool) -> None:
    level = logging.DEBUG if enabled else logging.NOTSET
    logger.setLevel(level)
    logger_unique.setLevel(level)


#
# Warnings with error code
#


@dataclass(frozen=True)
class ErrorCode:
    code: str

    def tag(self) -> str:
        return f"[{self.code}]"


COMPILATION_FAILED = ErrorCode("compilation-failed")
BACKEND_FAULT = ErrorCode("backend-fault")
ENTRY_POINT = ErrorCode("entry-point")
NO_TESTS_FOUND = ErrorCode("no-tests-found")
INTERNAL_ERROR = ErrorCode("internal-error")


def warn_code(error_code: ErrorCode, msg: str, allow_duplicate=True):
    logger_for(allow_duplicate).warning(f"{error_code.tag()} {msg}")


def error_with_code(error_code: ErrorCode, msg: str, allow_duplicate=True):
    logger_for(allow_duplicate).error(f"{error_code.tag()} {msg}")
