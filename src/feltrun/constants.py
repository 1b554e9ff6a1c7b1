# SPDX-License-Identifier: AGPL-3.0

# the felt252 field: 2**251 + 17 * 2**192 + 1
PRIME = 0x800000000000011000000000000000000000000000000000000000000000001

# number of bytes that fit in a single felt when packing strings
BYTES_IN_WORD = 31

# first felt of a serialized ByteArray in a panic payload
BYTE_ARRAY_MAGIC = 0x46A6158A16A947E5916B2A2CA68501A45E93D7110E81AA2D6438B1C57C879A3

DEFAULT_CRATE_NAME = "lib"
SOURCE_FILE_EXTENSION = "felt"
ENTRY_POINT_SUFFIX = "::main"

# separator between path segments of qualified function names
PATH_SEPARATOR = "::"

VERBOSITY_TRACE_TESTS = 1
