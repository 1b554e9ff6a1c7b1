# workaround for ruff removing fixture imports
# they look unused because of dependency injection by pytest
from test_fixtures import *  # noqa
