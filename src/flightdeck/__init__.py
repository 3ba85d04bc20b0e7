from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("flightdeck")
except PackageNotFoundError:
    # Running from a source checkout without pip install
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]

import logging

# Library package: discard log records unless the application (CLI, test
# harness, embedding tool) configures handlers.
logging.getLogger(__name__).addHandler(logging.NullHandler())
