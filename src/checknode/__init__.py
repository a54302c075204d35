"""checknode - node health checks reconciled with the job scheduler."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("checknode")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from checknode.app import main
from checknode.main import CheckNode

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "CheckNode",
    "main",
]
