"""WatchlistBridge package."""

from src.utils.logging import Logger, get_logger
from src.utils.terminal import supports_utf8
from src.utils.version import get_docker_status, get_git_hash, get_pyproject_version

__author__ = "WatchlistBridge Contributors"
__license__ = "MIT"
__version__ = get_pyproject_version()
__git_hash__ = get_git_hash()


if supports_utf8():
    WATCHLISTBRIDGE_HEADER = f"""
╔═══════════════════════════════════════════════════════════════════════════════╗
║                         W A T C H L I S T B R I D G E                         ║
╠═══════════════════════════════════════════════════════════════════════════════╣
║                                                                               ║
║  Version: {__version__:<68}║
║  Git Hash: {__git_hash__:<67}║
║  Docker: {"Yes" if get_docker_status() else "No":<69}║
║  License: {__license__:<68}║
║                                                                               ║
╚═══════════════════════════════════════════════════════════════════════════════╝
    """.strip()
else:
    WATCHLISTBRIDGE_HEADER = f"""
+-------------------------------------------------------------------------------+
|                         W A T C H L I S T B R I D G E                         |
+-------------------------------------------------------------------------------+
|                                                                               |
|  Version: {__version__:<68}|
|  Git Hash: {__git_hash__:<67}|
|  Docker: {"Yes" if get_docker_status() else "No":<69}|
|  License: {__license__:<68}|
|                                                                               |
+-------------------------------------------------------------------------------+
    """.strip()

log: Logger = get_logger()
