"""Package install, update, and removal through the external package tool.

Each coordinator wraps one mutating command of the tool
(``install``, ``update``, ``remove``), records the attempt in the change
history, and then polls ``list`` until the result is visible.

Example::

    session = Session.create()
    outcome = asyncio.run(PackageRemover(session).remove_package("npm:demo"))
"""

from extmgr.packages.base import PackageCoordinator, tool_args
from extmgr.packages.install import InstallOutcome, InstallStatus, PackageInstaller
from extmgr.packages.remove import PackageRemover, RemovalOutcome, RemovalTarget
from extmgr.packages.update import PackageUpdater, UpdateOutcome, UpdateStatus

__all__ = [
    "InstallOutcome",
    "InstallStatus",
    "PackageCoordinator",
    "PackageInstaller",
    "PackageRemover",
    "PackageUpdater",
    "RemovalOutcome",
    "RemovalTarget",
    "UpdateOutcome",
    "UpdateStatus",
    "tool_args",
]
