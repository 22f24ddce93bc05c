"""Update one package, or every package, through ``<tool> update``."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass

from extmgr.exceptions import ExternalCommandError
from extmgr.models import ChangeAction
from extmgr.packages.base import PackageCoordinator

logger = logging.getLogger(__name__)

BULK_UPDATE_LABEL = "all packages"

# Matches the tool's current wording only; revisit if its messages change.
_ALREADY_UP_TO_DATE_RE = re.compile(r"already\s+up\s+to\s+date", re.IGNORECASE)
_PINNED_STATUS_RE = re.compile(r"^\s*pinned\b(?!\s+dependency\b)(?:\s*$|\s*[:(-])", re.IGNORECASE | re.MULTILINE)


class UpdateStatus(str, enum.Enum):
    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"


@dataclass
class UpdateOutcome:
    source: str
    status: UpdateStatus
    output: str = ""


def is_up_to_date_output(stdout: str) -> bool:
    """True when the tool reports nothing to do (up to date or pinned).

    A line such as ``pinned dependency foo`` does not count.
    """
    return bool(_ALREADY_UP_TO_DATE_RE.search(stdout) or _PINNED_STATUS_RE.search(stdout))


class PackageUpdater(PackageCoordinator):
    """Runs ``<tool> update [source]`` and classifies the result."""

    async def update_package(self, source: str) -> UpdateOutcome:
        """Update a single package.

        Raises:
            ExternalCommandError: If the tool exits non-zero.
        """
        return await self._update(source, ["update", source], self.session.config.timeouts.update, bulk=False)

    async def update_packages(self) -> UpdateOutcome:
        """Update every installed package. Empty output counts as up to date.

        Raises:
            ExternalCommandError: If the tool exits non-zero.
        """
        return await self._update(
            BULK_UPDATE_LABEL, ["update"], self.session.config.timeouts.update_all, bulk=True
        )

    async def _update(self, label: str, args: list[str], timeout: float, bulk: bool) -> UpdateOutcome:
        result = await self.run_tool(args, timeout=timeout)
        history = self.session.history

        if not result.ok:
            error = ExternalCommandError("Update", [self.tool, *args], result.code, result.stdout, result.stderr)
            history.log_package(ChangeAction.PACKAGE_UPDATE, label, success=False, package_name=label, error=str(error))
            raise error

        history.log_package(ChangeAction.PACKAGE_UPDATE, label, success=True, package_name=label)

        stdout = result.stdout
        if is_up_to_date_output(stdout) or (bulk and not stdout.strip()):
            logger.info("%s already up to date", label)
            return UpdateOutcome(source=label, status=UpdateStatus.UP_TO_DATE, output=stdout)

        logger.info("Updated %s", label)
        return UpdateOutcome(source=label, status=UpdateStatus.UPDATED, output=stdout)
