import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sc_cleanup.platform.helm import ReleaseError
from sc_cleanup.platform.kube import KubeError
from sc_cleanup.service.cleaner import Cleaner
from sc_cleanup.util.config import CleanupConfig

logger = logging.getLogger()


class Phase(Enum):
    RELEASES = "releases"
    FINALIZERS = "finalizers"
    RESOURCES = "resources"


class ExitCode(Enum):
    SUCCESS = 0
    FATAL = 1
    RELEASES_FAILED = 2


@dataclass
class PhaseResult:
    phase: Phase
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class CleanupReport:
    phases: list[PhaseResult] = field(default_factory=list)
    fatal_error: Optional[KubeError] = None

    @property
    def exit_code(self) -> ExitCode:
        if self.fatal_error is not None:
            return ExitCode.FATAL
        if not all(result.ok for result in self.phases):
            return ExitCode.RELEASES_FAILED
        return ExitCode.SUCCESS


def remove_releases(cleaner: Cleaner, release_names: list[str]) -> PhaseResult:
    result = PhaseResult(Phase.RELEASES)
    for release_name in release_names:
        logger.info("Removing %s release", release_name)
        try:
            cleaner.remove_release(release_name)
        except ReleaseError as error:
            logger.error("Removing %s release failed: %s", release_name, error)
            result.errors.append(error)
    return result


def run_cleanup(
    cleaner: Cleaner,
    config: CleanupConfig,
    sleep: Callable[[float], None] = time.sleep,
) -> CleanupReport:
    """Run every cleanup phase in order.

    Release failures are recorded and the run goes on. A stripping or reaping
    failure ends the run: no later phase is attempted.
    """
    report = CleanupReport()

    report.phases.append(remove_releases(cleaner, config.release_names))
    sleep(config.phase_delay)

    logger.info("Removing finalizers")
    finalizers = PhaseResult(Phase.FINALIZERS)
    report.phases.append(finalizers)
    try:
        cleaner.strip_finalizers()
    except KubeError as error:
        logger.exception("Removing finalizers failed")
        finalizers.errors.append(error)
        report.fatal_error = error
        return report
    sleep(config.phase_delay)

    logger.info("Deleting resources")
    resources = PhaseResult(Phase.RESOURCES)
    report.phases.append(resources)
    try:
        cleaner.reap_resources()
    except KubeError as error:
        logger.exception("Deleting resources failed")
        resources.errors.append(error)
        report.fatal_error = error
        print(error)
        return report

    logger.info("Cleanup completed.")
    return report
