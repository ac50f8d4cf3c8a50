#!/usr/bin/env python3

"""
Uninstalls Service Catalog and removes all of its resources.

Expects the KUBECONFIG environment variable to point to the cluster kubeconfig.
"""

import logging
import sys

from environs import EnvError
from pydantic import ValidationError

from sc_cleanup.platform.kube import KubeError, connect, read_kubeconfig
from sc_cleanup.service.cleaner import Cleaner
from sc_cleanup.service.orchestrator import ExitCode, run_cleanup
from sc_cleanup.util.config import load_config
from sc_cleanup.util.util import setup_logging

logger = logging.getLogger()


def main() -> int:
    setup_logging()
    try:
        config = load_config()
    except (EnvError, ValidationError):
        logger.exception("Invalid configuration.")
        return ExitCode.FATAL.value

    try:
        connection = connect(read_kubeconfig(config.kubeconfig_path))
    except KubeError:
        logger.exception("Cannot connect to the cluster.")
        return ExitCode.FATAL.value

    logger.info("Cleaning up...")
    report = run_cleanup(Cleaner(connection, config), config)
    return report.exit_code.value


if __name__ == "__main__":
    sys.exit(main())
