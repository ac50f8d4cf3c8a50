import logging
import os
import subprocess
from logging.config import dictConfig
from typing import Any, Optional

from environs import Env

env = Env()
env.read_env()
logger = logging.getLogger()


def get_file_content(file_path: str) -> bytes:
    with open(file_path, mode="rb") as file:
        return file.read()


def run_cmd(cmd: list[str], timeout: int = 10) -> subprocess.CompletedProcess[str]:
    logger.info(" ".join(cmd))
    try:
        completed_process = subprocess.run(
            cmd, check=True, text=True, capture_output=True, timeout=timeout
        )
    except subprocess.CalledProcessError as error:
        logger.debug("Command failed:\n%s", error.stderr, exc_info=True)
        raise
    if completed_process.stdout:
        logger.debug(completed_process.stdout)
    return completed_process


def save_to_file(file_path: str, body: bytes) -> str:
    with open(file_path, mode="wb") as file:
        file.write(body)
    # Kubeconfig content: owner only.
    os.chmod(file_path, 0o600)
    return file_path


def setup_logging(
    level: Optional[str] = None, log_file: Optional[str] = None
) -> None:
    level = level or env("LOG_LEVEL", default="INFO").upper()
    log_file = log_file or env("LOG_FILE", default=None)
    handlers: dict[str, Any] = {
        "cli": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "BASE_FORMAT",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "FILE_FORMAT",
            "filename": log_file,
            "mode": "w+",
        }
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "BASE_FORMAT": {
                    "format": " %(asctime)s [%(levelname)s] %(message)s",
                },
                "FILE_FORMAT": {
                    "format": " %(asctime)s [%(levelname)s] %(filename)s %(message)s",
                },
            },
            "handlers": handlers,
            "root": {"level": "DEBUG", "handlers": list(handlers)},
        }
    )
