import json
import logging
import os
import shutil
import subprocess
import tempfile
from types import TracebackType
from typing import Optional

from pydantic import BaseModel, ValidationError

from sc_cleanup.util.util import run_cmd, save_to_file

logger = logging.getLogger()

RELEASE_NOT_FOUND = "release: not found"
UNINSTALL_TIMED_OUT = "timed out waiting for the condition"


class ReleaseError(Exception):
    pass


class ReleaseNotFoundError(ReleaseError):
    pass


class ReleaseLookupError(ReleaseError):
    pass


class HelmClientError(ReleaseLookupError):
    pass


class ReleaseUninstallError(ReleaseError):
    pass


class ReleaseUninstallTimeoutError(ReleaseUninstallError, TimeoutError):
    pass


class ReleaseInfo(BaseModel):
    status: str = "unknown"


class Release(BaseModel):
    name: str
    namespace: str
    info: ReleaseInfo = ReleaseInfo()


def format_timeout(seconds: int) -> str:
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m{seconds}s"


class HelmClient:
    """Thin wrapper around the helm CLI, bound to one namespace.

    The kubeconfig content is written to a private temporary file for the
    lifetime of the client; use it as a context manager so the file is removed.
    """

    _binary: str
    _kubeconfig_file: Optional[str] = None
    _namespace: str

    def __init__(self, kubeconfig: bytes, namespace: str, binary: str = "helm") -> None:
        resolved = shutil.which(binary)
        if resolved is None:
            raise HelmClientError(f"Helm binary not found: {binary}")
        self._binary = resolved
        self._namespace = namespace
        try:
            file_descriptor, file_path = tempfile.mkstemp(
                prefix="kubeconfig-", suffix=".yaml"
            )
        except OSError as error:
            raise HelmClientError(
                f"Cannot create the helm kubeconfig file: {error}"
            ) from error
        os.close(file_descriptor)
        try:
            self._kubeconfig_file = save_to_file(file_path, kubeconfig)
        except OSError as error:
            os.remove(file_path)
            raise HelmClientError(
                f"Cannot write the helm kubeconfig file: {error}"
            ) from error

    def __enter__(self) -> "HelmClient":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()

    @property
    def namespace(self) -> str:
        return self._namespace

    def close(self) -> None:
        if self._kubeconfig_file and os.path.exists(self._kubeconfig_file):
            os.remove(self._kubeconfig_file)
        self._kubeconfig_file = None

    def get_release(self, release_name: str) -> Release:
        try:
            response = run_cmd(self._cmd("status", release_name, "--output", "json"))
        except subprocess.CalledProcessError as error:
            if RELEASE_NOT_FOUND in (error.stderr or ""):
                raise ReleaseNotFoundError(
                    f"Release {release_name} not found in {self._namespace}."
                ) from error
            raise ReleaseLookupError(
                f"Cannot look up release {release_name}: {error.stderr}"
            ) from error
        except subprocess.TimeoutExpired as error:
            raise ReleaseLookupError(
                f"Timeout while looking up release {release_name}."
            ) from error
        try:
            return Release(**json.loads(response.stdout))
        except (ValueError, ValidationError) as error:
            raise ReleaseLookupError(
                f"Unexpected helm status output for {release_name}."
            ) from error

    def uninstall_release(self, release_name: str, timeout: int = 60) -> None:
        cmd = self._cmd(
            "uninstall", release_name, "--wait", "--timeout", format_timeout(timeout)
        )
        try:
            # Leave helm room to report its own timeout first.
            run_cmd(cmd, timeout=timeout + 30)
        except subprocess.TimeoutExpired as error:
            raise ReleaseUninstallTimeoutError(
                f"Uninstalling {release_name} did not complete in {timeout}s."
            ) from error
        except subprocess.CalledProcessError as error:
            if UNINSTALL_TIMED_OUT in (error.stderr or ""):
                raise ReleaseUninstallTimeoutError(
                    f"Uninstalling {release_name} did not complete in {timeout}s."
                ) from error
            raise ReleaseUninstallError(
                f"Cannot uninstall release {release_name}: {error.stderr}"
            ) from error

    def _cmd(self, *args: str) -> list[str]:
        if self._kubeconfig_file is None:
            raise HelmClientError("Helm client is closed.")
        return [
            self._binary,
            *args,
            "--namespace",
            self._namespace,
            "--kubeconfig",
            self._kubeconfig_file,
        ]
