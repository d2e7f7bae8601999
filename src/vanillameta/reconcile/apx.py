"""Apx container helpers used to install and launch claimed apps."""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, List, Sequence

from vanillameta.errors import InstallError

LOGGER = logging.getLogger(__name__)

MANAGED_PREFIX = "apx_managed_"

Runner = Callable[..., subprocess.CompletedProcess]
Spawner = Callable[..., subprocess.Popen]


def container_flag_from_name(container: str) -> str | None:
    """Map a bundle container name to the apx command-line flag.

    ``apx_managed_debian`` -> ``--debian``. Empty names have no flag.
    """
    name = (container or "").strip()
    if name.startswith(MANAGED_PREFIX):
        name = name[len(MANAGED_PREFIX):]
    name = name.lstrip("-")
    if not name:
        return None
    return f"--{name}"


class ApxRunner:
    """Thin wrapper around the ``apx`` and container runtime executables."""

    def __init__(
        self,
        binary: str = "apx",
        *,
        runtime: str = "podman",
        run: Runner = subprocess.run,
        spawn: Spawner = subprocess.Popen,
    ) -> None:
        self.binary = binary
        self.runtime = runtime
        self._run = run
        self._spawn = spawn

    def _execute(self, cmd: Sequence[str]) -> str:
        LOGGER.debug("Running %s", " ".join(cmd))
        try:
            result = self._run(list(cmd), capture_output=True, text=True, check=False)
        except OSError as exc:
            raise InstallError(f"Unable to run {cmd[0]}: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise InstallError(
                f"{' '.join(cmd)} exited with status {result.returncode}: {detail}"
            )
        return result.stdout or ""

    def list_containers(self) -> List[str]:
        output = self._execute([self.runtime, "ps", "-a", "--format", "{{.Names}}"])
        names = (line.strip() for line in output.splitlines())
        return [name for name in names if name.startswith(MANAGED_PREFIX)]

    def has_container(self, flag: str) -> bool:
        wanted = flag.lstrip("-")
        return any(name[len(MANAGED_PREFIX):] == wanted for name in self.list_containers())

    def init_container(self, flag: str) -> None:
        self._execute([self.binary, flag, "init"])

    def install(self, flag: str, package: str) -> None:
        if not self.has_container(flag):
            LOGGER.info("Container for %s missing, initializing it", flag)
            self.init_container(flag)
        self._execute([self.binary, flag, "install", "-y", package])

    def launch(self, flag: str, package: str) -> None:
        cmd = [self.binary, flag, "run", package]
        LOGGER.debug("Launching %s", " ".join(cmd))
        try:
            self._spawn(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            raise InstallError(f"Unable to launch {package}: {exc}") from exc
