"""ComposeServiceController — scoped restarts through the docker compose CLI."""

from __future__ import annotations

import asyncio

import structlog

from fleetwatch.core.config import RuntimeConfig
from fleetwatch.runtime.base import ServiceController
from fleetwatch.runtime.exceptions import ServiceRestartError

logger = structlog.stdlib.get_logger()


class ComposeServiceController(ServiceController):
    """Restart one compose service, or the whole project when it isn't listed."""

    def __init__(self, config: RuntimeConfig | None = None) -> None:
        self._config = config or RuntimeConfig()

    def _base_cmd(self) -> list[str]:
        cmd = list(self._config.compose_command)
        if self._config.compose_file:
            cmd += ["-f", self._config.compose_file]
        return cmd

    async def _run(self, *args: str) -> tuple[int, str]:
        cmd = [*self._base_cmd(), *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=self._config.compose_project_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ServiceRestartError(f"cannot run {cmd[0]}: {exc}") from exc
        try:
            out, _ = await asyncio.wait_for(
                proc.communicate(), timeout=self._config.command_timeout_secs
            )
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ServiceRestartError(
                f"{' '.join(cmd)} timed out after {self._config.command_timeout_secs}s"
            ) from exc
        return proc.returncode or 0, out.decode("utf-8", errors="replace")

    async def list_services(self) -> list[str]:
        code, out = await self._run("ps", "--services")
        if code != 0:
            raise ServiceRestartError(f"compose ps failed ({code}): {out.strip()[:200]}")
        return [line.strip() for line in out.splitlines() if line.strip()]

    async def restart_service(self, name: str) -> None:
        services = await self.list_services()
        if name in services:
            logger.info("compose_restart_service", service=name)
            code, out = await self._run("restart", name)
        else:
            logger.warning("compose_service_not_listed", service=name, services=services)
            code, out = await self._run("restart")
        if code != 0:
            raise ServiceRestartError(f"compose restart failed ({code}): {out.strip()[:200]}")
        logger.info("compose_restart_done", service=name)
