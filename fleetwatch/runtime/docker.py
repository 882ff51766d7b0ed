"""DockerRuntime — ContainerRuntime over the Docker Engine API unix socket."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from fleetwatch.core.config import RuntimeConfig
from fleetwatch.core.types import ProcessRef, RawHealthStatus
from fleetwatch.runtime.base import ContainerRuntime
from fleetwatch.runtime.exceptions import ProcessNotFoundError, RuntimeCommandError

logger = structlog.stdlib.get_logger()

_HEALTH_MAP: dict[str, RawHealthStatus] = {
    "healthy": RawHealthStatus.HEALTHY,
    "unhealthy": RawHealthStatus.UNHEALTHY,
    "starting": RawHealthStatus.STARTING,
}


def _container_name(entry: dict[str, Any]) -> str:
    names = entry.get("Names") or []
    if names:
        return str(names[0]).lstrip("/")
    return str(entry.get("Name", "")).lstrip("/")


def _cpu_percent(stats: dict[str, Any]) -> float | None:
    cpu = stats.get("cpu_stats") or {}
    pre = stats.get("precpu_stats") or {}
    try:
        cpu_delta = cpu["cpu_usage"]["total_usage"] - pre["cpu_usage"]["total_usage"]
        system_delta = cpu["system_cpu_usage"] - pre["system_cpu_usage"]
    except (KeyError, TypeError):
        return None
    if system_delta <= 0 or cpu_delta < 0:
        return 0.0
    online = cpu.get("online_cpus") or len(cpu["cpu_usage"].get("percpu_usage") or []) or 1
    return cpu_delta / system_delta * online * 100.0


def _mib(n: float) -> str:
    return f"{n / (1024 * 1024):.1f}MiB"


class DockerRuntime(ContainerRuntime):
    """Talks to dockerd directly — no docker CLI inside the monitor.

    Usage::

        runtime = DockerRuntime(settings.runtime)
        refs = await runtime.list_processes("worker-", exact=False)
        await runtime.restart(refs[0])
        await runtime.close()
    """

    def __init__(self, config: RuntimeConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or RuntimeConfig()
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=httpx.AsyncHTTPTransport(uds=self._config.docker_socket),
                base_url="http://docker",
                timeout=httpx.Timeout(self._config.command_timeout_secs),
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._get_client().request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RuntimeCommandError(f"docker {method} {path} failed: {exc}") from exc
        if resp.status_code == 404:
            raise ProcessNotFoundError(f"docker {method} {path}: not found")
        if resp.status_code >= 400:
            raise RuntimeCommandError(
                f"docker {method} {path} returned {resp.status_code}: {resp.text[:200]}"
            )
        return resp

    async def list_processes(self, name_filter: str | None = None, exact: bool = False) -> list[ProcessRef]:
        params: dict[str, str] = {"all": "1"}
        if name_filter:
            params["filters"] = json.dumps({"name": [name_filter]})
        resp = await self._request("GET", "/containers/json", params=params)
        refs: list[ProcessRef] = []
        for entry in resp.json() or []:
            name = _container_name(entry)
            if exact and name_filter and name != name_filter:
                continue
            refs.append(ProcessRef(
                id=str(entry.get("Id", "")),
                name=name,
                state=str(entry.get("State", "unknown")),
                raw=entry,
            ))
        return refs

    async def inspect_health(self, ref: ProcessRef) -> RawHealthStatus:
        try:
            resp = await self._request("GET", f"/containers/{ref.id}/json")
        except ProcessNotFoundError:
            return RawHealthStatus.MISSING
        state = resp.json().get("State") or {}
        status = state.get("Status", "")
        if status == "restarting" or status == "created":
            return RawHealthStatus.STARTING
        if status != "running":
            return RawHealthStatus.UNHEALTHY
        health = (state.get("Health") or {}).get("Status")
        if health is None:
            return RawHealthStatus.NONE
        return _HEALTH_MAP.get(health, RawHealthStatus.NONE)

    async def restart(self, ref: ProcessRef) -> None:
        logger.info("docker_restart", container=ref.name)
        await self._request("POST", f"/containers/{ref.id}/restart", params={"t": "10"})

    async def kill(self, ref: ProcessRef) -> None:
        logger.info("docker_kill", container=ref.name)
        await self._request("POST", f"/containers/{ref.id}/kill", params={"signal": "SIGKILL"})

    async def usage(self, ref: ProcessRef) -> dict[str, str]:
        if not ref.running:
            return {}
        try:
            resp = await self._request("GET", f"/containers/{ref.id}/stats", params={"stream": "false"})
        except RuntimeCommandError:
            logger.debug("docker_stats_unavailable", container=ref.name)
            return {}
        stats = resp.json()
        out: dict[str, str] = {}
        cpu = _cpu_percent(stats)
        if cpu is not None:
            out["cpu"] = f"{cpu:.2f}%"
        mem = stats.get("memory_stats") or {}
        if "usage" in mem:
            limit = mem.get("limit")
            out["memory"] = _mib(mem["usage"]) + (f"/{_mib(limit)}" if limit else "")
        return out

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
