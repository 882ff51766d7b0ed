"""HTTP endpoint and cluster-status probes (httpx)."""

from __future__ import annotations

import time

import httpx
import structlog

from fleetwatch.core.config import ClusterProbeConfig, HttpProbeConfig
from fleetwatch.core.types import ClusterSeverity, HealthSample, HealthStatus, ProbeFailure
from fleetwatch.probes.base import Probe
from fleetwatch.probes.exceptions import ProbeTimeout, ProbeUnreachable
from fleetwatch.targets.registry import MonitoredTarget

logger = structlog.stdlib.get_logger()


class _HttpClientMixin:
    """Lazily created httpx clients, one per TLS-verification setting."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._clients: dict[bool, httpx.AsyncClient] = {}
        if client is not None:
            self._clients[True] = client
            self._clients[False] = client

    def _get_client(self, verify: bool = True) -> httpx.AsyncClient:
        if verify not in self._clients:
            self._clients[verify] = httpx.AsyncClient(verify=verify, follow_redirects=False)
        return self._clients[verify]

    async def _get(
        self,
        url: str,
        timeout: float,
        verify: bool = True,
        **kwargs: object,
    ) -> httpx.Response:
        try:
            return await self._get_client(verify).get(url, timeout=timeout, **kwargs)  # type: ignore[arg-type]
        except httpx.TimeoutException as exc:
            raise ProbeTimeout(f"GET {url} timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ProbeUnreachable(f"GET {url} failed: {type(exc).__name__}: {exc}") from exc

    async def close(self) -> None:
        for client in set(self._clients.values()):
            await client.aclose()
        self._clients.clear()


class HttpProbe(_HttpClientMixin, Probe):
    """Healthy iff the endpoint answers with the expected status (any 2xx when unset)."""

    async def check(self, target: MonitoredTarget) -> HealthSample:
        cfg = target.probe
        assert isinstance(cfg, HttpProbeConfig)
        start = time.monotonic()
        resp = await self._get(
            cfg.url,
            timeout=cfg.timeout_secs,
            verify=cfg.verify_tls,
            headers=cfg.headers,
        )
        latency_ms = (time.monotonic() - start) * 1000.0
        code = resp.status_code
        if cfg.expected_status is not None:
            ok = code == cfg.expected_status
        else:
            ok = 200 <= code < 300
        return HealthSample(
            target_id=target.id,
            status=HealthStatus.HEALTHY if ok else HealthStatus.UNHEALTHY,
            detail=f"HTTP {code}",
            latency_ms=latency_ms,
            metadata={"http_status": str(code)},
        )


_SEVERITY_STATUS: dict[ClusterSeverity, HealthStatus] = {
    ClusterSeverity.GREEN: HealthStatus.HEALTHY,
    ClusterSeverity.YELLOW: HealthStatus.HEALTHY,
    ClusterSeverity.RED: HealthStatus.UNHEALTHY,
}

_SEVERITY_DETAIL: dict[ClusterSeverity, str] = {
    ClusterSeverity.GREEN: "all good",
    ClusterSeverity.YELLOW: "some replicas not allocated",
    ClusterSeverity.RED: "some primary shards not allocated",
}


class ClusterProbe(_HttpClientMixin, Probe):
    """Elasticsearch-style cluster: root must answer 200, then read ``status``.

    green/yellow are acceptable; red is reported as unhealthy with severity
    red (alert-worthy, not remediation-eligible by default).
    """

    async def check(self, target: MonitoredTarget) -> HealthSample:
        cfg = target.probe
        assert isinstance(cfg, ClusterProbeConfig)
        auth: tuple[str, str] | None = None
        if cfg.username:
            auth = (cfg.username, cfg.password.get_secret_value())

        base = cfg.url.rstrip("/")
        start = time.monotonic()
        root = await self._get(base, timeout=cfg.timeout_secs, auth=auth)
        if root.status_code != 200:
            return HealthSample(
                target_id=target.id,
                status=HealthStatus.UNREACHABLE,
                failure=ProbeFailure.UNREACHABLE,
                detail=f"cluster root returned HTTP {root.status_code}",
                latency_ms=(time.monotonic() - start) * 1000.0,
            )

        resp = await self._get(base + cfg.health_path, timeout=cfg.timeout_secs, auth=auth)
        latency_ms = (time.monotonic() - start) * 1000.0
        try:
            body = resp.json()
        except ValueError:
            body = {}
        raw_status = str(body.get("status", "")) if isinstance(body, dict) else ""

        try:
            severity = ClusterSeverity(raw_status)
        except ValueError:
            return HealthSample(
                target_id=target.id,
                status=HealthStatus.UNKNOWN,
                detail=f"cluster health unknown: {raw_status or 'no status'}",
                latency_ms=latency_ms,
            )

        metadata = {"severity": severity.value}
        for key in ("cluster_name", "number_of_nodes", "unassigned_shards"):
            if key in body:
                metadata[key] = str(body[key])

        return HealthSample(
            target_id=target.id,
            status=_SEVERITY_STATUS[severity],
            severity=severity,
            detail=f"cluster {severity.value}: {_SEVERITY_DETAIL[severity]}",
            latency_ms=latency_ms,
            metadata=metadata,
        )
