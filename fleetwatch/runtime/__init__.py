"""External collaborators — container runtime, service controller, host metrics."""

from fleetwatch.runtime.base import ContainerRuntime, ServiceController
from fleetwatch.runtime.compose import ComposeServiceController
from fleetwatch.runtime.docker import DockerRuntime
from fleetwatch.runtime.exceptions import ProcessNotFoundError, RuntimeCommandError, ServiceRestartError
from fleetwatch.runtime.host import CpuCounters, HostMetricsSource, cpu_percent

__all__ = [
    "ComposeServiceController",
    "ContainerRuntime",
    "CpuCounters",
    "DockerRuntime",
    "HostMetricsSource",
    "ProcessNotFoundError",
    "RuntimeCommandError",
    "ServiceController",
    "ServiceRestartError",
    "cpu_percent",
]
