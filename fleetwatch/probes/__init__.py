"""Health probe engine — one check per target per tick, never raising."""

from fleetwatch.probes.base import Probe
from fleetwatch.probes.container import ContainerProbe
from fleetwatch.probes.engine import ProbeEngine
from fleetwatch.probes.exceptions import ProbeError, ProbeTimeout, ProbeUnreachable
from fleetwatch.probes.http import ClusterProbe, HttpProbe
from fleetwatch.probes.metric import MetricProbe

__all__ = [
    "ClusterProbe",
    "ContainerProbe",
    "HttpProbe",
    "MetricProbe",
    "Probe",
    "ProbeEngine",
    "ProbeError",
    "ProbeTimeout",
    "ProbeUnreachable",
]
