"""Reconciliation loop and engine wiring."""

from fleetwatch.engine.factory import Engine, build_engine
from fleetwatch.engine.loop import ReconciliationLoop
from fleetwatch.engine.policy import ConditionCheck, evaluate_sample, is_problem

__all__ = [
    "ConditionCheck",
    "Engine",
    "ReconciliationLoop",
    "build_engine",
    "evaluate_sample",
    "is_problem",
]
