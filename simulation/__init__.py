"""
Simulation core: per-robot kinematics, battery and status rules, the
enablement controller and the fixed-rate clock that ties them together.
"""

from simulation.battery import BatteryModel
from simulation.clock import CycleReport, SimulationClock
from simulation.controller import SimulationController
from simulation.engine import EntityStep, SimulationEngine
from simulation.motion import MotionModel
from simulation.status import StatusArbiter

__all__ = [
    "BatteryModel",
    "CycleReport",
    "EntityStep",
    "MotionModel",
    "SimulationClock",
    "SimulationController",
    "SimulationEngine",
    "StatusArbiter",
]
