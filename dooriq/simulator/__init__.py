"""
Scripted practice-session simulator.

Usage:
    python -m dooriq.simulator --scenario happy_path
"""

from .runner import Scenario, SimulationResult, SimulationRunner, create_demo_service, load_scenarios
from .report import ReportGenerator

__all__ = [
    'Scenario',
    'SimulationResult',
    'SimulationRunner',
    'ReportGenerator',
    'create_demo_service',
    'load_scenarios',
]
