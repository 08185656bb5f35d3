"""Service modules"""
from .ledger_service import LedgerService, StepOutcome
from .scenario import ScenarioStep, load_scenario

__all__ = ["LedgerService", "StepOutcome", "ScenarioStep", "load_scenario"]
