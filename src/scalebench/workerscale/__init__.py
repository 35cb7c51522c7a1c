"""Worker scale-up orchestration for scalebench."""

from .driver import ApplyResult, ScaleDriver
from .inventory import CAPIInventory, MachineAPIInventory, discard_previous_machines, get_machine_sets
from .managed import ManagedCliError, PoolBounds, RosaCli
from .planner import plan_allocation
from .scenarios import (
    AutoScalerScenario,
    BaseScenario,
    RosaScenario,
    Scenario,
    ScaleSetupError,
    build_request,
    get_scenario,
)
from .types import GroupMutation, MachineRecord, ScaleRequest, ScaleResult, ScenarioState

__all__ = [
    # Types
    "GroupMutation",
    "MachineRecord",
    "ScaleRequest",
    "ScaleResult",
    "ScenarioState",
    # Planning and driving
    "plan_allocation",
    "ScaleDriver",
    "ApplyResult",
    # Inventory
    "get_machine_sets",
    "MachineAPIInventory",
    "CAPIInventory",
    "discard_previous_machines",
    # Managed CLI
    "RosaCli",
    "PoolBounds",
    "ManagedCliError",
    # Scenarios
    "Scenario",
    "BaseScenario",
    "AutoScalerScenario",
    "RosaScenario",
    "ScaleSetupError",
    "build_request",
    "get_scenario",
]
