"""
Cycle Scheduler

Decides which registers take part in a given poll cycle. Low-priority
registers (topic class containing the configured marker) are only read
every `cadence` cycles to bound the number of requests per cycle.
"""

from dataclasses import dataclass
from typing import Iterable

from modbus_bridge.common.address_map import RegisterDescriptor


@dataclass(frozen=True)
class CycleState:
    """Snapshot of the cycle counter and what it implies"""
    cycle_index: int
    include_low_priority: bool


class CycleScheduler:
    """Selects the active register subset per cycle"""

    def __init__(self, cadence: int = 5, low_priority_marker: str = "_R_"):
        if cadence < 1:
            raise ValueError(f"cadence must be >= 1, got {cadence}")
        self.cadence = cadence
        self.low_priority_marker = low_priority_marker

    def state(self, cycle_index: int) -> CycleState:
        return CycleState(
            cycle_index=cycle_index,
            include_low_priority=cycle_index % self.cadence == 0,
        )

    def is_low_priority(self, descriptor: RegisterDescriptor) -> bool:
        # An empty marker would match every topic; treat it as "no low-priority registers"
        if not self.low_priority_marker:
            return False
        return self.low_priority_marker in descriptor.topic_class

    def select(
        self,
        registers: Iterable[RegisterDescriptor],
        cycle_index: int,
    ) -> list[RegisterDescriptor]:
        """Full set on cadence cycles, high-priority registers otherwise"""
        if self.state(cycle_index).include_low_priority:
            return list(registers)
        return [r for r in registers if not self.is_low_priority(r)]
