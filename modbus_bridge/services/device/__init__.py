"""
Device Service - Modbus Communication

Responsibilities:
- Maintain the Modbus TCP session and its reconnect timer
- Select the registers due in each poll cycle
- Group them into contiguous block reads
- Scale raw words and hand the result to the publisher
"""

from .batcher import AddressGroup, group_addresses
from .cycle_scheduler import CycleScheduler, CycleState
from .read_pipeline import DataPoint, ReadPipeline
from .transport_session import ConnectionState, TransportSession

__all__ = [
    "AddressGroup",
    "group_addresses",
    "CycleScheduler",
    "CycleState",
    "DataPoint",
    "ReadPipeline",
    "ConnectionState",
    "TransportSession",
]
