"""Bridge Service - wires the device, publish and status services together"""

from .service import BridgeService

__all__ = ["BridgeService"]
