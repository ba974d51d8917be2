"""
Address Map

Immutable description of every monitored holding register.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping


@dataclass(frozen=True)
class RegisterDescriptor:
    """A single monitored holding register"""
    address: int
    factor: float = 1.0
    topic_class: str = ""
    alarm_eligible: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # Freeze metadata so descriptors stay read-only for the process lifetime
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


class AddressMap:
    """
    Ordered, read-only set of RegisterDescriptor keyed by address.

    Iteration yields descriptors in ascending address order.
    """

    def __init__(self, descriptors: Iterable[RegisterDescriptor] = ()):
        by_address: dict[int, RegisterDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.address < 0:
                raise ValueError(f"Negative register address: {descriptor.address}")
            if descriptor.address in by_address:
                raise ValueError(f"Duplicate register address: {descriptor.address}")
            by_address[descriptor.address] = descriptor

        self._descriptors = MappingProxyType(
            {address: by_address[address] for address in sorted(by_address)}
        )

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[RegisterDescriptor]:
        return iter(self._descriptors.values())

    def __contains__(self, address: object) -> bool:
        return address in self._descriptors

    def __getitem__(self, address: int) -> RegisterDescriptor:
        return self._descriptors[address]

    def __repr__(self) -> str:
        return f"AddressMap({len(self)} registers)"

    def get(self, address: int) -> RegisterDescriptor | None:
        return self._descriptors.get(address)

    def addresses(self) -> list[int]:
        """Sorted list of all monitored addresses"""
        return list(self._descriptors)

    def subset(self, predicate: Callable[[RegisterDescriptor], bool]) -> list[RegisterDescriptor]:
        """Descriptors matching predicate, in ascending address order"""
        return [d for d in self._descriptors.values() if predicate(d)]

    def alarm_registers(self) -> list[RegisterDescriptor]:
        return self.subset(lambda d: d.alarm_eligible)
