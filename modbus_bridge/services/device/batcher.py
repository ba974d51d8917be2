"""
Register Batching

Groups a sorted set of register addresses into contiguous read spans so
that each span can be fetched with a single holding register request.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class AddressGroup:
    """A run of consecutive register addresses read in one request"""
    addresses: tuple[int, ...]

    @property
    def start(self) -> int:
        return self.addresses[0]

    @property
    def count(self) -> int:
        return len(self.addresses)

    def __repr__(self) -> str:
        return f"AddressGroup(start={self.start}, count={self.count})"


def group_addresses(addresses: Iterable[int], max_batch_size: int) -> list[AddressGroup]:
    """
    Split sorted, unique addresses into contiguous groups.

    A new group starts whenever an address does not directly follow the
    previous one, or when the current group already holds max_batch_size
    addresses.

    Args:
        addresses: Ascending, unique, non-negative register addresses
        max_batch_size: Upper bound on addresses per group

    Returns:
        Groups in ascending address order (empty for empty input)

    Raises:
        ValueError: max_batch_size < 1, or input not sorted/unique/non-negative
    """
    if max_batch_size < 1:
        raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")

    ordered = list(addresses)
    if not ordered:
        return []

    groups: list[AddressGroup] = []
    current: list[int] = []
    previous: int | None = None

    for address in ordered:
        if address < 0:
            raise ValueError(f"Negative register address: {address}")
        if previous is not None and address <= previous:
            raise ValueError(
                f"Addresses must be strictly ascending: {address} after {previous}"
            )

        if current and (address != previous + 1 or len(current) >= max_batch_size):
            groups.append(AddressGroup(tuple(current)))
            current = []

        current.append(address)
        previous = address

    groups.append(AddressGroup(tuple(current)))
    return groups
