"""Connection capability types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .constants import PACKET_SIZE_V1, PACKET_SIZE_V2
from .errors import InvalidDeviceError


class ProtocolVariant(Enum):
    """Protocol generation.

    V2 devices use 1024-byte packets and need an STP after clearing keys.
    """
    V1 = 'v1'
    V2 = 'v2'

    @property
    def packet_size(self) -> int:
        return PACKET_SIZE_V2 if self is ProtocolVariant.V2 else PACKET_SIZE_V1

    @property
    def commits_clear(self) -> bool:
        return self is ProtocolVariant.V2


@dataclass(frozen=True)
class ConnectionCapabilities:
    """Fixed at connect time, never mutated."""
    key_count: int
    encoder_count: int
    packet_size: int
    protocol_variant: ProtocolVariant
    supports_dual_state: bool

    def __post_init__(self):
        if self.key_count < 0 or self.encoder_count < 0:
            raise InvalidDeviceError(
                f"Invalid input counts: {self.key_count} key(s), "
                f"{self.encoder_count} encoder(s)"
            )
        if self.packet_size != self.protocol_variant.packet_size:
            raise InvalidDeviceError(
                f"Packet size {self.packet_size} does not match "
                f"protocol {self.protocol_variant.value}"
            )

    @classmethod
    def for_variant(
        cls,
        protocol_variant: ProtocolVariant,
        supports_dual_state: bool,
        key_count: int,
        encoder_count: int,
    ) -> 'ConnectionCapabilities':
        return cls(
            key_count=key_count,
            encoder_count=encoder_count,
            packet_size=protocol_variant.packet_size,
            protocol_variant=protocol_variant,
            supports_dual_state=supports_dual_state,
        )
