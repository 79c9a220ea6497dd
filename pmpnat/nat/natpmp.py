"""NAT-PMP (NAT Port Mapping Protocol) wire codec per RFC 6886."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from pmpnat.nat.exceptions import NATPMPError
from pmpnat.nat.port_mapping import NATProtocol
from pmpnat.utils.exceptions import ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from pmpnat.nat.port_mapping import Mapping

# RFC 6886 constants
NAT_PMP_PORT: Final = 5351
NAT_PMP_VERSION: Final = 0
NAT_PMP_RETRY_ATTEMPTS: Final = 9
NAT_PMP_RETRY_DELAY: Final = 0.25  # seconds, doubled before every wait
NAT_PMP_OPERATION_TIMEOUT: Final = 4.0  # seconds, absolute per operation

# Response opcodes are the request opcode with the top bit set
NAT_PMP_OPCODE_MASK: Final = 0x7F

MAPPING_REQUEST_FORMAT: Final = "!BBHHHI"
MAPPING_RESPONSE_FORMAT: Final = "!BBhiHHI"
MAPPING_RESPONSE_SIZE: Final = struct.calcsize(MAPPING_RESPONSE_FORMAT)  # 16
PUBLIC_ADDRESS_RESPONSE_FORMAT: Final = "!BBhiI"
PUBLIC_ADDRESS_RESPONSE_SIZE: Final = struct.calcsize(PUBLIC_ADDRESS_RESPONSE_FORMAT)  # 12


class NATPMPOpcode(IntEnum):
    """NAT-PMP opcodes from RFC 6886."""

    PUBLIC_ADDRESS_REQUEST = 0
    UDP_MAPPING_REQUEST = 1
    TCP_MAPPING_REQUEST = 2


class NATPMPResult(IntEnum):
    """NAT-PMP result codes from RFC 6886 section 3.5."""

    SUCCESS = 0
    UNSUPPORTED_VERSION = 1
    NOT_AUTHORIZED = 2  # e.g., gateway firewall disallows
    NETWORK_FAILURE = 3
    OUT_OF_RESOURCES = 4
    UNSUPPORTED_OPCODE = 5


RESULT_DESCRIPTIONS: Final = MappingProxyType(
    {
        NATPMPResult.SUCCESS: "Success",
        NATPMPResult.UNSUPPORTED_VERSION: "Unsupported Version",
        NATPMPResult.NOT_AUTHORIZED: (
            "Not Authorized/Refused "
            "(e.g. box supports mapping, but user has turned feature off)"
        ),
        NATPMPResult.NETWORK_FAILURE: (
            "Network Failure "
            "(e.g. NAT box itself has not obtained a DHCP lease)"
        ),
        NATPMPResult.OUT_OF_RESOURCES: (
            "Out of resources "
            "(NAT box cannot create any more mappings at this time)"
        ),
        NATPMPResult.UNSUPPORTED_OPCODE: "Unsupported opcode",
    }
)
UNKNOWN_RESULT_DESCRIPTION: Final = "Unknown result code"

_PROTOCOL_OPCODES: Final = MappingProxyType(
    {
        NATProtocol.TCP: NATPMPOpcode.TCP_MAPPING_REQUEST,
        NATProtocol.UDP: NATPMPOpcode.UDP_MAPPING_REQUEST,
    }
)


@dataclass(frozen=True)
class NATPMPResponse:
    """A decoded port mapping response."""

    opcode: int
    result_code: int
    epoch: int  # seconds since the gateway's mapping table was (re)initialised
    private_port: int
    public_port: int
    lifetime: int

    @property
    def protocol(self) -> NATProtocol:
        """Protocol the response refers to."""
        if self.opcode == NATPMPOpcode.UDP_MAPPING_REQUEST:
            return NATProtocol.UDP
        return NATProtocol.TCP


def describe_result(result_code: int) -> str:
    """Return the human-readable description of a result code."""
    return RESULT_DESCRIPTIONS.get(result_code, UNKNOWN_RESULT_DESCRIPTION)


def _check_result(result_code: int) -> None:
    if result_code != NATPMPResult.SUCCESS:
        raise NATPMPError(result_code, describe_result(result_code))


# Message encoding/decoding functions


def encode_public_address_request() -> bytes:
    """Encode public address request (RFC 6886 section 3.2)."""
    return struct.pack("!BB", NAT_PMP_VERSION, NATPMPOpcode.PUBLIC_ADDRESS_REQUEST)


def encode_port_mapping_request(mapping: Mapping, create: bool) -> bytes:
    """Encode a create or delete request for ``mapping`` (RFC 6886 section 3.3).

    Args:
        mapping: Mapping whose protocol, ports and lifetime are sent
        create: True to create, False to delete. A delete request always
            carries a zero public port.

    Returns:
        The 12-byte request

    Raises:
        ValidationError: A field of ``mapping`` is out of range

    """
    try:
        mapping.validate()
    except (TypeError, ValueError) as e:
        msg = f"Cannot encode port mapping request: {e}"
        raise ValidationError(msg, {"private_port": mapping.private_port}) from e

    # version(1), opcode(1), reserved(2), private_port(2), public_port(2), lifetime(4)
    return struct.pack(
        MAPPING_REQUEST_FORMAT,
        NAT_PMP_VERSION,
        _PROTOCOL_OPCODES[mapping.protocol],
        0,  # reserved
        mapping.private_port,
        mapping.public_port if create else 0,
        mapping.lifetime,
    )


def decode_port_mapping_response(data: bytes) -> NATPMPResponse | None:
    """Decode a port mapping response (RFC 6886 section 3.3).

    Returns:
        The decoded response, or None when the datagram is too short or
        carries another protocol version

    Raises:
        NATPMPError: If the gateway reported a non-success result

    """
    if len(data) < MAPPING_RESPONSE_SIZE or data[0] != NAT_PMP_VERSION:
        return None

    _version, opcode, result, epoch, private, public, lifetime = struct.unpack(
        MAPPING_RESPONSE_FORMAT,
        data[:MAPPING_RESPONSE_SIZE],
    )
    _check_result(result)
    return NATPMPResponse(
        opcode=opcode & NAT_PMP_OPCODE_MASK,
        result_code=result,
        epoch=epoch,
        private_port=private,
        public_port=public,
        lifetime=lifetime,
    )


def decode_public_address_response(
    data: bytes,
) -> tuple[ipaddress.IPv4Address, int] | None:
    """Decode public address response (RFC 6886 section 3.2).

    Returns:
        Tuple of (external_ip, epoch), or None when the datagram is too short,
        carries another protocol version or answers a different opcode

    Raises:
        NATPMPError: If the gateway reported a non-success result

    """
    if len(data) < PUBLIC_ADDRESS_RESPONSE_SIZE or data[0] != NAT_PMP_VERSION:
        return None
    if data[1] & NAT_PMP_OPCODE_MASK != NATPMPOpcode.PUBLIC_ADDRESS_REQUEST:
        return None

    _version, _opcode, result, epoch, ip_int = struct.unpack(
        PUBLIC_ADDRESS_RESPONSE_FORMAT,
        data[:PUBLIC_ADDRESS_RESPONSE_SIZE],
    )
    _check_result(result)
    return ipaddress.IPv4Address(ip_int), epoch
