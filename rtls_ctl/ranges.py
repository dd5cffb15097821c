"""IPv4 range parsing and iteration for gateway scans."""

from __future__ import annotations

import logging
import socket
from ipaddress import IPv4Address, ip_address
from typing import Iterator, Optional, Tuple, Union

from .errors import RangeError

LOGGER = logging.getLogger(__name__)

RANGE_SEPARATOR = ".."

# Routable address used only to pick the outbound interface; no packet is sent.
_PROBE_TARGET = ("10.254.254.254", 1)

AddressRange = Tuple[IPv4Address, IPv4Address]


def parse_range(value: str) -> AddressRange:
    """Parse ``start..end`` into a half-open pair of IPv4 addresses."""

    start_text, separator, end_text = value.partition(RANGE_SEPARATOR)
    if not separator:
        raise RangeError("Range argument must contain '..'")

    try:
        start = IPv4Address(start_text.strip())
    except ValueError as exc:
        raise RangeError(
            "Error parsing start ip address. Expected ip v4 address like '192.168.1.1'"
        ) from exc

    try:
        end = IPv4Address(end_text.strip())
    except ValueError as exc:
        raise RangeError(
            "Error parsing end ip address. Expected ip v4 address like '192.168.1.2'"
        ) from exc

    return start, end


def default_range(local_ip: Optional[Union[IPv4Address, str]]) -> AddressRange:
    """Return ``a.b.c.1..a.b.c.255`` for the /24 holding ``local_ip``."""

    address = ip_address(local_ip) if isinstance(local_ip, str) else local_ip
    if not isinstance(address, IPv4Address):
        raise RangeError(
            "Cannot extract a local ipv4 address. Please specify start and end ip range"
        )

    a, b, c, _ = address.packed
    return IPv4Address(bytes((a, b, c, 1))), IPv4Address(bytes((a, b, c, 255)))


def local_ipv4() -> Optional[IPv4Address]:
    """Best-effort lookup of the local address used for outbound traffic."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(_PROBE_TARGET)
        host = sock.getsockname()[0]
    except OSError as exc:
        LOGGER.debug("Unable to determine local address: %s", exc)
        return None
    finally:
        sock.close()

    try:
        address = IPv4Address(host)
    except ValueError:
        return None
    if address.is_unspecified:
        return None
    return address


def resolve_range(value: Optional[str]) -> AddressRange:
    """Parse an explicit range or fall back to the local /24."""

    if value:
        return parse_range(value)
    return default_range(local_ipv4())


def iter_range(start: IPv4Address, end: IPv4Address) -> Iterator[IPv4Address]:
    """Yield every address from ``start`` up to but excluding ``end``."""

    for number in range(int(start), int(end)):
        yield IPv4Address(number)


def range_size(start: IPv4Address, end: IPv4Address) -> int:
    return max(0, int(end) - int(start))
