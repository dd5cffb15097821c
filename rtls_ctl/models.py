"""Domain models for gateway discovery and MG3 responses."""

from __future__ import annotations

import binascii
from dataclasses import dataclass, field
from enum import Enum
from ipaddress import IPv4Address
from typing import Any, Dict, Mapping, Optional

from .constants import MG3_SUCCESS_CODE

MAC_LENGTH = 6


@dataclass(frozen=True, order=True, slots=True, repr=False)
class MacAddress:
    """Hardware address of a gateway, rendered as ``AA:BB:CC:DD:EE:FF``."""

    octets: bytes

    def __post_init__(self) -> None:
        if len(self.octets) != MAC_LENGTH:
            raise ValueError(
                f"MAC address must be {MAC_LENGTH} bytes, got {len(self.octets)}"
            )

    @classmethod
    def parse(cls, text: str) -> "MacAddress":
        """Parse a MAC address with or without colon separators."""

        if not isinstance(text, str):
            raise ValueError(f"MAC address must be a string, got {type(text).__name__}")

        compact = text.replace(":", "")
        if len(compact) != MAC_LENGTH * 2:
            raise ValueError(f"Invalid MAC address length: {text!r}")
        try:
            octets = binascii.unhexlify(compact)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid MAC address: {text!r}") from exc
        return cls(octets)

    def __str__(self) -> str:
        return ":".join(f"{octet:02X}" for octet in self.octets)

    def __repr__(self) -> str:
        return f"MacAddress({str(self)!r})"


class GatewayType(str, Enum):
    """Gateway families recognised by the scanner."""

    G1 = "G1"
    MG3 = "MG3"


@dataclass(slots=True)
class GatewayDetection:
    ip: IPv4Address
    gateway: GatewayType
    mac: MacAddress

    def as_dict(self) -> Dict[str, str]:
        return {
            "ip": str(self.ip),
            "gateway": self.gateway.value,
            "mac": str(self.mac),
        }


@dataclass(slots=True)
class Mg3Response:
    """Decoded body of a ``/set`` exchange.

    ``sections`` keeps every key other than ``code`` and ``message`` exactly as
    the device returned it. ``raw`` is the whole body, in the device's key
    order, and is what gets printed and verified.
    """

    code: Optional[int] = None
    message: Optional[str] = None
    sections: Dict[str, Any] = field(default_factory=dict)
    raw: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.code == MG3_SUCCESS_CODE

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Mg3Response":
        sections = {
            key: value
            for key, value in payload.items()
            if key not in ("code", "message")
        }
        code = payload.get("code")
        if code is not None:
            try:
                code = int(code)
            except (TypeError, ValueError):
                code = None
        message = payload.get("message")
        return cls(
            code=code,
            message=str(message) if message is not None else None,
            sections=sections,
            raw=dict(payload),
        )

    def as_dict(self) -> Dict[str, Any]:
        if self.raw is not None:
            return dict(self.raw)
        payload: Dict[str, Any] = dict(self.sections)
        if self.code is not None:
            payload["code"] = self.code
        if self.message is not None:
            payload["message"] = self.message
        return payload
