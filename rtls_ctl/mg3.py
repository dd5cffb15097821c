"""Client for the MG3 gateway ``/set`` configuration endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from . import constants
from .errors import Mg3Error
from .models import Mg3Response

LOGGER = logging.getLogger(__name__)

ACTION_SET_CONFIG = "SetConfig"
ACTION_REBOOT = "reboot"
ACTION_GET_CONFIG = "getConfig"

CONFIG_SECTIONS = ("mqtt", "common", "other")


class Mg3Client:
    """Send configuration actions to one MG3 gateway."""

    def __init__(
        self,
        host: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = constants.DEFAULT_MG3_TIMEOUT_SECONDS,
    ) -> None:
        self.host = host
        self.timeout = timeout

        base = host.rstrip("/")
        if "://" not in base:
            base = f"http://{base}"
        self._url = base + constants.MG3_SET_PATH

        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    async def __aenter__(self) -> "Mg3Client":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def url(self) -> str:
        return self._url

    async def set_config(
        self,
        *,
        mqtt: Optional[Mapping[str, Any]] = None,
        common: Optional[Mapping[str, Any]] = None,
        other: Optional[Mapping[str, Any]] = None,
    ) -> Mg3Response:
        """Apply configuration overrides; omitted sections are left untouched."""

        body: Dict[str, Any] = {"action": ACTION_SET_CONFIG}
        for name, section in zip(CONFIG_SECTIONS, (mqtt, common, other)):
            if section is not None:
                body[name] = dict(section)

        if len(body) == 1:
            raise ValueError("set_config requires at least one section")

        LOGGER.info(
            "Sending %s to %s (sections: %s)",
            ACTION_SET_CONFIG,
            self.host,
            ", ".join(key for key in body if key != "action"),
        )
        return await self._send(body, allow_empty=True)

    async def reboot(self) -> Mg3Response:
        """Ask the gateway to reboot.

        The device may drop or reset the connection before answering; that
        still counts as an accepted reboot. A connection that never opens is
        still an error.
        """

        LOGGER.info("Rebooting MG3 gateway %s", self.host)
        try:
            return await self._send({"action": ACTION_REBOOT}, allow_empty=True)
        except aiohttp.ClientConnectorError:
            raise
        except (
            aiohttp.ServerDisconnectedError,
            aiohttp.ClientOSError,
            aiohttp.ClientPayloadError,
        ) as exc:
            LOGGER.info(
                "Gateway %s dropped the connection while rebooting: %s", self.host, exc
            )
            return Mg3Response()

    async def get_config(self) -> Mg3Response:
        """Fetch the full configuration of the gateway."""

        LOGGER.info("Fetching configuration from %s", self.host)
        return await self._send({"action": ACTION_GET_CONFIG})

    async def _send(
        self, body: Mapping[str, Any], *, allow_empty: bool = False
    ) -> Mg3Response:
        session = self._ensure_session()
        action = body.get("action")
        LOGGER.debug("POST %s %s", self._url, body)

        async with session.post(self._url, json=body, allow_redirects=False) as response:
            text = await response.text()
            if not 200 <= response.status < 300:
                raise Mg3Error(
                    f"Gateway {self.host} answered HTTP {response.status}: {text.strip()}",
                    status=response.status,
                )

        if not text.strip():
            if allow_empty:
                return Mg3Response()
            raise Mg3Error(
                f"Gateway {self.host} returned an empty body for {action}",
                status=response.status,
            )

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise Mg3Error(
                f"Gateway {self.host} returned a non-JSON body: {text.strip()[:200]}",
                status=response.status,
            ) from exc

        if not isinstance(payload, dict):
            raise Mg3Error(
                f"Gateway {self.host} returned unexpected JSON: {payload!r}",
                status=response.status,
            )

        result = Mg3Response.from_payload(payload)
        if result.code is not None and not result.ok:
            raise Mg3Error(
                f"Gateway {self.host} rejected {action}: "
                f"{result.message or 'no message'} (code={result.code})",
                status=response.status,
                code=result.code,
            )
        return result

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session


def config_differences(
    expected: Any, actual: Any, *, path: str = ""
) -> List[str]:
    """Return dotted paths where ``actual`` does not contain ``expected``.

    Mappings are compared as subsets: keys present only in ``actual`` are
    ignored. Any other value must compare equal.
    """

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return [path or "."]
        differences: List[str] = []
        for key, value in expected.items():
            child = f"{path}.{key}" if path else str(key)
            if key not in actual:
                differences.append(child)
                continue
            differences.extend(config_differences(value, actual[key], path=child))
        return differences

    if expected != actual:
        return [path or "."]
    return []


def config_matches(expected: Any, actual: Any) -> bool:
    return not config_differences(expected, actual)
