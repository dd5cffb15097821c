"""Concurrent discovery of G1 and MG3 gateways on an IPv4 range."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from ipaddress import IPv4Address
from typing import Any, Iterator, List, Optional

import aiohttp

from . import constants
from .models import GatewayDetection, GatewayType, MacAddress
from .ranges import iter_range, range_size

LOGGER = logging.getLogger(__name__)


class ProbeError(RuntimeError):
    """Raised when an address does not answer like a known gateway."""


class Scanner:
    """Probe addresses for gateways with a bounded number of probes in flight."""

    def __init__(
        self,
        *,
        concurrency: int = constants.DEFAULT_SCAN_CONCURRENCY,
        timeout: float = constants.DEFAULT_SCAN_TIMEOUT_SECONDS,
        port: int = constants.DEFAULT_HTTP_PORT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.concurrency = concurrency
        self.timeout = timeout
        self.port = port

        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    async def __aenter__(self) -> "Scanner":
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def scan(self, start: IPv4Address, end: IPv4Address) -> List[GatewayDetection]:
        """Probe ``start`` up to ``end`` (exclusive) and return detections.

        Detections are returned in the order the probes finished, not in
        address order.
        """

        total = range_size(start, end)
        LOGGER.info("Scanning range %s..%s (%d addresses)", start, end, total)

        results: List[GatewayDetection] = []
        if total == 0:
            return results

        await self._ensure_session()
        addresses = iter_range(start, end)
        workers = [
            asyncio.create_task(self._worker(addresses, results))
            for _ in range(min(self.concurrency, total))
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        LOGGER.info("Scan ended finding %d gateways", len(results))
        return results

    async def probe_address(self, ip: IPv4Address) -> Optional[GatewayDetection]:
        """Return the gateway answering at ``ip`` or ``None``."""

        try:
            await self._check_tcp(ip)
        except (OSError, asyncio.TimeoutError) as exc:
            LOGGER.debug("Error getting tcp connection to %s: %s", ip, exc)
            return None

        try:
            return await self._race_probes(ip)
        except (ProbeError, asyncio.TimeoutError) as exc:
            LOGGER.debug("No gateway at %s: %s", ip, exc)
            return None

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------
    async def probe_g1(self, ip: IPv4Address) -> GatewayDetection:
        session = await self._ensure_session()
        url = self._url(ip, constants.G1_STATUS_PATH)
        async with session.post(
            url,
            json={"header": {"version": 1}},
            headers={"Authorization": constants.G1_AUTHORIZATION},
        ) as response:
            payload = await response.json(content_type=None)

        if _lookup(payload, "header", "code") != 200:
            raise ProbeError(f"Error mac not found in response {payload!r}")

        mac = _lookup(payload, "body", "gateway", "status", "mac")
        if not isinstance(mac, str):
            raise ProbeError(f"Error parsing mac address from response {payload!r}")
        try:
            parsed = MacAddress.parse(mac)
        except ValueError as exc:
            raise ProbeError(f"Error parsing mac address from response {payload!r}") from exc

        return GatewayDetection(ip=ip, gateway=GatewayType.G1, mac=parsed)

    async def probe_mg3(self, ip: IPv4Address) -> GatewayDetection:
        session = await self._ensure_session()
        url = self._url(ip, constants.MG3_HELLO_PATH)
        async with session.get(url) as response:
            payload = await response.json(content_type=None)

        mac = payload.get("mac") if isinstance(payload, dict) else None
        if not isinstance(mac, str):
            raise ProbeError(f"Error mac not found in response {payload!r}")
        try:
            parsed = MacAddress.parse(mac)
        except ValueError as exc:
            raise ProbeError(f"Error parsing mac address from response {payload!r}") from exc

        return GatewayDetection(ip=ip, gateway=GatewayType.MG3, mac=parsed)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _worker(
        self, addresses: Iterator[IPv4Address], results: List[GatewayDetection]
    ) -> None:
        # The iterator is shared by every worker; next() never awaits.
        for ip in addresses:
            detection = await self.probe_address(ip)
            if detection is not None:
                LOGGER.info("Found %s gateway %s at %s", detection.gateway.value, detection.mac, ip)
                results.append(detection)

    async def _check_tcp(self, ip: IPv4Address) -> None:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(str(ip), self.port), timeout=self.timeout
        )
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    async def _race_probes(self, ip: IPv4Address) -> GatewayDetection:
        """Run both probes; the first success wins, failures never end the race."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        pending = {
            asyncio.create_task(self.probe_g1(ip)),
            asyncio.create_task(self.probe_mg3(ip)),
        }
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    exc = task.exception()
                    if exc is None:
                        return task.result()
                    LOGGER.debug("Probe of %s failed: %r", ip, exc)
            if pending:
                raise asyncio.TimeoutError("Timeout trying to get gateway response")
            raise ProbeError("No known gateway answered")
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=self.concurrency * 2, force_close=True)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    def _url(self, ip: IPv4Address, path: str) -> str:
        if self.port == constants.DEFAULT_HTTP_PORT:
            return f"http://{ip}{path}"
        return f"http://{ip}:{self.port}{path}"


def _lookup(payload: Any, *keys: str) -> Any:
    current = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


async def scan_range(
    start: IPv4Address,
    end: IPv4Address,
    *,
    concurrency: int = constants.DEFAULT_SCAN_CONCURRENCY,
    timeout: float = constants.DEFAULT_SCAN_TIMEOUT_SECONDS,
    port: int = constants.DEFAULT_HTTP_PORT,
) -> List[GatewayDetection]:
    """Scan a range with a private session."""

    async with Scanner(concurrency=concurrency, timeout=timeout, port=port) as scanner:
        return await scanner.scan(start, end)
