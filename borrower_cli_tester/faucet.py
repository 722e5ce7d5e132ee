"""Client for the testnet faucets."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

import aiohttp

from borrower_cli_tester.config import HarnessSettings
from borrower_cli_tester.errors import NetworkError

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class FaucetResponse:
    """Status and raw body returned by a faucet."""

    status: int
    body: str

    @property
    def ok(self) -> bool:
        """Whether the status is 2xx."""
        return 200 <= self.status < 300

    @property
    def reason(self) -> str:
        """Standard reason phrase of the status."""
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return "Unknown"

    def __str__(self) -> str:
        return f"({self.status} {self.reason}): {self.body}"


@dataclass(frozen=True, kw_only=True)
class FaucetClient:
    """Requests testnet funds for BTC addresses and LavaUSD keys."""

    btc_faucet_url: str
    lava_faucet_url: str
    sats: int
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_settings(
        cls, settings: HarnessSettings
    ) -> AsyncGenerator["FaucetClient", None]:
        """Create client with managed session lifecycle."""
        timeout = aiohttp.ClientTimeout(total=settings.faucet_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield cls(
                btc_faucet_url=settings.btc_faucet_url,
                lava_faucet_url=settings.lava_faucet_url,
                sats=settings.faucet_sats,
                session=session,
            )

    async def request_btc(self, address: str) -> FaucetResponse:
        """Ask the BTC faucet to fund an address."""
        return await self._post(
            self.btc_faucet_url, {"address": address, "sats": self.sats}
        )

    async def request_lava_usd(self, pubkey: str) -> FaucetResponse:
        """Ask the LavaUSD faucet to fund a public key."""
        return await self._post(self.lava_faucet_url, {"pubkey": pubkey})

    async def _post(self, url: str, payload: dict[str, Any]) -> FaucetResponse:
        log.debug("POST %s", url)
        try:
            async with self.session.post(url, json=payload) as response:
                body = await response.text()
                return FaucetResponse(status=response.status, body=body)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise NetworkError(f"Faucet request to {url} failed: {e!r}") from e
