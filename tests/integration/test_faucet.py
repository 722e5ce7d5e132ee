"""Integration tests for the faucet client."""

from collections.abc import AsyncGenerator

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls
from yarl import URL

from borrower_cli_tester.config import HarnessSettings
from borrower_cli_tester.errors import NetworkError
from borrower_cli_tester.faucet import FaucetClient, FaucetResponse

BTC_URL = "http://faucet.test/mint-mutinynet"
LAVA_URL = "http://faucet.test/transfer-lava-usd"


@pytest.fixture
def settings() -> HarnessSettings:
    """Settings pointing at a fake faucet host."""
    return HarnessSettings(
        btc_faucet_url=BTC_URL, lava_faucet_url=LAVA_URL, faucet_sats=2500
    )


@pytest.fixture
async def client(
    settings: HarnessSettings, aioresponses: aioresponses_cls
) -> AsyncGenerator[FaucetClient, None]:
    """Create client with managed session."""
    async with FaucetClient.from_settings(settings) as impl:
        yield impl


class TestRequestBtc:
    """Tests for request_btc."""

    async def test_posts_address_and_amount(
        self, client: FaucetClient, aioresponses: aioresponses_cls
    ) -> None:
        """Sends the address and configured sats as JSON."""
        aioresponses.post(BTC_URL, status=200, body='{"txid": "abc"}')

        response = await client.request_btc("tb1qexample")

        assert response == FaucetResponse(status=200, body='{"txid": "abc"}')
        call = aioresponses.requests[("POST", URL(BTC_URL))][0]
        assert call.kwargs["json"] == {"address": "tb1qexample", "sats": 2500}

    async def test_returns_error_status_without_raising(
        self, client: FaucetClient, aioresponses: aioresponses_cls
    ) -> None:
        """Non-2xx answers are returned for the caller to judge."""
        aioresponses.post(BTC_URL, status=429, body="slow down")

        response = await client.request_btc("tb1qexample")

        assert not response.ok
        assert str(response) == "(429 Too Many Requests): slow down"

    async def test_raises_network_error_on_connection_failure(
        self, client: FaucetClient, aioresponses: aioresponses_cls
    ) -> None:
        """Transport failures become NetworkError."""
        aioresponses.post(
            BTC_URL, exception=aiohttp.ClientConnectionError("refused")
        )

        with pytest.raises(NetworkError, match="refused"):
            await client.request_btc("tb1qexample")

    async def test_raises_network_error_on_timeout(
        self, client: FaucetClient, aioresponses: aioresponses_cls
    ) -> None:
        """Timeouts become NetworkError."""
        aioresponses.post(BTC_URL, exception=TimeoutError())

        with pytest.raises(NetworkError):
            await client.request_btc("tb1qexample")


class TestRequestLavaUsd:
    """Tests for request_lava_usd."""

    async def test_posts_pubkey(
        self, client: FaucetClient, aioresponses: aioresponses_cls
    ) -> None:
        """Sends only the pubkey."""
        aioresponses.post(LAVA_URL, status=201, body="queued")

        response = await client.request_lava_usd("Pubkey111")

        assert response.ok
        assert response.reason == "Created"
        call = aioresponses.requests[("POST", URL(LAVA_URL))][0]
        assert call.kwargs["json"] == {"pubkey": "Pubkey111"}


def test_unknown_status_reason() -> None:
    """Statuses outside the standard set have a placeholder reason."""
    assert FaucetResponse(status=599, body="").reason == "Unknown"
