"""DexScreener oracle over a mocked transport."""

import asyncio
from decimal import Decimal

import httpx
import pytest

from parimarket.models import PriceTarget, TokenLaunch
from parimarket.oracle import DexScreenerOracle, OracleResult, launch_outcome, outcome_for

PAIRS = {
    "GRAD": [{"dexId": "pumpswap", "priceUsd": "0.0123"}, {"dexId": "raydium"}],
    "CURVE": [{"dexId": "pumpfun", "priceUsd": "0.0001"}],
    "BONKED": [{"dexId": "raydium", "priceUsd": "1.25"}],
    "ODD": [{"dexId": "orca", "priceUsd": "abc"}],
    "EMPTY": [],
}


def _handler(request: httpx.Request) -> httpx.Response:
    *_, chain, address = request.url.path.split("/")
    if address == "DOWN":
        return httpx.Response(502, json={"error": "bad gateway"})
    assert chain == "solana"
    return httpx.Response(200, json=PAIRS.get(address, []))


def _resolve(params):
    async def main():
        client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
        oracle = DexScreenerOracle(base_url="https://dex.test", client=client)
        try:
            return await oracle.resolve(params)
        finally:
            await client.aclose()

    return asyncio.run(main())


@pytest.mark.parametrize(
    "platform,address,expected",
    [
        ("pumpfun", "GRAD", True),
        ("pumpfun", "CURVE", False),
        ("bonk", "BONKED", True),
        ("pumpfun", "ODD", False),
    ],
)
def test_token_launch(platform, address, expected):
    result = _resolve(TokenLaunch(platform=platform, contract_address=address))
    assert result == OracleResult.resolved(expected)


@pytest.mark.parametrize("address", ["EMPTY", "DOWN", "MISSING"])
def test_token_launch_indeterminate(address):
    assert _resolve(TokenLaunch(platform="bonk", contract_address=address)).is_indeterminate


def test_price_target():
    params = PriceTarget(target_price=Decimal("1.25"), reference_asset="BONKED")
    result = _resolve(params)
    assert result.price == Decimal("1.25")
    assert outcome_for(params, result) is True
    assert outcome_for(params.model_copy(update={"target_price": Decimal("1.26")}), result) is False


def test_unparseable_price_is_indeterminate():
    assert _resolve(PriceTarget(target_price=Decimal(1), reference_asset="ODD")).is_indeterminate


def test_launch_outcome_table():
    assert launch_outcome("bonk", "launchlab") is False
    assert launch_outcome("bonk", "pumpswap") is False


def test_outcome_for_indeterminate():
    assert outcome_for(TokenLaunch(platform="bonk", contract_address="X"), OracleResult.indeterminate()) is None
