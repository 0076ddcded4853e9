"""
Valuation API Tests
HTTP surface over an engine wired to the in-memory chain

Run: python -m pytest backend/tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from infrastructure.config import EngineConfig
from main import create_app
from services.valuation_engine import build_engine
from fakes import addr

E18 = 10 ** 18
E6 = 10 ** 6

HEX = addr(0x600)
LP = addr(0x601)
DEAD_LP = addr(0x602)


@pytest.fixture
def client(fake_reader, clock, test_addresses):
    a = test_addresses
    fake_reader.add_pair(a["FACTORY_V2"], a["WPLS"], 1_000_000 * E18, a["USDC"], 32 * E6)
    fake_reader.add_token(HEX, "HEX", decimals=8)
    fake_reader.add_pair(a["FACTORY_V1"], HEX, 1000 * 10 ** 8, a["WPLS"], 50_000 * E18)
    fake_reader.add_lp(LP, HEX, 1000 * 10 ** 8, a["WPLS"], 50_000 * E18, total_supply=100 * E18)
    fake_reader.add_lp(DEAD_LP, HEX, 10, a["WPLS"], 10, total_supply=0)

    engine = build_engine(EngineConfig(), reader=fake_reader, clock=clock)
    with TestClient(create_app(engine=engine)) as client:
        yield client


class TestPrices:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_reference_price(self, client):
        response = client.get("/api/valuation/reference-price")

        assert response.status_code == 200
        data = response.json()
        assert data["success"]
        assert data["price"] == pytest.approx(0.000032)
        assert data["stablecoin"] == "USDC"
        assert not data["isFallback"]

    def test_token_price(self, client):
        response = client.get(f"/api/valuation/tokens/{HEX}/price")

        data = response.json()
        assert data["hasPrice"]
        assert data["price"] == pytest.approx(50 * 0.000032)
        assert data["address"] == HEX

    def test_unpriced_token_is_not_an_error(self, client):
        response = client.get(f"/api/valuation/tokens/{addr(0x6ff)}/price")

        assert response.status_code == 200
        assert response.json()["hasPrice"] is False
        assert response.json()["price"] == 0

    def test_invalid_address_rejected(self, client):
        response = client.get("/api/valuation/tokens/not-an-address/price")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestLPEndpoint:

    def test_lp_position(self, client):
        response = client.post("/api/valuation/lp", json={"lpAddress": LP, "balance": str(10 * E18)})

        assert response.status_code == 200
        position = response.json()["position"]
        assert position["isLp"]
        assert position["pairInfo"]["userSharePercent"] == pytest.approx(10.0)
        assert position["pairInfo"]["totalSupply"] == str(100 * E18)

    def test_unvalued_position_is_404(self, client):
        response = client.post("/api/valuation/lp", json={"lpAddress": DEAD_LP, "balance": "5"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "POSITION_NOT_VALUED"

    def test_holder_or_balance_required(self, client):
        response = client.post("/api/valuation/lp", json={"lpAddress": LP})
        assert response.status_code == 400

    def test_bad_balance_rejected(self, client):
        response = client.post("/api/valuation/lp", json={"lpAddress": LP, "balance": "1.5"})
        assert response.status_code == 400


class TestScans:

    def test_wallet_scan(self, client, test_addresses):
        big = str(10 ** 30 + 1)
        response = client.post("/api/valuation/wallet", json={
            "address": test_addresses["wallet_a"],
            "tokens": [{"address": HEX, "balance": big}],
        })

        assert response.status_code == 200
        data = response.json()
        assert data["tokenCount"] == 1
        assert data["tokens"][0]["balance"] == big
        assert data["tokens"][0]["symbol"] == "HEX"

    def test_portfolio_combines_wallets(self, client, test_addresses):
        response = client.post("/api/valuation/portfolio", json={
            "wallets": [
                {"address": test_addresses["wallet_a"], "tokens": [{"address": HEX, "balance": str(10 ** 30 + 1)}]},
                {"address": test_addresses["wallet_b"], "tokens": [{"address": HEX, "balance": str(10 ** 30 + 2)}]},
            ],
        })

        data = response.json()
        assert data["individualWalletCount"] == 2
        assert data["tokens"][0]["balance"] == str(2 * 10 ** 30 + 3)
        assert data["tokens"][0]["walletCount"] == 2
        print("✅ Combined balance survives JSON as an exact string")

    def test_portfolio_min_value(self, client, test_addresses):
        response = client.post("/api/valuation/portfolio", json={
            "wallets": [
                {"address": test_addresses["wallet_a"], "tokens": [{"address": HEX, "balance": str(10 ** 30)}]},
                {"address": test_addresses["wallet_b"], "tokens": [{"address": addr(0x6ff), "balance": "5"}]},
            ],
            "minValue": "1",
        })

        data = response.json()
        assert [t["address"] for t in data["tokens"]] == [HEX]
        assert data["walletResults"][1]["tokenCount"] == 1

    def test_negative_min_value_rejected(self, client, test_addresses):
        response = client.post("/api/valuation/portfolio", json={
            "wallets": [{"address": test_addresses["wallet_a"], "tokens": []}],
            "minValue": -1,
        })
        assert response.status_code == 422

    def test_portfolio_wallet_limit(self, client):
        wallets = [{"address": addr(0x700 + i), "tokens": []} for i in range(21)]
        response = client.post("/api/valuation/portfolio", json={"wallets": wallets})
        assert response.status_code == 400

    def test_empty_portfolio_rejected(self, client):
        response = client.post("/api/valuation/portfolio", json={"wallets": []})
        assert response.status_code == 400

    def test_stats(self, client):
        client.get("/api/valuation/reference-price")
        client.get("/api/valuation/tokens/bad/price")

        data = client.get("/api/valuation/stats").json()

        assert data["lp_analysis"] is True
        assert data["cache"]["entries"] >= 1
        assert data["errors"]["error_counts"]["ValidationError"] == 1
        assert "sentry_dsn" not in data["config"]["monitoring"]
        assert data["config"]["chain"]["min_native_liquidity"] == "10"
