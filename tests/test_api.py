import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal

from httpx import ASGITransport, AsyncClient

from portfolio_tracker.main import create_app
from portfolio_tracker.providers import InMemoryQuoteSource, Quote


def _client(database, settings, source=None):
    app = create_app(database, source or InMemoryQuoteSource(), settings)

    @asynccontextmanager
    async def _manager():
        async with app.router.lifespan_context(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client

    return _manager


def test_health(database, settings):
    client_manager = _client(database, settings)

    async def _scenario():
        async with client_manager() as api_client:
            response = await api_client.get("/health")
            assert response.status_code == 200
            assert response.json()["status"] == "ok"

    asyncio.run(_scenario())


def test_transaction_crud_and_holdings(database, settings):
    source = InMemoryQuoteSource({"TTE": Quote("TTE", Decimal("130"), name="Example Fund")})
    client_manager = _client(database, settings, source)

    async def _scenario():
        async with client_manager() as api_client:
            buys = [
                {"trade_date": "2024-01-01", "asset_type": "fund", "symbol": "TTE", "kind": "BUY", "quantity": 10, "price": 100},
                {"trade_date": "2024-01-05", "asset_type": "fund", "symbol": "TTE", "kind": "BUY", "quantity": 10, "price": 120},
            ]
            for payload in buys:
                created = await api_client.post("/transactions", json=payload)
                assert created.status_code == 201
            sell = await api_client.post(
                "/transactions",
                json={"date": "2024-01-10", "asset_type": "fon", "symbol": "tte", "type": "Satış", "quantity": 15, "price": 150},
            )
            assert sell.status_code == 201
            sell_id = sell.json()["id"]

            refreshed = await api_client.post("/market/refresh", json={"scope": "fund-class"})
            assert refreshed.status_code == 200
            assert refreshed.json()["updated"] == 1

            holdings = (await api_client.get("/portfolio/holdings")).json()
            assert len(holdings) == 1
            assert holdings[0]["quantity"] == 5
            assert holdings[0]["avg_cost"] == 120
            assert holdings[0]["name"] == "Example Fund"

            summary = (await api_client.get("/portfolio/summary")).json()
            assert summary["realized_pnl"] == 650
            assert summary["total_value"] == 650
            assert summary["top_performer"]["symbol"] == "TTE"

            pnl = (await api_client.get("/portfolio/realized-pnl", params={"start": "2024-01-01", "end": "2024-01-31"})).json()
            assert pnl["realized_pnl"] == 650

            listing = (await api_client.get("/transactions")).json()
            assert [row["id"] for row in listing][0] == sell_id
            assert listing[0]["kind"] == "SELL"
            assert listing[0]["name"] == "Example Fund"

            updated = await api_client.put(
                f"/transactions/{sell_id}",
                json={"trade_date": "2024-01-10", "asset_type": "fund", "symbol": "TTE", "kind": "SELL", "quantity": 5, "price": 150},
            )
            assert updated.status_code == 204

            deleted = await api_client.delete(f"/transactions/{sell_id}")
            assert deleted.status_code == 204
            holdings = (await api_client.get("/portfolio/holdings")).json()
            assert holdings[0]["quantity"] == 20

    asyncio.run(_scenario())


def test_error_mapping(database, settings):
    client_manager = _client(database, settings)

    async def _scenario():
        async with client_manager() as api_client:
            invalid = await api_client.post(
                "/transactions",
                json={"trade_date": "2024-01-01", "asset_type": "fund", "symbol": "TTE", "kind": "BUY", "quantity": 0, "price": 1},
            )
            assert invalid.status_code == 422
            assert "quantity" in invalid.json()["detail"]

            missing = await api_client.delete("/transactions/404")
            assert missing.status_code == 404

            scope = await api_client.post("/market/refresh", json={"scope": "bonds"})
            assert scope.status_code == 422

            asset = await api_client.get("/market/assets/NOPE")
            assert asset.status_code == 404

            bad_range = await api_client.get("/portfolio/performance", params={"start": "2024-02-01", "end": "2024-01-01"})
            assert bad_range.status_code == 422

            bad_import = await api_client.post("/backup/import", content=b"{broken")
            assert bad_import.status_code == 422

    asyncio.run(_scenario())


def test_market_and_backup_endpoints(database, settings):
    source = InMemoryQuoteSource({"THYAO": Quote("THYAO", Decimal("250"), name="Example Airline")})
    client_manager = _client(database, settings, source)

    async def _scenario():
        async with client_manager() as api_client:
            await api_client.post(
                "/transactions",
                json={"trade_date": "2024-01-01", "asset_type": "equity", "symbol": "THYAO", "kind": "BUY", "quantity": 2, "price": 200},
            )
            await api_client.post("/market/refresh", json={"scope": "general"})

            found = (await api_client.get("/market/assets", params={"query": "airline"})).json()
            assert [asset["symbol"] for asset in found] == ["THYAO"]
            info = (await api_client.get("/market/assets/thyao")).json()
            assert info["current_price"] == 250

            updates = (await api_client.get("/market/last-updates")).json()
            assert updates["fund"] is None
            assert updates["general"] is not None

            performance = (await api_client.get("/portfolio/performance")).json()
            assert performance["end_value"] == 500
            assert performance["change"] == 0

            recorded = await api_client.post("/portfolio/snapshots")
            assert recorded.status_code == 201
            history = (await api_client.get("/portfolio/snapshots")).json()
            assert [row["total_value_local"] for row in history] == [500]
            bad_window = await api_client.get("/portfolio/snapshots", params={"start": "2024-02-01", "end": "2024-01-01"})
            assert bad_window.status_code == 422

            exported = await api_client.get("/backup/export")
            assert exported.status_code == 200
            blob = exported.content

            cleared = await api_client.delete("/backup")
            assert cleared.status_code == 204
            assert (await api_client.get("/transactions")).json() == []

            restored = await api_client.post("/backup/import", content=blob)
            assert restored.status_code == 200
            assert restored.json()["counts"]["transactions"] == 1
            assert len((await api_client.get("/transactions")).json()) == 1

    asyncio.run(_scenario())
