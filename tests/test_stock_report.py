import pytest
from sqlalchemy.exc import OperationalError

from core.exceptions import StoreUnavailableError
from db.retry import is_connection_error, with_retry
from services.stock_report import get_critical_stock, get_stock_report, has_items_below_threshold


def _connection_lost():
    return OperationalError("SELECT 1", {}, ConnectionError("server closed the connection"))


@pytest.fixture
async def shop(make_item, make_product):
    ribbon = await make_item("ribbon", 2)
    await make_item("paper", 50)
    card = await make_item("card", 0)
    box = await make_product("box", [(ribbon, 1)])  # derived 2
    sold_out = await make_product("sold out", stock=0)
    await make_product("voucher", stock=100)
    await make_product("made to order")
    return {"ribbon": ribbon, "card": card, "box": box, "sold_out": sold_out}


class TestStockReport:
    async def test_low_stock_and_counts(self, db, shop):
        report = await get_stock_report(db, 5)

        assert [(i.name, i.type, i.current_stock) for i in report.low_stock_items] == [
            ("sold out", "product", 0),
            ("box", "product", 2),
            ("card", "additional", 0),
            ("ribbon", "additional", 2),
        ]
        assert all(i.threshold == 5 for i in report.low_stock_items)
        assert report.total_products == 4
        assert report.total_additionals == 3
        assert report.products_out_of_stock == 1
        assert report.additionals_out_of_stock == 1

    async def test_uncontrolled_products_never_reported(self, db, shop):
        report = await get_stock_report(db, 1000)
        assert "made to order" not in {i.name for i in report.low_stock_items}

    async def test_default_threshold(self, db, shop):
        report = await get_stock_report(db)
        assert {i.threshold for i in report.low_stock_items} == {5}

    async def test_empty_store(self, db):
        report = await get_stock_report(db)
        assert report.low_stock_items == []
        assert report.total_products == 0


class TestCriticalAndAlerts:
    async def test_critical_is_exactly_zero(self, db, shop):
        critical = await get_critical_stock(db)
        assert {i.id for i in critical} == {shop["sold_out"].id, shop["card"].id}
        assert all(i.current_stock == 0 for i in critical)

    async def test_alerts_combine_critical_and_low(self, db, shop):
        alerts = await has_items_below_threshold(db, 3)
        assert alerts.has_critical
        names = [i.name for i in alerts.items]
        # critical entries first, then the low-stock listing
        assert names[:2] == ["sold out", "card"]
        assert {"box", "ribbon"} <= set(names[2:])

    async def test_no_alerts(self, db, make_item):
        await make_item("paper", 50)
        alerts = await has_items_below_threshold(db)
        assert not alerts.has_critical
        assert alerts.items == []


class TestReadRetry:
    async def test_transient_failure_is_retried(self, db, shop, monkeypatch):
        real_execute = db.execute
        calls = {"n": 0}

        async def flaky_execute(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise _connection_lost()
            return await real_execute(*args, **kwargs)

        monkeypatch.setattr(db, "execute", flaky_execute)

        critical = await get_critical_stock(db)

        assert len(critical) == 2
        assert calls["n"] >= 3

    async def test_persistent_failure_surfaces_store_unavailable(self, db, monkeypatch):
        calls = {"n": 0}

        async def broken_execute(*args, **kwargs):
            calls["n"] += 1
            raise _connection_lost()

        monkeypatch.setattr(db, "execute", broken_execute)

        with pytest.raises(StoreUnavailableError):
            await get_stock_report(db)
        assert calls["n"] == 3

    async def test_other_errors_are_not_retried(self):
        calls = {"n": 0}

        async def op():
            calls["n"] += 1
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await with_retry(op, max_retries=5, retry_delay=0)
        assert calls["n"] == 1

    def test_connection_error_classification(self):
        assert is_connection_error(_connection_lost())
        assert is_connection_error(ConnectionResetError())
        assert not is_connection_error(ValueError("bad input"))
