"""Tests for the sales skills against a fake Odoo client."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

from erp_engine.domain.builder import DomainClause
from erp_engine.erp.records import Record
from erp_engine.skills.odoo.sales import (
    compare_sales_periods,
    get_sales_by_category,
    get_sales_by_seller,
    get_sales_total,
    get_top_customers,
    get_top_products,
)


def _rows(*data: dict[str, Any]) -> list[Record]:
    return [Record(d) for d in data]


class TestSalesTotal:
    async def test_filters_reach_the_domain(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        await run_skill(get_sales_total, {"period": "enero 2025", "team_id": 4, "state": "all"})

        model, domain = erp.read_group.await_args.args[:2]
        assert model == "sale.report"
        assert DomainClause("date", ">=", "2025-01-01") in domain
        assert DomainClause("team_id", "=", 4) in domain
        assert not any(c.field == "state" for c in domain)

    async def test_monthly_breakdown(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        def read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
            if groupby == ["date:month"]:
                return _rows(
                    {"date:month": "noviembre 2025", "price_total": 100.0, "price_subtotal": 80.0, "date_count": 2},
                    {"date:month": "diciembre 2025", "price_total": 50.0, "price_subtotal": 40.0, "date_count": 1},
                )
            return _rows({"price_total": 150.0, "price_subtotal": 120.0, "product_uom_qty": 9.0, "__count": 3})

        erp.read_group.side_effect = read_group

        result = await run_skill(get_sales_total, {"period": "últimos 2 meses", "group_by_month": True})

        assert result.success
        assert [m.month for m in result.data.by_month] == ["noviembre 2025", "diciembre 2025"]
        assert result.data.by_month[0].line_count == 2
        assert result.data.total_with_tax == 150.0
        assert result.data.summary.startswith("Ventas últimos 2 meses: $ 150 con impuestos")

    async def test_no_sales(self, run_skill: Callable[..., Any]) -> None:
        result = await run_skill(get_sales_total)

        assert result.data.total_with_tax == 0.0
        assert result.data.line_count == 0
        assert result.data.by_month is None


class TestSalesByCategory:
    async def test_percentages_and_order(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"product_id.categ_id": [2, "Servicios"], "price_total": 250.0, "price_subtotal": 200.0,
             "product_uom_qty": 5.0, "order_id": 3},
            {"product_id.categ_id": [1, "Hardware"], "price_total": 750.0, "price_subtotal": 600.0,
             "product_uom_qty": 10.0, "order_id": 4},
            {"product_id.categ_id": False, "price_total": 1.0},
        )  # fmt: skip

        result = await run_skill(get_sales_by_category)

        categories = result.data.categories
        assert [c.category_name for c in categories] == ["Hardware", "Servicios"]
        assert [c.percentage for c in categories] == [75.0, 25.0]
        assert categories[0].order_count == 4
        assert result.data.grand_total_with_tax == 1000.0
        assert result.data.total_quantity == 15.0
        assert "Principal: Hardware (75.0%)" in result.data.summary


class TestTopCustomers:
    async def test_ranking_ties_break_by_name(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"partner_id": [3, "Zeta SA"], "partner_id_count": 2, "amount_total": 1000.0, "amount_untaxed": 826.0},
            {"partner_id": [1, "alfa SRL"], "partner_id_count": 4, "amount_total": 1000.0, "amount_untaxed": 826.0},
            {"partner_id": [2, "Beta"], "partner_id_count": 1, "amount_total": 2000.0, "amount_untaxed": 1652.0},
        )

        result = await run_skill(get_top_customers, {"limit": 2})

        customers = result.data.customers
        assert [c.customer_id for c in customers] == [2, 1]
        assert customers[1].avg_order_value == 250.0
        assert result.data.total_revenue_with_tax == 3000.0
        assert erp.read_group.await_args.kwargs["limit"] == 4

    async def test_min_amount(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"partner_id": [1, "Grande"], "partner_id_count": 1, "amount_total": 5000.0},
            {"partner_id": [2, "Chico"], "partner_id_count": 1, "amount_total": 10.0},
        )

        result = await run_skill(get_top_customers, {"min_amount": 100})

        assert [c.customer_name for c in result.data.customers] == ["Grande"]


class TestSalesBySeller:
    async def test_ranks_sellers_and_skips_unassigned_orders(
        self, run_skill: Callable[..., Any], erp: AsyncMock
    ) -> None:
        erp.read_group.return_value = _rows(
            {"user_id": [7, "Bruno"], "user_id_count": 2, "amount_total": 1200.0, "amount_untaxed": 1000.0},
            {"user_id": [5, "Ana"], "user_id_count": 3, "amount_total": 3000.0, "amount_untaxed": 2500.0},
            {"user_id": False, "user_id_count": 4, "amount_total": 99.0, "amount_untaxed": 80.0},
        )

        result = await run_skill(get_sales_by_seller, {"period": "enero 2026", "team_id": 2, "limit": 5})

        data = result.data
        assert [s.seller_name for s in data.sellers] == ["Ana", "Bruno"]
        assert data.sellers[0].avg_order_value == 1000.0
        assert (data.grand_total_with_tax, data.grand_total_without_tax) == (4200.0, 3500.0)
        assert (data.total_orders, data.seller_count) == (5, 2)
        assert data.summary.endswith("Primero: Ana.")
        model, domain, fields, groupby = erp.read_group.await_args.args
        assert (model, groupby) == ("sale.order", ["user_id"])
        assert DomainClause("team_id", "=", 2) in domain
        assert DomainClause("state", "in", ["sale", "done"]) in domain
        assert erp.read_group.await_args.kwargs == {"limit": 5, "orderby": "amount_total desc"}

    async def test_no_sellers(self, run_skill: Callable[..., Any]) -> None:
        result = await run_skill(get_sales_by_seller)

        assert result.data.sellers == []
        assert result.data.seller_count == 0


class TestTopProducts:
    async def test_order_by_quantity(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"product_id": [1, "Caro"], "product_uom_qty": 2.0, "price_total": 900.0, "price_subtotal": 700.0},
            {"product_id": [2, "Barato"], "product_uom_qty": 50.0, "price_total": 100.0, "price_subtotal": 80.0},
        )

        result = await run_skill(get_top_products, {"order_by": "quantity"})

        assert [p.product_name for p in result.data.products] == ["Barato", "Caro"]
        assert erp.read_group.await_args.kwargs["orderby"] == "product_uom_qty desc"
        assert result.data.total_revenue == 1000.0


class TestCompareSalesPeriods:
    @staticmethod
    def _fake(current_total: float, previous_total: float) -> Callable[..., list[Record]]:
        def read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
            current = DomainClause("date_order", ">=", "2026-01-01") in domain
            if groupby == ["partner_id"]:
                return _rows({"partner_id": [1, "A"]}, {"partner_id": [2, "B"]})
            total = current_total if current else previous_total
            return _rows({"amount_total": total, "amount_untaxed": total / 1.21, "__count": 4})

        return read_group

    async def test_defaults_to_preceding_month(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._fake(110_000.0, 100_000.0)

        result = await run_skill(compare_sales_periods)

        data = result.data
        assert data.current.period.start.isoformat() == "2026-01-01"
        assert data.previous.period.start.isoformat() == "2025-12-01"
        assert data.previous.period.end.isoformat() == "2025-12-31"
        assert data.sales_change == 10_000.0
        assert data.sales_change_percent == 10.0
        assert data.trend == "mejorando"
        assert data.current.customer_count == 2
        assert data.current.avg_order_value_with_tax == 27_500.0
        assert data.product_comparison is None

    async def test_small_drop_is_stable(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._fake(97_000.0, 100_000.0)

        result = await run_skill(compare_sales_periods)

        assert result.data.sales_change_percent == -3.0
        assert result.data.trend == "estable"

    async def test_empty_baseline(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._fake(500.0, 0.0)

        result = await run_skill(compare_sales_periods)

        assert result.data.sales_change_percent == 100.0
        assert result.data.trend == "mejorando"

    async def test_customer_breakdown(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        def read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
            current = DomainClause("date_order", ">=", "2026-01-01") in domain
            if groupby == ["partner_id"] and current:
                return _rows({"partner_id": [1, "A"], "amount_total": 300.0})
            if groupby == ["partner_id"]:
                return _rows({"partner_id": [1, "A"], "amount_total": 200.0}, {"partner_id": [2, "B"]})
            return _rows({"amount_total": 300.0 if current else 200.0, "__count": 1})

        erp.read_group.side_effect = read_group

        result = await run_skill(compare_sales_periods, {"include_customers": True})

        [item] = result.data.customer_comparison
        assert (item.name, item.current_sales, item.previous_sales) == ("A", 300.0, 200.0)
        assert item.change_percent == 50.0
