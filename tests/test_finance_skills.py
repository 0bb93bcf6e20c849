"""Tests for margin, receivables, payments and purchases skills."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

from erp_engine.domain.builder import DomainClause
from erp_engine.erp.records import Record
from erp_engine.skills.odoo.margins import get_product_margin
from erp_engine.skills.odoo.payables import get_accounts_payable
from erp_engine.skills.odoo.payments import get_payments_made, get_payments_received
from erp_engine.skills.odoo.purchases import get_purchases_by_supplier, get_purchases_total
from erp_engine.skills.odoo.receivables import get_debt_by_customer, get_overdue_invoices


def _rows(*data: dict[str, Any]) -> list[Record]:
    return [Record(d) for d in data]


# ---------------------------------------------------------------------------
# Product margin
# ---------------------------------------------------------------------------


class TestProductMargin:
    async def test_margin_per_product(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"product_id": [2, "Producto B"], "price_subtotal": 200_000.0, "product_uom_qty": 40.0},
            {"product_id": [1, "Producto A"], "price_subtotal": 300_000.0, "product_uom_qty": 60.0},
        )
        erp.search_read.return_value = _rows({"id": 1, "standard_price": 3000.0}, {"id": 2, "standard_price": 2000.0})

        result = await run_skill(get_product_margin)

        products = result.data.products
        assert [p.product_name for p in products] == ["Producto A", "Producto B"]
        assert (products[0].cost, products[0].margin_total, products[0].margin_percent) == (180_000.0, 120_000.0, 40.0)
        assert (products[1].cost, products[1].margin_total, products[1].margin_percent) == (80_000.0, 120_000.0, 60.0)
        totals = result.data.totals
        assert (totals.revenue, totals.cost, totals.margin_total, totals.margin_percent) == (
            500_000.0,
            260_000.0,
            240_000.0,
            48.0,
        )
        erp.search_read.assert_awaited_once()
        assert erp.search_read.await_args.args[0] == "product.product"
        assert erp.search_read.await_args.args[1] == [("id", "in", [2, 1])]

    async def test_sort_by_percent_and_filter(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"product_id": [1, "Producto A"], "price_subtotal": 300_000.0, "product_uom_qty": 60.0},
            {"product_id": [2, "Producto B"], "price_subtotal": 200_000.0, "product_uom_qty": 40.0},
        )
        erp.search_read.return_value = _rows({"id": 1, "standard_price": 3000.0}, {"id": 2, "standard_price": 2000.0})

        result = await run_skill(get_product_margin, {"sort_by": "margin_percent", "max_margin_percent": 50})

        assert [p.product_id for p in result.data.products] == [1]

    async def test_no_sales(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        result = await run_skill(get_product_margin)

        assert result.data.products == []
        assert result.data.totals.margin_percent == 0.0
        assert result.data.summary == "Sin ventas este mes."
        erp.search_read.assert_not_awaited()


# ---------------------------------------------------------------------------
# Receivables
# ---------------------------------------------------------------------------


class TestDebtByCustomer:
    async def test_debt_ranking(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"partner_id": [1, "Acme"], "partner_id_count": 2, "amount_residual": 5000.0, "invoice_date": "2025-12-15"},
            {"partner_id": [2, "Globex"], "partner_id_count": 3, "amount_residual": 9000.0,
             "invoice_date": "2025-10-06"},
        )  # fmt: skip

        result = await run_skill(get_debt_by_customer, {"customer_name": "a"})

        customers = result.data.customers
        assert [c.customer_name for c in customers] == ["Globex", "Acme"]
        assert customers[0].max_overdue_days == 100
        assert customers[1].max_overdue_days == 30
        assert result.data.grand_total == 14_000.0
        assert result.data.total_invoices == 5
        domain = erp.read_group.await_args.args[1]
        assert DomainClause("move_type", "=", "out_invoice") in domain
        assert DomainClause("amount_residual", ">", 0) in domain
        assert DomainClause("partner_id.name", "ilike", "a") in domain

    async def test_min_overdue_days(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"partner_id": [1, "Acme"], "amount_residual": 5000.0, "invoice_date": "2025-12-15"},
            {"partner_id": [2, "Globex"], "amount_residual": 9000.0, "invoice_date": "2025-10-06"},
        )

        result = await run_skill(get_debt_by_customer, {"min_overdue_days": 60})

        assert [c.customer_id for c in result.data.customers] == [2]


class TestOverdueInvoices:
    @staticmethod
    def _read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
        if DomainClause("invoice_date_due", ">=", "2025-12-15") in domain:
            return _rows({"amount_residual": 500.0, "__count": 1})
        if DomainClause("invoice_date_due", "<=", "2025-10-15") in domain:
            return _rows({"amount_residual": 4000.0, "__count": 3})
        if any(c.field == "invoice_date_due" and c.operator == ">=" for c in domain):
            return _rows({"__count": 0})
        return _rows({"amount_residual": 4500.0, "__count": 4})

    async def test_list_with_aging(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._read_group
        erp.search_read.return_value = _rows(
            {"id": 10, "name": "FAC/0010", "partner_id": [1, "Acme"], "invoice_user_id": False,
             "amount_total": 1000.0, "amount_residual": 1000.0, "invoice_date": "2025-09-01",
             "invoice_date_due": "2025-10-01"},
            {"id": 11, "name": "FAC/0011", "partner_id": [2, "Globex"], "invoice_user_id": [5, "Ana"],
             "amount_total": 800.0, "amount_residual": 500.0, "invoice_date": "2025-12-05",
             "invoice_date_due": "2026-01-04"},
        )  # fmt: skip

        result = await run_skill(get_overdue_invoices)

        data = result.data
        assert [i.days_overdue for i in data.invoices] == [105, 10]
        assert data.invoices[0].seller_name is None
        assert data.invoices[1].seller_name == "Ana"
        aging = {b.bucket: (b.count, b.amount) for b in data.aging}
        assert aging == {"1-30": (1, 500.0), "31-60": (0, 0.0), "61-90": (0, 0.0), "90+": (3, 4000.0)}
        assert (data.total_overdue, data.total_invoices) == (4500.0, 4)
        assert sum(b.count for b in data.aging) == data.total_invoices
        assert sum(b.amount for b in data.aging) == data.total_overdue
        assert data.customers is None
        domain = erp.search_read.await_args.args[1]
        assert DomainClause("invoice_date_due", "<", "2026-01-14") in domain
        assert DomainClause("payment_state", "in", ["not_paid", "partial"]) in domain

    async def test_aging_buckets_cover_the_full_domain(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._read_group

        await run_skill(get_overdue_invoices, {"limit": 1})

        bucket_domains = [c.args[1] for c in erp.read_group.await_args_list[1:]]
        assert len(bucket_domains) == 4
        for domain in bucket_domains:
            assert DomainClause("payment_state", "in", ["not_paid", "partial"]) in domain
        assert DomainClause("invoice_date_due", "<=", "2026-01-13") in bucket_domains[0]
        assert DomainClause("invoice_date_due", ">=", "2025-11-15") in bucket_domains[1]
        assert DomainClause("invoice_date_due", "<=", "2025-10-15") in bucket_domains[3]

    async def test_min_days_moves_cutoff(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        await run_skill(get_overdue_invoices, {"min_days_overdue": 30})

        domain = erp.search_read.await_args.args[1]
        assert DomainClause("invoice_date_due", "<=", "2025-12-15") in domain

    async def test_group_by_customer(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        def read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
            if groupby == ["partner_id"]:
                return _rows(
                    {"partner_id": [1, "Acme"], "partner_id_count": 3, "amount_residual": 700.0,
                     "invoice_date_due": "2025-12-15"},
                )  # fmt: skip
            return _rows({"amount_residual": 700.0, "__count": 3})

        erp.read_group.side_effect = read_group

        result = await run_skill(get_overdue_invoices, {"group_by_customer": True})

        [customer] = result.data.customers
        assert (customer.invoice_count, customer.oldest_days_overdue) == (3, 30)
        assert result.data.invoices is None
        assert result.data.total_invoices == 3
        erp.search_read.assert_not_awaited()


# ---------------------------------------------------------------------------
# Accounts payable
# ---------------------------------------------------------------------------


class TestAccountsPayable:
    @staticmethod
    def _read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
        if groupby == ["partner_id"]:
            return _rows(
                {"partner_id": [8, "Insumos SA"], "partner_id_count": 1, "amount_residual": 300.0},
                {"partner_id": [9, "Acero SRL"], "partner_id_count": 2, "amount_residual": 900.0},
            )
        if DomainClause("invoice_date_due", "<", "2026-01-14") in domain:
            return _rows({"amount_residual": 900.0, "__count": 2})
        return _rows({"amount_residual": 1200.0, "__count": 3})

    async def test_totals_and_suppliers(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._read_group

        result = await run_skill(get_accounts_payable, {"group_by_supplier": True, "limit": 1})

        data = result.data
        assert (data.total_payable, data.total_overdue) == (1200.0, 900.0)
        assert (data.bill_count, data.supplier_count) == (3, 2)
        assert [(s.supplier_name, s.amount_due, s.bill_count) for s in data.by_supplier] == [("Acero SRL", 900.0, 2)]
        domain = erp.read_group.await_args_list[0].args[1]
        assert DomainClause("move_type", "=", "in_invoice") in domain
        assert DomainClause("state", "=", "posted") in domain
        assert DomainClause("amount_residual", ">", 0) in domain
        assert not any(c.field == "invoice_date_due" for c in domain)

    async def test_due_period_filters_due_date(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._read_group

        result = await run_skill(get_accounts_payable, {"due_period": "diciembre 2025"})

        assert result.data.by_supplier is None
        domain = erp.read_group.await_args_list[0].args[1]
        assert DomainClause("invoice_date_due", ">=", "2025-12-01") in domain
        assert DomainClause("invoice_date_due", "<=", "2025-12-31") in domain

    async def test_overdue_only(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.side_effect = self._read_group

        result = await run_skill(get_accounts_payable, {"overdue_only": True})

        assert result.data.total_payable == result.data.total_overdue == 900.0
        overdue_domain = erp.read_group.await_args_list[1].args[1]
        assert overdue_domain.count(DomainClause("invoice_date_due", "<", "2026-01-14")) == 1


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class TestPayments:
    async def test_received_uses_inbound_customer_posted(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows({"amount": 2500.0, "__count": 5})

        result = await run_skill(get_payments_received)

        assert result.data.direction == "inbound"
        assert (result.data.total_amount, result.data.payment_count) == (2500.0, 5)
        domain = erp.read_group.await_args.args[1]
        assert DomainClause("payment_type", "=", "inbound") in domain
        assert DomainClause("partner_type", "=", "customer") in domain
        assert DomainClause("state", "in", ["posted", "paid"]) in domain

    async def test_made_with_breakdowns(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        def read_group(model: str, domain: list, fields: list, groupby: list, **kwargs: Any) -> list[Record]:
            if groupby == ["journal_id"]:
                return _rows(
                    {"journal_id": [1, "Caja"], "journal_id_count": 1, "amount": 100.0},
                    {"journal_id": [2, "Banco"], "journal_id_count": 3, "amount": 900.0},
                )
            if groupby == ["partner_id"]:
                return _rows({"partner_id": [7, "Proveedor X"], "partner_id_count": 4, "amount": 1000.0})
            return _rows({"amount": 1000.0, "__count": 4})

        erp.read_group.side_effect = read_group

        result = await run_skill(
            get_payments_made, {"group_by_journal": True, "group_by_partner": True, "journal_ids": [1, 2]}
        )

        data = result.data
        assert data.direction == "outbound"
        assert [g.group_name for g in data.by_journal] == ["Banco", "Caja"]
        assert data.by_partner[0].count == 4
        domain = erp.read_group.await_args_list[0].args[1]
        assert DomainClause("journal_id", "in", [1, 2]) in domain
        assert DomainClause("payment_type", "=", "outbound") in domain


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------


class TestPurchases:
    async def test_total_since_month_last_year(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"price_total": 121_000.0, "untaxed_total": 100_000.0, "qty_ordered": 30.0, "__count": 6}
        )

        result = await run_skill(get_purchases_total, {"period": "desde julio del año pasado"})

        assert result.data.period.start.isoformat() == "2025-07-01"
        assert result.data.period.end.isoformat() == "2026-01-14"
        assert result.data.total_without_tax == 100_000.0
        domain = erp.read_group.await_args.args[1]
        assert DomainClause("date_order", ">=", "2025-07-01") in domain
        assert DomainClause("state", "in", ["purchase", "done"]) in domain

    async def test_by_supplier(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"partner_id": [4, "Insumos SA"], "partner_id_count": 2, "amount_total": 500.0, "amount_untaxed": 400.0},
            {"partner_id": [3, "Metalúrgica"], "partner_id_count": 5, "amount_total": 1500.0},
        )

        result = await run_skill(get_purchases_by_supplier)

        assert [s.supplier_id for s in result.data.suppliers] == [3, 4]
        assert result.data.total_orders == 7
        assert result.data.summary.endswith("Principal proveedor: Metalúrgica.")
        assert erp.read_group.await_args.args[0] == "purchase.order"
