"""Purchase skills: totals and supplier ranking."""

import asyncio
from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, resolve_period
from erp_engine.domain.builder import build_domain
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import PERIOD_DESCRIPTION, first_row, format_amount, grouped_by, ranked

# --- Input schemas ---


class PurchasesTotalInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    state: Literal["confirmed", "draft", "cancelled", "all"] = "confirmed"
    partner_id: int | None = Field(default=None, gt=0, description="Proveedor")
    product_id: int | None = Field(default=None, gt=0)
    category_id: int | None = Field(default=None, gt=0, description="Categoría de producto")
    company_id: int | None = Field(default=None, gt=0)
    group_by_month: bool = False


class PurchasesBySupplierInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    state: Literal["confirmed", "draft", "all"] = "confirmed"
    limit: int = Field(default=10, ge=1, le=100)
    company_id: int | None = Field(default=None, gt=0)


# --- Outputs ---


class MonthlyPurchases(SkillOutput):
    month: str
    total_with_tax: float
    total_without_tax: float


class PurchasesTotalOutput(SkillOutput):
    total_with_tax: float
    total_without_tax: float
    quantity_ordered: float
    line_count: int
    by_month: list[MonthlyPurchases] | None = None
    period: Period
    summary: str


class SupplierPurchases(SkillOutput):
    supplier_id: int
    supplier_name: str
    order_count: int
    total_amount_with_tax: float
    total_amount_without_tax: float


class PurchasesBySupplierOutput(SkillOutput):
    suppliers: list[SupplierPurchases]
    grand_total_with_tax: float
    grand_total_without_tax: float
    total_orders: int
    period: Period
    summary: str


# --- Skills ---


@skill("get_purchases_total", input_model=PurchasesTotalInput, tags=("purchases", "totals", "reporting"))
async def get_purchases_total(params: PurchasesTotalInput, call: SkillCall) -> PurchasesTotalOutput:
    """Total comprado en un período, con y sin impuestos.
    USAR PARA: "cuánto compramos", "compras del mes", "cuánto compramos desde julio del año pasado".
    Filtra por proveedor, producto, categoría o compañía. Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain(
        "purchase.report",
        period,
        {
            "partner_id": params.partner_id,
            "product_id": params.product_id,
            "category_id": params.category_id,
            "company_id": params.company_id,
        },
        state=params.state,
    )
    fields = ["price_total:sum", "untaxed_total:sum", "qty_ordered:sum"]
    requests = [call.erp.read_group("purchase.report", domain, fields, [], lazy=False)]
    if params.group_by_month:
        requests.append(
            call.erp.read_group("purchase.report", domain, fields, ["date_order:month"], orderby="date_order asc")
        )
    results = await asyncio.gather(*requests)

    totals = first_row(results[0])
    by_month = None
    if params.group_by_month:
        by_month = [
            MonthlyPurchases(
                month=row.text("date_order:month"),
                total_with_tax=row.number("price_total"),
                total_without_tax=row.number("untaxed_total"),
            )
            for row in results[1]
        ]
    total = totals.number("price_total")
    return PurchasesTotalOutput(
        total_with_tax=total,
        total_without_tax=totals.number("untaxed_total"),
        quantity_ordered=totals.number("qty_ordered"),
        line_count=totals.group_count(),
        by_month=by_month,
        period=period,
        summary=f"Compras {period.describe()}: {format_amount(total)} con impuestos.",
    )


@skill("get_purchases_by_supplier", input_model=PurchasesBySupplierInput, tags=("purchases", "suppliers", "ranking"))
async def get_purchases_by_supplier(params: PurchasesBySupplierInput, call: SkillCall) -> PurchasesBySupplierOutput:
    """Compras agrupadas por proveedor.
    USAR PARA: "a quién le compramos más", "cuánto le compramos a cada proveedor", "principal proveedor".
    Los resultados son PROVEEDORES, no clientes. Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain("purchase.order", period, {"company_id": params.company_id}, state=params.state)
    rows = await call.erp.read_group(
        "purchase.order",
        domain,
        ["amount_total:sum", "amount_untaxed:sum"],
        ["partner_id"],
        limit=params.limit,
        orderby="amount_total desc",
    )
    suppliers = ranked(
        (
            SupplierPurchases(
                supplier_id=partner.id,
                supplier_name=partner.name,
                order_count=row.group_count("partner_id"),
                total_amount_with_tax=row.number("amount_total"),
                total_amount_without_tax=row.number("amount_untaxed"),
            )
            for partner, row in grouped_by(rows, "partner_id")
        ),
        metric=lambda s: s.total_amount_with_tax,
        name=lambda s: s.supplier_name,
    )
    grand_total = sum(s.total_amount_with_tax for s in suppliers)
    total_orders = sum(s.order_count for s in suppliers)
    top = suppliers[0].supplier_name if suppliers else "N/A"
    return PurchasesBySupplierOutput(
        suppliers=suppliers,
        grand_total_with_tax=grand_total,
        grand_total_without_tax=sum(s.total_amount_without_tax for s in suppliers),
        total_orders=total_orders,
        period=period,
        summary=(
            f"Compras por proveedor {period.describe()}: {len(suppliers)} proveedores, {total_orders} órdenes, "
            f"total {format_amount(grand_total)}. Principal proveedor: {top}."
        ),
    )
