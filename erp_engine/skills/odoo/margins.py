"""Product margin ranking.

Revenue comes from confirmed sale order lines; cost is the product's
current ``standard_price`` times the quantity sold. Both figures are read
from the ERP; nothing here is estimated.
"""

from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, resolve_period
from erp_engine.domain.builder import build_domain
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import PERIOD_DESCRIPTION, format_amount, grouped_by, percent_of, ranked

MAX_PRODUCTS = 200


class ProductMarginInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: Literal["margin_total", "margin_percent", "revenue"] = "margin_total"
    max_margin_percent: float | None = Field(default=None, description="Solo productos con margen % menor o igual")
    min_revenue: float | None = Field(default=None, ge=0)
    team_id: int | None = Field(default=None, gt=0)


class ProductMarginItem(SkillOutput):
    product_id: int
    product_name: str
    revenue: float
    cost: float
    margin_total: float
    margin_percent: float
    quantity_sold: float


class MarginTotals(SkillOutput):
    revenue: float = 0.0
    cost: float = 0.0
    margin_total: float = 0.0
    margin_percent: float = 0.0


class ProductMarginOutput(SkillOutput):
    products: list[ProductMarginItem]
    totals: MarginTotals
    period: Period
    summary: str


_SORT_KEYS = {
    "margin_total": lambda p: p.margin_total,
    "margin_percent": lambda p: p.margin_percent,
    "revenue": lambda p: p.revenue,
}


@skill("get_product_margin", input_model=ProductMarginInput, tags=("sales", "margin", "products", "profitability"))
async def get_product_margin(params: ProductMarginInput, call: SkillCall) -> ProductMarginOutput:
    """Margen por producto: cuánto ganamos con cada producto vendido.
    USAR PARA: "margen por producto", "qué productos dan más ganancia", "productos menos rentables",
    "rentabilidad por producto". Ordena por margen total, porcentaje o facturación.
    max_margin_percent permite encontrar productos de bajo margen."""
    period = resolve_period(params.period, call.today)
    domain = build_domain("sale.order.line", period, {"order_id.team_id": params.team_id})
    rows = await call.erp.read_group(
        "sale.order.line",
        domain,
        ["price_subtotal:sum", "product_uom_qty:sum"],
        ["product_id"],
        limit=MAX_PRODUCTS,
        orderby="price_subtotal desc",
    )
    groups = grouped_by(rows, "product_id")
    if not groups:
        return ProductMarginOutput(
            products=[],
            totals=MarginTotals(),
            period=period,
            summary=f"Sin ventas {period.describe()}.",
        )

    costs = await call.erp.search_read(
        "product.product",
        [("id", "in", [product.id for product, _ in groups])],
        ["id", "standard_price"],
    )
    unit_cost = {record.id: record.number("standard_price") for record in costs}

    products: list[ProductMarginItem] = []
    for product, row in groups:
        revenue = row.number("price_subtotal")
        quantity = row.number("product_uom_qty")
        cost = unit_cost.get(product.id, 0.0) * quantity
        margin = revenue - cost
        products.append(
            ProductMarginItem(
                product_id=product.id,
                product_name=product.name,
                revenue=revenue,
                cost=cost,
                margin_total=margin,
                margin_percent=percent_of(margin, revenue) if revenue > 0 else 0.0,
                quantity_sold=quantity,
            )
        )

    if params.max_margin_percent is not None:
        products = [p for p in products if p.margin_percent <= params.max_margin_percent]
    if params.min_revenue is not None:
        products = [p for p in products if p.revenue >= params.min_revenue]
    products = ranked(products, _SORT_KEYS[params.sort_by], lambda p: p.product_name)[: params.limit]

    revenue = sum(p.revenue for p in products)
    cost = sum(p.cost for p in products)
    totals = MarginTotals(
        revenue=revenue,
        cost=cost,
        margin_total=revenue - cost,
        margin_percent=percent_of(revenue - cost, revenue) if revenue > 0 else 0.0,
    )
    return ProductMarginOutput(
        products=products,
        totals=totals,
        period=period,
        summary=(
            f"Margen de {len(products)} productos {period.describe()}: {format_amount(totals.margin_total)} "
            f"sobre {format_amount(revenue)} facturados ({totals.margin_percent:g}%)."
        ),
    )
