"""Sales skills: totals, categories, rankings and period comparison."""

import asyncio
from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, preceding_period, resolve_period
from erp_engine.domain.builder import build_domain
from erp_engine.erp.client import OdooClient
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import (
    PERIOD_DESCRIPTION,
    Trend,
    change_percent,
    first_row,
    format_amount,
    grouped_by,
    percent_of,
    ranked,
    round_half_up,
    trend_label,
)

MAX_GROUPS = 200

type DocumentState = Literal["confirmed", "draft", "cancelled", "all"]


# --- Input schemas ---


class SalesTotalInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    state: DocumentState = Field(default="confirmed", description="Estado de los pedidos a incluir")
    team_id: int | None = Field(default=None, gt=0, description="Equipo de ventas")
    user_id: int | None = Field(default=None, gt=0, description="Vendedor")
    partner_id: int | None = Field(default=None, gt=0, description="Cliente")
    product_id: int | None = Field(default=None, gt=0, description="Producto")
    company_id: int | None = Field(default=None, gt=0, description="Compañía")
    group_by_month: bool = Field(default=False, description="Incluir desglose mensual")


class SalesByCategoryInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    state: DocumentState = "confirmed"
    team_id: int | None = Field(default=None, gt=0)
    limit: int = Field(default=20, ge=1, le=50)


class TopCustomersInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    limit: int = Field(default=10, ge=1, le=100)
    min_amount: float | None = Field(default=None, ge=0, description="Monto mínimo con impuestos")
    team_id: int | None = Field(default=None, gt=0)


class SalesBySellerInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    limit: int = Field(default=10, ge=1, le=100)
    state: DocumentState = "confirmed"
    team_id: int | None = Field(default=None, gt=0, description="Equipo de ventas")


class TopProductsInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    limit: int = Field(default=10, ge=1, le=50)
    order_by: Literal["revenue", "quantity"] = "revenue"
    team_id: int | None = Field(default=None, gt=0)


class CompareSalesInput(SkillInput):
    current_period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    previous_period: PeriodArg = Field(
        default=None,
        description="Período de comparación. Por defecto el período inmediatamente anterior de igual duración.",
    )
    state: DocumentState = "confirmed"
    team_id: int | None = Field(default=None, gt=0)
    include_products: bool = False
    include_customers: bool = False
    limit: int = Field(default=5, ge=1, le=20)


# --- Outputs ---


class MonthlyTotal(SkillOutput):
    month: str
    total_with_tax: float
    total_without_tax: float
    line_count: int


class SalesTotalOutput(SkillOutput):
    total_with_tax: float
    total_without_tax: float
    quantity: float
    line_count: int
    by_month: list[MonthlyTotal] | None = None
    period: Period
    summary: str


class CategorySales(SkillOutput):
    category_id: int
    category_name: str
    total_with_tax: float
    total_without_tax: float
    quantity_sold: float
    order_count: int
    percentage: float


class SalesByCategoryOutput(SkillOutput):
    categories: list[CategorySales]
    grand_total_with_tax: float
    grand_total_without_tax: float
    total_quantity: float
    category_count: int
    period: Period
    summary: str


class TopCustomer(SkillOutput):
    customer_id: int
    customer_name: str
    order_count: int
    total_revenue_with_tax: float
    total_revenue_without_tax: float
    avg_order_value: float


class TopCustomersOutput(SkillOutput):
    customers: list[TopCustomer]
    total_revenue_with_tax: float
    total_revenue_without_tax: float
    period: Period
    summary: str


class SellerSales(SkillOutput):
    seller_id: int
    seller_name: str
    order_count: int
    total_with_tax: float
    total_without_tax: float
    avg_order_value: float


class SalesBySellerOutput(SkillOutput):
    sellers: list[SellerSales]
    grand_total_with_tax: float
    grand_total_without_tax: float
    total_orders: int
    seller_count: int
    period: Period
    summary: str


class TopProduct(SkillOutput):
    product_id: int
    product_name: str
    quantity_sold: float
    revenue: float
    revenue_without_tax: float


class TopProductsOutput(SkillOutput):
    products: list[TopProduct]
    total_revenue: float
    total_quantity: float
    period: Period
    summary: str


class PeriodSummary(SkillOutput):
    period: Period
    total_sales_with_tax: float
    total_sales_without_tax: float
    order_count: int
    customer_count: int
    avg_order_value_with_tax: float
    avg_order_value_without_tax: float


class ComparisonItem(SkillOutput):
    id: int
    name: str
    current_sales: float
    previous_sales: float
    change: float
    change_percent: float | None


class CompareSalesOutput(SkillOutput):
    current: PeriodSummary
    previous: PeriodSummary
    sales_change: float
    sales_change_percent: float | None
    order_count_change: int
    avg_order_value_change: float
    trend: Trend
    product_comparison: list[ComparisonItem] | None = None
    customer_comparison: list[ComparisonItem] | None = None
    summary: str


# --- Skills ---


@skill("get_sales_total", input_model=SalesTotalInput, tags=("sales", "totals", "reporting"))
async def get_sales_total(params: SalesTotalInput, call: SkillCall) -> SalesTotalOutput:
    """Total vendido en un período (con y sin impuestos, cantidades y líneas).
    USAR PARA: "cuánto vendimos", "ventas del mes", "facturación de ventas", "ventas de enero 2026",
    "ventas por mes". Filtra por equipo, vendedor, cliente, producto o compañía.
    Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain(
        "sale.report",
        period,
        {
            "team_id": params.team_id,
            "user_id": params.user_id,
            "partner_id": params.partner_id,
            "product_id": params.product_id,
            "company_id": params.company_id,
        },
        state=params.state,
    )
    fields = ["price_total:sum", "price_subtotal:sum", "product_uom_qty:sum"]

    requests = [call.erp.read_group("sale.report", domain, fields, [], lazy=False)]
    if params.group_by_month:
        requests.append(call.erp.read_group("sale.report", domain, fields, ["date:month"], orderby="date asc"))
    results = await asyncio.gather(*requests)

    totals = first_row(results[0])
    by_month: list[MonthlyTotal] | None = None
    if params.group_by_month:
        by_month = [
            MonthlyTotal(
                month=row.text("date:month"),
                total_with_tax=row.number("price_total"),
                total_without_tax=row.number("price_subtotal"),
                line_count=row.group_count("date:month"),
            )
            for row in results[1]
        ]

    total_with_tax = totals.number("price_total")
    return SalesTotalOutput(
        total_with_tax=total_with_tax,
        total_without_tax=totals.number("price_subtotal"),
        quantity=totals.number("product_uom_qty"),
        line_count=totals.group_count(),
        by_month=by_month,
        period=period,
        summary=(
            f"Ventas {period.describe()}: {format_amount(total_with_tax)} con impuestos, "
            f"{format_amount(totals.number('price_subtotal'))} sin impuestos."
        ),
    )


@skill("get_sales_by_category", input_model=SalesByCategoryInput, tags=("sales", "products", "categories"))
async def get_sales_by_category(params: SalesByCategoryInput, call: SkillCall) -> SalesByCategoryOutput:
    """Ventas agrupadas por categoría de producto, con porcentaje sobre el total.
    USAR PARA: "ventas por categoría", "qué rubro vende más", "participación por familia de productos".
    Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain(
        "sale.order.line",
        period,
        {"order_id.team_id": params.team_id},
        state=params.state,
    )
    rows = await call.erp.read_group(
        "sale.order.line",
        domain,
        ["price_total:sum", "price_subtotal:sum", "product_uom_qty:sum", "order_id:count_distinct"],
        ["product_id.categ_id"],
        limit=params.limit,
        orderby="price_total desc",
    )
    groups = grouped_by(rows, "product_id.categ_id")
    grand_with_tax = sum(row.number("price_total") for _, row in groups)
    grand_without_tax = sum(row.number("price_subtotal") for _, row in groups)

    categories = ranked(
        (
            CategorySales(
                category_id=category.id,
                category_name=category.name,
                total_with_tax=row.number("price_total"),
                total_without_tax=row.number("price_subtotal"),
                quantity_sold=row.number("product_uom_qty"),
                order_count=row.integer("order_id") or row.group_count("product_id.categ_id"),
                percentage=percent_of(row.number("price_total"), grand_with_tax, 2),
            )
            for category, row in groups
        ),
        metric=lambda c: c.total_with_tax,
        name=lambda c: c.category_name,
    )
    top = categories[0] if categories else None
    return SalesByCategoryOutput(
        categories=categories,
        grand_total_with_tax=grand_with_tax,
        grand_total_without_tax=grand_without_tax,
        total_quantity=sum(c.quantity_sold for c in categories),
        category_count=len(categories),
        period=period,
        summary=(
            f"Ventas por categoría {period.describe()}: {len(categories)} categorías, total "
            f"{format_amount(grand_with_tax)}."
            + (f" Principal: {top.category_name} ({top.percentage}%)." if top else "")
        ),
    )


@skill("get_top_customers", input_model=TopCustomersInput, tags=("sales", "customers", "ranking"))
async def get_top_customers(params: TopCustomersInput, call: SkillCall) -> TopCustomersOutput:
    """Ranking de clientes por monto comprado en el período.
    USAR PARA: "mejores clientes", "quién compra más", "mi mejor cliente", "top 10 clientes".
    Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain("sale.order", period, {"team_id": params.team_id})
    rows = await call.erp.read_group(
        "sale.order",
        domain,
        ["amount_total:sum", "amount_untaxed:sum"],
        ["partner_id"],
        limit=params.limit * 2,
        orderby="amount_total desc",
    )

    customers: list[TopCustomer] = []
    for partner, row in grouped_by(rows, "partner_id"):
        orders = max(row.group_count("partner_id"), 1)
        with_tax = row.number("amount_total")
        if params.min_amount is not None and with_tax < params.min_amount:
            continue
        customers.append(
            TopCustomer(
                customer_id=partner.id,
                customer_name=partner.name,
                order_count=orders,
                total_revenue_with_tax=with_tax,
                total_revenue_without_tax=row.number("amount_untaxed"),
                avg_order_value=round_half_up(with_tax / orders, 2),
            )
        )
    customers = ranked(customers, lambda c: c.total_revenue_with_tax, lambda c: c.customer_name)[: params.limit]

    total = sum(c.total_revenue_with_tax for c in customers)
    return TopCustomersOutput(
        customers=customers,
        total_revenue_with_tax=total,
        total_revenue_without_tax=sum(c.total_revenue_without_tax for c in customers),
        period=period,
        summary=(
            f"Top {len(customers)} clientes {period.describe()} suman {format_amount(total)}."
            + (f" Primero: {customers[0].customer_name}." if customers else "")
        ),
    )


@skill("get_sales_by_seller", input_model=SalesBySellerInput, tags=("sales", "sellers", "commissions", "reporting"))
async def get_sales_by_seller(params: SalesBySellerInput, call: SkillCall) -> SalesBySellerOutput:
    """Ventas agrupadas por vendedor (usuario asignado al pedido).
    USAR PARA: "ventas por vendedor", "quién vendió más", "ranking de vendedores", "comisiones".
    Los resultados son VENDEDORES del equipo, no clientes. Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain("sale.order", period, {"team_id": params.team_id}, state=params.state)
    rows = await call.erp.read_group(
        "sale.order",
        domain,
        ["amount_total:sum", "amount_untaxed:sum"],
        ["user_id"],
        limit=params.limit,
        orderby="amount_total desc",
    )
    sellers = []
    for user, row in grouped_by(rows, "user_id"):
        orders = max(row.group_count("user_id"), 1)
        with_tax = row.number("amount_total")
        sellers.append(
            SellerSales(
                seller_id=user.id,
                seller_name=user.name,
                order_count=orders,
                total_with_tax=with_tax,
                total_without_tax=row.number("amount_untaxed"),
                avg_order_value=round_half_up(with_tax / orders, 2),
            )
        )
    sellers = ranked(sellers, lambda s: s.total_with_tax, lambda s: s.seller_name)

    grand_total = sum(s.total_with_tax for s in sellers)
    total_orders = sum(s.order_count for s in sellers)
    return SalesBySellerOutput(
        sellers=sellers,
        grand_total_with_tax=grand_total,
        grand_total_without_tax=sum(s.total_without_tax for s in sellers),
        total_orders=total_orders,
        seller_count=len(sellers),
        period=period,
        summary=(
            f"Ventas por vendedor {period.describe()}: {len(sellers)} vendedores, {total_orders} pedidos, "
            f"total {format_amount(grand_total)}."
            + (f" Primero: {sellers[0].seller_name}." if sellers else "")
        ),
    )


@skill("get_top_products", input_model=TopProductsInput, tags=("sales", "products", "ranking"))
async def get_top_products(params: TopProductsInput, call: SkillCall) -> TopProductsOutput:
    """Productos más vendidos del período, por facturación o por cantidad.
    USAR PARA: "productos más vendidos", "qué se vende más", "best sellers".
    Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    domain = build_domain("sale.order.line", period, {"order_id.team_id": params.team_id})
    order_field = "price_total" if params.order_by == "revenue" else "product_uom_qty"
    rows = await call.erp.read_group(
        "sale.order.line",
        domain,
        ["product_uom_qty:sum", "price_total:sum", "price_subtotal:sum"],
        ["product_id"],
        limit=params.limit,
        orderby=f"{order_field} desc",
    )
    products = [
        TopProduct(
            product_id=product.id,
            product_name=product.name,
            quantity_sold=row.number("product_uom_qty"),
            revenue=row.number("price_total"),
            revenue_without_tax=row.number("price_subtotal"),
        )
        for product, row in grouped_by(rows, "product_id")
    ]
    if params.order_by == "revenue":
        products = ranked(products, lambda p: p.revenue, lambda p: p.product_name)
    else:
        products = ranked(products, lambda p: p.quantity_sold, lambda p: p.product_name)

    total_revenue = sum(p.revenue for p in products)
    return TopProductsOutput(
        products=products,
        total_revenue=total_revenue,
        total_quantity=sum(p.quantity_sold for p in products),
        period=period,
        summary=f"Top {len(products)} productos {period.describe()}: {format_amount(total_revenue)} facturados.",
    )


async def _period_summary(erp: OdooClient, period: Period, state: str, team_id: int | None) -> PeriodSummary:
    domain = build_domain("sale.order", period, {"team_id": team_id}, state=state)
    totals_rows, partner_rows = await asyncio.gather(
        erp.read_group("sale.order", domain, ["amount_total:sum", "amount_untaxed:sum"], [], lazy=False),
        erp.read_group("sale.order", domain, ["amount_total:sum"], ["partner_id"]),
    )
    totals = first_row(totals_rows)
    orders = totals.group_count()
    with_tax = totals.number("amount_total")
    without_tax = totals.number("amount_untaxed")
    return PeriodSummary(
        period=period,
        total_sales_with_tax=with_tax,
        total_sales_without_tax=without_tax,
        order_count=orders,
        customer_count=len(grouped_by(partner_rows, "partner_id")),
        avg_order_value_with_tax=round_half_up(with_tax / orders, 2) if orders else 0.0,
        avg_order_value_without_tax=round_half_up(without_tax / orders, 2) if orders else 0.0,
    )


async def _compare_groups(
    erp: OdooClient,
    model: str,
    group_field: str,
    amount_field: str,
    current: Period,
    previous: Period,
    state: str,
    filters: dict[str, int | None],
    limit: int,
) -> list[ComparisonItem]:
    current_rows, previous_rows = await asyncio.gather(
        erp.read_group(
            model,
            build_domain(model, current, filters, state=state),
            [f"{amount_field}:sum"],
            [group_field],
            limit=limit,
            orderby=f"{amount_field} desc",
        ),
        erp.read_group(
            model,
            build_domain(model, previous, filters, state=state),
            [f"{amount_field}:sum"],
            [group_field],
            limit=MAX_GROUPS,
            orderby=f"{amount_field} desc",
        ),
    )
    previous_by_id = {key.id: row.number(amount_field) for key, row in grouped_by(previous_rows, group_field)}
    items = []
    for key, row in grouped_by(current_rows, group_field):
        now = row.number(amount_field)
        before = previous_by_id.get(key.id, 0.0)
        items.append(
            ComparisonItem(
                id=key.id,
                name=key.name,
                current_sales=now,
                previous_sales=before,
                change=now - before,
                change_percent=change_percent(now, before),
            )
        )
    return ranked(items, lambda i: i.current_sales, lambda i: i.name)


@skill("compare_sales_periods", input_model=CompareSalesInput, tags=("sales", "comparison", "trends"))
async def compare_sales_periods(params: CompareSalesInput, call: SkillCall) -> CompareSalesOutput:
    """Compara las ventas de dos períodos (este mes vs el anterior, este año vs el pasado).
    USAR PARA: "compará ventas", "cómo estamos vs el mes pasado", "evolución", "crecimiento".
    Opcional: desglose por productos y clientes."""
    current_period = resolve_period(params.current_period, call.today)
    previous_period = (
        resolve_period(params.previous_period, call.today)
        if params.previous_period is not None
        else preceding_period(current_period)
    )

    current, previous = await asyncio.gather(
        _period_summary(call.erp, current_period, params.state, params.team_id),
        _period_summary(call.erp, previous_period, params.state, params.team_id),
    )
    sales_change_percent = change_percent(current.total_sales_with_tax, previous.total_sales_with_tax)
    trend = trend_label(sales_change_percent)

    product_comparison = None
    customer_comparison = None
    if params.include_products:
        product_comparison = await _compare_groups(
            call.erp,
            "sale.order.line",
            "product_id",
            "price_total",
            current_period,
            previous_period,
            params.state,
            {"order_id.team_id": params.team_id},
            params.limit,
        )
    if params.include_customers:
        customer_comparison = await _compare_groups(
            call.erp,
            "sale.order",
            "partner_id",
            "amount_total",
            current_period,
            previous_period,
            params.state,
            {"team_id": params.team_id},
            params.limit,
        )

    change_text = "sin base de comparación" if sales_change_percent is None else f"{sales_change_percent:+}%"
    return CompareSalesOutput(
        current=current,
        previous=previous,
        sales_change=current.total_sales_with_tax - previous.total_sales_with_tax,
        sales_change_percent=sales_change_percent,
        order_count_change=current.order_count - previous.order_count,
        avg_order_value_change=round_half_up(
            current.avg_order_value_with_tax - previous.avg_order_value_with_tax, 2
        ),
        trend=trend,
        product_comparison=product_comparison,
        customer_comparison=customer_comparison,
        summary=(
            f"Ventas {current_period.describe()}: {format_amount(current.total_sales_with_tax)} vs "
            f"{format_amount(previous.total_sales_with_tax)} en {previous_period.describe()} "
            f"({change_text}, tendencia {trend})."
        ),
    )
