"""Product catalog skills: product search and purchase price history."""

from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, resolve_period
from erp_engine.domain.builder import DomainClause, build_domain
from erp_engine.erp.records import Record
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import format_amount, round_half_up

PRICE_TREND_THRESHOLD_PERCENT = 2

PRODUCT_FIELDS = [
    "name",
    "default_code",
    "barcode",
    "type",
    "list_price",
    "standard_price",
    "uom_id",
    "is_published",
    "product_tmpl_id",
]
STOCK_FIELDS = ["qty_available", "virtual_available"]


# --- Product search ---


class SearchProductsInput(SkillInput):
    query: str = Field(min_length=1, description="Nombre, código interno o código de barras")
    limit: int = Field(default=10, ge=1, le=50)
    include_stock: bool = True
    saleable_only: bool = False
    published_only: bool = Field(default=False, description="Solo productos publicados en la web")


class ProductResult(SkillOutput):
    id: int
    name: str
    code: str | None
    barcode: str | None
    type: str
    list_price: float
    standard_price: float
    qty_available: float | None = None
    virtual_available: float | None = None
    uom: str
    is_published: bool
    template_id: int
    template_name: str


class SearchProductsOutput(SkillOutput):
    products: list[ProductResult]
    total: int
    summary: str


def _product(record: Record, include_stock: bool) -> ProductResult:
    uom = record.many2one("uom_id")
    template = record.many2one("product_tmpl_id")
    return ProductResult(
        id=record.id,
        name=record.text("name"),
        code=record.text("default_code") or None,
        barcode=record.text("barcode") or None,
        type=record.text("type"),
        list_price=record.number("list_price"),
        standard_price=record.number("standard_price"),
        qty_available=record.number("qty_available") if include_stock else None,
        virtual_available=record.number("virtual_available") if include_stock else None,
        uom=uom.name if uom else "",
        is_published=record.flag("is_published"),
        template_id=template.id if template else 0,
        template_name=template.name if template else record.text("name"),
    )


@skill("search_products", input_model=SearchProductsInput, tags=("products", "search", "inventory"))
async def search_products(params: SearchProductsInput, call: SkillCall) -> SearchProductsOutput:
    """Busca PRODUCTOS del catálogo por nombre, código interno o código de barras.
    USAR PARA: "buscar producto", "precio de X", "stock de X", "tenemos el producto X".
    Devuelve precio de lista, costo y opcionalmente stock disponible."""
    matches: list[DomainClause | str] = [
        "|",
        "|",
        DomainClause("name", "ilike", params.query),
        DomainClause("default_code", "ilike", params.query),
        DomainClause("barcode", "ilike", params.query),
    ]
    domain = [
        *matches,
        *build_domain(
            "product.product",
            filters={
                "sale_ok": True if params.saleable_only else None,
                "is_published": True if params.published_only else None,
            },
        ),
    ]
    fields = PRODUCT_FIELDS + STOCK_FIELDS if params.include_stock else PRODUCT_FIELDS
    records = await call.erp.search_read("product.product", domain, fields, limit=params.limit)
    products = [_product(record, params.include_stock) for record in records]

    first = ", ".join(f"{p.name} [{p.code}]" if p.code else p.name for p in products[:3])
    return SearchProductsOutput(
        products=products,
        total=len(products),
        summary=(
            f'Búsqueda de productos "{params.query}": {len(products)} resultados'
            + (f". Primeros: {first}." if products else ".")
            + " Son PRODUCTOS del catálogo, no clientes."
        ),
    )


# --- Purchase price history ---


class PurchasePriceHistoryInput(SkillInput):
    product_query: str = Field(min_length=1, description="Nombre o parte del nombre del producto")
    period: PeriodArg = Field(
        default=None, description="Período de las órdenes de compra. Sin valor usa todo el historial."
    )
    group_by_supplier: bool = True
    limit: int = Field(default=20, ge=1, le=50)


class PurchaseHistoryEntry(SkillOutput):
    order_id: int
    order_name: str
    supplier_id: int
    supplier_name: str
    price_unit: float
    quantity: float
    subtotal: float
    date_order: str


class SupplierPriceSummary(SkillOutput):
    supplier_id: int
    supplier_name: str
    avg_price: float
    min_price: float
    max_price: float
    last_price: float
    total_qty: float
    order_count: int


class PriceChange(SkillOutput):
    first_price: float
    last_price: float
    change_percent: float
    trend: Literal["up", "down", "stable"]


class PurchasePriceHistoryOutput(SkillOutput):
    product_id: int
    product_name: str
    history: list[PurchaseHistoryEntry]
    by_supplier: list[SupplierPriceSummary] | None = None
    price_change: PriceChange | None = None
    period: Period | None = None
    summary: str


def _history_entry(record: Record) -> PurchaseHistoryEntry:
    order = record.many2one("order_id")
    supplier = record.many2one("partner_id")
    return PurchaseHistoryEntry(
        order_id=order.id if order else 0,
        order_name=order.name if order else "",
        supplier_id=supplier.id if supplier else 0,
        supplier_name=supplier.name if supplier else "",
        price_unit=record.number("price_unit"),
        quantity=record.number("product_qty"),
        subtotal=record.number("price_subtotal"),
        date_order=record.text("date_order"),
    )


def _by_supplier(history: list[PurchaseHistoryEntry]) -> list[SupplierPriceSummary]:
    """Price statistics per supplier; ``history`` is newest first, cheapest supplier comes first."""
    entries: dict[int, list[PurchaseHistoryEntry]] = {}
    for entry in history:
        entries.setdefault(entry.supplier_id, []).append(entry)
    summaries = []
    for supplier_id, lines in entries.items():
        prices = [line.price_unit for line in lines]
        summaries.append(
            SupplierPriceSummary(
                supplier_id=supplier_id,
                supplier_name=lines[0].supplier_name,
                avg_price=round_half_up(sum(prices) / len(prices), 2),
                min_price=min(prices),
                max_price=max(prices),
                last_price=prices[0],
                total_qty=sum(line.quantity for line in lines),
                order_count=len(lines),
            )
        )
    return sorted(summaries, key=lambda s: (s.avg_price, s.supplier_name.casefold()))


def _price_change(history: list[PurchaseHistoryEntry]) -> PriceChange | None:
    if len(history) < 2:
        return None
    first, last = history[-1].price_unit, history[0].price_unit
    change = round_half_up((last - first) / first * 100) if first > 0 else 0.0
    if change > PRICE_TREND_THRESHOLD_PERCENT:
        trend = "up"
    elif change < -PRICE_TREND_THRESHOLD_PERCENT:
        trend = "down"
    else:
        trend = "stable"
    return PriceChange(first_price=first, last_price=last, change_percent=change, trend=trend)


@skill(
    "get_purchase_price_history",
    input_model=PurchasePriceHistoryInput,
    tags=("purchases", "prices", "suppliers", "comparison", "reporting"),
)
async def get_purchase_price_history(
    params: PurchasePriceHistoryInput, call: SkillCall
) -> PurchasePriceHistoryOutput:
    """Historial de precios de compra de un producto: qué pagamos, a quién y cómo evolucionó.
    USAR PARA: "a cuánto compramos X", "qué proveedor es más barato para X", "subió el precio de X".
    Sin período usa todo el historial."""
    period = resolve_period(params.period, call.today) if params.period is not None else None
    products = await call.erp.search_read(
        "product.product",
        build_domain("product.product", clauses=[("name", "ilike", params.product_query)]),
        ["name"],
        limit=1,
    )
    if not products:
        return PurchasePriceHistoryOutput(
            product_id=0,
            product_name=params.product_query,
            history=[],
            period=period,
            summary=f'No se encontró ningún producto que coincida con "{params.product_query}".',
        )

    product = products[0]
    lines = await call.erp.search_read(
        "purchase.order.line",
        build_domain("purchase.order.line", period, {"product_id": product.id}),
        ["product_id", "order_id", "partner_id", "price_unit", "product_qty", "price_subtotal", "date_order"],
        limit=params.limit,
        order="date_order desc",
    )
    history = [_history_entry(line) for line in lines]
    by_supplier = _by_supplier(history) if params.group_by_supplier and history else None
    price_change = _price_change(history)

    name = product.text("name")
    summary = f"{name}: {len(history)} compras registradas."
    if by_supplier:
        cheapest = by_supplier[0]
        summary += (
            f" Proveedor más barato en promedio: {cheapest.supplier_name} ({format_amount(cheapest.avg_price)})."
        )
    if price_change:
        summary += f" Variación de precio {price_change.change_percent:+}% ({price_change.trend})."
    return PurchasePriceHistoryOutput(
        product_id=product.id,
        product_name=name,
        history=history,
        by_supplier=by_supplier,
        price_change=price_change,
        period=period,
        summary=summary,
    )
