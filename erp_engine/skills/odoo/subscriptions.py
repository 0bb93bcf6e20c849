"""Recurring revenue skills.

Subscriptions are ``sale.order`` rows with ``is_subscription`` set; their
lifecycle lives in ``subscription_state`` and the monthly amount in
``recurring_monthly`` (MRR).
"""

import asyncio
from datetime import timedelta
from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, preceding_period, resolve_period
from erp_engine.domain.builder import build_domain
from erp_engine.erp.records import Record
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import (
    PERIOD_DESCRIPTION,
    Trend,
    first_row,
    format_amount,
    grouped_by,
    percent_of,
    resolved,
)

ACTIVE = "in_progress"
PAUSED = "paused"
STATE_LABELS = {
    "draft": "Borrador",
    ACTIVE: "Activa",
    PAUSED: "Pausada",
    "closed": "Cerrada",
    "churn": "Cancelada",
}


def state_label(state: str) -> str:
    return STATE_LABELS.get(state, state)


# --- Health ---


class SubscriptionHealthInput(SkillInput):
    team_id: int | None = Field(default=None, gt=0, description="Equipo de ventas")
    user_id: int | None = Field(default=None, gt=0, description="Vendedor")
    expiring_within_days: int = Field(default=30, ge=1, le=180, description="Horizonte para suscripciones por vencer")
    limit: int = Field(default=10, ge=1, le=30)


class StateBreakdown(SkillOutput):
    state: str
    state_label: str
    count: int
    mrr: float


class AtRiskSummary(SkillOutput):
    paused_count: int
    paused_mrr: float
    expiring_count: int
    expiring_mrr: float
    total_at_risk_count: int
    total_at_risk_mrr: float


class SubscriptionCustomer(SkillOutput):
    partner_id: int
    partner_name: str
    mrr: float
    subscription_count: int


class SubscriptionHealthOutput(SkillOutput):
    total_mrr: float
    total_active_subscriptions: int
    total_all_subscriptions: int
    state_breakdown: list[StateBreakdown]
    at_risk: AtRiskSummary
    top_customers_by_mrr: list[SubscriptionCustomer]
    summary: str


@skill(
    "get_subscription_health",
    input_model=SubscriptionHealthInput,
    tags=("subscriptions", "mrr", "recurring", "health", "analysis"),
)
async def get_subscription_health(params: SubscriptionHealthInput, call: SkillCall) -> SubscriptionHealthOutput:
    """Foto actual del negocio recurrente: MRR, suscripciones por estado y clientes en riesgo.
    USAR PARA: "cómo están las suscripciones", "MRR", "ingreso recurrente mensual",
    "cuántas suscripciones activas", "suscripciones en riesgo", "quién está por vencer", "suscripciones pausadas".
    En riesgo son las pausadas más las activas que vencen dentro de expiring_within_days."""
    filters = {"team_id": params.team_id, "user_id": params.user_id}
    horizon = Period(start=call.today, end=call.today + timedelta(days=params.expiring_within_days))

    by_state, expiring_rows, top_rows = await asyncio.gather(
        call.erp.read_group(
            "sale.order",
            build_domain("sale.order", None, filters, state="subscription_any"),
            ["recurring_monthly:sum"],
            ["subscription_state"],
            limit=10,
        ),
        call.erp.read_group(
            "sale.order",
            build_domain(
                "sale.order", horizon, filters, state="subscription_active", date_role="subscription_end"
            ),
            ["recurring_monthly:sum"],
            [],
            lazy=False,
        ),
        call.erp.read_group(
            "sale.order",
            build_domain("sale.order", None, filters, state="subscription_active"),
            ["recurring_monthly:sum"],
            ["partner_id"],
            limit=params.limit,
            orderby="recurring_monthly desc",
        ),
    )

    breakdown = [
        StateBreakdown(
            state=row.text("subscription_state"),
            state_label=state_label(row.text("subscription_state")),
            count=row.group_count("subscription_state"),
            mrr=row.number("recurring_monthly"),
        )
        for row in by_state
        if row.text("subscription_state")
    ]
    active = [s for s in breakdown if s.state == ACTIVE]
    paused = [s for s in breakdown if s.state == PAUSED]
    total_mrr = sum(s.mrr for s in active)
    active_count = sum(s.count for s in active)

    expiring = first_row(expiring_rows)
    paused_count = sum(s.count for s in paused)
    paused_mrr = sum(s.mrr for s in paused)
    at_risk = AtRiskSummary(
        paused_count=paused_count,
        paused_mrr=paused_mrr,
        expiring_count=expiring.group_count(),
        expiring_mrr=expiring.number("recurring_monthly"),
        total_at_risk_count=paused_count + expiring.group_count(),
        total_at_risk_mrr=paused_mrr + expiring.number("recurring_monthly"),
    )

    top_customers = [
        SubscriptionCustomer(
            partner_id=partner.id,
            partner_name=partner.name or "Sin nombre",
            mrr=row.number("recurring_monthly"),
            subscription_count=row.group_count("partner_id"),
        )
        for partner, row in grouped_by(top_rows, "partner_id")
    ]

    return SubscriptionHealthOutput(
        total_mrr=total_mrr,
        total_active_subscriptions=active_count,
        total_all_subscriptions=sum(s.count for s in breakdown),
        state_breakdown=breakdown,
        at_risk=at_risk,
        top_customers_by_mrr=top_customers,
        summary=(
            f"MRR {format_amount(total_mrr)} con {active_count} suscripciones activas. "
            f"En riesgo: {at_risk.total_at_risk_count} suscripciones por {format_amount(at_risk.total_at_risk_mrr)} "
            f"({paused_count} pausadas, {at_risk.expiring_count} vencen en {params.expiring_within_days} días)."
        ),
    )


# --- Churn ---


class SubscriptionChurnInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    compare_with_previous: bool = Field(default=True, description="Comparar con el período anterior")
    limit: int = Field(default=10, ge=1, le=30)


class ChurnPeriodData(SkillOutput):
    churned_count: int
    churned_mrr: float
    new_count: int
    new_mrr: float
    net_growth: int
    net_growth_mrr: float


class ChurnedCustomer(SkillOutput):
    partner_id: int
    partner_name: str
    lost_mrr: float
    end_date: str
    subscription_name: str


class SubscriptionChurnOutput(SkillOutput):
    current: ChurnPeriodData
    churn_rate: float
    total_active_at_end: int
    previous: ChurnPeriodData | None = None
    trend: Trend
    top_churned_customers: list[ChurnedCustomer]
    period: Period
    summary: str


async def _churn_data(call: SkillCall, period: Period) -> ChurnPeriodData:
    churned_rows, new_rows = await asyncio.gather(
        call.erp.read_group(
            "sale.order",
            build_domain("sale.order", period, state="subscription_churned", date_role="last_update"),
            ["recurring_monthly:sum"],
            [],
            lazy=False,
        ),
        call.erp.read_group(
            "sale.order",
            build_domain("sale.order", period, state="subscription_active", date_role="subscription_start"),
            ["recurring_monthly:sum"],
            [],
            lazy=False,
        ),
    )
    churned = first_row(churned_rows)
    new = first_row(new_rows)
    return ChurnPeriodData(
        churned_count=churned.group_count(),
        churned_mrr=churned.number("recurring_monthly"),
        new_count=new.group_count(),
        new_mrr=new.number("recurring_monthly"),
        net_growth=new.group_count() - churned.group_count(),
        net_growth_mrr=new.number("recurring_monthly") - churned.number("recurring_monthly"),
    )


def _churn_trend(current: ChurnPeriodData, previous: ChurnPeriodData | None) -> Trend:
    if previous is None or current.churned_count == previous.churned_count:
        return "estable"
    return "mejorando" if current.churned_count < previous.churned_count else "empeorando"


@skill(
    "get_subscription_churn",
    input_model=SubscriptionChurnInput,
    tags=("subscriptions", "churn", "growth", "retention", "analysis"),
)
async def get_subscription_churn(params: SubscriptionChurnInput, call: SkillCall) -> SubscriptionChurnOutput:
    """Cancelaciones de suscripciones frente a altas nuevas: churn rate y crecimiento neto.
    USAR PARA: "churn de suscripciones", "cuántos cancelaron", "cuánto MRR perdimos", "quién canceló",
    "crecimiento neto", "estamos creciendo o achicándonos", "bajas de suscripciones".
    Compara con el período anterior y lista los clientes con más MRR perdido.
    Los clientes listados son CLIENTES suscriptores, no vendedores."""
    period = resolve_period(params.period, call.today)
    previous_period = preceding_period(period) if params.compare_with_previous else None

    current, previous, active_count, churned_records = await asyncio.gather(
        _churn_data(call, period),
        _churn_data(call, previous_period) if previous_period is not None else resolved(None),
        call.erp.search_count("sale.order", build_domain("sale.order", None, state="subscription_active")),
        call.erp.search_read(
            "sale.order",
            build_domain("sale.order", period, state="subscription_churned", date_role="last_update"),
            ["name", "partner_id", "recurring_monthly", "end_date"],
            limit=params.limit,
            order="recurring_monthly desc",
        ),
    )

    churn_rate = percent_of(current.churned_count, active_count + current.churned_count)
    trend = _churn_trend(current, previous)
    top = [_churned_customer(record) for record in churned_records]
    return SubscriptionChurnOutput(
        current=current,
        churn_rate=churn_rate,
        total_active_at_end=active_count,
        previous=previous,
        trend=trend,
        top_churned_customers=top,
        period=period,
        summary=(
            f"Suscripciones {period.describe()}: {current.churned_count} canceladas "
            f"(MRR perdido {format_amount(current.churned_mrr)}), {current.new_count} nuevas "
            f"(MRR ganado {format_amount(current.new_mrr)}), crecimiento neto {current.net_growth}. "
            f"Churn rate {churn_rate:g}%, {active_count} activas. Tendencia: {trend}."
        ),
    )


def _churned_customer(record: Record) -> ChurnedCustomer:
    partner = record.many2one("partner_id")
    return ChurnedCustomer(
        partner_id=partner.id if partner else 0,
        partner_name=partner.name if partner else "Sin nombre",
        lost_mrr=record.number("recurring_monthly"),
        end_date=record.text("end_date"),
        subscription_name=record.text("name"),
    )


# --- Detail ---


class SubscriptionDetailInput(SkillInput):
    partner_id: int = Field(gt=0, description="ID del cliente. Obtener de otra consulta, no adivinar.")
    include_lines: bool = Field(default=True, description="Incluir las líneas de producto")
    subscription_state: Literal["in_progress", "paused", "closed", "churn", "all"] = "all"


class SubscriptionLine(SkillOutput):
    product_id: int
    product_name: str
    quantity: float
    price_unit: float
    price_subtotal: float


class SubscriptionRecord(SkillOutput):
    id: int
    name: str
    state: str
    state_label: str
    recurring_monthly: float
    start_date: str
    next_invoice_date: str
    end_date: str | None = None
    lines: list[SubscriptionLine]


class SubscriptionDetailOutput(SkillOutput):
    customer_id: int
    customer_name: str
    total_mrr: float
    total_subscriptions: int
    subscriptions: list[SubscriptionRecord]
    summary: str


def _subscription_line(record: Record) -> SubscriptionLine:
    product = record.many2one("product_id")
    return SubscriptionLine(
        product_id=product.id if product else 0,
        product_name=product.name if product else "Sin producto",
        quantity=record.number("product_uom_qty"),
        price_unit=record.number("price_unit"),
        price_subtotal=record.number("price_subtotal"),
    )


@skill(
    "get_subscription_detail",
    input_model=SubscriptionDetailInput,
    tags=("subscriptions", "customer", "detail", "lines", "products"),
)
async def get_subscription_detail(params: SubscriptionDetailInput, call: SkillCall) -> SubscriptionDetailOutput:
    """Detalle de las suscripciones de un cliente: productos, precios y próxima factura.
    USAR PARA: "qué tiene contratado este cliente", "suscripciones de cliente X", "cuándo le facturamos",
    "qué plan tiene", "renovación de cliente". Requiere partner_id del cliente."""
    state = None if params.subscription_state == "all" else params.subscription_state
    domain = build_domain(
        "sale.order",
        None,
        {"partner_id": params.partner_id, "subscription_state": state},
        state="subscription_any",
    )
    subscriptions = await call.erp.search_read(
        "sale.order",
        domain,
        ["name", "subscription_state", "recurring_monthly", "start_date", "next_invoice_date", "end_date",
         "partner_id", "order_line"],  # fmt: skip
        limit=50,
        order="subscription_state asc, recurring_monthly desc",
    )

    if not subscriptions:
        partners = await call.erp.search_read("res.partner", [("id", "=", params.partner_id)], ["name"], limit=1)
        name = partners[0].text("name") if partners else "Cliente no encontrado"
        return SubscriptionDetailOutput(
            customer_id=params.partner_id,
            customer_name=name,
            total_mrr=0.0,
            total_subscriptions=0,
            subscriptions=[],
            summary=f"{name} (ID {params.partner_id}) no tiene suscripciones.",
        )

    lines_by_order: dict[int, list[SubscriptionLine]] = {}
    line_ids = [line_id for sub in subscriptions for line_id in sub.ids("order_line")]
    if params.include_lines and line_ids:
        lines = await call.erp.search_read(
            "sale.order.line",
            [("id", "in", line_ids)],
            ["order_id", "product_id", "product_uom_qty", "price_unit", "price_subtotal"],
        )
        for line in lines:
            order = line.many2one("order_id")
            if order is not None:
                lines_by_order.setdefault(order.id, []).append(_subscription_line(line))

    records = [
        SubscriptionRecord(
            id=sub.id,
            name=sub.text("name"),
            state=sub.text("subscription_state"),
            state_label=state_label(sub.text("subscription_state")),
            recurring_monthly=sub.number("recurring_monthly"),
            start_date=sub.text("start_date"),
            next_invoice_date=sub.text("next_invoice_date"),
            end_date=sub.text("end_date") or None,
            lines=lines_by_order.get(sub.id, []),
        )
        for sub in subscriptions
    ]
    total_mrr = sum(r.recurring_monthly for r in records if r.state == ACTIVE)
    partner = subscriptions[0].many2one("partner_id")
    name = partner.name if partner else "Sin nombre"
    return SubscriptionDetailOutput(
        customer_id=params.partner_id,
        customer_name=name,
        total_mrr=total_mrr,
        total_subscriptions=len(records),
        subscriptions=records,
        summary=(
            f"{name} (ID {params.partner_id}): {len(records)} suscripciones, MRR {format_amount(total_mrr)}. "
            f"Estados: {', '.join(r.state_label for r in records)}."
        ),
    )
