"""CRM skills: pipeline snapshot, lost-opportunity analysis and opportunity search.

Opportunity status follows Odoo's conventions: open is active with
probability below 100, won is active at 100, lost is archived at 0.
"""

import asyncio
from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, resolve_period
from erp_engine.domain.builder import ALL_STATES, DomainClause, build_domain
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import (
    PERIOD_DESCRIPTION,
    format_amount,
    grouped_by,
    percent_of,
    ranked,
    resolved,
)

type OpportunityStatus = Literal["open", "won", "lost", "all"]

MAX_STAGES = 50
MAX_REASONS = 20


def _status_state(status: OpportunityStatus) -> str:
    return ALL_STATES if status == "all" else status


# --- Pipeline ---


class CrmPipelineInput(SkillInput):
    period: PeriodArg = Field(default=None, description="Filtra por fecha de creación. " + PERIOD_DESCRIPTION)
    status: OpportunityStatus = "open"
    user_id: int | None = Field(default=None, gt=0, description="Vendedor")
    team_id: int | None = Field(default=None, gt=0)


class PipelineStage(SkillOutput):
    stage_id: int
    stage_name: str
    count: int
    expected_revenue: float
    avg_probability: float


class CrmPipelineOutput(SkillOutput):
    total_opportunities: int
    total_expected_revenue: float
    weighted_revenue: float
    avg_probability: float
    stages: list[PipelineStage]
    won_count: int | None = None
    lost_count: int | None = None
    period: Period | None = None
    summary: str


@skill("get_crm_pipeline", input_model=CrmPipelineInput, tags=("crm", "pipeline", "opportunities"))
async def get_crm_pipeline(params: CrmPipelineInput, call: SkillCall) -> CrmPipelineOutput:
    """Pipeline de oportunidades del CRM: cuántas hay, cuánto dinero representan y en qué etapa están.
    USAR PARA: "pipeline", "oportunidades abiertas", "funnel de ventas", "cuánto hay en el pipeline",
    "cuántas oportunidades ganamos". Filtra por vendedor, equipo y estado (open/won/lost/all)."""
    period = resolve_period(params.period, call.today) if params.period is not None else None
    filters = {"user_id": params.user_id, "team_id": params.team_id}
    domain = build_domain("crm.lead", period, filters, state=_status_state(params.status))

    requests = [
        call.erp.read_group(
            "crm.lead",
            domain,
            ["expected_revenue:sum", "probability:avg"],
            ["stage_id"],
            limit=MAX_STAGES,
            orderby="stage_id asc",
        )
    ]
    if params.status == "all":
        requests.append(call.erp.search_count("crm.lead", build_domain("crm.lead", period, filters, state="won")))
        requests.append(call.erp.search_count("crm.lead", build_domain("crm.lead", period, filters, state="lost")))
    results = await asyncio.gather(*requests)

    stages: list[PipelineStage] = []
    probability_weight = 0.0
    weighted_revenue = 0.0
    for stage, row in grouped_by(results[0], "stage_id"):
        count = row.group_count("stage_id")
        probability = row.number("probability")
        stages.append(
            PipelineStage(
                stage_id=stage.id,
                stage_name=stage.name,
                count=count,
                expected_revenue=row.number("expected_revenue"),
                avg_probability=round(probability),
            )
        )
        probability_weight += probability * count
        weighted_revenue += row.number("expected_revenue") * probability / 100

    total = sum(s.count for s in stages)
    revenue = sum(s.expected_revenue for s in stages)
    won_count = results[1] if params.status == "all" else None
    lost_count = results[2] if params.status == "all" else None
    return CrmPipelineOutput(
        total_opportunities=total,
        total_expected_revenue=revenue,
        weighted_revenue=weighted_revenue,
        avg_probability=round(probability_weight / total) if total else 0,
        stages=stages,
        won_count=won_count,
        lost_count=lost_count,
        period=period,
        summary=(
            f"Pipeline ({params.status}): {total} oportunidades por {format_amount(revenue)} en "
            f"{len(stages)} etapas."
        ),
    )


# --- Lost opportunities ---


class LostOpportunitiesInput(SkillInput):
    period: PeriodArg = Field(default=None, description="Filtra por fecha de cierre. " + PERIOD_DESCRIPTION)
    user_id: int | None = Field(default=None, gt=0)
    tag_id: int | None = Field(default=None, gt=0)
    limit: int = Field(default=10, ge=1, le=50)


class LostReason(SkillOutput):
    reason_id: int | None
    reason_name: str
    count: int
    total_revenue: float
    percentage: float


class LostDeal(SkillOutput):
    id: int
    name: str
    partner: str
    reason: str
    expected_revenue: float
    stage: str
    date_closed: str
    user: str


class LostOpportunitiesOutput(SkillOutput):
    total_lost: int
    total_lost_revenue: float
    lost_reasons: list[LostReason]
    top_lost_deals: list[LostDeal]
    period: Period
    summary: str


@skill("get_lost_opportunities", input_model=LostOpportunitiesInput, tags=("crm", "lost", "analysis"))
async def get_lost_opportunities(params: LostOpportunitiesInput, call: SkillCall) -> LostOpportunitiesOutput:
    """Por qué perdemos oportunidades: ranking de motivos de pérdida y dinero perdido.
    USAR PARA: "por qué perdimos", "motivo de pérdida", "oportunidades perdidas", "cuánto perdimos".
    Incluye los deals perdidos más grandes. Sin período usa el mes actual."""
    period = resolve_period(params.period, call.today)
    clauses = [DomainClause("tag_ids", "in", [params.tag_id])] if params.tag_id else []
    domain = build_domain(
        "crm.lead",
        period,
        {"user_id": params.user_id},
        state="lost",
        date_role="closed",
        clauses=clauses,
    )
    rows, records = await asyncio.gather(
        call.erp.read_group(
            "crm.lead",
            domain,
            ["expected_revenue:sum"],
            ["lost_reason_id"],
            limit=MAX_REASONS,
            orderby="expected_revenue desc",
        ),
        call.erp.search_read(
            "crm.lead",
            domain,
            ["name", "partner_id", "lost_reason_id", "expected_revenue", "stage_id", "date_closed", "user_id"],
            limit=params.limit,
            order="expected_revenue desc",
        ),
    )

    total_lost = sum(row.group_count("lost_reason_id") for row in rows)
    reasons = []
    for row in rows:
        reason = row.many2one("lost_reason_id")
        count = row.group_count("lost_reason_id")
        reasons.append(
            LostReason(
                reason_id=reason.id if reason else None,
                reason_name=reason.name if reason else "Sin motivo especificado",
                count=count,
                total_revenue=row.number("expected_revenue"),
                percentage=percent_of(count, total_lost),
            )
        )
    reasons = ranked(reasons, lambda r: r.count, lambda r: r.reason_name)

    deals = [
        LostDeal(
            id=record.id,
            name=record.text("name"),
            partner=record.text("partner_id", "Sin contacto"),
            reason=record.text("lost_reason_id", "Sin motivo"),
            expected_revenue=record.number("expected_revenue"),
            stage=record.text("stage_id", "Sin etapa"),
            date_closed=record.text("date_closed"),
            user=record.text("user_id", "Sin asignar"),
        )
        for record in records
    ]
    deals = ranked(deals, lambda d: d.expected_revenue, lambda d: d.name)

    lost_revenue = sum(r.total_revenue for r in reasons)
    top = reasons[0] if reasons else None
    return LostOpportunitiesOutput(
        total_lost=total_lost,
        total_lost_revenue=lost_revenue,
        lost_reasons=reasons,
        top_lost_deals=deals,
        period=period,
        summary=(
            f"{total_lost} oportunidades perdidas por {format_amount(lost_revenue)} {period.describe()}."
            + (f" Principal motivo: {top.reason_name} ({top.percentage:g}%)." if top else "")
        ),
    )


# --- Opportunity search ---


class SearchOpportunitiesInput(SkillInput):
    stage_id: int | None = Field(default=None, gt=0, description="Etapa. Obtener de get_crm_pipeline, no adivinar.")
    tag_id: int | None = Field(default=None, gt=0)
    user_id: int | None = Field(default=None, gt=0)
    partner_id: int | None = Field(default=None, gt=0)
    status: OpportunityStatus = "open"
    period: PeriodArg = Field(default=None, description="Filtra por fecha de creación. " + PERIOD_DESCRIPTION)
    include_quotes: bool = Field(default=False, description="Incluir presupuestos (sale.order) vinculados")
    limit: int = Field(default=20, ge=1, le=50)


class OpportunityQuote(SkillOutput):
    id: int
    name: str
    amount_total: float
    state: str


class OpportunityResult(SkillOutput):
    id: int
    name: str
    partner: str
    partner_email: str | None = None
    partner_phone: str | None = None
    stage: str
    tags: list[str]
    expected_revenue: float
    probability: float
    user: str
    create_date: str
    date_closed: str | None = None
    quotes: list[OpportunityQuote] | None = None
    quotes_total: float | None = None


class SearchOpportunitiesOutput(SkillOutput):
    total_count: int
    total_expected_revenue: float
    opportunities: list[OpportunityResult]


@skill("search_crm_opportunities", input_model=SearchOpportunitiesInput, tags=("crm", "search", "opportunities"))
async def search_crm_opportunities(params: SearchOpportunitiesInput, call: SkillCall) -> SearchOpportunitiesOutput:
    """Lista oportunidades del CRM con filtros combinados: etapa, etiqueta, vendedor, cliente.
    USAR PARA: "oportunidades con etiqueta X", "oportunidades en etapa Y", "oportunidades del cliente X",
    "qué presupuestos tienen las oportunidades". Puede incluir los presupuestos vinculados."""
    period = resolve_period(params.period, call.today) if params.period is not None else None
    clauses = [DomainClause("tag_ids", "in", [params.tag_id])] if params.tag_id else []
    domain = build_domain(
        "crm.lead",
        period,
        {"stage_id": params.stage_id, "user_id": params.user_id, "partner_id": params.partner_id},
        state=_status_state(params.status),
        clauses=clauses,
    )
    fields = [
        "name", "partner_id", "stage_id", "tag_ids", "expected_revenue",
        "probability", "user_id", "create_date", "date_closed",
    ]  # fmt: skip
    if params.include_quotes:
        fields.append("order_ids")
    records = await call.erp.search_read("crm.lead", domain, fields, limit=params.limit, order="expected_revenue desc")

    partner_ids = sorted({p.id for r in records if (p := r.many2one("partner_id"))})
    tag_ids = sorted({t for r in records for t in r.ids("tag_ids")})
    order_ids = sorted({o for r in records for o in r.ids("order_ids")}) if params.include_quotes else []

    # One batch per related entity, all in flight together.
    total_count, contacts, tags, orders = await asyncio.gather(
        call.erp.search_count("crm.lead", domain) if len(records) >= params.limit else resolved(len(records)),
        call.erp.search_read("res.partner", [("id", "in", partner_ids)], ["id", "email", "phone"])
        if partner_ids
        else resolved([]),
        call.erp.search_read("crm.tag", [("id", "in", tag_ids)], ["id", "name"]) if tag_ids else resolved([]),
        call.erp.search_read("sale.order", [("id", "in", order_ids)], ["id", "name", "amount_total", "state"])
        if order_ids
        else resolved([]),
    )
    contact_by_id = {c.id: c for c in contacts}
    tag_names = {t.id: t.text("name") for t in tags}
    order_by_id = {o.id: o for o in orders}

    opportunities = []
    for record in records:
        partner = record.many2one("partner_id")
        contact = contact_by_id.get(partner.id) if partner else None
        quotes = None
        if params.include_quotes and record.ids("order_ids"):
            quotes = [
                OpportunityQuote(
                    id=order.id,
                    name=order.text("name"),
                    amount_total=order.number("amount_total"),
                    state=order.text("state"),
                )
                for oid in record.ids("order_ids")
                if (order := order_by_id.get(oid)) is not None
            ]
        opportunities.append(
            OpportunityResult(
                id=record.id,
                name=record.text("name"),
                partner=partner.name if partner else "Sin contacto",
                partner_email=(contact.text("email") or None) if contact else None,
                partner_phone=(contact.text("phone") or None) if contact else None,
                stage=record.text("stage_id", "Sin etapa"),
                tags=[tag_names.get(t, f"Tag {t}") for t in record.ids("tag_ids")],
                expected_revenue=record.number("expected_revenue"),
                probability=record.number("probability"),
                user=record.text("user_id", "Sin asignar"),
                create_date=record.text("create_date"),
                date_closed=record.text("date_closed") or None,
                quotes=quotes,
                quotes_total=sum(q.amount_total for q in quotes) if quotes is not None else None,
            )
        )

    return SearchOpportunitiesOutput(
        total_count=total_count,
        total_expected_revenue=sum(o.expected_revenue for o in opportunities),
        opportunities=opportunities,
    )
