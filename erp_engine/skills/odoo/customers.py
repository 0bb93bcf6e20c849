"""Customer retention: who bought in one period and stopped in the next."""

import asyncio

from pydantic import Field

from erp_engine.dates.periods import Period, preceding_period, resolve_period
from erp_engine.domain.builder import build_domain
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import PERIOD_DESCRIPTION, format_amount, grouped_by, ranked

MAX_BUYERS = 500


class InactiveCustomersInput(SkillInput):
    current_period: PeriodArg = Field(default=None, description="Período actual. " + PERIOD_DESCRIPTION)
    previous_period: PeriodArg = Field(
        default=None,
        description="Período de referencia. Por defecto el período inmediatamente anterior al actual.",
    )
    limit: int = Field(default=20, ge=1, le=100)
    include_details: bool = Field(default=True, description="Incluir contacto y fecha de última compra")


class InactiveCustomer(SkillOutput):
    customer_id: int
    customer_name: str
    previous_period_amount: float
    previous_period_orders: int
    last_order_date: str | None = None
    email: str | None = None
    phone: str | None = None
    city: str | None = None


class InactiveCustomersOutput(SkillOutput):
    total_inactive: int
    total_lost_revenue: float
    customers: list[InactiveCustomer]
    current_period: Period
    previous_period: Period
    summary: str


@skill(
    "get_inactive_customers",
    input_model=InactiveCustomersInput,
    tags=("customers", "churn", "retention", "crm", "reporting"),
)
async def get_inactive_customers(params: InactiveCustomersInput, call: SkillCall) -> InactiveCustomersOutput:
    """Detecta clientes que dejaron de comprar: compraban antes pero no ahora.
    USAR PARA: "clientes que dejaron de comprar", "clientes perdidos", "clientes inactivos",
    "quién dejó de comprarnos", "clientes que no compran más".
    Compara dos períodos e incluye datos de contacto para reactivación."""
    current = resolve_period(params.current_period, call.today)
    previous = (
        resolve_period(params.previous_period, call.today)
        if params.previous_period is not None
        else preceding_period(current)
    )

    previous_rows, current_rows = await asyncio.gather(
        call.erp.read_group(
            "sale.order",
            build_domain("sale.order", previous),
            ["amount_total:sum"],
            ["partner_id"],
            limit=MAX_BUYERS,
            orderby="amount_total desc",
        ),
        call.erp.read_group(
            "sale.order",
            build_domain("sale.order", current),
            ["amount_total:sum"],
            ["partner_id"],
            limit=MAX_BUYERS,
        ),
    )
    previous_buyers = grouped_by(previous_rows, "partner_id")
    still_buying = {partner.id for partner, _ in grouped_by(current_rows, "partner_id")}
    if len(current_rows) >= MAX_BUYERS:
        # Truncated page: re-check the previous buyers it did not include.
        unresolved = [partner.id for partner, _ in previous_buyers if partner.id not in still_buying]
        if unresolved:
            rechecked = await call.erp.read_group(
                "sale.order",
                build_domain("sale.order", current, {"partner_id": unresolved}),
                ["amount_total:sum"],
                ["partner_id"],
                limit=len(unresolved),
            )
            still_buying.update(partner.id for partner, _ in grouped_by(rechecked, "partner_id"))

    customers = ranked(
        (
            InactiveCustomer(
                customer_id=partner.id,
                customer_name=partner.name or "Sin nombre",
                previous_period_amount=row.number("amount_total"),
                previous_period_orders=row.group_count("partner_id"),
            )
            for partner, row in previous_buyers
            if partner.id not in still_buying
        ),
        metric=lambda c: c.previous_period_amount,
        name=lambda c: c.customer_name,
    )[: params.limit]

    if params.include_details and customers:
        ids = [c.customer_id for c in customers]
        contacts, last_orders = await asyncio.gather(
            call.erp.search_read("res.partner", [("id", "in", ids)], ["id", "email", "phone", "city"]),
            call.erp.read_group(
                "sale.order",
                build_domain("sale.order", None, {"partner_id": ids}),
                ["date_order:max"],
                ["partner_id"],
                limit=len(ids),
            ),
        )
        contact_by_id = {contact.id: contact for contact in contacts}
        last_order_by_id = {
            partner.id: row.text("date_order") for partner, row in grouped_by(last_orders, "partner_id")
        }
        for customer in customers:
            contact = contact_by_id.get(customer.customer_id)
            if contact is not None:
                customer.email = contact.text("email") or None
                customer.phone = contact.text("phone") or None
                customer.city = contact.text("city") or None
            customer.last_order_date = last_order_by_id.get(customer.customer_id) or None

    lost_revenue = sum(c.previous_period_amount for c in customers)
    return InactiveCustomersOutput(
        total_inactive=len(customers),
        total_lost_revenue=lost_revenue,
        customers=customers,
        current_period=current,
        previous_period=previous,
        summary=(
            f"{len(customers)} clientes compraron en {previous.describe()} y no en {current.describe()}, "
            f"por {format_amount(lost_revenue)} facturados en el período anterior."
        ),
    )
