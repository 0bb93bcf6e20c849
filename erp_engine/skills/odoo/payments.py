"""Cash movement skills: payments received from customers and made to suppliers."""

import asyncio
from typing import Literal

from pydantic import Field

from erp_engine.dates.periods import Period, resolve_period
from erp_engine.domain.builder import build_domain
from erp_engine.erp.records import Record
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import PERIOD_DESCRIPTION, first_row, format_amount, grouped_by, ranked


class PaymentsInput(SkillInput):
    period: PeriodArg = Field(default=None, description=PERIOD_DESCRIPTION)
    group_by_journal: bool = Field(default=False, description="Desglose por diario (banco, caja)")
    group_by_partner: bool = Field(default=False, description="Desglose por cliente o proveedor")
    journal_ids: list[int] | None = Field(default=None, min_length=1)
    company_id: int | None = Field(default=None, gt=0)
    limit: int = Field(default=20, ge=1, le=100)


class PaymentGroup(SkillOutput):
    group_id: int
    group_name: str
    amount: float
    count: int


class PaymentsOutput(SkillOutput):
    direction: Literal["inbound", "outbound"]
    total_amount: float
    payment_count: int
    by_journal: list[PaymentGroup] | None = None
    by_partner: list[PaymentGroup] | None = None
    period: Period
    summary: str


def _groups(rows: list[Record], field: str) -> list[PaymentGroup]:
    return ranked(
        (
            PaymentGroup(
                group_id=key.id,
                group_name=key.name,
                amount=row.number("amount"),
                count=max(row.group_count(field), 1),
            )
            for key, row in grouped_by(rows, field)
        ),
        metric=lambda g: g.amount,
        name=lambda g: g.group_name,
    )


async def _payments(
    params: PaymentsInput,
    call: SkillCall,
    payment_type: Literal["inbound", "outbound"],
    partner_type: Literal["customer", "supplier"],
) -> tuple[Period, float, int, list[PaymentGroup] | None, list[PaymentGroup] | None]:
    period = resolve_period(params.period, call.today)
    domain = build_domain(
        "account.payment",
        period,
        {
            "payment_type": payment_type,
            "partner_type": partner_type,
            "company_id": params.company_id,
            "journal_id": params.journal_ids,
        },
    )
    requests = [call.erp.read_group("account.payment", domain, ["amount:sum"], [], lazy=False)]
    if params.group_by_journal:
        requests.append(
            call.erp.read_group(
                "account.payment", domain, ["amount:sum"], ["journal_id"], limit=params.limit, orderby="amount desc"
            )
        )
    if params.group_by_partner:
        requests.append(
            call.erp.read_group(
                "account.payment", domain, ["amount:sum"], ["partner_id"], limit=params.limit, orderby="amount desc"
            )
        )
    results = list(await asyncio.gather(*requests))

    totals = first_row(results.pop(0))
    by_journal = _groups(results.pop(0), "journal_id") if params.group_by_journal else None
    by_partner = _groups(results.pop(0), "partner_id") if params.group_by_partner else None
    return period, totals.number("amount"), totals.group_count(), by_journal, by_partner


@skill("get_payments_received", input_model=PaymentsInput, tags=("payments", "inbound", "customers", "cash-flow"))
async def get_payments_received(params: PaymentsInput, call: SkillCall) -> PaymentsOutput:
    """Cobros recibidos de clientes (ingresos de dinero).
    USAR PARA: "cuánto cobramos", "cobranzas del mes", "ingresos de caja", "pagos recibidos".
    Acepta período y desglose por diario o por cliente. Sin período usa el mes actual."""
    period, total, count, by_journal, by_partner = await _payments(params, call, "inbound", "customer")
    return PaymentsOutput(
        direction="inbound",
        total_amount=total,
        payment_count=count,
        by_journal=by_journal,
        by_partner=by_partner,
        period=period,
        summary=f"Cobros de clientes {period.describe()}: {count} pagos por {format_amount(total)}.",
    )


@skill("get_payments_made", input_model=PaymentsInput, tags=("payments", "outbound", "suppliers", "cash-flow"))
async def get_payments_made(params: PaymentsInput, call: SkillCall) -> PaymentsOutput:
    """Pagos realizados a proveedores (egresos de dinero).
    USAR PARA: "cuánto pagamos", "pagos a proveedores", "egresos del mes", "salidas de caja".
    Son pagos que NOSOTROS hicimos, no cobros de clientes. Sin período usa el mes actual."""
    period, total, count, by_journal, by_partner = await _payments(params, call, "outbound", "supplier")
    return PaymentsOutput(
        direction="outbound",
        total_amount=total,
        payment_count=count,
        by_journal=by_journal,
        by_partner=by_partner,
        period=period,
        summary=f"Pagos a proveedores {period.describe()}: {count} pagos por {format_amount(total)}.",
    )
