"""Accounts payable: what we owe suppliers on posted vendor bills."""

import asyncio

from pydantic import Field

from erp_engine.dates.periods import resolve_period
from erp_engine.domain.builder import DomainClause, build_domain
from erp_engine.skills.base import PeriodArg, SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import first_row, format_amount, grouped_by, ranked


class AccountsPayableInput(SkillInput):
    due_period: PeriodArg = Field(
        default=None,
        description="Rango de vencimiento de las facturas de proveedor, con el mismo formato que un período. "
        "Sin valor incluye todas las facturas impagas.",
    )
    overdue_only: bool = Field(default=False, description="Solo facturas ya vencidas")
    group_by_supplier: bool = False
    limit: int = Field(default=20, ge=1, le=100)
    company_id: int | None = Field(default=None, gt=0)


class SupplierPayable(SkillOutput):
    supplier_id: int
    supplier_name: str
    amount_due: float
    bill_count: int


class AccountsPayableOutput(SkillOutput):
    total_payable: float
    total_overdue: float
    bill_count: int
    supplier_count: int
    by_supplier: list[SupplierPayable] | None = None
    summary: str


@skill("get_accounts_payable", input_model=AccountsPayableInput, tags=("accounting", "payable", "suppliers", "debt"))
async def get_accounts_payable(params: AccountsPayableInput, call: SkillCall) -> AccountsPayableOutput:
    """Total de cuentas por pagar (deuda con proveedores).
    USAR PARA: "cuánto le debemos a proveedores", "cuentas por pagar", "deuda con proveedores",
    "facturas de proveedor vencidas". Los resultados son PROVEEDORES a quienes les debemos."""
    overdue_clause = DomainClause("invoice_date_due", "<", call.today.isoformat())
    due_period = resolve_period(params.due_period, call.today) if params.due_period is not None else None
    domain = build_domain(
        "account.move",
        due_period,
        {"move_type": "in_invoice", "company_id": params.company_id},
        date_role="due",
        clauses=[DomainClause("amount_residual", ">", 0), *([overdue_clause] if params.overdue_only else [])],
    )
    overdue_domain = domain if params.overdue_only else [*domain, overdue_clause]

    totals_rows, overdue_rows, supplier_rows = await asyncio.gather(
        call.erp.read_group("account.move", domain, ["amount_residual:sum"], [], lazy=False),
        call.erp.read_group("account.move", overdue_domain, ["amount_residual:sum"], [], lazy=False),
        call.erp.read_group(
            "account.move", domain, ["amount_residual:sum"], ["partner_id"], orderby="amount_residual desc"
        ),
    )
    totals = first_row(totals_rows)
    suppliers = ranked(
        (
            SupplierPayable(
                supplier_id=partner.id,
                supplier_name=partner.name,
                amount_due=row.number("amount_residual"),
                bill_count=max(row.group_count("partner_id"), 1),
            )
            for partner, row in grouped_by(supplier_rows, "partner_id")
        ),
        metric=lambda s: s.amount_due,
        name=lambda s: s.supplier_name,
    )
    total_payable = totals.number("amount_residual")
    total_overdue = first_row(overdue_rows).number("amount_residual")
    return AccountsPayableOutput(
        total_payable=total_payable,
        total_overdue=total_overdue,
        bill_count=totals.group_count(),
        supplier_count=len(suppliers),
        by_supplier=suppliers[: params.limit] if params.group_by_supplier else None,
        summary=(
            f"Cuentas por pagar: {format_amount(total_payable)} a {len(suppliers)} proveedores en "
            f"{totals.group_count()} facturas. Vencido: {format_amount(total_overdue)}."
        ),
    )
