"""Accounts receivable skills: debt by customer and overdue invoices.

Both work on posted customer invoices (``move_type = out_invoice``) and are
point-in-time snapshots: day counts are measured against the request date.
"""

import asyncio
from datetime import date, timedelta

from pydantic import Field

from erp_engine.domain.builder import DomainClause, build_domain
from erp_engine.erp.records import Record
from erp_engine.skills.base import SkillCall, SkillInput, SkillOutput, skill
from erp_engine.skills.odoo._common import first_row, format_amount, grouped_by, ranked

UNPAID_STATES = ["not_paid", "partial"]
AGING_BUCKETS = ((1, 30, "1-30"), (31, 60, "31-60"), (61, 90, "61-90"), (91, None, "90+"))


def _days_since(value: str, today: date) -> int | None:
    if not value:
        return None
    return (today - date.fromisoformat(value[:10])).days


class _ReceivableFilters(SkillInput):
    customer_name: str | None = Field(default=None, min_length=1, description="Nombre del cliente (parcial)")
    seller_name: str | None = Field(default=None, min_length=1, description="Nombre del vendedor en la factura")
    company_id: int | None = Field(default=None, gt=0)

    def name_clauses(self) -> list[DomainClause]:
        clauses = []
        if self.customer_name:
            clauses.append(DomainClause("partner_id.name", "ilike", self.customer_name))
        if self.seller_name:
            clauses.append(DomainClause("invoice_user_id.name", "ilike", self.seller_name))
        return clauses


# --- Debt by customer ---


class DebtByCustomerInput(_ReceivableFilters):
    limit: int = Field(default=20, ge=1, le=100)
    min_amount: float = Field(default=0, ge=0, description="Deuda mínima a incluir")
    include_overdue_days: bool = True
    min_overdue_days: int | None = Field(default=None, ge=0)


class CustomerDebt(SkillOutput):
    customer_id: int
    customer_name: str
    total_debt: float
    invoice_count: int
    oldest_invoice_date: str | None = None
    max_overdue_days: int | None = None


class DebtByCustomerOutput(SkillOutput):
    customers: list[CustomerDebt]
    grand_total: float
    total_invoices: int
    customer_count: int
    summary: str


@skill("get_debt_by_customer", input_model=DebtByCustomerInput, tags=("invoices", "debt", "receivables"))
async def get_debt_by_customer(params: DebtByCustomerInput, call: SkillCall) -> DebtByCustomerOutput:
    """Deuda de clientes: quién nos debe más y cuánto.
    USAR PARA: "quién nos debe", "clientes morosos", "cuentas por cobrar", "saldos pendientes",
    "top deudores", "cuánto debe X", "deuda por vendedor". Los resultados son CLIENTES que nos deben."""
    domain = build_domain(
        "account.move",
        None,
        {"move_type": "out_invoice", "company_id": params.company_id},
        clauses=[DomainClause("amount_residual", ">", 0), *params.name_clauses()],
    )
    rows = await call.erp.read_group(
        "account.move",
        domain,
        ["amount_residual:sum", "invoice_date:min"],
        ["partner_id"],
        limit=params.limit * 2,
        orderby="amount_residual desc",
    )

    customers: list[CustomerDebt] = []
    for partner, row in grouped_by(rows, "partner_id"):
        oldest = row.text("invoice_date") or None
        days = _days_since(oldest or "", call.today) if params.include_overdue_days else None
        debt = row.number("amount_residual")
        if debt < params.min_amount:
            continue
        if params.min_overdue_days is not None and (days is None or days < params.min_overdue_days):
            continue
        customers.append(
            CustomerDebt(
                customer_id=partner.id,
                customer_name=partner.name,
                total_debt=debt,
                invoice_count=max(row.group_count("partner_id"), 1),
                oldest_invoice_date=oldest,
                max_overdue_days=days,
            )
        )
    customers = ranked(customers, lambda c: c.total_debt, lambda c: c.customer_name)[: params.limit]

    grand_total = sum(c.total_debt for c in customers)
    top = customers[0] if customers else None
    return DebtByCustomerOutput(
        customers=customers,
        grand_total=grand_total,
        total_invoices=sum(c.invoice_count for c in customers),
        customer_count=len(customers),
        summary=(
            f"{len(customers)} clientes con deuda, total {format_amount(grand_total)}."
            + (f" Mayor deudor: {top.customer_name} con {format_amount(top.total_debt)}." if top else "")
        ),
    )


# --- Overdue invoices ---


class OverdueInvoicesInput(_ReceivableFilters):
    limit: int = Field(default=20, ge=1, le=100)
    min_days_overdue: int = Field(default=0, ge=0)
    group_by_customer: bool = False


class OverdueInvoice(SkillOutput):
    invoice_id: int
    invoice_number: str
    customer_id: int
    customer_name: str
    seller_name: str | None
    amount_total: float
    amount_residual: float
    invoice_date: str
    due_date: str
    days_overdue: int


class CustomerOverdue(SkillOutput):
    customer_id: int
    customer_name: str
    invoice_count: int
    total_overdue: float
    oldest_days_overdue: int


class AgingBucket(SkillOutput):
    bucket: str
    count: int
    amount: float


class OverdueInvoicesOutput(SkillOutput):
    invoices: list[OverdueInvoice] | None = None
    customers: list[CustomerOverdue] | None = None
    aging: list[AgingBucket] | None = None
    total_overdue: float
    total_invoices: int
    summary: str


def _aging_domains(domain: list[DomainClause], today: date) -> list[tuple[str, list[DomainClause]]]:
    """One domain per aging bucket, each narrowing ``domain`` by due date."""
    buckets = []
    for low, high, label in AGING_BUCKETS:
        clauses = [DomainClause("invoice_date_due", "<=", (today - timedelta(days=low)).isoformat())]
        if high is not None:
            clauses.append(DomainClause("invoice_date_due", ">=", (today - timedelta(days=high)).isoformat()))
        buckets.append((label, [*domain, *clauses]))
    return buckets


def _overdue_invoice(record: Record, today: date) -> OverdueInvoice:
    partner = record.many2one("partner_id")
    seller = record.many2one("invoice_user_id")
    due = record.text("invoice_date_due")
    return OverdueInvoice(
        invoice_id=record.id,
        invoice_number=record.text("name"),
        customer_id=partner.id if partner else 0,
        customer_name=partner.name if partner else "Sin cliente",
        seller_name=seller.name if seller else None,
        amount_total=record.number("amount_total"),
        amount_residual=record.number("amount_residual"),
        invoice_date=record.text("invoice_date"),
        due_date=due,
        days_overdue=_days_since(due, today) or 0,
    )


@skill("get_overdue_invoices", input_model=OverdueInvoicesInput, tags=("invoices", "debt", "collections"))
async def get_overdue_invoices(params: OverdueInvoicesInput, call: SkillCall) -> OverdueInvoicesOutput:
    """Facturas de clientes vencidas e impagas, con días de atraso.
    USAR PARA: "facturas vencidas", "pagos atrasados", "facturas vencidas de cliente X",
    "deuda vencida por vendedor". Puede agrupar por cliente.
    Los customer son CLIENTES morosos; los seller son VENDEDORES del equipo."""
    if params.min_days_overdue > 0:
        cutoff = call.today - timedelta(days=params.min_days_overdue)
        due_clause = DomainClause("invoice_date_due", "<=", cutoff.isoformat())
    else:
        due_clause = DomainClause("invoice_date_due", "<", call.today.isoformat())
    domain = build_domain(
        "account.move",
        None,
        {"move_type": "out_invoice", "payment_state": UNPAID_STATES, "company_id": params.company_id},
        clauses=[due_clause, *params.name_clauses()],
    )
    totals_request = call.erp.read_group("account.move", domain, ["amount_residual:sum"], [], lazy=False)

    if params.group_by_customer:
        totals_rows, rows = await asyncio.gather(
            totals_request,
            call.erp.read_group(
                "account.move",
                domain,
                ["amount_residual:sum", "invoice_date_due:min"],
                ["partner_id"],
                limit=params.limit,
                orderby="amount_residual desc",
            ),
        )
        customers = ranked(
            (
                CustomerOverdue(
                    customer_id=partner.id,
                    customer_name=partner.name,
                    invoice_count=max(row.group_count("partner_id"), 1),
                    total_overdue=row.number("amount_residual"),
                    oldest_days_overdue=_days_since(row.text("invoice_date_due"), call.today) or 0,
                )
                for partner, row in grouped_by(rows, "partner_id")
            ),
            metric=lambda c: c.total_overdue,
            name=lambda c: c.customer_name,
        )
        totals = first_row(totals_rows)
        return OverdueInvoicesOutput(
            customers=customers,
            total_overdue=totals.number("amount_residual"),
            total_invoices=totals.group_count(),
            summary=(
                f"{len(customers)} clientes con facturas vencidas. Total vencido "
                f"{format_amount(totals.number('amount_residual'))} en {totals.group_count()} facturas."
            ),
        )

    aging_domains = _aging_domains(domain, call.today)
    totals_rows, records, *bucket_rows = await asyncio.gather(
        totals_request,
        call.erp.search_read(
            "account.move",
            domain,
            ["name", "partner_id", "invoice_user_id", "amount_total", "amount_residual", "invoice_date",
             "invoice_date_due"],  # fmt: skip
            limit=params.limit,
            order="invoice_date_due asc",
        ),
        *(
            call.erp.read_group("account.move", bucket_domain, ["amount_residual:sum"], [], lazy=False)
            for _, bucket_domain in aging_domains
        ),
    )
    invoices = [_overdue_invoice(record, call.today) for record in records]
    aging = [
        AgingBucket(bucket=label, count=row.group_count(), amount=row.number("amount_residual"))
        for (label, _), row in zip(aging_domains, map(first_row, bucket_rows), strict=True)
    ]
    totals = first_row(totals_rows)
    return OverdueInvoicesOutput(
        invoices=invoices,
        aging=aging,
        total_overdue=totals.number("amount_residual"),
        total_invoices=totals.group_count(),
        summary=(
            f"{totals.group_count()} facturas vencidas por {format_amount(totals.number('amount_residual'))}. "
            f"Se listan las {len(invoices)} más antiguas."
        ),
    )
