"""Compile periods and business filters into Odoo domains.

``MODEL_SPECS`` is the single place that knows which date field, which
"confirmed" state filter and which filterable fields belong to each ERP
model. Skills never spell out date or state clauses themselves; they call
``build_domain`` and add only the filters specific to their question.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from erp_engine.dates.periods import Period

ALL_STATES = "all"
OPERATORS = frozenset({"=", "!=", "in", "not in", "<", "<=", ">", ">=", "ilike", "not ilike", "like", "child_of"})


class DomainError(ValueError):
    """Unknown model, state, field or operator."""


class DomainClause(NamedTuple):
    field: str
    operator: str
    value: Any


type Domain = list[DomainClause]


@dataclass(frozen=True)
class ModelSpec:
    """Field and state conventions of one ERP model."""

    model: str
    date_fields: Mapping[str, str]
    states: Mapping[str, tuple[DomainClause, ...]]
    filter_fields: frozenset[str]
    default_state: str | None = "confirmed"
    datetime_fields: frozenset[str] = frozenset()
    base: tuple[DomainClause, ...] = ()

    @property
    def date_field(self) -> str:
        return self.date_fields["default"]


_SALE_CONFIRMED = ("sale", "done")
_PURCHASE_CONFIRMED = ("purchase", "done")


MODEL_SPECS: dict[str, ModelSpec] = {
    spec.model: spec
    for spec in (
        ModelSpec(
            model="sale.report",
            date_fields={"default": "date"},
            datetime_fields=frozenset({"date"}),
            states={
                "confirmed": (DomainClause("state", "in", list(_SALE_CONFIRMED)),),
                "draft": (DomainClause("state", "in", ["draft", "sent"]),),
                "cancelled": (DomainClause("state", "=", "cancel"),),
            },
            filter_fields=frozenset(
                {"partner_id", "product_id", "product_tmpl_id", "categ_id", "team_id", "user_id", "company_id",
                 "country_id", "partner_id.name", "product_id.name", "categ_id.name"}
            ),  # fmt: skip
        ),
        ModelSpec(
            model="purchase.report",
            date_fields={"default": "date_order"},
            datetime_fields=frozenset({"date_order"}),
            states={
                "confirmed": (DomainClause("state", "in", list(_PURCHASE_CONFIRMED)),),
                "draft": (DomainClause("state", "in", ["draft", "sent", "to approve"]),),
                "cancelled": (DomainClause("state", "=", "cancel"),),
            },
            filter_fields=frozenset(
                {"partner_id", "product_id", "category_id", "company_id", "user_id", "partner_id.name",
                 "product_id.name"}
            ),  # fmt: skip
        ),
        ModelSpec(
            model="sale.order",
            date_fields={
                "default": "date_order",
                "subscription_start": "start_date",
                "subscription_end": "end_date",
                "subscription_renewal": "next_invoice_date",
                "last_update": "write_date",
            },
            datetime_fields=frozenset({"date_order", "write_date"}),
            states={
                "confirmed": (DomainClause("state", "in", list(_SALE_CONFIRMED)),),
                "draft": (DomainClause("state", "in", ["draft", "sent"]),),
                "cancelled": (DomainClause("state", "=", "cancel"),),
                "subscription_any": (DomainClause("is_subscription", "=", True),),
                "subscription_active": (
                    DomainClause("is_subscription", "=", True),
                    DomainClause("subscription_state", "=", "in_progress"),
                ),
                "subscription_paused": (
                    DomainClause("is_subscription", "=", True),
                    DomainClause("subscription_state", "=", "paused"),
                ),
                "subscription_churned": (
                    DomainClause("is_subscription", "=", True),
                    DomainClause("subscription_state", "in", ["churn", "closed"]),
                ),
            },
            filter_fields=frozenset(
                {"partner_id", "team_id", "user_id", "company_id", "partner_id.name", "subscription_state",
                 "plan_id", "is_subscription", "next_invoice_date", "end_date", "id"}
            ),  # fmt: skip
        ),
        ModelSpec(
            model="sale.order.line",
            date_fields={"default": "order_id.date_order"},
            datetime_fields=frozenset({"order_id.date_order"}),
            states={
                "confirmed": (DomainClause("order_id.state", "in", list(_SALE_CONFIRMED)),),
                "draft": (DomainClause("order_id.state", "in", ["draft", "sent"]),),
                "cancelled": (DomainClause("order_id.state", "=", "cancel"),),
            },
            filter_fields=frozenset(
                {"product_id", "product_id.categ_id", "order_id", "order_id.partner_id", "order_id.team_id",
                 "order_id.user_id", "company_id", "display_type", "product_id.name"}
            ),  # fmt: skip
        ),
        ModelSpec(
            model="purchase.order",
            date_fields={"default": "date_order", "approved": "date_approve"},
            datetime_fields=frozenset({"date_order", "date_approve"}),
            states={
                "confirmed": (DomainClause("state", "in", list(_PURCHASE_CONFIRMED)),),
                "draft": (DomainClause("state", "in", ["draft", "sent", "to approve"]),),
                "cancelled": (DomainClause("state", "=", "cancel"),),
            },
            filter_fields=frozenset({"partner_id", "company_id", "user_id", "partner_id.name", "invoice_status"}),
        ),
        ModelSpec(
            model="purchase.order.line",
            date_fields={"default": "order_id.date_order"},
            datetime_fields=frozenset({"order_id.date_order"}),
            states={
                "confirmed": (DomainClause("order_id.state", "in", list(_PURCHASE_CONFIRMED)),),
                "draft": (DomainClause("order_id.state", "in", ["draft", "sent", "to approve"]),),
                "cancelled": (DomainClause("order_id.state", "=", "cancel"),),
            },
            filter_fields=frozenset(
                {"product_id", "order_id", "partner_id", "company_id", "display_type", "product_id.name"}
            ),
        ),
        ModelSpec(
            model="product.product",
            date_fields={"default": "create_date"},
            datetime_fields=frozenset({"create_date"}),
            default_state="active",
            states={
                "active": (DomainClause("active", "=", True),),
                "archived": (DomainClause("active", "=", False),),
            },
            filter_fields=frozenset(
                {"name", "default_code", "barcode", "categ_id", "type", "sale_ok", "purchase_ok", "is_published",
                 "company_id"}
            ),  # fmt: skip
        ),
        ModelSpec(
            model="account.move",
            date_fields={"default": "invoice_date", "due": "invoice_date_due", "accounting": "date"},
            states={
                "confirmed": (DomainClause("state", "=", "posted"),),
                "draft": (DomainClause("state", "=", "draft"),),
                "cancelled": (DomainClause("state", "=", "cancel"),),
            },
            filter_fields=frozenset(
                {"partner_id", "move_type", "payment_state", "journal_id", "company_id", "invoice_user_id",
                 "team_id", "amount_residual", "invoice_date_due", "partner_id.name", "invoice_user_id.name"}
            ),  # fmt: skip
        ),
        ModelSpec(
            model="account.payment",
            date_fields={"default": "date"},
            states={
                "confirmed": (DomainClause("state", "in", ["posted", "paid"]),),
                "draft": (DomainClause("state", "=", "draft"),),
                "cancelled": (DomainClause("state", "in", ["cancel", "canceled"]),),
            },
            filter_fields=frozenset(
                {"payment_type", "partner_type", "partner_id", "journal_id", "company_id", "partner_id.name"}
            ),
        ),
        ModelSpec(
            model="crm.lead",
            date_fields={"default": "create_date", "closed": "date_closed", "deadline": "date_deadline"},
            datetime_fields=frozenset({"create_date", "date_closed"}),
            base=(DomainClause("type", "=", "opportunity"),),
            default_state="open",
            states={
                "open": (DomainClause("active", "=", True), DomainClause("probability", "<", 100)),
                "won": (DomainClause("active", "=", True), DomainClause("probability", "=", 100)),
                "lost": (DomainClause("active", "=", False), DomainClause("probability", "=", 0)),
                "open_or_won": (DomainClause("active", "=", True),),
            },
            filter_fields=frozenset(
                {"stage_id", "user_id", "team_id", "partner_id", "tag_ids", "lost_reason_id", "name",
                 "partner_id.name", "expected_revenue", "priority"}
            ),  # fmt: skip
        ),
    )
}


def get_model_spec(model: str) -> ModelSpec:
    try:
        return MODEL_SPECS[model]
    except KeyError:
        raise DomainError(f"Unknown ERP model '{model}'") from None


def date_field_for(model: str, role: str = "default") -> str:
    spec = get_model_spec(model)
    try:
        return spec.date_fields[role]
    except KeyError:
        raise DomainError(f"Model '{model}' has no '{role}' date field") from None


def _check_field(spec: ModelSpec, name: str) -> None:
    if name not in spec.filter_fields:
        allowed = ", ".join(sorted(spec.filter_fields))
        raise DomainError(f"Field '{name}' cannot be filtered on '{spec.model}'. Allowed: {allowed}")


def _filter_clause(name: str, value: Any) -> DomainClause:
    if isinstance(value, list | tuple | set | frozenset):
        return DomainClause(name, "in", sorted(value) if isinstance(value, set | frozenset) else list(value))
    return DomainClause(name, "=", value)


def build_domain(
    model: str,
    period: Period | None = None,
    filters: Mapping[str, Any] | None = None,
    *,
    state: str | None = None,
    date_role: str = "default",
    clauses: Sequence[DomainClause | tuple[str, str, Any]] = (),
) -> Domain:
    """Build an AND-combined domain for ``model``.

    Order of clauses: base clauses, period bounds on the model's date field
    for ``date_role``, the state filter (model default unless ``state`` names
    another one, or ``"all"`` to drop it), equality/inclusion ``filters``,
    then extra ``clauses``. ``None`` filter values are skipped.
    """
    spec = get_model_spec(model)
    domain: Domain = list(spec.base)

    if period is not None:
        date_field = date_field_for(model, date_role)
        end = period.end.isoformat()
        if date_field in spec.datetime_fields:
            end = f"{end} 23:59:59"
        domain.append(DomainClause(date_field, ">=", period.start.isoformat()))
        domain.append(DomainClause(date_field, "<=", end))

    state_name = spec.default_state if state is None else state
    if state_name is not None and state_name != ALL_STATES:
        try:
            domain.extend(spec.states[state_name])
        except KeyError:
            known = ", ".join(sorted([*spec.states, ALL_STATES]))
            raise DomainError(f"Unknown state '{state_name}' for '{model}'. Known: {known}") from None

    for name, value in (filters or {}).items():
        if value is None:
            continue
        _check_field(spec, name)
        domain.append(_filter_clause(name, value))

    for clause in clauses:
        name, operator, value = clause
        _check_field(spec, name)
        if operator not in OPERATORS:
            raise DomainError(f"Unsupported domain operator '{operator}'")
        domain.append(DomainClause(name, operator, value))

    return domain


def to_wire(domain: Sequence[DomainClause | Sequence[Any] | str] | None) -> list[Any]:
    """JSON-RPC form of a domain: clauses become lists, ``"|"``/``"&"``/``"!"`` pass through."""
    if not domain:
        return []
    return [clause if isinstance(clause, str) else list(clause) for clause in domain]
