"""Tests for the Odoo domain builder."""

from datetime import date

import pytest

from erp_engine.dates.periods import Period
from erp_engine.domain.builder import (
    MODEL_SPECS,
    DomainClause,
    DomainError,
    build_domain,
    date_field_for,
    to_wire,
)

JANUARY = Period(start=date(2026, 1, 1), end=date(2026, 1, 31))


class TestDateFields:
    def test_purchase_report_uses_date_order(self) -> None:
        domain = build_domain("purchase.report", JANUARY)
        assert DomainClause("date_order", ">=", "2026-01-01") in domain
        assert DomainClause("date_order", "<=", "2026-01-31 23:59:59") in domain

    def test_sale_report_uses_date(self) -> None:
        assert date_field_for("sale.report") == "date"

    def test_plain_date_field_has_no_time_suffix(self) -> None:
        domain = build_domain("account.move", JANUARY)
        assert DomainClause("invoice_date", "<=", "2026-01-31") in domain

    def test_date_role(self) -> None:
        domain = build_domain("crm.lead", JANUARY, state="lost", date_role="closed")
        assert DomainClause("date_closed", ">=", "2026-01-01") in domain

    def test_unknown_date_role(self) -> None:
        with pytest.raises(DomainError, match="no 'closed' date field"):
            build_domain("sale.report", JANUARY, date_role="closed")

    def test_every_model_has_a_default_date_field(self) -> None:
        for model in MODEL_SPECS:
            assert date_field_for(model)


class TestStates:
    def test_default_confirmed_state(self) -> None:
        domain = build_domain("sale.report")
        assert domain == [DomainClause("state", "in", ["sale", "done"])]

    def test_state_override(self) -> None:
        domain = build_domain("purchase.order", state="draft")
        assert DomainClause("state", "in", ["draft", "sent", "to approve"]) in domain
        assert all(c.value != ["purchase", "done"] for c in domain)

    def test_all_drops_state_filter(self) -> None:
        assert build_domain("sale.order", state="all") == []

    def test_unknown_state(self) -> None:
        with pytest.raises(DomainError, match="Unknown state 'paid'"):
            build_domain("sale.report", state="paid")

    def test_crm_base_clause_and_default_open(self) -> None:
        domain = build_domain("crm.lead")
        assert domain[0] == DomainClause("type", "=", "opportunity")
        assert DomainClause("probability", "<", 100) in domain

    def test_subscription_states(self) -> None:
        domain = build_domain("sale.order", state="subscription_churned")
        assert DomainClause("subscription_state", "in", ["churn", "closed"]) in domain


class TestFilters:
    def test_none_values_are_skipped(self) -> None:
        domain = build_domain("sale.report", filters={"partner_id": None, "team_id": 3})
        assert domain[-1] == DomainClause("team_id", "=", 3)
        assert not any(c.field == "partner_id" for c in domain)

    def test_lists_become_in(self) -> None:
        domain = build_domain("account.payment", filters={"journal_id": [7, 8]}, state="all")
        assert domain == [DomainClause("journal_id", "in", [7, 8])]

    def test_unknown_field(self) -> None:
        with pytest.raises(DomainError, match="cannot be filtered"):
            build_domain("sale.report", filters={"secret_field": 1})

    def test_unknown_operator(self) -> None:
        with pytest.raises(DomainError, match="Unsupported domain operator"):
            build_domain("account.move", clauses=[("amount_residual", "=like", 0)])

    def test_extra_clauses_come_last(self) -> None:
        domain = build_domain("account.move", JANUARY, clauses=[("amount_residual", ">", 0)])
        assert domain[-1] == DomainClause("amount_residual", ">", 0)

    def test_unknown_model(self) -> None:
        with pytest.raises(DomainError, match="Unknown ERP model"):
            build_domain("res.users")


class TestWire:
    def test_to_wire(self) -> None:
        domain = build_domain("purchase.report", JANUARY)
        assert to_wire(domain) == [
            ["date_order", ">=", "2026-01-01"],
            ["date_order", "<=", "2026-01-31 23:59:59"],
            ["state", "in", ["purchase", "done"]],
        ]

    def test_to_wire_keeps_prefix_operators(self) -> None:
        domain = ["|", ("name", "ilike", "acme"), DomainClause("ref", "=", "A-1")]
        assert to_wire(domain) == ["|", ["name", "ilike", "acme"], ["ref", "=", "A-1"]]
        assert to_wire(None) == []
