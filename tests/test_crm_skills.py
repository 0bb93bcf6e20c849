"""Tests for the CRM skills."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

from erp_engine.domain.builder import DomainClause
from erp_engine.erp.records import Record
from erp_engine.skills.odoo.crm import get_crm_pipeline, get_lost_opportunities, search_crm_opportunities


def _rows(*data: dict[str, Any]) -> list[Record]:
    return [Record(d) for d in data]


STAGES = _rows(
    {"stage_id": [1, "Nuevo"], "stage_id_count": 3, "expected_revenue": 3000.0, "probability": 10.0},
    {"stage_id": [2, "Propuesta"], "stage_id_count": 1, "expected_revenue": 1000.0, "probability": 50.0},
)


class TestCrmPipeline:
    async def test_open_pipeline(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = STAGES

        result = await run_skill(get_crm_pipeline)

        data = result.data
        assert data.total_opportunities == 4
        assert data.total_expected_revenue == 4000.0
        assert data.weighted_revenue == 800.0
        assert data.avg_probability == 20
        assert [s.stage_name for s in data.stages] == ["Nuevo", "Propuesta"]
        assert data.won_count is None
        assert data.period is None
        domain = erp.read_group.await_args.args[1]
        assert domain[0] == DomainClause("type", "=", "opportunity")
        assert DomainClause("probability", "<", 100) in domain
        erp.search_count.assert_not_awaited()

    async def test_all_adds_won_and_lost(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = STAGES

        def search_count(model: str, domain: list, **kwargs: Any) -> int:
            return 2 if DomainClause("probability", "=", 100) in domain else 5

        erp.search_count.side_effect = search_count

        result = await run_skill(get_crm_pipeline, {"status": "all", "period": "este año"})

        assert (result.data.won_count, result.data.lost_count) == (2, 5)
        assert result.data.period.start.isoformat() == "2026-01-01"
        domain = erp.read_group.await_args.args[1]
        assert not any(c.field == "probability" for c in domain)
        assert DomainClause("create_date", ">=", "2026-01-01") in domain

    async def test_empty_pipeline(self, run_skill: Callable[..., Any]) -> None:
        result = await run_skill(get_crm_pipeline)

        assert result.data.total_opportunities == 0
        assert result.data.avg_probability == 0


class TestLostOpportunities:
    async def test_reasons_and_deals(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.read_group.return_value = _rows(
            {"lost_reason_id": False, "lost_reason_id_count": 1, "expected_revenue": 1000.0},
            {"lost_reason_id": [1, "Precio"], "lost_reason_id_count": 3, "expected_revenue": 9000.0},
        )
        erp.search_read.return_value = _rows(
            {"id": 8, "name": "Renovación", "partner_id": [4, "Acme"], "lost_reason_id": [1, "Precio"],
             "expected_revenue": 5000.0, "stage_id": [2, "Propuesta"], "date_closed": "2026-01-10 10:00:00",
             "user_id": False},
        )  # fmt: skip

        result = await run_skill(get_lost_opportunities, {"tag_id": 6})

        data = result.data
        assert data.total_lost == 4
        assert data.total_lost_revenue == 10_000.0
        assert [(r.reason_name, r.percentage) for r in data.lost_reasons] == [
            ("Precio", 75.0),
            ("Sin motivo especificado", 25.0),
        ]
        assert data.lost_reasons[1].reason_id is None
        [deal] = data.top_lost_deals
        assert (deal.partner, deal.reason, deal.user) == ("Acme", "Precio", "Sin asignar")
        assert "Principal motivo: Precio (75%)" in data.summary

        domain = erp.read_group.await_args.args[1]
        assert DomainClause("active", "=", False) in domain
        assert DomainClause("date_closed", ">=", "2026-01-01") in domain
        assert DomainClause("tag_ids", "in", [6]) in domain

    async def test_nothing_lost(self, run_skill: Callable[..., Any]) -> None:
        result = await run_skill(get_lost_opportunities)

        assert result.data.total_lost == 0
        assert result.data.lost_reasons == []
        assert "Principal motivo" not in result.data.summary


class TestSearchOpportunities:
    LEADS = _rows(
        {"id": 1, "name": "Licencias", "partner_id": [10, "Acme"], "stage_id": [2, "Propuesta"], "tag_ids": [5, 6],
         "expected_revenue": 4000.0, "probability": 40.0, "user_id": [3, "Ana"], "create_date": "2026-01-02 09:00:00",
         "date_closed": False, "order_ids": [100, 101]},
        {"id": 2, "name": "Soporte", "partner_id": False, "stage_id": [1, "Nuevo"], "tag_ids": [6],
         "expected_revenue": 1000.0, "probability": 10.0, "user_id": False, "create_date": "2026-01-05 11:00:00",
         "date_closed": False, "order_ids": []},
    )  # fmt: skip

    @staticmethod
    def _search_read(model: str, domain: list, fields: list, **kwargs: Any) -> list[Record]:
        if model == "crm.lead":
            return TestSearchOpportunities.LEADS
        if model == "res.partner":
            return _rows({"id": 10, "email": "compras@acme.test", "phone": False})
        if model == "crm.tag":
            return _rows({"id": 5, "name": "Enterprise"})
        if model == "sale.order":
            return _rows(
                {"id": 100, "name": "S00100", "amount_total": 1500.0, "state": "sent"},
                {"id": 101, "name": "S00101", "amount_total": 500.0, "state": "draft"},
            )
        raise AssertionError(f"unexpected model {model}")

    async def test_enriched_results(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.search_read.side_effect = self._search_read

        result = await run_skill(search_crm_opportunities, {"tag_id": 6, "include_quotes": True})

        data = result.data
        assert data.total_count == 2
        assert data.total_expected_revenue == 5000.0
        first, second = data.opportunities
        assert first.partner_email == "compras@acme.test"
        assert first.partner_phone is None
        assert first.tags == ["Enterprise", "Tag 6"]
        assert [q.name for q in first.quotes] == ["S00100", "S00101"]
        assert first.quotes_total == 2000.0
        assert (second.partner, second.user, second.quotes) == ("Sin contacto", "Sin asignar", None)

        models = [c.args[0] for c in erp.search_read.await_args_list]
        assert sorted(models) == ["crm.lead", "crm.tag", "res.partner", "sale.order"]
        assert erp.search_read.call_args_list[1].args[1] == [("id", "in", [10])]
        erp.search_count.assert_not_awaited()

    async def test_full_page_counts_total(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        erp.search_read.side_effect = self._search_read
        erp.search_count.return_value = 37

        result = await run_skill(search_crm_opportunities, {"limit": 2})

        assert result.data.total_count == 37
        assert result.data.opportunities[0].quotes is None
        fields = erp.search_read.await_args_list[0].args[2]
        assert "order_ids" not in fields

    async def test_no_matches(self, run_skill: Callable[..., Any], erp: AsyncMock) -> None:
        result = await run_skill(search_crm_opportunities, {"stage_id": 9})

        assert result.data.total_count == 0
        assert result.data.opportunities == []
        erp.search_read.assert_awaited_once()
