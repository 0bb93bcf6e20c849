"""Immutable name-to-skill catalog."""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from erp_engine.erp.errors import ErpError, ErrorCode
from erp_engine.skills.base import Skill
from erp_engine.skills.odoo.crm import get_crm_pipeline, get_lost_opportunities, search_crm_opportunities
from erp_engine.skills.odoo.customers import get_inactive_customers
from erp_engine.skills.odoo.margins import get_product_margin
from erp_engine.skills.odoo.payables import get_accounts_payable
from erp_engine.skills.odoo.payments import get_payments_made, get_payments_received
from erp_engine.skills.odoo.products import get_purchase_price_history, search_products
from erp_engine.skills.odoo.purchases import get_purchases_by_supplier, get_purchases_total
from erp_engine.skills.odoo.receivables import get_debt_by_customer, get_overdue_invoices
from erp_engine.skills.odoo.sales import (
    compare_sales_periods,
    get_sales_by_category,
    get_sales_by_seller,
    get_sales_total,
    get_top_customers,
    get_top_products,
)
from erp_engine.skills.odoo.subscriptions import (
    get_subscription_churn,
    get_subscription_detail,
    get_subscription_health,
)

logger = logging.getLogger(__name__)

ODOO_SKILLS: tuple[Skill, ...] = (
    get_sales_total,
    get_sales_by_category,
    get_sales_by_seller,
    get_top_customers,
    get_top_products,
    compare_sales_periods,
    get_purchases_total,
    get_purchases_by_supplier,
    get_purchase_price_history,
    search_products,
    get_product_margin,
    get_debt_by_customer,
    get_overdue_invoices,
    get_accounts_payable,
    get_payments_received,
    get_payments_made,
    get_crm_pipeline,
    get_lost_opportunities,
    search_crm_opportunities,
    get_inactive_customers,
    get_subscription_health,
    get_subscription_churn,
    get_subscription_detail,
)


class UnknownSkillError(ErpError):
    code = ErrorCode.UNKNOWN_SKILL

    def __init__(self, name: str, known: Iterable[str]) -> None:
        super().__init__(f"Unknown skill '{name}'", details={"available": sorted(known)})
        self.name = name


class SkillRegistry:
    """Read-only mapping of skill names to skills, fixed at construction."""

    def __init__(self, skills: Iterable[Skill]) -> None:
        by_name: dict[str, Skill] = {}
        for skill in skills:
            if skill.name in by_name:
                raise ValueError(f"Duplicate skill name '{skill.name}'")
            by_name[skill.name] = skill
        self._skills: Mapping[str, Skill] = MappingProxyType(by_name)

    def get(self, name: str) -> Skill:
        try:
            return self._skills[name]
        except KeyError:
            raise UnknownSkillError(name, self._skills) from None

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    def __len__(self) -> int:
        return len(self._skills)

    @property
    def names(self) -> list[str]:
        return list(self._skills)

    @property
    def skills(self) -> list[Skill]:
        return list(self._skills.values())

    def by_tag(self, tag: str) -> list[Skill]:
        return [s for s in self._skills.values() if tag in s.tags]


def build_registry() -> SkillRegistry:
    registry = SkillRegistry(ODOO_SKILLS)
    logger.info("Skill registry built with %d skills", len(registry))
    return registry
