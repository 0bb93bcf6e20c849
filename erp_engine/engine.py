"""Query engine: the single entry point that runs a named skill for a request.

The engine owns the process-wide pieces (skill registry, query cache,
settings) and hands each skill an ERP client bound to the caller's
credentials. Clients are reused per tenant and credential set, so a tenant
logs in once per process rather than once per question. At most
``erp_max_clients`` clients are kept, least recently used first out.
"""

import logging
from collections import OrderedDict
from collections.abc import Callable
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from erp_engine.cache import QueryCache
from erp_engine.config import Settings, get_settings
from erp_engine.erp.client import ErpCredentials, OdooClient, RetryPolicy
from erp_engine.skills.base import SkillContext, SkillInput, SkillResult, failure
from erp_engine.skills.registry import SkillRegistry, UnknownSkillError, build_registry

logger = logging.getLogger(__name__)

type ClientKey = tuple[str, str, str, str, str]


class QueryEngine:
    def __init__(
        self,
        registry: SkillRegistry | None = None,
        cache: QueryCache | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry or build_registry()
        self.cache = cache or QueryCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
        )
        self.retry = RetryPolicy(
            max_attempts=self.settings.erp_max_attempts,
            base_delay=self.settings.erp_retry_base_delay,
            max_delay=self.settings.erp_retry_max_delay,
        )
        self._tz = ZoneInfo(self.settings.timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self.max_clients = max(1, self.settings.erp_max_clients)
        self._clients: OrderedDict[ClientKey, OdooClient] = OrderedDict()

    def today(self) -> date:
        """Current date in the configured business timezone."""
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(self._tz)
        return now.date()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def client_for(self, context: SkillContext, credentials: ErpCredentials) -> OdooClient:
        key = (context.tenant_id, credentials.url, credentials.db, credentials.username, credentials.api_key)
        client = self._clients.get(key)
        if client is not None:
            self._clients.move_to_end(key)
            return client

        # A tenant keeps one live credential set; rotated keys replace the old client.
        for stale in [k for k in self._clients if k[0] == context.tenant_id]:
            del self._clients[stale]
            logger.info("Dropped superseded ERP client for tenant=%s", context.tenant_id)

        client = OdooClient(
            credentials,
            tenant_id=context.tenant_id,
            cache=self.cache,
            retry=self.retry,
            timeout=self.settings.erp_timeout_seconds,
        )
        self._clients[key] = client
        logger.debug("Created ERP client for tenant=%s db=%s", context.tenant_id, credentials.db)
        while len(self._clients) > self.max_clients:
            (evicted_tenant, *_), _ = self._clients.popitem(last=False)
            logger.debug("Evicted idle ERP client for tenant=%s", evicted_tenant)
        return client

    async def invoke(
        self,
        name: str,
        payload: dict[str, Any] | SkillInput | None,
        context: SkillContext,
    ) -> SkillResult:
        """Run skill ``name``. Never raises for skill-level failures."""
        try:
            skill = self.registry.get(name)
        except UnknownSkillError as exc:
            logger.warning("Unknown skill requested: %s (tenant=%s)", name, context.tenant_id)
            return failure(exc.code, exc.message, details=exc.details)
        return await skill.execute(payload, context, today=self.today(), connect=self.client_for)
