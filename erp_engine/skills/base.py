"""Skill contract: request context, result envelope and the ``Skill`` wrapper.

A skill is a named, schema-validated async handler that answers one business
question with read-only ERP calls. ``Skill.execute`` is the boundary that
never raises: every failure becomes a ``SkillFailure`` with a stable code.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, ValidationError
from pydantic.alias_generators import to_camel

from erp_engine.dates.periods import AmbiguousPeriodError, Period, PeriodParseError
from erp_engine.domain.builder import DomainError
from erp_engine.erp.client import ErpCredentials, OdooClient
from erp_engine.erp.errors import ErpError, ErrorCode
from erp_engine.observability.metrics import SKILL_CALLS_TOTAL, SKILL_DURATION

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "es-AR"


# --- Request context ---


class TenantCredentials(BaseModel):
    """Per-system credentials resolved by the caller. Only Odoo is used here."""

    model_config = ConfigDict(frozen=True)

    odoo: ErpCredentials | None = None


class SkillContext(BaseModel):
    """Request-scoped, immutable identity and credentials for one invocation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    tenant_id: str
    credentials: TenantCredentials = Field(default_factory=TenantCredentials)
    locale: str = DEFAULT_LOCALE


# --- Schemas ---


class SkillInput(BaseModel):
    """Base for skill parameter schemas. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class SkillOutput(BaseModel):
    """Base for skill payloads. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Result envelope ---


class SkillError(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None
    retryable: bool = False


class ResultMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    skill: str
    execution_ms: int
    source: str = "odoo"


class SkillSuccess(BaseModel):
    success: Literal[True] = True
    data: SerializeAsAny[SkillOutput]
    metadata: ResultMetadata | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SkillFailure(BaseModel):
    success: Literal[False] = False
    error: SkillError
    metadata: ResultMetadata | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


type SkillResult = SkillSuccess | SkillFailure


def failure(
    code: ErrorCode,
    message: str,
    *,
    details: dict[str, Any] | None = None,
    retryable: bool = False,
) -> SkillFailure:
    return SkillFailure(error=SkillError(code=code, message=message, details=details, retryable=retryable))


# --- Skill ---


@dataclass(frozen=True)
class SkillCall:
    """Everything a handler may use: its context, an ERP client and today's date."""

    context: SkillContext
    erp: OdooClient
    today: date


type Handler = Callable[[Any, SkillCall], Awaitable[SkillOutput]]
type ClientFactory = Callable[[SkillContext, ErpCredentials], OdooClient]


def _default_connect(context: SkillContext, credentials: ErpCredentials) -> OdooClient:
    return OdooClient(credentials, tenant_id=context.tenant_id)


@dataclass(frozen=True)
class Skill:
    name: str
    description: str
    input_model: type[SkillInput]
    handler: Handler
    tags: tuple[str, ...] = field(default=())

    def parameters_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()

    async def execute(
        self,
        payload: dict[str, Any] | SkillInput | None,
        context: SkillContext,
        *,
        today: date,
        connect: ClientFactory = _default_connect,
    ) -> SkillResult:
        """Validate, check credentials, run the handler and wrap the outcome."""
        start = time.monotonic()
        result = await self._run(payload, context, today=today, connect=connect)
        elapsed = time.monotonic() - start

        status = "success" if result.success else result.error.code.value
        SKILL_CALLS_TOTAL.labels(skill=self.name, status=status).inc()
        SKILL_DURATION.labels(skill=self.name).observe(elapsed)
        result.metadata = ResultMetadata(skill=self.name, execution_ms=int(elapsed * 1000))
        logger.info(
            "Skill %s finished for tenant=%s user=%s: %s (%.0fms)",
            self.name,
            context.tenant_id,
            context.user_id,
            status,
            elapsed * 1000,
        )
        return result

    async def _run(
        self,
        payload: dict[str, Any] | SkillInput | None,
        context: SkillContext,
        *,
        today: date,
        connect: ClientFactory,
    ) -> SkillResult:
        try:
            if isinstance(payload, self.input_model):
                params = payload
            else:
                raw = payload.model_dump() if isinstance(payload, BaseModel) else (payload or {})
                params = self.input_model.model_validate(raw)
        except ValidationError as exc:
            return failure(
                ErrorCode.VALIDATION_ERROR,
                f"Invalid input for {self.name}: {exc.error_count()} error(s)",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            )

        credentials = context.credentials.odoo
        if credentials is None:
            return failure(ErrorCode.AUTH_ERROR, "Odoo credentials are not configured for this tenant")

        logger.info("Running skill %s for tenant=%s", self.name, context.tenant_id)
        try:
            call = SkillCall(context=context, erp=connect(context, credentials), today=today)
            data = await self.handler(params, call)
        except AmbiguousPeriodError as exc:
            return failure(
                ErrorCode.VALIDATION_ERROR,
                str(exc),
                details={"candidates": [c.model_dump(mode="json") for c in exc.candidates]},
            )
        except (PeriodParseError, DomainError) as exc:
            return failure(ErrorCode.VALIDATION_ERROR, str(exc))
        except ErpError as exc:
            logger.warning("Skill %s failed with %s: %s", self.name, exc.code.value, exc.message)
            return failure(exc.code, exc.message, details=exc.details or None, retryable=exc.retryable)
        except Exception as exc:
            logger.exception("Unexpected error in skill %s", self.name)
            return failure(ErrorCode.API_ERROR, f"Unexpected error in {self.name}: {exc}")

        return SkillSuccess(data=data)


def skill(name: str, *, input_model: type[SkillInput], tags: tuple[str, ...] = ()) -> Callable[[Handler], Skill]:
    """Turn an async handler into a ``Skill``. The docstring becomes the description."""

    def decorator(handler: Handler) -> Skill:
        description = (handler.__doc__ or "").strip()
        return Skill(name=name, description=description, input_model=input_model, handler=handler, tags=tags)

    return decorator


PeriodArg = Period | str | None
