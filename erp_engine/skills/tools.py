"""LangChain adapters: expose every registered skill as a StructuredTool.

The tool schema is the skill's input model, so an agent sees the same
validation rules as the HTTP API. Tools return the JSON result envelope,
failures included, so the model can read the error code and react.
"""

import json
import logging
from typing import Any

from langchain_core.tools import BaseTool, StructuredTool

from erp_engine.engine import QueryEngine
from erp_engine.skills.base import Skill, SkillContext

logger = logging.getLogger(__name__)


def _make_tool(engine: QueryEngine, skill: Skill, context: SkillContext) -> BaseTool:
    async def run(**kwargs: Any) -> str:
        result = await engine.invoke(skill.name, kwargs, context)
        return json.dumps(result.to_json(), ensure_ascii=False)

    return StructuredTool.from_function(
        coroutine=run,
        name=skill.name,
        description=skill.description,
        args_schema=skill.input_model,
    )


def build_tools(engine: QueryEngine, context: SkillContext, tags: set[str] | None = None) -> list[BaseTool]:
    """Tools bound to one request context, optionally limited to skills carrying any of ``tags``."""
    skills = engine.registry.skills
    if tags:
        skills = [s for s in skills if tags.intersection(s.tags)]
    tools = [_make_tool(engine, s, context) for s in skills]
    logger.info("Built %d skill tools for tenant=%s", len(tools), context.tenant_id)
    return tools
