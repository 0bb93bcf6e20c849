"""Command line helpers for the ERP query engine.

Usage:
    erp-engine period "desde julio del año pasado" [--today 2026-01-14]
    erp-engine skills
    erp-engine run get_sales_total '{"period": "este mes"}'
    erp-engine serve [--host 0.0.0.0] [--port 8000]

``run`` reads the Odoo connection from ODOO_URL, ODOO_DB, ODOO_USERNAME and
ODOO_API_KEY (environment or .env).
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

import uvicorn
from pydantic import ValidationError

from erp_engine.config import get_settings
from erp_engine.dates.periods import AmbiguousPeriodError, PeriodParseError, parse_period
from erp_engine.engine import QueryEngine
from erp_engine.erp.client import ErpCredentials
from erp_engine.skills.base import SkillContext, TenantCredentials

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


def _period(phrase: str, today: date | None) -> int:
    engine_today = today or QueryEngine().today()
    try:
        period = parse_period(phrase, engine_today)
    except AmbiguousPeriodError as exc:
        print(f"Ambiguous: {exc}", file=sys.stderr)
        for candidate in exc.candidates:
            print(f"  {candidate.start.isoformat()} .. {candidate.end.isoformat()}  ({candidate.describe()})")
        return 2
    except PeriodParseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"{period.start.isoformat()} .. {period.end.isoformat()}  ({period.describe()}, {period.days} días)")
    return 0


def _skills() -> int:
    for skill in QueryEngine().registry.skills:
        summary = skill.description.splitlines()[0] if skill.description else ""
        print(f"{skill.name:28s} {summary}")
    return 0


async def _run(name: str, raw_input: str) -> int:
    settings = get_settings()
    try:
        payload = json.loads(raw_input) if raw_input else {}
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON input: {exc}", file=sys.stderr)
        return 1
    try:
        credentials = ErpCredentials(
            url=settings.odoo_url,
            db=settings.odoo_db,
            username=settings.odoo_username,
            api_key=settings.odoo_api_key,
        )
    except ValidationError:
        print("Odoo connection not configured. Set ODOO_URL, ODOO_DB, ODOO_USERNAME and ODOO_API_KEY.")
        return 1

    context = SkillContext(
        user_id="cli",
        tenant_id=settings.odoo_db,
        credentials=TenantCredentials(odoo=credentials),
        locale=settings.default_locale,
    )
    result = await QueryEngine(settings=settings).invoke(name, payload, context)
    print(json.dumps(result.to_json(), ensure_ascii=False, indent=2))
    return 0 if result.success else 1


def _serve(host: str | None, port: int | None) -> int:
    settings = get_settings()
    uvicorn.run(
        "erp_engine.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def main() -> None:
    """Parse args and dispatch the subcommand."""
    parser = argparse.ArgumentParser(description="ERP query engine tools")
    sub = parser.add_subparsers(dest="command", required=True)

    period_cmd = sub.add_parser("period", help="Resolve a Spanish time phrase to a date range")
    period_cmd.add_argument("phrase", type=str)
    period_cmd.add_argument("--today", type=date.fromisoformat, default=None, help="Reference date (YYYY-MM-DD)")

    sub.add_parser("skills", help="List available skills")

    run_cmd = sub.add_parser("run", help="Run a skill against the configured Odoo instance")
    run_cmd.add_argument("skill", type=str)
    run_cmd.add_argument("input", type=str, nargs="?", default="{}", help="Skill input as a JSON object")

    serve_cmd = sub.add_parser("serve", help="Run the HTTP API")
    serve_cmd.add_argument("--host", type=str, default=None)
    serve_cmd.add_argument("--port", type=int, default=None)

    args = parser.parse_args()
    if args.command == "period":
        sys.exit(_period(args.phrase, args.today))
    if args.command == "skills":
        sys.exit(_skills())
    if args.command == "serve":
        sys.exit(_serve(args.host, args.port))
    sys.exit(asyncio.run(_run(args.skill, args.input)))


if __name__ == "__main__":
    main()
