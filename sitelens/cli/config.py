# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the sitelens CLI.
"""

import json
from typing import Annotated

import typer

from sitelens.cli.shared import C, I
from sitelens.infrastructure.cache import check_valkey_connection
from sitelens.infrastructure.repositories import check_postgresql_connection
from sitelens.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
    check: Annotated[
        bool, typer.Option("--check", help="Also test PostgreSQL and Valkey connectivity")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()
    analytics = settings.analytics
    horizon = settings.plan.retention_horizon_days

    connectivity = None
    if check:
        connectivity = {
            "postgresql": check_postgresql_connection(settings),
            "valkey": check_valkey_connection(settings) if settings.valkey.enabled else None,
        }

    # JSON output mode
    if json_output:
        config = {
            "postgresql": {
                "host": settings.postgres.host,
                "port": settings.postgres.port,
                "database": settings.postgres.database,
                "schema": settings.postgres.schema_name,
                "user": settings.postgres.user,
                "password": settings.postgres.password,
                "sslmode": settings.postgres.sslmode,
                "statement_timeout_ms": settings.postgres.statement_timeout_ms,
            },
            "valkey": {
                "enabled": settings.valkey.enabled,
                "host": settings.valkey.host,
                "port": settings.valkey.port,
                "db": settings.valkey.db,
                "ssl_enabled": settings.valkey.ssl,
                "password": settings.valkey.password,
                "cache_ttl_seconds": settings.valkey.cache_ttl_seconds,
            },
            "analytics": analytics.model_dump(),
            "plan": {
                "name": settings.plan.name,
                "retention_horizon_days": horizon,
                "strict_retention_horizon": settings.plan.strict_retention_horizon,
            },
            "log_level": settings.log_level,
        }
        if connectivity is not None:
            config["connectivity"] = connectivity
        print(json.dumps(config, indent=2))
        return

    # Human-readable output
    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    print(f"{C.CYAN}PostgreSQL{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.postgres.host}:{settings.postgres.port}{C.RESET}")
    print(f"  Database:   {C.WHITE}{settings.postgres.database}{C.RESET}")
    print(f"  Schema:     {C.WHITE}{settings.postgres.schema_name}{C.RESET}")
    print(f"  User:       {C.WHITE}{settings.postgres.user}{C.RESET}")
    print(f"  SSL:        {C.WHITE}{settings.postgres.sslmode}{C.RESET}")
    print(f"  Timeout:    {C.WHITE}{settings.postgres.statement_timeout_ms:,} ms{C.RESET}")
    print()

    print(f"{C.CYAN}Valkey report cache{C.RESET}")
    cache_status = "enabled" if settings.valkey.enabled else "disabled"
    print(f"  Status:     {C.WHITE}{cache_status}{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.valkey.host}:{settings.valkey.port}{C.RESET}")
    print(f"  TTL:        {C.WHITE}{settings.valkey.cache_ttl_seconds}s{C.RESET}")
    print()

    print(f"{C.CYAN}Analytics{C.RESET}")
    print(f"  Session timeout:  {C.WHITE}{analytics.session_timeout_minutes} min{C.RESET}")
    print(f"  Goal event:       {C.WHITE}{analytics.goal_event}{C.RESET}")
    print(f"  Lookback window:  {C.WHITE}{analytics.lookback_window_days} days{C.RESET}")
    offsets = ", ".join(str(o) for o in analytics.retention_day_offsets)
    print(f"  Retention days:   {C.WHITE}{offsets}{C.RESET}")
    print(f"  Transitions:      {C.WHITE}{analytics.max_transitions}{C.RESET}")
    print(f"  Query deadline:   {C.WHITE}{analytics.query_timeout_seconds:g}s{C.RESET}")
    print()

    print(f"{C.CYAN}Plan{C.RESET}")
    print(f"  Name:       {C.WHITE}{settings.plan.name}{C.RESET}")
    horizon_text = "unlimited" if horizon < 0 else f"{horizon} days"
    print(f"  Retention:  {C.WHITE}{horizon_text}{C.RESET}")
    mode = "reject" if settings.plan.strict_retention_horizon else "clamp start"
    print(f"  Beyond:     {C.WHITE}{mode}{C.RESET}")
    print()

    if connectivity is not None:
        print(f"{C.CYAN}Connectivity{C.RESET}")
        for name, ok in connectivity.items():
            if ok is None:
                badge = f"{C.DIM}skipped{C.RESET}"
            elif ok:
                badge = f"{C.BRIGHT_GREEN}{I.CHECK} reachable{C.RESET}"
            else:
                badge = f"{C.BRIGHT_RED}{I.CROSS} unreachable{C.RESET}"
            print(f"  {name + ':':<11} {badge}")
        print()
