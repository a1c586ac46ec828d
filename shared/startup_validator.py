"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
a customer tries to book.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    try:
        validate_startup_config()
    except StartupValidationError as e:
        logger.critical(f"Startup blocked: {e}")
        raise
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

ASYNC_DRIVERS = ("postgresql+asyncpg://", "sqlite+aiosqlite://")
PLACEHOLDER_JWT_SECRET = "change-this-jwt-secret"


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def validate_startup_config(settings: Settings | None = None) -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Returns:
        dict of {check_name: passed} for all validations

    Raises:
        StartupValidationError: If any CRITICAL check fails
    """
    settings = settings or get_settings()
    results: dict[str, bool] = {}
    critical_failures: list[str] = []

    # =========================================================================
    # TIER 1: CRITICAL (block startup if any fail)
    # =========================================================================

    # 1. Database URL uses an async driver
    if not settings.DATABASE_URL.startswith(ASYNC_DRIVERS):
        critical_failures.append(
            "DATABASE_URL must use an async driver: postgresql+asyncpg:// or sqlite+aiosqlite://"
        )
        results["database_url_format"] = False
    else:
        results["database_url_format"] = True

    # 2. Policy windows are positive
    windows = {
        "BOOKING_MIN_LEAD_MINUTES": settings.BOOKING_MIN_LEAD_MINUTES,
        "CANCELLATION_CUTOFF_HOURS": settings.CANCELLATION_CUTOFF_HOURS,
        "BOOKING_HORIZON_DAYS": settings.BOOKING_HORIZON_DAYS,
        "DEFAULT_SLOT_DURATION_MINUTES": settings.DEFAULT_SLOT_DURATION_MINUTES,
    }
    invalid = [name for name, value in windows.items() if value <= 0]
    if invalid:
        critical_failures.append(f"Booking policy values must be positive: {', '.join(invalid)}")
        results["policy_windows"] = False
    else:
        results["policy_windows"] = True
        logger.info("  [OK] Booking policy windows configured")

    # 3. JWT secret is not the placeholder (tolerated on SQLite development setups)
    using_sqlite = settings.DATABASE_URL.startswith("sqlite")
    if not settings.JWT_SECRET or settings.JWT_SECRET == PLACEHOLDER_JWT_SECRET:
        if using_sqlite:
            logger.warning("JWT_SECRET is the default placeholder - acceptable for local SQLite only")
        else:
            critical_failures.append(
                "JWT_SECRET is not set. Generate a secure secret with: openssl rand -hex 32"
            )
        results["jwt_secret"] = False
    else:
        results["jwt_secret"] = True

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 4. SQLite is for development and tests only
    if using_sqlite:
        logger.warning("DATABASE_URL points to SQLite - writes are serialised database-wide")
        results["production_database"] = False
    else:
        results["production_database"] = True

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results


async def validate_database_connection(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """
    Validate database connection is working.

    Returns:
        True if database connection successful, False otherwise
    """
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))

        logger.info("  [OK] Database connection successful")
        return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
