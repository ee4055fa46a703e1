"""
Startup configuration validation module.

This module provides startup-time validation for critical configuration
to catch misconfigurations early (fail-fast) rather than at runtime when
a customer tries to book.

Usage:
    from shared.startup_validator import validate_startup_config, StartupValidationError

    async def main():
        try:
            validate_startup_config()
        except StartupValidationError as e:
            logger.critical(f"Startup blocked: {e}")
            sys.exit(1)
"""

import logging

from sqlalchemy import text

from shared.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StartupValidationError(Exception):
    """Raised when critical startup validation fails."""

    pass


def validate_startup_config(settings: Settings | None = None) -> dict[str, bool]:
    """
    Validate all critical configuration at startup.

    Performs tiered validation:
    - TIER 1 (CRITICAL): Block startup if any fail
    - TIER 2 (IMPORTANT): Warn but allow startup

    Args:
        settings: Settings to validate (defaults to the cached application settings)

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

    # 1. Modification token window must be positive
    if settings.MODIFICATION_TOKEN_TTL_HOURS <= 0:
        critical_failures.append(
            f"MODIFICATION_TOKEN_TTL_HOURS must be positive (got {settings.MODIFICATION_TOKEN_TTL_HOURS})"
        )
        results["modification_token_ttl"] = False
    else:
        results["modification_token_ttl"] = True

    # 2. Tokens must carry enough entropy to be unguessable
    if settings.ACTION_TOKEN_BYTES < 16:
        critical_failures.append(
            f"ACTION_TOKEN_BYTES must be at least 16 (got {settings.ACTION_TOKEN_BYTES})"
        )
        results["action_token_entropy"] = False
    else:
        results["action_token_entropy"] = True

    # 3. Slot defaults must be usable
    if settings.DEFAULT_SLOT_DURATION_MINUTES <= 0 or settings.DEFAULT_MAX_BOOKINGS_PER_SLOT <= 0:
        critical_failures.append(
            "DEFAULT_SLOT_DURATION_MINUTES and DEFAULT_MAX_BOOKINGS_PER_SLOT must be positive"
        )
        results["slot_defaults"] = False
    else:
        results["slot_defaults"] = True

    # =========================================================================
    # TIER 2: IMPORTANT (warn but allow startup)
    # =========================================================================

    # 4. Database URL format validation
    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        logger.warning(
            "DATABASE_URL should use asyncpg driver: postgresql+asyncpg://..."
        )
        results["database_url_format"] = False
    else:
        results["database_url_format"] = True

    # 5. Read replica (optional)
    if settings.READ_DATABASE_URL is None:
        logger.info("  [INFO] READ_DATABASE_URL not set - slot listing uses the primary")
        results["read_replica_configured"] = False
    else:
        results["read_replica_configured"] = True

    # =========================================================================
    # Summary and result
    # =========================================================================

    passed = sum(1 for v in results.values() if v)
    total = len(results)
    logger.info(f"Startup validation: {passed}/{total} checks passed")

    if critical_failures:
        logger.critical("=" * 60)
        logger.critical("STARTUP BLOCKED - Critical configuration errors:")
        for i, failure in enumerate(critical_failures, 1):
            logger.critical(f"  {i}. {failure}")
        logger.critical("=" * 60)
        raise StartupValidationError(
            f"Critical startup validation failed ({len(critical_failures)} errors): "
            f"{'; '.join(critical_failures)}"
        )

    return results


async def validate_database_connection() -> bool:
    """
    Validate database connection is working.

    This is a separate check because it's slower and may be called
    after basic config validation.

    Returns:
        True if database connection successful, False otherwise
    """
    from database.connection import get_async_session

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))

        logger.info("  [OK] Database connection successful")
        return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
