"""
Configuration store for Book Imbiber.
Handles DB persistence of runtime configuration with in-process caching.
"""

import json
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from imbiber.config import RuntimeConfig, set_runtime_config
from imbiber.models import AppConfig

logger = logging.getLogger(__name__)


async def ensure_config(session: AsyncSession) -> RuntimeConfig:
    """
    Ensure configuration exists in database.
    If no config exists, seeds the defaults; otherwise loads the stored one.

    Args:
        session: Database session.

    Returns:
        The active runtime configuration (also placed in the in-process cache).
    """
    result = await session.execute(select(AppConfig).where(AppConfig.id == 1))
    existing = result.scalar_one_or_none()

    if existing is None:
        logger.info("Initializing application configuration...")
        runtime_config = RuntimeConfig()
        session.add(AppConfig(id=1, runtime_json=runtime_config.model_dump_json()))
        await session.commit()
        set_runtime_config(runtime_config)
        return runtime_config

    return await load_config_to_cache(session)


async def load_config_to_cache(session: AsyncSession) -> RuntimeConfig:
    """
    Load configuration from database into in-process cache.

    Args:
        session: Database session.

    Returns:
        The loaded configuration, or defaults if the stored JSON is unusable.
    """
    app_config = await get_db_config(session)

    if app_config is None:
        logger.warning("No configuration found in database, using defaults")
        runtime_config = RuntimeConfig()
    else:
        try:
            runtime_config = RuntimeConfig.model_validate(json.loads(app_config.runtime_json))
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Failed to parse runtime config: {e}, using defaults")
            runtime_config = RuntimeConfig()

    set_runtime_config(runtime_config)
    logger.debug("Configuration loaded from database")
    return runtime_config


async def get_db_config(session: AsyncSession) -> Optional[AppConfig]:
    """Get the raw AppConfig row from database."""
    result = await session.execute(select(AppConfig).where(AppConfig.id == 1))
    return result.scalar_one_or_none()


async def update_runtime_config(
    session: AsyncSession,
    updates: dict,
) -> RuntimeConfig:
    """
    Update runtime configuration in database and cache.

    Args:
        session: Database session.
        updates: Dictionary of field updates.

    Returns:
        Updated RuntimeConfig.

    Raises:
        ValueError: If configuration was never initialized or the updates
            fail validation.
    """
    app_config = await get_db_config(session)

    if app_config is None:
        raise ValueError("Configuration not initialized")

    try:
        current_data = json.loads(app_config.runtime_json)
    except json.JSONDecodeError:
        current_data = {}

    current_data.update(updates)

    # Validate with Pydantic model
    new_config = RuntimeConfig.model_validate(current_data)

    app_config.runtime_json = new_config.model_dump_json()
    await session.commit()

    set_runtime_config(new_config)

    logger.info(f"Runtime configuration updated: {list(updates.keys())}")
    return new_config
