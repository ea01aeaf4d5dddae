"""
Database handle factory.

Builds connected ``Database`` handles from the environment settings
(see ``database_helper.config.env.Settings``), optionally overriding the
connection settings or the driver.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from ...config import settings
from ...config.env import ConnectionConfig
from .database import Database
from .drivers import Driver, get_driver

ERROR_LOGGER_NAME = "database_helper.errors"


def open_database(config: Union[ConnectionConfig, Mapping[str, Any], None] = None,
                  driver: Union[Driver, str, None] = None,
                  logger: Optional[logging.Logger] = None) -> Database:
    """Open a new database handle.

    Args:
        config: Connection settings.  Fields left unset fall back to the
            environment settings.
        driver: Driver adapter or name.  Defaults to ``DB_DRIVER``.
        logger: Error logger for the handle.  When omitted and
            ``DB_LOG_ERRORS`` is set, the ``database_helper.errors``
            logger is used.

    Returns:
        A connected ``Database`` handle.

    Raises:
        KeyError: If the driver name is not registered.
        ConnectionError: If the driver cannot connect.
    """
    if config is None:
        merged = settings.connection
    else:
        if not isinstance(config, ConnectionConfig):
            config = ConnectionConfig.from_mapping(config)
        merged = settings.connection.merged(config)
    if driver is None:
        driver = settings.DB_DRIVER
    if isinstance(driver, str):
        driver = get_driver(driver)
    if logger is None and settings.DB_LOG_ERRORS:
        logger = logging.getLogger(ERROR_LOGGER_NAME)
    return Database.from_config(merged, driver=driver, logger=logger)
