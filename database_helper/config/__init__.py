"""
Expose the loaded configuration as ``settings``.

Importing from this module will load environment variables and
populate a ``Settings`` instance. Example:

    from database_helper.config import settings
    print(settings.connection.host)
"""

from .env import settings, Settings, ConnectionConfig  # noqa: F401
