"""Factory for creating ordered store instances."""

from genqueue.adapters.memory_store import InMemoryOrderedStore
from genqueue.adapters.redis_store import RedisOrderedStore
from genqueue.config.logging_config import get_logger, redact_credentials
from genqueue.config.settings import Settings
from genqueue.ports.ordered_store import OrderedStorePort

logger = get_logger(__name__)


def create_store(settings: Settings) -> OrderedStorePort:
    """Create the ordered store selected by settings.

    Args:
        settings: Application settings

    Returns:
        Store instance (Redis or in-memory)

    Raises:
        ValueError: If store_backend is not supported
    """
    if settings.store_backend == "redis":
        logger.info(
            "store_redis_selected", url=redact_credentials(settings.redis_url)
        )
        password = (
            settings.redis_password.get_secret_value()
            if settings.redis_password
            else None
        )
        return RedisOrderedStore.from_url(
            settings.redis_url,
            password=password,
            socket_timeout_seconds=settings.redis_socket_timeout_seconds,
        )

    elif settings.store_backend == "memory":
        logger.info("store_memory_selected")
        return InMemoryOrderedStore()

    else:
        raise ValueError(
            f"Unsupported store backend: {settings.store_backend}. "
            f"Must be 'redis' or 'memory'"
        )
