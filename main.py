"""
Main entry point for the stranger matching service.
Initializes database, Redis, the matchmaking core and the FastAPI server.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI
import uvicorn

from config.settings import settings
from db.database import AsyncSessionLocal, init_db, close_db
from db.repository import MatchRepository
from core.memory_store import InMemoryPoolStore
from core.queue_store import RedisPoolStore, WaitingPoolStore
from api.app import build_services, create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def setup_redis() -> redis.Redis:
    """Setup Redis connection with connection pooling."""
    try:
        redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
            decode_responses=False,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )

        # Test connection
        await redis_client.ping()
        logger.info("✅ Redis connected successfully with connection pooling")

        return redis_client
    except Exception as e:
        logger.error(f"❌ Failed to connect to Redis: {e}")
        raise


async def setup_store() -> WaitingPoolStore:
    """Setup the waiting pool store for the configured backend."""
    if settings.MATCHMAKING_BACKEND == "memory":
        logger.info("✅ Waiting pools initialized (in-memory backend)")
        return InMemoryPoolStore()

    store = RedisPoolStore(await setup_redis())
    logger.info("✅ Waiting pools initialized (redis backend)")
    return store


def make_lifespan(store: WaitingPoolStore):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for FastAPI app."""
        # Startup
        logger.info("🚀 Starting application...")

        # Initialize database
        try:
            await init_db()
            logger.info("✅ Database initialized")
        except Exception as e:
            logger.error(f"❌ Failed to initialize database: {e}")

        yield

        # Shutdown
        logger.info("🛑 Shutting down application...")

        try:
            await close_db()
            logger.info("✅ Database closed")
        except Exception as e:
            logger.error(f"❌ Error closing database: {e}")

        await store.close()
        logger.info("✅ Waiting pool store closed")

    return lifespan


async def main():
    """Build the service and run the FastAPI server."""
    if settings.self_match_allowed:
        logger.warning("⚠️ Self matching is enabled; never use this outside development")

    store = await setup_store()
    services = build_services(store, MatchRepository(AsyncSessionLocal), settings)
    app = create_app(services, lifespan=make_lifespan(store))

    config = uvicorn.Config(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("👋 Application stopped by user")
    except Exception as e:
        logger.error(f"❌ Application error: {e}")
