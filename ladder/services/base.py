"""
Base service class for the ladder read models.

Provides async database session management and retry logic for service
layer queries.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.utils.exceptions import PersistenceError

logger = logging.getLogger(__name__)

class BaseService:
    """Base class for all services with async database session management."""
    
    def __init__(self, session_factory):
        """
        Initialize base service with session factory.
        
        Args:
            session_factory: Async session factory from the Database class
        """
        self.session_factory = session_factory
    
    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
    
    async def execute_with_retry(self, func: Callable, max_retries: int = 3) -> Any:
        """
        Execute a query with automatic retry on database errors.
        
        Raises:
            PersistenceError: once every attempt has failed
        """
        for attempt in range(max_retries):
            try:
                return await func()
            except SQLAlchemyError as e:
                if attempt == max_retries - 1:
                    raise PersistenceError(func.__name__, str(e)) from e
                logger.warning(f"Retry attempt {attempt + 1} for {func.__name__}: {e}")
                await asyncio.sleep(0.1 * (2 ** attempt))  # Exponential backoff
