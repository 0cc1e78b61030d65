from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager

from subgames.config import Config
from subgames.database.models import Base, User, AccountType
from subgames.utils.exceptions import DatabaseError
from subgames.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to create tables: {e}")
            raise DatabaseError("initialization", str(e))

        self.logger.info("Database initialized successfully")

    @property
    def session_factory(self):
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context will be committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # User operations
    async def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by their caller identity"""
        async with self.get_session() as session:
            return await session.get(User, user_id)

    async def register_creator(self, user_id: str, display_name: str,
                               promotional_url: str, photo_url: str = '') -> User:
        """Upgrade (or create) a user as a creator with a promotional link"""
        async with self.transaction() as session:
            user = await session.get(User, user_id)
            if user is None:
                user = User(id=user_id, display_name=display_name)
                session.add(user)
            user.display_name = display_name
            user.account_type = AccountType.CREATOR.value
            user.promotional_url = promotional_url
            if photo_url:
                user.photo_url = photo_url
            self.logger.info(f"User {user_id} registered as creator")
            return user

    async def get_creators(self):
        async with self.get_session() as session:
            result = await session.execute(
                select(User)
                .where(User.account_type == AccountType.CREATOR.value)
                .order_by(User.display_name)
            )
            return list(result.scalars().all())
