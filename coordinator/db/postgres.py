"""PostgreSQL database connection and operations"""
from typing import Iterable, List, Optional, Type

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.future import select
from sqlalchemy import delete

from coordinator.db.models import (Base, AlertModel, DeviceModel, ProductModel,
                                   ProductSnapshotModel, ProjectModel,
                                   RecipeModel, RecipeSnapshotModel, TaskModel)
from shared.models import (Alert, Device, Product, ProductSnapshot, Project,
                           Recipe, RecipeSnapshot, Task)

# Domain document -> ORM table
DOCUMENT_TABLES = {
    Recipe: RecipeModel,
    Product: ProductModel,
    RecipeSnapshot: RecipeSnapshotModel,
    ProductSnapshot: ProductSnapshotModel,
    Project: ProjectModel,
    Task: TaskModel,
    Device: DeviceModel,
    Alert: AlertModel,
}


class PostgresDB:
    """PostgreSQL database manager"""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(database_url,
                                          echo=False,
                                          pool_pre_ping=True)
        self.async_session = async_sessionmaker(self.engine,
                                                class_=AsyncSession,
                                                expire_on_commit=False)

    async def init_db(self):
        """Initialize database schema"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """Close database connections"""
        await self.engine.dispose()

    def _to_row(self, entity: BaseModel):
        """Build the ORM row for a document: key columns plus the full JSON body"""
        table = DOCUMENT_TABLES[type(entity)]
        columns = {
            column.name: getattr(entity, column.name)
            for column in table.__table__.columns if column.name != "document"
        }
        return table(document=entity.model_dump(mode="json"), **columns)

    # Document operations
    async def save_document(self, entity: BaseModel) -> None:
        """Save or update a single document"""
        async with self.async_session() as session:
            await session.merge(self._to_row(entity))
            await session.commit()

    async def save_documents(self, entities: Iterable[BaseModel]) -> None:
        """Save several documents in one transaction (all or nothing)"""
        async with self.async_session() as session:
            async with session.begin():
                for entity in entities:
                    await session.merge(self._to_row(entity))

    async def get_document(self, kind: Type[BaseModel],
                           entity_id: str) -> Optional[BaseModel]:
        """Get a document by ID"""
        table = DOCUMENT_TABLES[kind]
        async with self.async_session() as session:
            result = await session.execute(
                select(table).where(table.id == entity_id))
            row = result.scalar_one_or_none()
            return kind.model_validate(row.document) if row else None

    async def list_documents(self, kind: Type[BaseModel]) -> List[BaseModel]:
        """List all documents of a kind"""
        table = DOCUMENT_TABLES[kind]
        async with self.async_session() as session:
            result = await session.execute(select(table))
            return [
                kind.model_validate(row.document)
                for row in result.scalars().all()
            ]

    async def delete_documents(self, kind: Type[BaseModel],
                               entity_ids: List[str]) -> None:
        """Delete documents by ID"""
        if not entity_ids:
            return
        table = DOCUMENT_TABLES[kind]
        async with self.async_session() as session:
            await session.execute(delete(table).where(table.id.in_(entity_ids)))
            await session.commit()
