import logging
import typing

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from document_framework.storages.base import Record, RecordStore
from document_framework.storages.sqlalchemy.tables import TableRegistry

logger = logging.getLogger(__name__)


class SqlAlchemyStore(RecordStore):
    """Store keeping every record as a JSON row of a per-type table.

    Runs over an :class:`~sqlalchemy.ext.asyncio.AsyncEngine`, e.g.
    ``create_async_engine("sqlite+aiosqlite:///movies.db")``. The ``seq`` column
    preserves insertion order for ``find``. Each raw write runs in its own
    transaction; cascaded writes are therefore committed one by one.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._tables = TableRegistry(engine)

    async def _load(self, type_name: str, id: str) -> typing.Optional[Record]:
        table = await self._tables.table(type_name)
        async with self._engine.connect() as connection:
            result = await connection.execute(select(table.c.data).where(table.c.id == id))
            row = result.first()
        if row is None:
            return None
        return dict(row.data)

    async def _save(self, type_name: str, id: str, document: Record, is_new: bool) -> None:
        table = await self._tables.table(type_name)
        if is_new:
            statement = insert(table).values(id=id, data=document)
        else:
            statement = update(table).where(table.c.id == id).values(data=document)
        async with self._engine.begin() as connection:
            await connection.execute(statement)

    async def _remove(self, type_name: str, id: str) -> bool:
        table = await self._tables.table(type_name)
        async with self._engine.begin() as connection:
            result = await connection.execute(delete(table).where(table.c.id == id))
        return result.rowcount > 0

    async def _scan(self, type_name: str) -> typing.List[typing.Tuple[str, Record]]:
        table = await self._tables.table(type_name)
        async with self._engine.connect() as connection:
            result = await connection.execute(select(table.c.id, table.c.data).order_by(table.c.seq))
            rows = result.fetchall()
        return [(row.id, dict(row.data)) for row in rows]

    async def drop_all(self) -> None:
        await self._tables.drop_all()

    async def close(self) -> None:
        logger.debug("Disposing engine %s", self._engine.url)
        await self._engine.dispose()
