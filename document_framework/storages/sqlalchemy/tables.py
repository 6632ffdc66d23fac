import asyncio
import typing

import inflection
from sqlalchemy import JSON, Column, Integer, MetaData, String, Table
from sqlalchemy.ext.asyncio import AsyncEngine


def table_name(type_name: str) -> str:
    return inflection.pluralize(inflection.underscore(type_name))


class TableRegistry:
    """Creates one table per document type on first use."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._metadata = MetaData()
        self._tables: typing.Dict[str, Table] = {}
        self._lock = asyncio.Lock()

    async def table(self, type_name: str) -> Table:
        if type_name in self._tables:
            return self._tables[type_name]

        async with self._lock:
            if type_name not in self._tables:
                table = Table(
                    table_name(type_name),
                    self._metadata,
                    Column("seq", Integer, primary_key=True, autoincrement=True),
                    Column("id", String(255), nullable=False, unique=True),
                    Column("data", JSON, nullable=False),
                    extend_existing=True,
                )
                async with self._engine.begin() as connection:
                    await connection.run_sync(table.create, checkfirst=True)
                self._tables[type_name] = table

        return self._tables[type_name]

    async def drop_all(self) -> None:
        async with self._engine.begin() as connection:
            await connection.run_sync(self._metadata.drop_all)
        self._metadata.clear()
        self._tables.clear()
