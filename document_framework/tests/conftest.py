from typing import AsyncGenerator

import pytest_asyncio
from _pytest.config.argparsing import Parser
from _pytest.fixtures import SubRequest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from document_framework.storages import MemoryStore, SqlAlchemyStore, Store


def pytest_addoption(parser: Parser) -> None:
    parser.addoption("--sqlalchemy-url", action="store", default="sqlite+aiosqlite://")


@pytest_asyncio.fixture()
async def engine(request: SubRequest) -> AsyncGenerator[AsyncEngine, None]:
    connection_url = request.config.getoption("--sqlalchemy-url")
    assert connection_url, "You have to define --sqlalchemy-url cmd line option!"
    engine = create_async_engine(connection_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def sqlalchemy_store(engine: AsyncEngine) -> AsyncGenerator[SqlAlchemyStore, None]:
    store = SqlAlchemyStore(engine)
    yield store
    await store.drop_all()


@pytest_asyncio.fixture(params=["memory", "sqlalchemy"])
async def store(request: SubRequest, engine: AsyncEngine) -> AsyncGenerator[Store, None]:
    if request.param == "memory":
        yield MemoryStore()
        return

    store = SqlAlchemyStore(engine)
    yield store
    await store.drop_all()
