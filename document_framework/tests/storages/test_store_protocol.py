import pytest

from document_framework.exceptions import AlreadyExists, InvalidIdentity, InvalidValue, NotFound, TypeMismatch
from document_framework.storages import UNDEFINED, Store


@pytest.mark.asyncio
async def test_set_get_and_delete(store: Store):
    await store.set("Movie", "movie1", True, {"title": "Inception", "year": 2010})

    assert await store.get("Movie", "movie1") == {"_type": "Movie", "_id": "movie1", "title": "Inception", "year": 2010}
    assert await store.get("Movie", "movie1", {"title": True}) == {"_type": "Movie", "_id": "movie1", "title": "Inception"}
    assert await store.get("Movie", "movie1", {}) == {"_type": "Movie", "_id": "movie1"}
    assert await store.get("Movie", "movie1", False) == {"_type": "Movie", "_id": "movie1"}
    assert await store.get("Movie", "movie2") is None

    await store.set("Movie", "movie1", False, {"title": "The Matrix", "year": UNDEFINED})
    assert await store.get("Movie", "movie1") == {"_type": "Movie", "_id": "movie1", "title": "The Matrix"}

    assert await store.delete("Movie", "movie1") == {"_type": "Movie", "_id": "movie1"}
    assert await store.get("Movie", "movie1") is None
    assert await store.delete("Movie", "movie1") == {}


@pytest.mark.asyncio
async def test_set_checks_existence(store: Store):
    with pytest.raises(NotFound, match="Document not found"):
        await store.set("Movie", "movie1", False, {"title": "Inception"})

    await store.set("Movie", "movie1", True, {"title": "Inception"})

    with pytest.raises(AlreadyExists, match="Document already exists"):
        await store.set("Movie", "movie1", True, {"title": "Inception"})


@pytest.mark.asyncio
@pytest.mark.parametrize("type_name, id", [("", "movie1"), (42, "movie1"), ("Movie", ""), ("Movie", None)])
async def test_identities_are_validated(store: Store, type_name, id):
    with pytest.raises(InvalidIdentity):
        await store.get(type_name, id)
    with pytest.raises(InvalidIdentity):
        await store.set(type_name, id, True, {})
    with pytest.raises(InvalidIdentity):
        await store.delete(type_name, id)


@pytest.mark.asyncio
async def test_none_is_never_a_value(store: Store):
    with pytest.raises(InvalidValue):
        await store.set("Movie", "movie1", True, {"title": None})
    with pytest.raises(InvalidValue):
        await store.set("Movie", "movie1", True, {"tags": ["a", None]})
    with pytest.raises(InvalidValue):
        await store.set("Movie", "movie1", True, {"tags": ["a", UNDEFINED]})

    # A rejected write leaves nothing behind
    assert await store.get("Movie", "movie1") is None


@pytest.mark.asyncio
async def test_nested_documents_are_written_recursively(store: Store):
    await store.set(
        "Movie",
        "movie1",
        True,
        {
            "title": "Inception",
            "trailer": {"_type": "Trailer", "_id": "trailer1", "_is_new": True, "url": "https://example.com"},
            "director": {"_type": "Director", "_id": "director1"},
            "technical_specs": {"_type": "TechnicalSpecs", "color": True, "aspect_ratio": "2.39:1"},
        },
    )

    assert await store.get("Trailer", "trailer1") == {"_type": "Trailer", "_id": "trailer1", "url": "https://example.com"}
    # Stubs are stored as is, without writing the referenced document
    assert await store.get("Director", "director1") is None

    assert await store.get("Movie", "movie1", {"trailer": {}, "director": {}, "technical_specs": {"color": True}}) == {
        "_type": "Movie",
        "_id": "movie1",
        "trailer": {"_type": "Trailer", "_id": "trailer1"},
        "director": {"_type": "Director", "_id": "director1"},
        "technical_specs": {"_type": "TechnicalSpecs", "color": True},
    }

    await store.set("Movie", "movie1", False, {"trailer": {"_type": "Trailer", "_id": "trailer1", "url": "https://example.com/2"}})
    assert (await store.get("Movie", "movie1"))["trailer"] == {
        "_type": "Trailer",
        "_id": "trailer1",
        "url": "https://example.com/2",
    }


@pytest.mark.asyncio
async def test_arrays(store: Store):
    await store.set("Actor", "actor1", True, {"full_name": "Leonardo DiCaprio"})
    await store.set("Actor", "actor2", True, {"full_name": "Joseph Gordon-Levitt"})
    await store.set(
        "Movie",
        "movie1",
        True,
        {
            "tags": ["dream", "heist"],
            "actors": [{"_type": "Actor", "_id": "actor1"}, {"_type": "Actor", "_id": "actor2"}],
        },
    )

    assert await store.get("Movie", "movie1", {"tags": True, "actors": [{"full_name": True}]}) == {
        "_type": "Movie",
        "_id": "movie1",
        "tags": ["dream", "heist"],
        "actors": [
            {"_type": "Actor", "_id": "actor1", "full_name": "Leonardo DiCaprio"},
            {"_type": "Actor", "_id": "actor2", "full_name": "Joseph Gordon-Levitt"},
        ],
    }

    with pytest.raises(TypeMismatch):
        await store.get("Movie", "movie1", {"actors": {"full_name": True}})
    with pytest.raises(TypeMismatch):
        await store.get("Movie", "movie1", {"tags": [{}, {}]})


@pytest.mark.asyncio
async def test_selection_shapes_are_checked(store: Store):
    await store.set("Movie", "movie1", True, {"title": "Inception"})

    with pytest.raises(TypeMismatch):
        await store.get("Movie", "movie1", [True])
    with pytest.raises(TypeMismatch):
        await store.get("Movie", "movie1", {"title": [True]})
    with pytest.raises(TypeMismatch):
        await store.get("Movie", "movie1", {"title": {"length": True}})


@pytest.mark.asyncio
async def test_delete_cascades_first(store: Store):
    await store.set(
        "Movie",
        "movie1",
        True,
        {
            "trailer": {"_type": "Trailer", "_id": "trailer1", "_is_new": True, "url": "https://example.com"},
            "clips": [{"_type": "Clip", "_id": "clip1", "_is_new": True, "url": "https://example.com/clip"}],
        },
    )

    result = await store.delete(
        "Movie",
        "movie1",
        {"trailer": {"_type": "Trailer", "_id": "trailer1"}, "clips": [{"_type": "Clip", "_id": "clip1"}], "poster": UNDEFINED},
    )

    assert result == {
        "_type": "Movie",
        "_id": "movie1",
        "trailer": {"_type": "Trailer", "_id": "trailer1"},
        "clips": [{"_type": "Clip", "_id": "clip1"}],
    }
    assert await store.get("Trailer", "trailer1") is None
    assert await store.get("Clip", "clip1") is None

    with pytest.raises(TypeMismatch):
        await store.delete("Movie", "movie1", {"trailer": None})
    with pytest.raises(TypeMismatch):
        await store.delete("Movie", "movie1", {"trailer": "trailer1"})


@pytest.mark.asyncio
async def test_find(store: Store):
    await store.set("Movie", "movie1", True, {"title": "Inception", "genre": "action"})
    await store.set("Movie", "movie2", True, {"title": "Forrest Gump", "genre": "drama"})
    await store.set("Movie", "movie3", True, {"title": "Léon", "genre": "action"})

    async def ids(**kwargs):
        return [record["_id"] for record in await store.find("Movie", **kwargs)]

    assert await ids() == ["movie1", "movie2", "movie3"]
    assert await ids(filter={"genre": "action"}) == ["movie1", "movie3"]
    assert await ids(filter={"genre": "action"}, skip=1) == ["movie3"]
    assert await ids(skip=1, limit=1) == ["movie2"]
    assert await ids(filter={"country": "France"}) == []
    assert await store.find("Movie", {"genre": "drama"}, selection={"title": True}) == [
        {"_type": "Movie", "_id": "movie2", "title": "Forrest Gump"}
    ]
    assert await store.find("Series") == []

    with pytest.raises(ValueError):
        await store.find("Movie", skip=-1)
    with pytest.raises(InvalidValue):
        await store.find("Movie", {"genre": None})
