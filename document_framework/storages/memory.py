import typing

from document_framework.storages.base import Record, RecordStore


class MemoryStore(RecordStore):
    """In-memory store over a ``type -> (id -> record)`` mapping.

    Serves as the reference implementation of the store protocol; data is lost
    with the instance.
    """

    def __init__(self) -> None:
        self._collections: typing.Dict[str, typing.Dict[str, Record]] = {}

    async def _load(self, type_name: str, id: str) -> typing.Optional[Record]:
        return self._collections.get(type_name, {}).get(id)

    async def _save(self, type_name: str, id: str, document: Record, is_new: bool) -> None:
        self._collections.setdefault(type_name, {})[id] = document

    async def _remove(self, type_name: str, id: str) -> bool:
        collection = self._collections.get(type_name, {})
        if id not in collection:
            return False
        del collection[id]
        return True

    async def _scan(self, type_name: str) -> typing.List[typing.Tuple[str, Record]]:
        return list(self._collections.get(type_name, {}).items())
