import asyncio
import typing

from document_framework.model import Entity

Key = typing.Tuple[str, str]


class IdentityMap:
    """Live instances of one layer, by ``(model name, id)``.

    Entries are never evicted; they live as long as the layer. Besides the
    instances themselves the map tracks identities whose first fetch is in
    flight, so that concurrent lookups wait for it instead of materializing
    the same identity twice.
    """

    def __init__(self) -> None:
        self._instances: typing.Dict[Key, Entity] = {}
        self._materializing: typing.Dict[Key, asyncio.Future] = {}

    def get(self, model_name: str, id: str) -> typing.Optional[Entity]:
        return self._instances.get((model_name, id))

    def register(self, instance: Entity) -> Entity:
        return self._instances.setdefault((type(instance).__name__, instance.id), instance)

    def unregister(self, instance: Entity) -> None:
        key = (type(instance).__name__, instance.id)
        if self._instances.get(key) is instance:
            del self._instances[key]

    def pending(self, model_name: str, id: str) -> typing.Optional[asyncio.Future]:
        return self._materializing.get((model_name, id))

    def begin_materializing(self, model_name: str, id: str) -> None:
        self._materializing[(model_name, id)] = asyncio.get_running_loop().create_future()

    def end_materializing(self, model_name: str, id: str) -> None:
        future = self._materializing.pop((model_name, id), None)
        if future is not None and not future.done():
            future.set_result(None)

    def __contains__(self, key: Key) -> bool:
        return key in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def __iter__(self) -> typing.Iterator[Entity]:
        return iter(list(self._instances.values()))
