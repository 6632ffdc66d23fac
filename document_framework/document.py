import logging
import typing

from document_framework import codec, hooks
from document_framework import selection as selections
from document_framework.codec import RecordReader, RecordWriter
from document_framework.exceptions import NotFound
from document_framework.model import Entity, Model, Presence
from document_framework.schema import EmbeddedFieldNode
from document_framework.storages.base import Selection, validate_id

logger = logging.getLogger(__name__)

DocumentType = typing.TypeVar("DocumentType", bound="Document")


def _not_found(type_name: str, id: str, throw_if_not_found: bool) -> None:
    if throw_if_not_found:
        raise NotFound(type_name, id)
    return None


async def _run(instances: typing.Iterable[Model], event: str) -> None:
    for instance in instances:
        await hooks.run(instance, event)


class Document(Entity):
    """Entity persisted as its own record in the layer store.

    Lifecycle: a constructed document is new until its first :meth:`save`, and
    deleted (terminal) after :meth:`delete`. Fields may be partially loaded; see
    :meth:`get` and :meth:`load` for how fetched data merges into live instances.
    """

    _is_document = True

    @classmethod
    def _selection(cls, fields: typing.Any) -> Selection:
        registry = cls._bound_layer().registry
        return selections.validate(registry.schema(cls.__name__), fields, registry)

    @classmethod
    async def get(
        cls: typing.Type[DocumentType], id: str, fields: typing.Any = True, throw_if_not_found: bool = True
    ) -> typing.Optional[DocumentType]:
        """Returns the live instance for ``id``, fetching ``fields`` into it.

        An instance already present in the layer is returned as is, with the fetched
        fields merged into it; fields it already knows keep their value and
        ``after_load`` hooks do not run again.
        """

        layer = cls._bound_layer()
        validate_id(id)
        selection = cls._selection(fields)
        identity_map = layer.identity_map

        pending = identity_map.pending(cls.__name__, id)
        if pending is not None:
            await pending

        instance = identity_map.get(cls.__name__, id)
        if instance is not None:
            return await instance._fetch(selection, overwrite=False, throw_if_not_found=throw_if_not_found)

        # Registration happens before the fetch so that concurrent lookups find the pending identity
        reader = RecordReader(layer)
        instance = reader.materialize(cls, id)
        identity_map.begin_materializing(cls.__name__, id)
        try:
            record = await layer.store.get(cls.__name__, id, selection)
        except Exception:
            identity_map.unregister(instance)
            raise
        finally:
            identity_map.end_materializing(cls.__name__, id)

        if record is None:
            identity_map.unregister(instance)
            return _not_found(cls.__name__, id, throw_if_not_found)

        reader.merge(instance, record, selection)
        await _run(reader.materialized, hooks.AFTER_LOAD)
        return instance

    @classmethod
    async def find(
        cls: typing.Type[DocumentType],
        filter: typing.Optional[typing.Dict[str, typing.Any]] = None,
        skip: int = 0,
        limit: typing.Optional[int] = None,
        fields: typing.Any = True,
    ) -> typing.List[DocumentType]:
        """Documents whose stored fields equal every value of ``filter``, in insertion order."""

        layer = cls._bound_layer()
        selection = cls._selection(fields)
        schema = layer.registry.schema(cls.__name__)
        records = await layer.store.find(cls.__name__, codec.convert_filter(schema, filter), skip, limit, selection)

        reader = RecordReader(layer)
        result = []
        for record in records:
            instance = layer.identity_map.get(cls.__name__, record["_id"])
            if instance is None:
                instance = reader.materialize(cls, record["_id"])
            result.append(reader.merge(instance, record, selection))

        await _run(reader.materialized, hooks.AFTER_LOAD)
        return result

    async def load(self: DocumentType, fields: typing.Any = True, throw_if_not_found: bool = True) -> typing.Optional[DocumentType]:
        """Fetches ``fields`` again and fills in the ones this instance does not know yet."""
        self._ensure_not_deleted()
        return await self._fetch(self._selection(fields), overwrite=False, throw_if_not_found=throw_if_not_found)

    async def reload(self: DocumentType, throw_if_not_found: bool = True) -> typing.Optional[DocumentType]:
        """Fetches every field again, replacing known values and discarding unsaved changes."""
        self._ensure_not_deleted()
        return await self._fetch(True, overwrite=True, throw_if_not_found=throw_if_not_found)

    async def _fetch(self, selection: Selection, overwrite: bool, throw_if_not_found: bool) -> typing.Optional["Document"]:
        layer = type(self)._bound_layer()
        type_name = type(self).__name__
        record = await layer.store.get(type_name, self.id, selection)
        if record is None:
            return _not_found(type_name, self.id, throw_if_not_found)

        reader = RecordReader(layer, overwrite=overwrite)
        reader.merge(self, record, selection)
        await _run(reader.materialized, hooks.AFTER_LOAD)
        return self

    async def save(self: DocumentType) -> DocumentType:
        self._ensure_not_deleted()
        layer = type(self)._bound_layer()

        # Dry run to know which embedded instances the write is going to include
        planned = RecordWriter()
        planned.changes(self)
        instances = [self, *planned.written]
        await _run(instances, hooks.BEFORE_SAVE)

        writer = RecordWriter()
        changes = writer.changes(self)
        is_new = self.is_new
        logger.debug("Saving %s/%s (new: %s, fields: %s)", type(self).__name__, self.id, is_new, sorted(changes))
        await layer.store.set(type(self).__name__, self.id, is_new, changes)

        instances = [self, *writer.written]
        for instance in instances:
            instance._mark_saved()
        await _run(instances, hooks.AFTER_SAVE)
        return self

    async def delete(self: DocumentType) -> DocumentType:
        """Deletes the document and the subdocuments it embeds; referenced documents stay."""

        self._ensure_not_deleted()
        layer = type(self)._bound_layer()

        unknown = {
            node.name: [{}] if node.is_list else {}
            for node in self._schema
            if isinstance(node, EmbeddedFieldNode)
            and node.type._has_identity
            and self._get_field(node.name).presence is Presence.UNKNOWN
        }
        if unknown and not self.is_new:
            # The store can only cascade to subdocuments whose identity is known
            await self._fetch(unknown, overwrite=False, throw_if_not_found=False)

        instances = [self, *codec.embedded_instances(self)]
        await _run(instances, hooks.BEFORE_DELETE)

        logger.debug("Deleting %s/%s", type(self).__name__, self.id)
        await layer.store.delete(type(self).__name__, self.id, codec.cascade(self))

        for instance in instances:
            instance._mark_deleted()
            if instance._has_identity:
                layer.identity_map.unregister(instance)
        await _run(instances, hooks.AFTER_DELETE)
        return self
