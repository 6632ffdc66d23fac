"""Store protocol consumed by the document layer, and its shared record semantics."""

import abc
import itertools
import logging
import typing

from document_framework.exceptions import AlreadyExists, InvalidIdentity, InvalidValue, NotFound, TypeMismatch

logger = logging.getLogger(__name__)

Record = typing.Dict[str, typing.Any]
Selection = typing.Union[bool, typing.Dict[str, typing.Any], typing.List[typing.Any]]
Expanding = typing.FrozenSet[typing.Tuple[str, str]]


class _Undefined:
    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


# Field change meaning "remove this field from the stored record"
UNDEFINED = _Undefined()


def validate_type(type_name: typing.Any) -> None:
    if not isinstance(type_name, str):
        raise InvalidIdentity(f"'_type' must be a string (provided: {type(type_name).__name__})")
    if type_name == "":
        raise InvalidIdentity("'_type' cannot be empty")


def validate_id(id: typing.Any) -> None:
    if not isinstance(id, str):
        raise InvalidIdentity(f"'_id' must be a string (provided: {type(id).__name__})")
    if id == "":
        raise InvalidIdentity("'_id' cannot be empty")


async def map_one_or_many(
    value: typing.Any, fn: typing.Callable[[typing.Any], typing.Awaitable[typing.Any]]
) -> typing.Any:
    if isinstance(value, list):
        return [await fn(element) for element in value]
    return await fn(value)


def _type_name(value: typing.Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


class Store(abc.ABC):
    """Contract of a persistence backend.

    Records are dictionaries ``{"_type": ..., "_id": ..., **fields}``. Nested documents
    appear as ``{"_type", "_id", ...}`` records or ``{"_type", "_id"}`` stubs depending
    on the selection, identity-less embedded values inline as ``{"_type", ...}``.
    """

    @abc.abstractmethod
    async def get(self, type_name: str, id: str, selection: Selection = True) -> typing.Optional[Record]:
        pass

    @abc.abstractmethod
    async def set(self, type_name: str, id: str, is_new: bool, changes: typing.Dict[str, typing.Any]) -> None:
        pass

    @abc.abstractmethod
    async def delete(
        self, type_name: str, id: str, cascade: typing.Optional[typing.Dict[str, typing.Any]] = None
    ) -> Record:
        pass

    @abc.abstractmethod
    async def find(
        self,
        type_name: str,
        filter: typing.Optional[typing.Dict[str, typing.Any]] = None,
        skip: int = 0,
        limit: typing.Optional[int] = None,
        selection: Selection = True,
    ) -> typing.List[Record]:
        pass

    async def close(self) -> None:
        pass


class RecordStore(Store):
    """Implements the store protocol on top of four raw record primitives.

    Backends only know how to load, save, remove and scan plain records of one
    collection. Field selection, cascading writes and deletes, validation and
    filtering live here so that every backend behaves the same way.
    """

    @abc.abstractmethod
    async def _load(self, type_name: str, id: str) -> typing.Optional[Record]:
        pass

    @abc.abstractmethod
    async def _save(self, type_name: str, id: str, document: Record, is_new: bool) -> None:
        pass

    @abc.abstractmethod
    async def _remove(self, type_name: str, id: str) -> bool:
        pass

    @abc.abstractmethod
    async def _scan(self, type_name: str) -> typing.List[typing.Tuple[str, Record]]:
        """``(id, record)`` pairs in insertion order."""

    async def get(self, type_name: str, id: str, selection: Selection = True) -> typing.Optional[Record]:
        logger.debug("get %s/%s selection=%r", type_name, id, selection)
        return await self._get(type_name, id, selection, frozenset())

    async def set(self, type_name: str, id: str, is_new: bool, changes: typing.Dict[str, typing.Any]) -> None:
        logger.debug("set %s/%s is_new=%s fields=%s", type_name, id, is_new, sorted(changes))
        await self._set(type_name, id, is_new, changes)

    async def delete(
        self, type_name: str, id: str, cascade: typing.Optional[typing.Dict[str, typing.Any]] = None
    ) -> Record:
        logger.debug("delete %s/%s cascade=%s", type_name, id, sorted(cascade or {}))
        return await self._delete(type_name, id, cascade or {})

    async def find(
        self,
        type_name: str,
        filter: typing.Optional[typing.Dict[str, typing.Any]] = None,
        skip: int = 0,
        limit: typing.Optional[int] = None,
        selection: Selection = True,
    ) -> typing.List[Record]:
        validate_type(type_name)
        if skip < 0 or (limit is not None and limit < 0):
            raise ValueError(f"'skip' and 'limit' must not be negative (skip: {skip}, limit: {limit})")
        filter = filter or {}
        for name, value in filter.items():
            self._check_value(name, value)

        logger.debug("find %s filter=%r skip=%s limit=%s", type_name, filter, skip, limit)
        matching = (id for id, document in await self._scan(type_name) if self._matches(document, filter))
        stop = None if limit is None else skip + limit
        return [await self._get(type_name, id, selection, frozenset()) for id in itertools.islice(matching, skip, stop)]

    # Reading

    async def _get(self, type_name: str, id: str, selection: Selection, expanding: Expanding) -> typing.Optional[Record]:
        validate_type(type_name)
        validate_id(id)
        if not isinstance(selection, (bool, dict)):
            raise TypeMismatch(f"A document selection must be a bool or an object (provided: '{_type_name(selection)}')")

        document = await self._load(type_name, id)
        if document is None:
            return None

        result: Record = {"_type": type_name, "_id": id}
        if selection is False:
            return result

        key = (type_name, id)
        if selection is True and key in expanding:
            # Full selections follow references, so a cycle ends with a stub
            return result

        result.update(await self._select(document, selection, expanding | {key}))
        return result

    async def _select(self, document: Record, selection: Selection, expanding: Expanding) -> Record:
        result = {}
        for name, value in document.items():
            if name.startswith("_"):
                continue

            field_selection = selection.get(name) if isinstance(selection, dict) else True
            if field_selection is None or field_selection is False:
                continue

            if isinstance(value, list) and not (field_selection is True or isinstance(field_selection, list)):
                raise TypeMismatch(
                    f"Type mismatch (field: '{name}', expected: 'bool' or 'array', "
                    f"provided: '{_type_name(field_selection)}')"
                )

            if isinstance(field_selection, list):
                if not isinstance(value, list):
                    raise TypeMismatch(
                        f"Type mismatch (field: '{name}', expected: 'bool' or 'object', provided: 'array')"
                    )
                if len(field_selection) != 1:
                    raise TypeMismatch(f"An array selection must wrap exactly one element selection (field: '{name}')")
                field_selection = field_selection[0]

            result[name] = await map_one_or_many(
                value, lambda element: self._project(name, element, field_selection, expanding)
            )
        return result

    async def _project(self, name: str, value: typing.Any, selection: Selection, expanding: Expanding) -> typing.Any:
        if value is None:
            raise InvalidValue(f"The 'None' value is not allowed (field: '{name}')")

        if not isinstance(value, dict):
            if selection is not True:
                raise TypeMismatch(
                    f"Type mismatch (field: '{name}', expected: 'bool', provided: '{_type_name(selection)}')"
                )
            return value

        if "_id" not in value:
            inline = {"_type": value["_type"]} if "_type" in value else {}
            if selection is not False:
                inline.update(await self._select(value, selection, expanding))
            return inline

        nested = await self._get(value["_type"], value["_id"], selection, expanding)
        if nested is None:
            logger.warning("Dangling reference %s/%s (field: '%s')", value["_type"], value["_id"], name)
            return {"_type": value["_type"], "_id": value["_id"]}
        return nested

    # Writing

    async def _set(self, type_name: str, id: str, is_new: bool, changes: typing.Dict[str, typing.Any]) -> None:
        validate_type(type_name)
        validate_id(id)

        existing = await self._load(type_name, id)
        if existing is None and not is_new:
            raise NotFound(type_name, id)
        if existing is not None and is_new:
            raise AlreadyExists(type_name, id)

        for name, value in changes.items():
            self._check_value(name, value)

        document = dict(existing or {})
        for name, value in changes.items():
            if value is UNDEFINED:
                document.pop(name, None)
                continue
            document[name] = await map_one_or_many(value, lambda element: self._store_value(name, element))

        await self._save(type_name, id, document, is_new)

    async def _store_value(self, name: str, value: typing.Any) -> typing.Any:
        if not isinstance(value, dict):
            return value

        nested = dict(value)
        nested_is_new = nested.pop("_is_new", False)
        nested_type = nested.pop("_type", None)
        nested_id = nested.pop("_id", None)

        if nested_id is None:
            inline = {} if nested_type is None else {"_type": nested_type}
            for nested_name, nested_value in nested.items():
                inline[nested_name] = await map_one_or_many(
                    nested_value, lambda element: self._store_value(nested_name, element)
                )
            return inline

        validate_type(nested_type)
        validate_id(nested_id)
        if nested_is_new or nested:
            await self._set(nested_type, nested_id, nested_is_new, nested)
        return {"_type": nested_type, "_id": nested_id}

    def _check_value(self, name: str, value: typing.Any) -> None:
        if value is None:
            raise InvalidValue(f"The 'None' value is not allowed (field: '{name}')")
        if isinstance(value, list):
            for element in value:
                if element is UNDEFINED:
                    raise InvalidValue(f"An array cannot hold an undefined element (field: '{name}')")
                self._check_value(name, element)
        elif isinstance(value, dict):
            for nested_name, nested_value in value.items():
                if nested_value is UNDEFINED:
                    continue
                self._check_value(nested_name, nested_value)

    # Deleting

    async def _delete(self, type_name: str, id: str, cascade: typing.Dict[str, typing.Any]) -> Record:
        validate_type(type_name)
        validate_id(id)

        result: Record = {}
        for name, referenced in cascade.items():
            if referenced is UNDEFINED:
                continue
            if referenced is None:
                raise TypeMismatch(f"Type mismatch (field: '{name}', expected: 'object', provided: 'None')")
            result[name] = await map_one_or_many(referenced, lambda stub: self._delete_stub(name, stub))

        if not await self._remove(type_name, id):
            return result

        return {"_type": type_name, "_id": id, **result}

    async def _delete_stub(self, name: str, stub: typing.Any) -> Record:
        if not isinstance(stub, dict):
            raise TypeMismatch(f"Type mismatch (field: '{name}', expected: 'object', provided: '{_type_name(stub)}')")
        nested = dict(stub)
        return await self._delete(nested.pop("_type", None), nested.pop("_id", None), nested)

    # Finding

    @staticmethod
    def _matches(document: Record, filter: typing.Dict[str, typing.Any]) -> bool:
        return all(name in document and document[name] == value for name, value in filter.items())
