class DocumentFrameworkError(Exception):
    pass


class InvalidIdentity(DocumentFrameworkError, ValueError):
    pass


class InvalidValue(DocumentFrameworkError, ValueError):
    pass


class TypeMismatch(DocumentFrameworkError, TypeError):
    pass


class NotFound(DocumentFrameworkError, LookupError):
    def __init__(self, type_name: str, id: str) -> None:
        self.type_name = type_name
        self.id = id
        super().__init__(f"Document not found (collection: '{type_name}', id: '{id}')")


class AlreadyExists(DocumentFrameworkError):
    def __init__(self, type_name: str, id: str) -> None:
        self.type_name = type_name
        self.id = id
        super().__init__(f"Document already exists (collection: '{type_name}', id: '{id}')")


class AlreadyDeleted(DocumentFrameworkError):
    pass


class ValidationError(DocumentFrameworkError, ValueError):
    pass


class LayerMismatch(DocumentFrameworkError, ValueError):
    pass


class ModelNotBound(DocumentFrameworkError, RuntimeError):
    pass


class SchemaError(DocumentFrameworkError, TypeError):
    pass


class UnknownModel(SchemaError):
    pass


class ReservedFieldName(SchemaError):
    pass
