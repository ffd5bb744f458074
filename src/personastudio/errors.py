"""Exception taxonomy shared by the editor, store and gateway."""


class PersonaStudioError(Exception):
    """Base class for all Persona Studio errors."""
    pass


class ValidationError(PersonaStudioError):
    """A required field (e.g. the persona name) is missing."""
    pass


class EmptyInputError(PersonaStudioError):
    """An action needs non-empty input (summary, document, topic, name)."""
    pass


class GatewayError(PersonaStudioError):
    """The AI call failed, timed out, or returned unparseable output."""
    pass


class StorageError(PersonaStudioError):
    """The persistence backend could not be read or written."""
    pass
