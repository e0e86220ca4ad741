from __future__ import annotations


class EngineError(Exception):
    """Base class for conditions raised inside the execution engine.

    Example:
        ```python
        raise EngineError("something went wrong")
        ```
    """


class ResourceError(EngineError):
    """A workspace or other host resource could not be allocated.

    Example:
        ```python
        raise ResourceError("Could not create workspace under /tmp")
        ```
    """


class UnsupportedLanguageError(EngineError):
    """The guest-language identifier has no registered toolchain.

    Example:
        ```python
        raise UnsupportedLanguageError("rust")
        ```
    """

    def __init__(self, language: str) -> None:
        """Store the rejected language identifier.

        Example:
            ```python
            err = UnsupportedLanguageError("rust")
            ```
        """
        super().__init__(f"Unsupported language: {language}.")
        self.language = language


class ProtocolError(EngineError):
    """An interactive-session event could not be understood.

    Example:
        ```python
        raise ProtocolError("unknown event type 'resize'")
        ```
    """
