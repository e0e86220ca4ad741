from __future__ import annotations

from dataclasses import dataclass

from ..errors import UnsupportedLanguageError
from ..settings import EngineSettings

BINARY_NAME = "main"

_ALIASES = {
    "py": "python",
    "python3": "python",
    "c++": "cpp",
    "cxx": "cpp",
}

_EXTENSIONS = {
    ".py": "python",
    ".c": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
}


@dataclass(frozen=True, slots=True)
class Toolchain:
    """Commands needed to build and run one guest language.

    Exactly one of `compiler` and `interpreter` is set.

    Example:
        ```python
        chain = Toolchain("c", "main.c", compiler="gcc", interpreter=None)
        ```
    """

    language: str
    source_name: str
    compiler: str | None
    interpreter: str | None

    @property
    def compiled(self) -> bool:
        """Return True for languages that need a compile step.

        Example:
            ```python
            assert toolchain_for("cpp", EngineSettings()).compiled
            ```
        """
        return self.compiler is not None


def canonical_language(language: str) -> str:
    """Normalize a guest-language identifier and resolve aliases.

    Example:
        ```python
        assert canonical_language("C++") == "cpp"
        ```
    """
    key = (language or "").strip().lower()
    return _ALIASES.get(key, key)


def language_for_filename(filename: str) -> str | None:
    """Guess a guest language from a source file extension.

    Example:
        ```python
        assert language_for_filename("solution.cpp") == "cpp"
        ```
    """
    for suffix, language in _EXTENSIONS.items():
        if filename.lower().endswith(suffix):
            return language
    return None


def supported_languages() -> list[str]:
    """Return canonical identifiers of every supported guest language.

    Example:
        ```python
        assert "python" in supported_languages()
        ```
    """
    return ["python", "c", "cpp"]


def toolchain_for(language: str, settings: EngineSettings) -> Toolchain:
    """Return the toolchain for a guest language.

    Example:
        ```python
        chain = toolchain_for("python", EngineSettings())
        ```
    """
    key = canonical_language(language)
    if key == "python":
        return Toolchain("python", "main.py", compiler=None, interpreter=settings.python_command)
    if key == "c":
        return Toolchain("c", "main.c", compiler=settings.c_compiler, interpreter=None)
    if key == "cpp":
        return Toolchain("cpp", "main.cpp", compiler=settings.cpp_compiler, interpreter=None)
    raise UnsupportedLanguageError(language)
