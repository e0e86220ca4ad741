"""Boundary to the text heuristics that live outside the engine.

Diagnosis of error text, fix suggestions and flowchart/pseudocode rendering are
provided by an external collaborator. The engine only calls them through
`Advisor` and passes their output through untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(slots=True)
class Diagnosis:
    """Human-readable explanation of a failed run.

    Example:
        ```python
        diagnosis = Diagnosis(summary="Runtime error detected.", steps=["Check input handling."])
        ```
    """

    summary: str
    steps: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Visualization:
    """Auxiliary views of a program attached to batch results.

    Example:
        ```python
        view = Visualization(flowchart="flowchart TD\\nStart --> End")
        ```
    """

    flowchart: str = ""
    steps: list[int] = field(default_factory=list)
    algorithm_steps: list[str] = field(default_factory=list)


class Advisor(Protocol):
    def diagnose(self, language: str, stderr: str) -> Diagnosis:
        """Explain the stderr of a run.

        Example:
            ```python
            diagnosis = advisor.diagnose("python", "SyntaxError: invalid syntax")
            ```
        """
        ...

    def suggest_code(self, language: str, intent: str) -> str:
        """Return replacement code for a failed run, or an empty string.

        Example:
            ```python
            code = advisor.suggest_code("c", "sum two numbers")
            ```
        """
        ...

    def visualize(self, language: str, code: str) -> Visualization:
        """Return auxiliary views of the submitted source.

        Example:
            ```python
            view = advisor.visualize("python", "print(1)")
            ```
        """
        ...


class PassthroughAdvisor:
    """Advisor used when no heuristic collaborator is plugged in.

    Example:
        ```python
        app = create_app(advisor=PassthroughAdvisor())
        ```
    """

    def diagnose(self, language: str, stderr: str) -> Diagnosis:
        """Report whether stderr is empty and echo its last line.

        Example:
            ```python
            PassthroughAdvisor().diagnose("python", "")
            ```
        """
        if not stderr.strip():
            return Diagnosis(summary="No errors detected.", steps=[])
        last_line = stderr.strip().splitlines()[-1]
        return Diagnosis(summary="The program reported an error.", steps=[last_line])

    def suggest_code(self, language: str, intent: str) -> str:
        """Return no suggestion.

        Example:
            ```python
            assert PassthroughAdvisor().suggest_code("c", "anything") == ""
            ```
        """
        return ""

    def visualize(self, language: str, code: str) -> Visualization:
        """Return line indexes only, matching the step list clients expect.

        Example:
            ```python
            view = PassthroughAdvisor().visualize("python", "a = 1\\nprint(a)")
            ```
        """
        return Visualization(steps=list(range(len(code.split("\n")))))
