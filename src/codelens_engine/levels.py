from __future__ import annotations

from dataclasses import dataclass

from .execution.engine import ExecutionEngine
from .runner import run_code


@dataclass(frozen=True, slots=True)
class Level:
    """Fixed stdin and expected stdout for one practice level.

    `expected` of None accepts any output from a clean exit.

    Example:
        ```python
        level = Level(level_id=2, stdin="2 3", expected="5")
        ```
    """

    level_id: int
    stdin: str
    expected: str | None


@dataclass(slots=True)
class LevelResult:
    """Verdict returned to a learner for one submission.

    Example:
        ```python
        verdict = LevelResult(passed=True, message="Great job!", hint="")
        ```
    """

    passed: bool
    message: str
    hint: str


LEVELS: dict[int, Level] = {
    1: Level(1, "", "Hello World"),
    2: Level(2, "2 3", "5"),
    3: Level(3, "3 4", "12"),
    4: Level(4, "10 5", "25"),
    5: Level(5, "", None),
}

PASS_MESSAGE = "Great job! You can move to the next level."
ERROR_MESSAGE = "Your code has errors. Fix them and try again."
MISMATCH_MESSAGE = "Output did not match the expected answer."
MISMATCH_HINT = "Check input handling and output format."


def level_for(level_id: int) -> Level:
    """Return the level definition, falling back to level 1 for unknown ids.

    Example:
        ```python
        assert level_for(99).level_id == 1
        ```
    """
    return LEVELS.get(level_id, LEVELS[1])


async def check_level(level_id: int, language: str, code: str, engine: ExecutionEngine) -> LevelResult:
    """Run a submission against a level's input and compare its output.

    Example:
        ```python
        verdict = await check_level(2, "python", "a, b = map(int, input().split())\\nprint(a + b)", engine)
        ```
    """
    level = level_for(level_id)
    run = await run_code(language, code, engine=engine, stdin=level.stdin)
    passed = run.exit_code == 0 and (level.expected is None or run.stdout == level.expected)
    if passed:
        return LevelResult(passed=True, message=PASS_MESSAGE, hint="")
    message = ERROR_MESSAGE if run.stderr else MISMATCH_MESSAGE
    hint = MISMATCH_HINT if level.expected is not None else ""
    return LevelResult(passed=False, message=message, hint=hint)
