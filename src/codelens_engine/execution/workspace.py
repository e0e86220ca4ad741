from __future__ import annotations

import contextlib
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from ..errors import ResourceError
from ..settings import EngineSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Workspace:
    """Ephemeral directory exclusively owned by one execution.

    Example:
        ```python
        ws = provision(EngineSettings())
        source = ws.write("main.py", "print(1)")
        ```
    """

    path: Path
    created: float

    def file(self, name: str) -> Path:
        """Return the path of an artifact inside the workspace.

        Example:
            ```python
            binary = ws.file("main")
            ```
        """
        return self.path / name

    def write(self, name: str, text: str) -> Path:
        """Write a text artifact and return its path.

        Example:
            ```python
            src = ws.write("main.c", "int main(void) { return 0; }")
            ```
        """
        target = self.file(name)
        try:
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ResourceError(f"Could not write {name} into workspace: {exc}") from exc
        return target

    def remove(self) -> None:
        """Delete the workspace tree; failures are logged, never raised.

        Example:
            ```python
            ws.remove()
            ```
        """
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Could not remove workspace %s: %s", self.path, exc)


def provision(settings: EngineSettings) -> Workspace:
    """Create a uniquely named workspace directory.

    Example:
        ```python
        ws = provision(EngineSettings(workspace_root="/var/tmp"))
        ```
    """
    root = settings.workspace_root or None
    try:
        path = tempfile.mkdtemp(prefix=settings.workspace_prefix, dir=root)
    except OSError as exc:
        raise ResourceError(f"Could not create workspace under {root or tempfile.gettempdir()}: {exc}") from exc
    logger.debug("Provisioned workspace %s", path)
    return Workspace(path=Path(path), created=time.time())


def release(workspace: Workspace, settings: EngineSettings) -> None:
    """Remove a workspace unless the settings ask to keep artifacts.

    Example:
        ```python
        release(ws, settings)
        ```
    """
    if settings.keep_workspaces:
        logger.debug("Keeping workspace %s", workspace.path)
        return
    workspace.remove()


@contextlib.contextmanager
def open_workspace(settings: EngineSettings) -> Iterator[Workspace]:
    """Provision a workspace and release it on every exit path.

    Example:
        ```python
        with open_workspace(settings) as ws:
            ws.write("main.py", "print(1)")
        ```
    """
    workspace = provision(settings)
    try:
        yield workspace
    finally:
        release(workspace, settings)
