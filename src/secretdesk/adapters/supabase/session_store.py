"""Key/value persistence for the auth session and the PKCE code verifier."""

from __future__ import annotations

import json
import os
import tempfile
from logging import getLogger
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pathlib import Path

log = getLogger(__name__)

SESSION_KEY: Final[str] = "secretdesk.auth.token"
CODE_VERIFIER_KEY: Final[str] = f"{SESSION_KEY}-code-verifier"
TEMP_PREFIX: Final[str] = ".session-"


@runtime_checkable
class SessionStore(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemorySessionStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileSessionStore:
    """JSON file store so a CLI sign-in survives until the callback is pasted back."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)

    def _read(self) -> dict[str, str]:
        try:
            with self._path.open(encoding="utf-8") as handle:
                document = json.load(handle)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            log.warning("Ignoring unreadable session file %s", self._path)
            return {}
        if not isinstance(document, dict):
            return {}
        return {str(key): str(value) for key, value in document.items()}

    def _write(self, items: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=TEMP_PREFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            os.unlink(tmp_name)
            raise
