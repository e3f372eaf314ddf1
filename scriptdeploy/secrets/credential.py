"""Scoped credential file for the managed-script CLI.

The CLI reads its OAuth token from a JSON file on disk. The file is written
when the pipeline reaches the credential step and removed when the scope
exits, whatever the outcome of the steps in between.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

from ..errors import CredentialMalformed
from ..utils.fs import atomic_write_text, remove_file


CREDENTIAL_FILE_MODE = 0o600


class ScopedCredential:
    """Credential materialized for the lifetime of a ``with`` block.

    Usage::

        with ScopedCredential(path, payload) as cred:
            cred.materialize()
            client.push(cred)

    ``__exit__`` always deletes the file. A missing file is not an error and
    a failed delete only produces a warning.
    """

    def __init__(self, path: Path, payload: str, *, echo_on_invalid: bool = True):
        self.path = Path(path)
        self._payload = payload
        self._echo_on_invalid = echo_on_invalid
        self._data: Optional[Any] = None
        self.validated = False
        self.materialized = False
        self.released = False

    def __repr__(self) -> str:
        return f"ScopedCredential(path={str(self.path)!r}, materialized={self.materialized})"

    def __enter__(self) -> "ScopedCredential":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def data(self) -> Any:
        if not self.validated:
            raise CredentialMalformed("credential has not been validated")
        return self._data

    def materialize(self) -> "ScopedCredential":
        """Write the payload to ``path`` and validate the written file as JSON."""
        if not self._payload.strip():
            raise CredentialMalformed("credential secret is empty or not set")

        try:
            atomic_write_text(self.path, self._payload + "\n", mode=CREDENTIAL_FILE_MODE)
            self.materialized = True
            written = self.path.read_text(encoding="utf-8")
        except UnicodeError as e:
            # Undecodable bytes in the environment arrive as surrogate escapes.
            self._report_invalid(self._payload)
            raise CredentialMalformed(f"Invalid JSON in credentials: payload is not valid UTF-8 ({e})")
        except OSError as e:
            raise CredentialMalformed(f"cannot write credential file {self.path}: {e}")

        try:
            self._data = json.loads(written)
        except json.JSONDecodeError as e:
            self._report_invalid(written)
            raise CredentialMalformed(f"Invalid JSON in credentials: {e.msg} (line {e.lineno} column {e.colno})")
        self.validated = True
        return self

    def _report_invalid(self, written: str) -> None:
        raw = written.encode("utf-8", "backslashreplace")
        print("[credential][FAILED] Invalid JSON in credentials", file=sys.stderr)
        if self._echo_on_invalid:
            print(raw.decode("utf-8").rstrip("\n"), file=sys.stderr)
        else:
            print(f"[credential] content redacted ({len(raw)} bytes)", file=sys.stderr)

    def release(self) -> bool:
        """Delete the credential file. Returns True when the file is gone."""
        self._data = None
        self.validated = False
        try:
            remove_file(self.path)
        except OSError as e:
            print(f"[cleanup][WARN] failed to remove credential file {self.path}: {e}", file=sys.stderr)
            return False
        self.released = True
        return True
