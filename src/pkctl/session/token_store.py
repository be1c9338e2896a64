"""Session token persistence.

A node keeps at most one session token, in a single file inside its node
path. Whether that file exists is the only record of whether the node is
unlocked.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pkctl.config import TOKEN_BASE

logger = logging.getLogger(__name__)


class TokenStore:
    """Single-slot session token file.

    Writes go through a temporary file in the same directory followed by
    ``os.replace``, so a concurrent reader sees either the previous token or
    the new one, never a partially written file.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"TokenStore({str(self.path)!r})"

    @classmethod
    def open(cls, node_path: Union[str, Path], fresh: bool = False) -> "TokenStore":
        """Token store for a node path.

        With ``fresh`` any existing token is discarded first.
        """
        store = cls(Path(node_path) / TOKEN_BASE)
        if fresh:
            store.destroy()
        return store

    def create(self, token: str) -> None:
        """Write ``token``, replacing any existing token."""
        directory = self.path.parent
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(token)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug("Session token written to %s", self.path)

    def read(self) -> Optional[str]:
        """Return the stored token, or ``None`` when there is none."""
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        if not token:
            logger.debug("Ignoring empty session token file %s", self.path)
            return None
        return token

    def destroy(self) -> None:
        """Remove the token. Removing an absent token is not an error."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.debug("Session token removed from %s", self.path)

    def create_fresh(self, token: str) -> str:
        """Discard any existing token, then store ``token``."""
        self.destroy()
        self.create(token)
        return token
