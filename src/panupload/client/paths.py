"""Remote path resolution."""

from __future__ import annotations

import posixpath


class RemotePathResolver:
    """Maps paths relative to a configured root onto absolute remote paths.

    Example:
        RemotePathResolver("apps/backup").resolve("2025/report.pdf")
        -> "/apps/backup/2025/report.pdf"
    """

    def __init__(self, root: str = "") -> None:
        self._root = root.strip("/")

    @property
    def root(self) -> str:
        return self._root

    def resolve(self, remote: str) -> str:
        """Return the absolute remote path for `remote`.

        Raises:
            ValueError: If the path is empty or escapes the root.
        """
        remote = remote.strip("/")
        if not remote:
            raise ValueError("Remote path must name a file")
        if ".." in remote.split("/"):
            raise ValueError(f"Remote path must not contain '..': {remote}")
        if not self._root:
            return "/" + posixpath.normpath(remote)
        return "/" + posixpath.join(self._root, posixpath.normpath(remote))
