from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

log = logging.getLogger(__name__)


class CertificateStage:
    """Scoped temporary files holding certificate and key material.

    Files are readable by the owner only. ``cleanup`` removes what this stage
    wrote, and the directory too when the stage created it.
    """

    def __init__(self, root: Path | None = None) -> None:
        self._owns_root = root is None
        self.root = Path(tempfile.mkdtemp(prefix="bratsutils-certs-")) if root is None else root
        self.written: list[Path] = []

    def write(self, prefix: str, contents: str | bytes) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        data = contents.encode() if isinstance(contents, str) else contents
        with tempfile.NamedTemporaryFile(dir=self.root, prefix=prefix, delete=False) as handle:
            handle.write(data)
        path = Path(handle.name)
        self.written.append(path)
        log.debug("Staged %s (%d bytes)", path, len(data))
        return path

    def cleanup(self) -> None:
        for path in reversed(self.written):
            path.unlink(missing_ok=True)
        self.written.clear()
        if self._owns_root:
            shutil.rmtree(self.root, ignore_errors=True)

    def __enter__(self) -> "CertificateStage":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()
