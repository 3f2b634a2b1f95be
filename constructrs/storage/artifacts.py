"""
On-disk layout for rendered report artifacts.

Artifacts live in one managed output directory. Deleting a report never
unlinks its file: ``relocate`` moves it into the deleted-reports directory
under a timestamp-prefixed name. Stored paths may go stale when the process
runs from a different working directory, so ``resolve`` probes a fixed list
of candidate locations.
"""
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog

from ..errors import StorageError


log = structlog.get_logger(__name__)

CANONICAL_DIR_NAME = "generated-reports"

PathLike = Union[str, Path]


def backup_timestamp(now: Optional[datetime] = None) -> str:
    """``2024-05-01T13-45-09-123Z``: an ISO instant with ``:`` and ``.`` replaced."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


def ensure_dir(path: PathLike) -> Path:
    # Idempotent under concurrent first use
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


class ArtifactStore:
    def __init__(
        self,
        reports_dir: PathLike,
        deleted_dir: PathLike,
        search_roots: Iterable[PathLike] = (),
    ):
        self.reports_dir = Path(reports_dir)
        self.deleted_dir = Path(deleted_dir)
        self.search_roots: List[Path] = [Path(r) for r in search_roots]

    @classmethod
    def from_settings(cls, settings) -> "ArtifactStore":
        return cls(settings.reports_dir, settings.deleted_reports_dir, settings.search_roots())

    def ensure_output_dir(self) -> Path:
        return ensure_dir(self.reports_dir)

    def allocate(self, filename: str, replacing: Optional[PathLike] = None) -> Path:
        """Pick the output path for ``filename``.

        The deterministic name wins unless a different report's file already
        occupies it, in which case ``_2``, ``_3``... suffixes are tried. The
        file at ``replacing`` (the report's own current artifact) may be
        overwritten.
        """
        out_dir = self.ensure_output_dir()
        own = self.canonical(replacing) if replacing else None
        stem, suffix = os.path.splitext(filename)
        candidate = out_dir / filename
        n = 1
        while candidate.exists() and self.canonical(candidate) != own:
            n += 1
            candidate = out_dir / f"{stem}_{n}{suffix}"
        return candidate

    def candidates(self, stored: PathLike) -> List[Path]:
        stored_path = Path(stored)
        name = stored_path.name
        found: List[Path] = []
        if stored_path.is_absolute():
            found.append(stored_path)
        found.append(Path.cwd() / stored_path)
        found.append(self.reports_dir / name)
        for root in self.search_roots:
            found.append(root / CANONICAL_DIR_NAME / name)
        return found

    def resolve(self, stored: Optional[PathLike]) -> Optional[Path]:
        """First existing candidate for a stored path, or None when the artifact is unavailable."""
        if not stored:
            return None
        for candidate in self.candidates(stored):
            try:
                if candidate.is_file():
                    return candidate
            except OSError:
                continue
        return None

    def relocate(self, path: PathLike, now: Optional[datetime] = None) -> Path:
        """Move an artifact into the deleted-reports directory. Raises StorageError."""
        src = Path(path)
        try:
            target_dir = ensure_dir(self.deleted_dir)
            target = target_dir / f"{backup_timestamp(now)}-{src.name}"
            shutil.move(str(src), str(target))
        except OSError as e:
            raise StorageError(f"Failed to move PDF to backup: {e}") from e
        log.info("report_artifact_relocated", source=str(src), backup=str(target))
        return target

    def discard(self, path: Optional[PathLike]) -> bool:
        """Best-effort unlink of a superseded artifact. Returns True when a file was removed."""
        if not path:
            return False
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            log.warning("report_artifact_discard_failed", path=str(path), error=str(e))
            return False
        log.info("report_artifact_discarded", path=str(path))
        return True

    @staticmethod
    def canonical(path: PathLike) -> Path:
        return Path(os.path.abspath(path))
