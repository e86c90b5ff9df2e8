# File: schemagen/writer.py
"""
SchemaGen - Output Writer (File-System Manager)
=================================================
Writes the aggregate output of a run to disk.

Responsible for:
    1. Checking every path stays inside the output directory before any
       file is touched.
    2. Writing each unique file atomically (temp file + rename) on a
       bounded thread pool, one task per path.
    3. Writing the manifest after all files succeeded.

Files share no mutable state, so writes run in parallel.  A failing
write does not stop the others; every failure is reported in the
returned ``WriteResult``.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from schemagen.manifest import Manifest
from schemagen.plugins.merge import AggregateOutput
from schemagen.utils import Timer, count_lines, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.writer")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single written file."""

    relative_path: str
    size_bytes: int
    line_count: int
    sha256: str


@dataclass(frozen=True, slots=True)
class WriteResult:
    success: bool
    output_dir: str
    records: Tuple[FileRecord, ...]
    errors: Tuple[str, ...]
    manifest_path: Optional[str]
    elapsed_seconds: float

    @property
    def total_bytes(self) -> int:
        return sum(r.size_bytes for r in self.records)


# ---------------------------------------------------------------------------
# Path checks
# ---------------------------------------------------------------------------


def resolve_target(output_dir: Path, relative_path: str) -> Path:
    """
    Resolve *relative_path* under *output_dir*.

    Raises ``ValueError`` when the result lies outside *output_dir*
    (absolute paths, ``..`` segments, symlinked parents).
    """
    root: Path = output_dir.resolve()
    target: Path = (root / relative_path).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f"Path {relative_path!r} escapes output directory {root}")
    return target


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


def _write_one(target: Path, relative_path: str, content: str) -> FileRecord:
    size: int = write_file(target, content, atomic=True)
    return FileRecord(
        relative_path=relative_path,
        size_bytes=size,
        line_count=count_lines(content),
        sha256=sha256_hex(content),
    )


def write_outputs(
    aggregate: AggregateOutput,
    output_dir: Path,
    manifest: Optional[Manifest] = None,
    manifest_filename: str = "schemagen-manifest.json",
    max_workers: int = 4,
) -> WriteResult:
    """
    Write every file of *aggregate* under *output_dir*.

    Path escapes raise ``ValueError`` before anything is written.  I/O
    failures are collected; the manifest is only written when every file
    was.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    targets: Dict[str, Path] = {
        path: resolve_target(output_dir, path) for path in aggregate.files
    }
    records: List[FileRecord] = []
    errors: List[str] = []
    manifest_path: Optional[str] = None

    with Timer("write") as timer:
        output_dir.mkdir(parents=True, exist_ok=True)
        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="schemagen-write"
        ) as pool:
            futures: Dict[Future[FileRecord], str] = {
                pool.submit(_write_one, targets[path], path, contribution.content): path
                for path, contribution in aggregate.files.items()
            }
            for future in as_completed(futures):
                path = futures[future]
                try:
                    records.append(future.result())
                except OSError as exc:
                    error_msg: str = f"Failed to write {path}: {type(exc).__name__}: {exc}"
                    errors.append(error_msg)
                    logger.error(error_msg)

        if manifest is not None and not errors:
            target: Path = resolve_target(output_dir, manifest_filename)
            write_file(target, manifest.to_json(), atomic=True)
            manifest_path = str(target)
            logger.debug("Wrote manifest to %s.", target)

    records.sort(key=lambda r: r.relative_path)
    result = WriteResult(
        success=not errors,
        output_dir=str(output_dir),
        records=tuple(records),
        errors=tuple(sorted(errors)),
        manifest_path=manifest_path,
        elapsed_seconds=timer.elapsed,
    )
    if result.success:
        logger.info(
            "Wrote %d file(s), %d bytes to %s in %.3fs.",
            len(records),
            result.total_bytes,
            output_dir,
            timer.elapsed,
        )
    else:
        logger.error("Write finished with %d error(s).", len(errors))
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "FileRecord",
    "WriteResult",
    "resolve_target",
    "write_outputs",
]

logger.debug("schemagen.writer loaded.")
