"""Safe extraction of downloaded skill packages."""

from __future__ import annotations

import io
import shutil
import zipfile
from pathlib import Path

from clawhub_skills.exceptions import ExtractionRejectedError, LocalIOError


def normalize_member_path(raw: str) -> str | None:
    """Return the relative path for a file member, ``None`` for a directory.

    Any ``..`` or empty segment rejects the member, as does a path made only
    of ``.`` segments.
    """
    cleaned = str(raw or "").replace("\\", "/")
    is_dir = cleaned.endswith("/")
    if is_dir:
        cleaned = cleaned.rstrip("/")
    if not cleaned:
        if is_dir:
            return None
        raise ExtractionRejectedError(raw, "empty path")
    parts = cleaned.split("/")
    if any(part == ".." for part in parts):
        raise ExtractionRejectedError(raw, "parent-directory segment")
    if any(part == "" for part in parts):
        raise ExtractionRejectedError(raw, "empty path segment")
    parts = [part for part in parts if part != "."]
    if not parts:
        if is_dir:
            return None
        raise ExtractionRejectedError(raw, "resolves to an empty path")
    if is_dir:
        return None
    return "/".join(parts)


def extract_archive(data: bytes, target_dir: Path) -> list[str]:
    """Materialize a zip package under ``target_dir``.

    Every member is validated before the first byte is written, so a rejected
    archive leaves the filesystem untouched.

    Returns:
        Relative paths of the files written.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data), "r")
    except zipfile.BadZipFile as e:
        raise ExtractionRejectedError("<archive>", f"not a zip archive ({e})") from e

    target = Path(target_dir).resolve()
    with archive:
        planned: list[tuple[zipfile.ZipInfo, str]] = []
        for member in archive.infolist():
            rel_path = normalize_member_path(member.filename)
            if rel_path is None:
                continue
            destination = (target / rel_path).resolve()
            try:
                destination.relative_to(target)
            except ValueError as e:
                raise ExtractionRejectedError(member.filename, "escapes target directory") from e
            planned.append((member, rel_path))

        try:
            target.mkdir(parents=True, exist_ok=True)
            for member, rel_path in planned:
                destination = target / rel_path
                destination.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member, "r") as source_file:
                    with destination.open("wb") as out_file:
                        shutil.copyfileobj(source_file, out_file)
        except OSError as e:
            raise LocalIOError(target, f"extraction failed: {e}") from e

    return [rel_path for _, rel_path in planned]
