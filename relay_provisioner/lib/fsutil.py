from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def sha256_text(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> Optional[str]:
    """Hash of a file's bytes, or None when it does not exist.

    Permission and other I/O errors propagate as OSError.
    """

    h = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                h.update(chunk)
    except FileNotFoundError:
        return None
    return h.hexdigest()


def read_text_if_exists(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def split_owner(owner: str) -> tuple[str, Optional[str]]:
    user, _, group = owner.partition(":")
    return user, (group or None)


def chown(path: Path, owner: Optional[str]) -> None:
    if not owner:
        return
    user, group = split_owner(owner)
    shutil.chown(str(path), user=user, group=group or user)


def atomic_write_text(
    path: Path,
    content: str,
    *,
    mode: Optional[int] = None,
    owner: Optional[str] = None,
) -> None:
    """Write ``content`` to ``path`` so readers only ever see old or new bytes.

    - temp file in the same directory (same filesystem for os.replace)
    - fsync before rename
    - temp removed if anything fails before the rename
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    tmp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(p.parent),
            prefix=f".{p.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_name = f.name
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        elif p.exists():
            os.chmod(tmp_name, p.stat().st_mode & 0o7777)
        else:
            os.chmod(tmp_name, 0o644)
        chown(Path(tmp_name), owner)
        os.replace(tmp_name, str(p))
        tmp_name = None
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)

    logger.debug("Wrote %s (%d bytes)", p, len(content.encode("utf-8")))


def append_text(path: Path, text: str) -> None:
    """Append ``text`` as whole lines with a single write.

    If the file does not end in a newline one is prepended, so the appended
    text never joins an existing partial line.
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    buf = text if text.endswith("\n") else text + "\n"
    if p.exists() and p.stat().st_size > 0:
        with p.open("rb") as f:
            f.seek(-1, os.SEEK_END)
            if f.read(1) != b"\n":
                buf = "\n" + buf

    with p.open("a", encoding="utf-8") as f:
        f.write(buf)
        f.flush()
        os.fsync(f.fileno())
