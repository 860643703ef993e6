"""Content-addressed storage for correction pictures.

Pictures are named by the unpadded base64url SHA-256 of their bytes and
stored once under ``<root>/<digest>.png``. The relational table only
holds references, so one blob can back many exercises.

Two writers never need an in-process lock:

* the database's unique constraint picks a single winner for a
  (unit, exercise, digest) reference;
* the blob is written to a private temporary file and hard-linked into
  place, which fails when the name already exists. Identical digests
  mean identical bytes, so a loser simply keeps the winner's file and a
  reader never sees a partially written picture.

Deleting a reference never deletes the blob; unreferenced blobs are left
for `scripts/collect_orphan_blobs.py`.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import models

logger = logging.getLogger("tracker.storage")

DIGEST_LENGTH = 43
BLOB_SUFFIX = ".png"
_DIGEST_RE = re.compile(r"[A-Za-z0-9_-]{%d}" % DIGEST_LENGTH)


class StoreError(Exception):
    """Base class for correction storage failures."""


class CorrectionAlreadyExists(StoreError):
    """The exercise already references a picture with this digest."""

    def __init__(self, digest: str):
        super().__init__(f"correction {digest} already exists")
        self.digest = digest


class BlobWriteError(StoreError):
    """The picture could not be written to the corrections directory."""


@dataclass(frozen=True)
class StoredCorrection:
    digest: str
    created: bool


def compute_digest(data: bytes) -> str:
    """Return the unpadded base64url SHA-256 digest of `data`."""
    return base64.urlsafe_b64encode(hashlib.sha256(data).digest()).rstrip(b"=").decode("ascii")


def is_valid_digest(digest: str) -> bool:
    return bool(_DIGEST_RE.fullmatch(digest))


class CorrectionStore:
    """Own the corrections directory and the references pointing into it."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def blob_path(self, digest: str) -> Path:
        """Path of the blob for `digest`; rejects anything that is not a digest."""
        if not is_valid_digest(digest):
            raise ValueError(f"invalid digest: {digest!r}")
        return self.root / f"{digest}{BLOB_SUFFIX}"

    def open_blob(self, digest: str) -> Path | None:
        """Return the path of an existing blob, or None."""
        if not is_valid_digest(digest):
            return None
        path = self.blob_path(digest)
        return path if path.is_file() else None

    def put_if_absent(
        self,
        session: Session,
        unit_id: int,
        exercise_index: int,
        submitted_by: int,
        data: bytes,
    ) -> StoredCorrection:
        """Reference `data` from the exercise and make sure its blob exists.

        Raises `CorrectionAlreadyExists` when the exercise already
        references this digest and `BlobWriteError` when the blob cannot
        be written. In the latter case the new reference is removed again
        so no row points at a missing picture.
        """
        digest = compute_digest(data)
        row = models.ExerciseCorrection(
            unit_id=unit_id,
            unit_exercise=exercise_index,
            created_by=submitted_by,
            picture_digest=digest,
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if "UNIQUE" not in str(exc.orig).upper():
                raise
            # A previous attempt may have stored the row but failed on the
            # blob; writing here lets a retry repair it.
            self._write_blob(digest, data)
            raise CorrectionAlreadyExists(digest) from exc

        try:
            created = self._write_blob(digest, data)
        except BlobWriteError:
            session.delete(row)
            session.commit()
            logger.warning("removed correction %s for unit %s exercise %s after failed blob write",
                           digest, unit_id, exercise_index)
            raise
        return StoredCorrection(digest=digest, created=created)

    def _write_blob(self, digest: str, data: bytes) -> bool:
        """Write the blob unless it exists. Returns True if this call created it."""
        target = self.blob_path(digest)
        if target.exists():
            return False
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".incoming-", suffix=BLOB_SUFFIX, dir=self.root)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            try:
                os.link(tmp_name, target)
            except FileExistsError:
                logger.debug("blob %s was stored concurrently, keeping existing file", digest)
                return False
        except OSError as exc:
            raise BlobWriteError(f"failed to store blob {digest}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
        logger.info("stored blob %s (%d bytes)", digest, len(data))
        return True

    def delete_reference(self, session: Session, unit_id: int, exercise_index: int, digest: str) -> int:
        """Remove the exercise's reference to `digest`; the blob stays.

        Returns the number of removed rows, zero when nothing matched.
        """
        stmt = select(models.ExerciseCorrection).where(
            models.ExerciseCorrection.unit_id == unit_id,
            models.ExerciseCorrection.unit_exercise == exercise_index,
            models.ExerciseCorrection.picture_digest == digest,
        )
        rows = session.exec(stmt).all()
        for row in rows:
            session.delete(row)
        session.commit()
        return len(rows)

    def stored_digests(self) -> set[str]:
        """Digests of every complete blob in the directory."""
        out = set()
        for path in self.root.glob(f"*{BLOB_SUFFIX}"):
            digest = path.name[: -len(BLOB_SUFFIX)]
            if is_valid_digest(digest):
                out.add(digest)
        return out

    def orphan_digests(self, session: Session) -> set[str]:
        """Digests stored on disk that no correction references."""
        referenced = set(session.exec(select(models.ExerciseCorrection.picture_digest).distinct()).all())
        return self.stored_digests() - referenced

    def remove_blob(self, digest: str) -> bool:
        """Delete a blob file. Only meant for the out-of-band collector."""
        try:
            self.blob_path(digest).unlink()
        except FileNotFoundError:
            return False
        return True
