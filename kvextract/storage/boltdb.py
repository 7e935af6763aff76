"""
Read-only access to the bbolt (BoltDB) files etcd persists to.

Layout notes:
- Every page starts with a 16 byte header: id, flags, element count, overflow.
- Pages 0 and 1 are meta pages; the valid one with the highest txid wins.
- Buckets are B+trees; the root bucket maps bucket names to bucket headers.
- Small buckets are stored inline: header root of 0, page bytes follow.

The file is opened read-only, shared-locked and mapped with mmap.
"""
import fcntl
import logging
import mmap
import os
import struct
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from kvextract.core.errors import OpenError

logger = logging.getLogger(__name__)

MAGIC = 0xED0CDAED
VERSION = 2

BRANCH_PAGE = 0x01
LEAF_PAGE = 0x02
META_PAGE = 0x04
FREELIST_PAGE = 0x10

BUCKET_LEAF_FLAG = 0x01

PAGE_HEADER = struct.Struct("<QHHI")
BRANCH_ELEMENT = struct.Struct("<IIQ")
LEAF_ELEMENT = struct.Struct("<IIII")
BUCKET_HEADER = struct.Struct("<QQ")
# magic, version, page size, flags, root, sequence, freelist, pgid, txid, checksum
META = struct.Struct("<IIIIQQQQQQ")
META_CHECKSUM_OFFSET = META.size - 8

DEFAULT_PAGE_SIZE = 4096
MAX_TREE_DEPTH = 64
LOCK_RETRY_INTERVAL = 0.05

_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3


def fnv64a(data: bytes) -> int:
    """FNV-1a 64 bit hash, used by bolt to checksum meta pages."""
    h = _FNV_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFFFFFFFFFF
    return h


@dataclass(frozen=True)
class Meta:
    """The fields of a bolt meta page that reading needs."""
    page_size: int
    root: int
    freelist: int
    pgid: int
    txid: int


class BoltReader:
    """
    Read-only view of a bolt database file.

    Use as a context manager; the lock, the mapping and the file are
    released on exit whatever happens inside the block.
    """

    def __init__(self, path: str, lock_timeout: float = 0.0):
        """
        Initialize the reader.

        Args:
            path: Path to the bolt '.db' file
            lock_timeout: Seconds to wait for a writer to release the file;
                0 fails immediately if the file is locked
        """
        self.path = path
        self.lock_timeout = lock_timeout
        self.meta: Optional[Meta] = None
        self._file = None
        self._mmap = None

    def __enter__(self) -> "BoltReader":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self) -> "BoltReader":
        """Open, lock and map the file, then load the current meta page."""
        try:
            self._file = open(self.path, "rb")
        except FileNotFoundError:
            raise OpenError(f"store file not found: {self.path}") from None
        except OSError as e:
            raise OpenError(f"cannot open store file {self.path}: {e.strerror}") from e

        try:
            self._lock()
            size = os.fstat(self._file.fileno()).st_size
            if size < PAGE_HEADER.size + META.size:
                raise OpenError(
                    f"{self.path} is not a valid bolt store: file too small ({size} bytes)"
                )
            self._mmap = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_READ)
            self.meta = self._load_meta()
        except BaseException:
            self.close()
            raise
        return self

    def close(self):
        """Release the mapping and the file (and with it the lock)."""
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def _lock(self):
        """Take a shared lock; etcd holds an exclusive one while running."""
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(self._file.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise OpenError(
                        f"{self.path} is locked by another process; stop etcd "
                        f"before extracting, or pass a lock timeout to wait for it"
                    ) from None
                time.sleep(LOCK_RETRY_INTERVAL)
            except OSError as e:
                raise OpenError(f"cannot lock store file {self.path}: {e.strerror}") from e

    def _read_meta(self, page_offset: int) -> Optional[Meta]:
        start = page_offset + PAGE_HEADER.size
        if start + META.size > len(self._mmap):
            return None
        raw = self._mmap[start:start + META.size]
        (magic, version, page_size, _flags, root, _sequence,
         freelist, pgid, txid, checksum) = META.unpack(raw)
        if magic != MAGIC or version != VERSION:
            return None
        if fnv64a(raw[:META_CHECKSUM_OFFSET]) != checksum:
            return None
        if page_size < PAGE_HEADER.size + META.size:
            return None
        return Meta(page_size=page_size, root=root, freelist=freelist, pgid=pgid, txid=txid)

    def _load_meta(self) -> Meta:
        first = self._read_meta(0)
        page_size = first.page_size if first else DEFAULT_PAGE_SIZE
        second = self._read_meta(page_size)

        candidates = [m for m in (first, second) if m is not None]
        if not candidates:
            raise OpenError(f"{self.path} is not a valid bolt store: no valid meta page")
        meta = max(candidates, key=lambda m: m.txid)
        logger.debug(
            "Opened %s: page size %d, txid %d, root page %d",
            self.path, meta.page_size, meta.txid, meta.root,
        )
        return meta

    def _corrupt(self, detail: str) -> OpenError:
        return OpenError(f"{self.path} is not a valid bolt store: {detail}")

    def _iter_page(self, buf, offset: int, depth: int = 0) -> Iterator[Tuple[bytes, bytes, int]]:
        """
        Yield (key, value, flags) for every leaf element under a page.

        Args:
            buf: The mapped file, or the bytes of an inline bucket
            offset: Offset of the page header within buf
            depth: Current tree depth
        """
        if depth > MAX_TREE_DEPTH:
            raise self._corrupt("page tree too deep")
        if offset + PAGE_HEADER.size > len(buf):
            raise self._corrupt(f"page at offset {offset} beyond end of data")

        _, flags, count, _ = PAGE_HEADER.unpack_from(buf, offset)
        base = offset + PAGE_HEADER.size

        if flags & LEAF_PAGE:
            for i in range(count):
                element = base + i * LEAF_ELEMENT.size
                if element + LEAF_ELEMENT.size > len(buf):
                    raise self._corrupt(f"leaf element {i} beyond end of data")
                element_flags, pos, ksize, vsize = LEAF_ELEMENT.unpack_from(buf, element)
                key_start = element + pos
                value_start = key_start + ksize
                value_end = value_start + vsize
                if value_end > len(buf):
                    raise self._corrupt(f"leaf element {i} data beyond end of data")
                yield bytes(buf[key_start:value_start]), bytes(buf[value_start:value_end]), element_flags
        elif flags & BRANCH_PAGE and buf is self._mmap:
            for i in range(count):
                element = base + i * BRANCH_ELEMENT.size
                if element + BRANCH_ELEMENT.size > len(buf):
                    raise self._corrupt(f"branch element {i} beyond end of data")
                _, _, child = BRANCH_ELEMENT.unpack_from(buf, element)
                yield from self._iter_page(buf, self._page_offset(child), depth + 1)
        else:
            raise self._corrupt(f"unexpected page flags 0x{flags:02x} at offset {offset}")

    def _page_offset(self, pgid: int) -> int:
        if pgid < 2 or (self.meta.pgid and pgid >= self.meta.pgid):
            raise self._corrupt(f"page id {pgid} out of range")
        return pgid * self.meta.page_size

    def _iter_bucket_tree(self, header: bytes) -> Iterator[Tuple[bytes, bytes, int]]:
        if len(header) < BUCKET_HEADER.size:
            raise self._corrupt("truncated bucket header")
        root, _ = BUCKET_HEADER.unpack_from(header)
        if root == 0:
            return self._iter_page(header, BUCKET_HEADER.size)
        return self._iter_page(self._mmap, self._page_offset(root))

    def bucket_names(self):
        """Names of the top level buckets, in key order."""
        root_tree = self._iter_page(self._mmap, self._page_offset(self.meta.root))
        return [key for key, _, flags in root_tree if flags & BUCKET_LEAF_FLAG]

    def iter_bucket(self, name: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """
        Iterate over a top level bucket in ascending key order.

        Nested buckets inside it are skipped. A bucket that does not exist
        yields nothing.

        Args:
            name: Bucket name

        Yields:
            Tuples of (physical key, value)
        """
        if self._mmap is None:
            raise OpenError(f"{self.path} is not open")

        header = None
        for key, value, flags in self._iter_page(self._mmap, self._page_offset(self.meta.root)):
            if key == name:
                if not flags & BUCKET_LEAF_FLAG:
                    raise self._corrupt(f"{name!r} is a key, not a bucket")
                header = value
                break

        if header is None:
            logger.warning(
                "Bucket %r not found in %s (buckets: %s), nothing to read",
                name, self.path, ", ".join(repr(b) for b in self.bucket_names()) or "none",
            )
            return

        for key, value, flags in self._iter_bucket_tree(header):
            if flags & BUCKET_LEAF_FLAG:
                logger.debug("Skipping nested bucket %r in %r", key, name)
                continue
            yield key, value
