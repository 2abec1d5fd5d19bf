"""
Compound File Reader
====================

Pure Python reader for the OLE2 Compound File Binary Format (CFBF), the
structured-storage container Word uses for ``word/embeddings/oleObjectN.bin``
parts.

Format Background
-----------------
A compound file is a small FAT file system inside a single byte string:

    - A 512-byte header declares the sector size (512 or 4096 bytes), the
      sectors holding the sector allocation table (FAT), the first sector of
      the directory chain, and the mini-stream cutoff (normally 4096).
    - The FAT maps every sector to the next sector of its chain. Chains end
      with ENDOFCHAIN.
    - The directory is a chain of 128-byte entries. Entry 0 is the root
      storage. Children of a storage form a red-black tree linked through
      left/right sibling ids; a storage points to the tree through its child id.
    - Streams smaller than the cutoff live in the "mini stream" (the root
      entry's own data), allocated in 64-byte mini sectors through the
      mini FAT.

Every chain walk is bounded: a chain that leaves the table, revisits a sector
or ends before the declared stream size raises CorruptContainerError instead
of looping or silently truncating.

Usage
-----
    >>> from ole2math.extractors.compound_file import open_container
    >>> container = open_container(ole_bytes)
    >>> for stream in container:
    ...     print(stream.path, len(stream.content))

olefile supplies the format signature and directory entry type codes; the
traversal itself is done here so that chain faults surface as errors.
"""

import logging
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

import olefile

from ole2math.exceptions import CorruptContainerError
from ole2math.extractors.data_types import NamedStream, StorageContainer

logger = logging.getLogger(__name__)

__all__ = [
    "CompoundFileReader",
    "DirectoryEntry",
    "open_container",
    "list_streams",
]

HEADER_SIZE = 512
HEADER_DIFAT_ENTRIES = 109
DIRECTORY_ENTRY_SIZE = 128
BYTE_ORDER_MARK = 0xFFFE

# Special sector ids
MAX_REGULAR_SECTOR = 0xFFFFFFFA
DIFAT_SECTOR = 0xFFFFFFFC
FAT_SECTOR = 0xFFFFFFFD
END_OF_CHAIN = 0xFFFFFFFE
FREE_SECTOR = 0xFFFFFFFF
NO_STREAM = 0xFFFFFFFF

# magic, clsid, minor, major, byte order, sector shift, mini sector shift,
# reserved, #dir sectors, #FAT sectors, first dir sector, transaction,
# mini stream cutoff, first mini FAT sector, #mini FAT sectors,
# first DIFAT sector, #DIFAT sectors
_HEADER_FORMAT = "<8s16sHHHHH6sIIIIIIIII"
_HEADER_DIFAT_OFFSET = struct.calcsize(_HEADER_FORMAT)

# name, name length, type, color, left, right, child, clsid, state,
# created, modified, start sector, size
_DIRECTORY_FORMAT = "<64sHBBIII16sIQQIQ"


@dataclass
class DirectoryEntry:
    """A single 128-byte directory entry.

    Attributes:
        sid: Index of the entry in the directory
        name: Decoded entry name
        entry_type: One of olefile.STGTY_* (stream, storage, root, empty)
        left: Left sibling id
        right: Right sibling id
        child: Root of the child tree for storages
        start_sector: First sector (or mini sector) of the stream data
        size: Declared stream size in bytes
    """

    sid: int
    name: str
    entry_type: int
    left: int
    right: int
    child: int
    start_sector: int
    size: int


class CompoundFileReader:
    """
    Low-level reader for compound files held in memory.

    The header, FAT and directory are parsed eagerly; the mini stream and
    mini FAT are loaded on first use.
    """

    def __init__(self, data: bytes):
        """Parse the header, FAT and directory.

        Args:
            data: Complete compound file content

        Raises:
            CorruptContainerError: If the header or any structural chain is invalid
        """
        self._data = bytes(data)
        self._fat: List[int] = []
        self._entries: List[DirectoryEntry] = []
        self._mini_fat: Optional[List[int]] = None
        self._mini_stream: Optional[bytes] = None

        self._parse_header()
        self._load_fat()
        self._load_directory()

    # -------------------------------------------------------------------------
    # Header
    # -------------------------------------------------------------------------

    def _parse_header(self) -> None:
        if len(self._data) < HEADER_SIZE:
            raise CorruptContainerError(
                f"Compound file too small ({len(self._data)} bytes)"
            )

        (
            magic,
            _clsid,
            _minor_version,
            self._major_version,
            byte_order,
            sector_shift,
            mini_sector_shift,
            _reserved,
            _num_dir_sectors,
            self._num_fat_sectors,
            self._first_dir_sector,
            _transaction,
            self._mini_stream_cutoff,
            self._first_mini_fat_sector,
            self._num_mini_fat_sectors,
            self._first_difat_sector,
            self._num_difat_sectors,
        ) = struct.unpack_from(_HEADER_FORMAT, self._data, 0)

        if magic != olefile.MAGIC:
            raise CorruptContainerError("Invalid compound file signature")
        if byte_order != BYTE_ORDER_MARK:
            raise CorruptContainerError(f"Invalid byte order mark: {byte_order:#x}")
        if sector_shift not in (9, 12):
            raise CorruptContainerError(f"Unsupported sector shift: {sector_shift}")
        if not 0 < mini_sector_shift < sector_shift:
            raise CorruptContainerError(
                f"Unsupported mini sector shift: {mini_sector_shift}"
            )
        if self._num_fat_sectors == 0:
            raise CorruptContainerError("Compound file declares no FAT sectors")

        self.sector_size = 1 << sector_shift
        self.mini_sector_size = 1 << mini_sector_shift
        # sector 0 starts right after the header sector
        body = max(0, len(self._data) - self.sector_size)
        self._num_sectors = (body + self.sector_size - 1) // self.sector_size

        logger.debug(
            f"Compound file v{self._major_version}: sector size {self.sector_size}, "
            f"{self._num_sectors} sectors, {self._num_fat_sectors} FAT sectors"
        )

    # -------------------------------------------------------------------------
    # Sector helpers
    # -------------------------------------------------------------------------

    def _sector(self, sector_id: int) -> bytes:
        """Return the raw bytes of one regular sector.

        A trailing sector cut short by the end of the file is returned as-is;
        callers compare the assembled length against the declared size.
        """
        if sector_id > MAX_REGULAR_SECTOR or sector_id >= self._num_sectors:
            raise CorruptContainerError(
                f"Sector {sector_id:#x} out of range ({self._num_sectors} sectors)"
            )
        offset = (sector_id + 1) * self.sector_size
        return self._data[offset : offset + self.sector_size]

    @staticmethod
    def _unpack_ids(raw: bytes) -> List[int]:
        count = len(raw) // 4
        return list(struct.unpack_from(f"<{count}I", raw, 0))

    @staticmethod
    def _follow_chain(
        start: int,
        table: List[int],
        *,
        limit: Optional[int] = None,
        what: str = "stream",
    ) -> List[int]:
        """Collect the sector ids of a chain.

        Args:
            start: First sector id
            table: Next-pointer table (FAT or mini FAT)
            limit: Stop after this many sectors (None = until ENDOFCHAIN)
            what: Label used in error messages

        Raises:
            CorruptContainerError: On a free/special id, an id beyond the table,
                or a sector visited twice
        """
        chain: List[int] = []
        seen = set()
        sector_id = start
        while sector_id != END_OF_CHAIN:
            if limit is not None and len(chain) >= limit:
                break
            if sector_id > MAX_REGULAR_SECTOR or sector_id >= len(table):
                raise CorruptContainerError(
                    f"{what}: invalid sector id {sector_id:#x} in chain"
                )
            if sector_id in seen:
                raise CorruptContainerError(
                    f"{what}: sector chain loops back to {sector_id}"
                )
            seen.add(sector_id)
            chain.append(sector_id)
            sector_id = table[sector_id]
        return chain

    def _read_chain(
        self, start: int, size: Optional[int] = None, *, what: str = "stream"
    ) -> bytes:
        """Read a chain of regular sectors.

        With ``size`` the chain must cover exactly that many bytes; without it
        the chain is read until ENDOFCHAIN.
        """
        if size == 0:
            return b""
        needed = None
        if size is not None:
            needed = (size + self.sector_size - 1) // self.sector_size
        chain = self._follow_chain(start, self._fat, limit=needed, what=what)
        data = b"".join(self._sector(sector_id) for sector_id in chain)
        if size is None:
            return data
        if len(data) < size:
            raise CorruptContainerError(
                f"{what}: chain holds {len(data)} bytes, {size} declared"
            )
        return data[:size]

    # -------------------------------------------------------------------------
    # Allocation tables
    # -------------------------------------------------------------------------

    def _load_fat(self) -> None:
        """Assemble the FAT from the header DIFAT and any DIFAT sectors."""
        header_difat = struct.unpack_from(
            f"<{HEADER_DIFAT_ENTRIES}I", self._data, _HEADER_DIFAT_OFFSET
        )
        fat_sectors = [sid for sid in header_difat if sid <= MAX_REGULAR_SECTOR]

        difat_sector = self._first_difat_sector
        seen = set()
        while (
            difat_sector not in (END_OF_CHAIN, FREE_SECTOR)
            and len(fat_sectors) < self._num_fat_sectors
        ):
            if difat_sector in seen:
                raise CorruptContainerError(
                    f"DIFAT chain loops back to {difat_sector}"
                )
            seen.add(difat_sector)
            ids = self._unpack_ids(self._sector(difat_sector))
            fat_sectors.extend(sid for sid in ids[:-1] if sid <= MAX_REGULAR_SECTOR)
            difat_sector = ids[-1]

        fat_sectors = fat_sectors[: self._num_fat_sectors]
        if len(fat_sectors) < self._num_fat_sectors:
            logger.debug(
                f"DIFAT lists {len(fat_sectors)} of {self._num_fat_sectors} FAT sectors"
            )
        if not fat_sectors:
            raise CorruptContainerError("No FAT sectors listed in the DIFAT")

        if len(set(fat_sectors)) != len(fat_sectors):
            raise CorruptContainerError("FAT sector listed twice in the DIFAT")

        self._fat = []
        for sector_id in fat_sectors:
            self._fat.extend(self._unpack_ids(self._sector(sector_id)))

    def _load_mini(self) -> None:
        root = self._entries[0]
        self._mini_stream = self._read_chain(
            root.start_sector, root.size, what="mini stream"
        )
        if (
            self._num_mini_fat_sectors == 0
            or self._first_mini_fat_sector == END_OF_CHAIN
        ):
            self._mini_fat = []
        else:
            self._mini_fat = self._unpack_ids(
                self._read_chain(self._first_mini_fat_sector, what="mini FAT")
            )

    # -------------------------------------------------------------------------
    # Directory
    # -------------------------------------------------------------------------

    def _load_directory(self) -> None:
        raw = self._read_chain(self._first_dir_sector, what="directory")
        entries = []
        for sid in range(len(raw) // DIRECTORY_ENTRY_SIZE):
            entries.append(self._parse_entry(sid, raw, sid * DIRECTORY_ENTRY_SIZE))
        if not entries or entries[0].entry_type != olefile.STGTY_ROOT:
            raise CorruptContainerError("Directory does not start with a root entry")
        self._entries = entries

    def _parse_entry(self, sid: int, raw: bytes, offset: int) -> DirectoryEntry:
        (
            raw_name,
            name_length,
            entry_type,
            _color,
            left,
            right,
            child,
            _clsid,
            _state,
            _created,
            _modified,
            start_sector,
            size,
        ) = struct.unpack_from(_DIRECTORY_FORMAT, raw, offset)

        # name_length counts the UTF-16 terminator
        name_length = min(max(name_length - 2, 0), len(raw_name))
        name = raw_name[:name_length].decode("utf-16-le", errors="replace")
        if self._major_version == 3:
            # version 3 files may carry garbage in the high dword
            size &= 0xFFFFFFFF

        return DirectoryEntry(
            sid=sid,
            name=name,
            entry_type=entry_type,
            left=left,
            right=right,
            child=child,
            start_sector=start_sector,
            size=size,
        )

    def _walk(self) -> List[Tuple[str, DirectoryEntry]]:
        """Enumerate stream entries in directory traversal order.

        Sibling trees are visited in order (left, self, right); a storage's
        children are visited when the storage itself is. Both the sibling
        descent and the storage descent use explicit stacks, so nesting depth
        is bounded only by the number of directory entries.
        """
        result: List[Tuple[str, DirectoryEntry]] = []
        visited = {0}
        # one frame per open storage: (pending entries, next sid, path prefix)
        frames: List[Tuple[List[DirectoryEntry], int, str]] = [
            ([], self._entries[0].child, "")
        ]
        while frames:
            pending, current, prefix = frames[-1]
            if current != NO_STREAM:
                if current >= len(self._entries):
                    raise CorruptContainerError(
                        f"Directory entry id {current} out of range"
                    )
                if current in visited:
                    raise CorruptContainerError(
                        f"Directory entry {current} referenced twice"
                    )
                visited.add(current)
                entry = self._entries[current]
                pending.append(entry)
                frames[-1] = (pending, entry.left, prefix)
                continue
            if not pending:
                frames.pop()
                continue
            entry = pending.pop()
            frames[-1] = (pending, entry.right, prefix)
            path = prefix + entry.name
            if entry.entry_type == olefile.STGTY_STREAM:
                result.append((path, entry))
            elif entry.entry_type == olefile.STGTY_STORAGE:
                frames.append(([], entry.child, path + "/"))
        return result

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def entries(self) -> List[DirectoryEntry]:
        return list(self._entries)

    def read_stream(self, entry: DirectoryEntry) -> bytes:
        """Reconstruct exactly ``entry.size`` bytes of a stream."""
        label = f"stream {entry.name!r}"
        if entry.size < self._mini_stream_cutoff:
            if self._mini_stream is None:
                self._load_mini()
            return self._read_mini_chain(entry.start_sector, entry.size, what=label)
        return self._read_chain(entry.start_sector, entry.size, what=label)

    def _read_mini_chain(self, start: int, size: int, *, what: str) -> bytes:
        if size == 0:
            return b""
        needed = (size + self.mini_sector_size - 1) // self.mini_sector_size
        chain = self._follow_chain(start, self._mini_fat, limit=needed, what=what)
        parts = []
        for mini_id in chain:
            offset = mini_id * self.mini_sector_size
            if offset >= len(self._mini_stream):
                raise CorruptContainerError(
                    f"{what}: mini sector {mini_id} beyond the mini stream"
                )
            parts.append(self._mini_stream[offset : offset + self.mini_sector_size])
        data = b"".join(parts)
        if len(data) < size:
            raise CorruptContainerError(
                f"{what}: mini chain holds {len(data)} bytes, {size} declared"
            )
        return data[:size]

    def streams(self) -> List[NamedStream]:
        streams = []
        for path, entry in self._walk():
            content = self.read_stream(entry)
            logger.debug(f"Read stream {path!r} ({len(content)} bytes)")
            streams.append(NamedStream(name=entry.name, content=content, path=path))
        return streams


def open_container(data: bytes) -> StorageContainer:
    """
    Parse a compound file into its named streams.

    Args:
        data: Raw bytes of the compound file (e.g. an oleObjectN.bin part).

    Returns:
        StorageContainer with one NamedStream per stream entry, in directory
        traversal order. Each stream's content has exactly its declared size.

    Raises:
        CorruptContainerError: Invalid signature, header, chain or directory.
    """
    try:
        reader = CompoundFileReader(data)
        return StorageContainer(streams=tuple(reader.streams()))
    except struct.error as exc:
        raise CorruptContainerError(
            "Compound file structure truncated", cause=exc
        ) from exc
    except (IndexError, ValueError, OverflowError) as exc:
        raise CorruptContainerError(
            f"Compound file structure invalid: {exc}", cause=exc
        ) from exc


def list_streams(container: StorageContainer) -> Tuple[NamedStream, ...]:
    return container.streams

