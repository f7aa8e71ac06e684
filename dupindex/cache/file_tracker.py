"""
File tracking for incremental re-indexing.

Keeps one entry per indexed file (content hash, mtime, chunk ids) and
diffs the current scan against it to find added, modified and deleted
files.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import xxhash

from ..types import ChangeType, FileChange, FileHashEntry
from ..utils.fileio import write_atomic

logger = logging.getLogger(__name__)


def hash_content_sync(content: str) -> str:
    """xxh64 hex digest of the UTF-8 encoded ``content``."""
    return xxhash.xxh64(content.encode('utf-8')).hexdigest()


async def hash_content(content: str) -> str:
    """Awaitable form of ``hash_content_sync``; the digest runs on a worker thread."""
    return await asyncio.to_thread(hash_content_sync, content)


class FileTracker:
    """
    Maps file paths to their last indexed content hash and chunk ids.

    Persisted as ``hashes.json``. Unlike the vector and metadata stores,
    unreadable or incompatible tracking data is discarded with a warning:
    the worst outcome is a full re-index.
    """

    HASHES_FILE = 'hashes.json'
    FORMAT_VERSION = 1

    def __init__(self) -> None:
        self._files: Dict[str, FileHashEntry] = {}

    def get_entry(self, file_path: str) -> Optional[FileHashEntry]:
        entry = self._files.get(file_path)
        return None if entry is None else self._copy(entry)

    def set_entry(self, file_path: str, entry: FileHashEntry) -> None:
        self._files[file_path] = self._copy(entry)

    def remove_entry(self, file_path: str) -> bool:
        return self._files.pop(file_path, None) is not None

    def get_tracked_files(self) -> List[str]:
        return list(self._files)

    def clear(self) -> None:
        self._files.clear()

    def update_file(self, file_path: str, content: str, chunk_ids: Iterable[str]) -> None:
        """
        Record that ``file_path`` has been indexed with ``content``.

        The modification time is read from the filesystem, so the file must
        exist; ``FileNotFoundError`` propagates and the table is unchanged.
        """
        stat = os.stat(file_path)
        self._files[file_path] = FileHashEntry(
            content_hash=hash_content_sync(content),
            mtime_ms=stat.st_mtime_ns / 1_000_000,
            chunk_ids=list(chunk_ids),
        )

    def detect_changes(self, current_paths: Iterable[str]) -> List[FileChange]:
        """
        Detect changes between the scanned files and the tracking table.

        Every scanned file is re-read as text with universal newlines and
        re-hashed, so it matches content read with a plain text-mode ``open``.
        Unchanged files are left out of the result. Deletions come first,
        then additions and modifications in scan order.

        Args:
            current_paths: Every file path observed in the current scan

        Returns:
            One ``FileChange`` per added, modified or deleted file
        """
        scanned = list(dict.fromkeys(current_paths))
        scanned_set = set(scanned)

        changes: List[FileChange] = [
            FileChange(path=path, type=ChangeType.DELETED, old_hash=entry.content_hash)
            for path, entry in self._files.items()
            if path not in scanned_set
        ]

        for path in scanned:
            entry = self._files.get(path)
            try:
                new_hash = hash_content_sync(Path(path).read_text(encoding='utf-8'))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Cannot read {path}: {e}")
                if entry is not None:
                    changes.append(
                        FileChange(path=path, type=ChangeType.DELETED, old_hash=entry.content_hash)
                    )
                continue

            if entry is None:
                changes.append(FileChange(path=path, type=ChangeType.ADDED, new_hash=new_hash))
            elif entry.content_hash != new_hash:
                changes.append(
                    FileChange(path=path, type=ChangeType.MODIFIED,
                               old_hash=entry.content_hash, new_hash=new_hash)
                )

        logger.debug(f"Detected {len(changes)} changes across {len(scanned)} scanned files")
        return changes

    def get_stats(self) -> Dict[str, int]:
        return {'tracked_files': len(self._files)}

    def save(self, directory: Union[str, Path]) -> None:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        data = {
            'version': self.FORMAT_VERSION,
            'files': {path: entry.to_dict() for path, entry in self._files.items()},
        }
        write_atomic(directory / self.HASHES_FILE, json.dumps(data, indent=2))
        logger.debug(f"Saved {len(self._files)} tracked files to {directory}")

    def load(self, directory: Union[str, Path]) -> None:
        """Load the tracking table; missing or unusable data gives an empty tracker."""
        path = Path(directory) / self.HASHES_FILE
        if not path.exists():
            self.clear()
            return

        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Discarding unreadable file tracking data {path}: {e}")
            self.clear()
            return

        if not isinstance(data, dict) or data.get('version') != self.FORMAT_VERSION:
            logger.info(f"File tracking data in {path} has an incompatible version, starting fresh")
            self.clear()
            return

        try:
            files = {
                str(file_path): FileHashEntry.from_dict(entry)
                for file_path, entry in data.get('files', {}).items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed file tracking data {path}: {e}")
            self.clear()
            return

        self._files = files
        logger.debug(f"Loaded {len(files)} tracked files from {directory}")

    @staticmethod
    def _copy(entry: FileHashEntry) -> FileHashEntry:
        return FileHashEntry(entry.content_hash, entry.mtime_ms, list(entry.chunk_ids))
