"""
Writer for the asar archive format used to ship extensions.

Layout: an 8-byte pickle holding the header size, a pickle holding the JSON
header, then every file's bytes back to back. File offsets in the header are
relative to the end of the header.
"""
import hashlib
import json
import os
import shutil
import struct
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from ..core.exceptions import PackagingError

BLOCK_SIZE = 4 * 1024 * 1024


def _align4(n: int) -> int:
    return (n + 3) & ~3


def _pickle_uint32(value: int) -> bytes:
    return struct.pack('<II', 4, value)


def _pickle_string(value: str) -> bytes:
    data = value.encode('utf-8')
    payload = struct.pack('<I', len(data)) + data
    payload += b'\0' * (_align4(len(payload)) - len(payload))
    return struct.pack('<I', len(payload)) + payload


def _file_integrity(path: Path) -> Dict[str, Any]:
    whole = hashlib.sha256()
    blocks: List[str] = []
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(BLOCK_SIZE)
            if not chunk:
                break
            whole.update(chunk)
            blocks.append(hashlib.sha256(chunk).hexdigest())
    if not blocks:
        blocks.append(hashlib.sha256(b'').hexdigest())
    return {
        'algorithm': 'SHA256',
        'hash': whole.hexdigest(),
        'blockSize': BLOCK_SIZE,
        'blocks': blocks,
    }


def _walk(root: Path, directory: Path, files: List[Path], offset: int) -> Tuple[Dict[str, Any], int]:
    entries: Dict[str, Any] = {}

    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_symlink():
            target = Path(os.path.realpath(entry))
            try:
                relative = target.relative_to(Path(os.path.realpath(root)))
            except ValueError:
                raise PackagingError(f"Symlink points outside of the package: {entry}") from None
            entries[entry.name] = {'link': relative.as_posix()}
        elif entry.is_dir():
            children, offset = _walk(root, entry, files, offset)
            entries[entry.name] = {'files': children}
        elif entry.is_file():
            size = entry.stat().st_size
            node: Dict[str, Any] = {
                'size': size,
                'offset': str(offset),
                'integrity': _file_integrity(entry),
            }
            if os.access(entry, os.X_OK):
                node['executable'] = True
            entries[entry.name] = node
            files.append(entry)
            offset += size

    return entries, offset


def create_package(source_dir: Union[str, Path], archive_path: Union[str, Path]) -> None:
    """
    Pack a directory into an asar archive.

    Raises:
        PackagingError: If the source is not a directory or contains
            links escaping it
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise PackagingError(f"Not a directory: {source_dir}")

    files: List[Path] = []
    tree, _ = _walk(source_dir, source_dir, files, 0)

    header = json.dumps({'files': tree}, separators=(',', ':'))
    header_pickle = _pickle_string(header)
    size_pickle = _pickle_uint32(len(header_pickle))

    with open(archive_path, 'wb') as out:
        out.write(size_pickle)
        out.write(header_pickle)
        for path in files:
            with open(path, 'rb') as f:
                shutil.copyfileobj(f, out)


def read_header(archive_path: Union[str, Path]) -> Dict[str, Any]:
    """Read back the JSON header of an archive"""
    with open(archive_path, 'rb') as f:
        _, header_size = struct.unpack('<II', f.read(8))
        header_pickle = f.read(header_size)
    _, length = struct.unpack('<II', header_pickle[:8])
    return json.loads(header_pickle[8:8 + length].decode('utf-8'))
