"""
Utility functions for airlift.

Includes logging, retries, hashing, tarball helpers and a progress poller.
"""

import hashlib
import json
import logging
import os
import tarfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Iterator, Optional, Union
from contextlib import contextmanager
from urllib.parse import urlparse

import yaml
import zstandard
from rich.console import Console
from rich.logging import RichHandler


# Global console for pretty output
console = Console(stderr=True)

ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "pretty",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up logging for the airlift package.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (human-readable)
        log_file: Optional file that also receives every record

    Returns:
        Configured logger
    """
    logger = logging.getLogger("airlift")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers

    if log_format == "pretty":
        console_handler = RichHandler(console=console, rich_tracebacks=True, show_time=False)
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "package"):
            log_data["package"] = record.package
        if hasattr(record, "component"):
            log_data["component"] = record.component
        if hasattr(record, "source"):
            log_data["source"] = record.source

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def retry_with_backoff(
    func: Callable,
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    backoff_multiplier: float = 2.0,
    retry_on: tuple = (Exception,),
    logger: Optional[logging.Logger] = None,
) -> Any:
    """
    Retry a function with exponential backoff.

    Args:
        func: Function to retry
        max_attempts: Maximum number of attempts
        backoff_seconds: Initial backoff time in seconds
        backoff_multiplier: Multiplier for each retry
        retry_on: Exception types that trigger a retry; anything else propagates
        logger: Logger for retry messages

    Returns:
        Result of successful function call
    """
    attempt = 1
    wait_time = backoff_seconds

    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= max_attempts:
                if logger:
                    logger.error(f"All {max_attempts} attempts failed: {e}")
                raise
            if logger:
                logger.warning(f"Attempt {attempt} failed: {e}. Retrying in {wait_time}s...")
            time.sleep(wait_time)
            wait_time *= backoff_multiplier
            attempt += 1


def is_url(value: str) -> bool:
    """True when value parses with both a scheme and a host."""
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


def get_file_checksum(file_path: Union[str, Path]) -> str:
    """
    Calculate the SHA256 checksum of a file.

    Args:
        file_path: Path to file

    Returns:
        Hex digest
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def get_dir_size(path: Union[str, Path]) -> int:
    """Sum of regular file sizes under path (0 if it does not exist)."""
    total = 0
    for root, _, files in os.walk(path):
        for name in files:
            fp = os.path.join(root, name)
            if not os.path.islink(fp):
                total += os.path.getsize(fp)
    return total


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _walk_sorted(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(dirnames + filenames):
            yield Path(dirpath) / name


def create_reproducible_tarball(src_dir: Path, dst: Path, prefix: str = "") -> None:
    """
    Tar src_dir into dst with sorted entries and zeroed timestamps and owners.

    Entries are named <prefix>/<relative path> (or just the relative path when
    prefix is empty), so the same tree always produces the same bytes.
    """
    src_dir = Path(src_dir)
    with tarfile.open(dst, "w", format=tarfile.PAX_FORMAT) as tar:
        if prefix:
            tar.add(src_dir, arcname=prefix, recursive=False, filter=_normalize)
        paths = sorted(_walk_sorted(src_dir), key=lambda p: p.relative_to(src_dir).as_posix())
        for path in paths:
            rel = path.relative_to(src_dir).as_posix()
            arcname = f"{prefix}/{rel}" if prefix else rel
            tar.add(path, arcname=arcname, recursive=False, filter=_normalize)


def _clean_name(name: str) -> str:
    while name.startswith("./"):
        name = name[2:]
    return name


def is_zstd(path: Union[str, Path]) -> bool:
    with open(path, "rb") as f:
        return f.read(4) == ZSTD_MAGIC


@contextmanager
def open_archive(path: Union[str, Path]) -> Iterator[tarfile.TarFile]:
    """
    Open a .tar or .tar.zst archive for sequential reading.

    The compression is sniffed from the file's magic bytes, not its name.
    """
    with open(path, "rb") as raw:
        if raw.read(4) == ZSTD_MAGIC:
            raw.seek(0)
            with zstandard.ZstdDecompressor().stream_reader(raw) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    yield tar
        else:
            raw.seek(0)
            with tarfile.open(fileobj=raw, mode="r|") as tar:
                yield tar


def extract_archive(
    path: Union[str, Path],
    dest: Union[str, Path],
    strip_components: int = 0,
    select: Optional[Callable[[str], bool]] = None,
) -> list[str]:
    """
    Extract an archive into dest.

    Args:
        path: .tar or .tar.zst archive
        dest: Destination directory (created if needed)
        strip_components: Leading path components removed from every entry
        select: Optional predicate on the (stripped) entry name

    Returns:
        Relative posix paths of extracted regular files, in archive order
    """
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    extracted = []
    with open_archive(path) as tar:
        for member in tar:
            name = member.name
            if strip_components:
                parts = [p for p in name.split("/") if p and p != "."]
                if len(parts) <= strip_components:
                    continue
                name = "/".join(parts[strip_components:])
                member.name = name
            name = _clean_name(name)
            if select is not None and not select(name):
                continue
            tar.extract(member, dest, filter="data")
            if member.isfile():
                extracted.append(name)
    return extracted


def write_archive(files: dict[str, Path], destination: Path) -> None:
    """
    Write files ({archive name: path on disk}) into a .tar or .tar.zst.

    The compression is chosen from the destination's suffix.
    """
    destination = Path(destination)
    with open(destination, "wb") as raw:
        if destination.name.endswith(".zst"):
            with zstandard.ZstdCompressor().stream_writer(raw) as writer:
                _write_tar(files, writer)
        else:
            _write_tar(files, raw)


def _write_tar(files: dict[str, Path], fileobj: BinaryIO) -> None:
    with tarfile.open(fileobj=fileobj, mode="w|", format=tarfile.PAX_FORMAT) as tar:
        for name in sorted(files):
            tar.add(files[name], arcname=name, recursive=False, filter=_normalize)


def split_file(path: Path, chunk_size: int) -> list[Path]:
    """
    Split path into <path>.part001.. shards of chunk_size bytes.

    <path>.part000 holds JSON metadata ({sha256Sum, bytes, count}) used to
    reassemble and verify. The original file is removed.
    """
    path = Path(path)
    size = path.stat().st_size
    digest = get_file_checksum(path)
    shards = []
    with open(path, "rb") as src:
        index = 1
        while True:
            data = src.read(chunk_size)
            if not data:
                break
            shard = path.with_name(f"{path.name}.part{index:03d}")
            shard.write_bytes(data)
            shards.append(shard)
            index += 1

    meta = path.with_name(f"{path.name}.part000")
    meta.write_text(json.dumps({"sha256Sum": digest, "bytes": size, "count": len(shards)}))
    path.unlink()
    return [meta] + shards


class ProgressPoller:
    """
    Polls the size of a directory on a background thread.

    The poller owns its thread: stop() signals it and joins before returning,
    so no reporting outlives the operation it tracks.
    """

    def __init__(
        self,
        directory: Path,
        total: int,
        callback: Optional[Callable[[int, int], None]] = None,
        interval: float = 0.2,
    ):
        self.directory = Path(directory)
        self.total = total
        self.callback = callback
        self.interval = interval
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name="airlift-progress", daemon=True)

    def _run(self):
        while not self._done.wait(self.interval):
            self._report()
        self._report()

    def _report(self):
        if self.callback:
            self.callback(get_dir_size(self.directory), self.total)

    def start(self) -> "ProgressPoller":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._done.set()
        self._thread.join()

    def __enter__(self) -> "ProgressPoller":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def read_bytes_member(tar_path: Union[str, Path], name: str) -> Optional[bytes]:
    """Return the contents of one archive member, or None if absent."""
    with open_archive(tar_path) as tar:
        for member in tar:
            if _clean_name(member.name) == name and member.isfile():
                f = tar.extractfile(member)
                return f.read() if f else None
    return None
