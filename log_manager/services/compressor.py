import logging
import os
import zlib
from typing import Set

import aiofiles
import aiofiles.os

from .file_removal import remove_tolerating_disappearance

logger = logging.getLogger(__name__)

GZIP_SUFFIX = ".gz"
# wbits offset 16 selects the gzip container instead of a raw zlib stream
_GZIP_WBITS = zlib.MAX_WBITS | 16


class Compressor:
    """
    Streams a log file into a ``.gz`` sibling and then deletes the source.

    There is no temp file + rename step: if streaming fails half way, a partial
    ``.gz`` is left next to the intact source and the next rotation simply
    rewrites it.
    """

    def __init__(self, chunk_size_kb: int = 64, compress_level: int = 6):
        self.chunk_size = chunk_size_kb * 1024
        self.compress_level = compress_level
        self._in_flight: Set[str] = set()

    def is_compressing(self, file_path: str) -> bool:
        return os.path.abspath(file_path) in self._in_flight

    async def gzip(self, file_path: str) -> bool:
        """Returns True when the file was compressed by this call."""
        file_path = os.path.abspath(file_path)
        if file_path in self._in_flight:
            logger.debug(f"Compression already in progress: {file_path}")
            return False

        self._in_flight.add(file_path)
        try:
            if not await aiofiles.os.path.exists(file_path):
                logger.warning(f"Cannot gzip - file does not exist: {file_path}")
                return False

            gzip_path = file_path + GZIP_SUFFIX
            try:
                bytes_in, bytes_out = await self._stream_compress(file_path, gzip_path)
            except FileNotFoundError:
                logger.warning(f"File disappeared before it could be compressed: {file_path}")
                return False
            except OSError as e:
                logger.error(f"Failed to gzip {file_path}: {e}")
                return False

            logger.info(
                f"Compressed {file_path} -> {gzip_path} ({bytes_in} -> {bytes_out} bytes)"
            )
            await remove_tolerating_disappearance(file_path, "compressed source")
            return True
        finally:
            self._in_flight.discard(file_path)

    async def _stream_compress(self, source_path: str, gzip_path: str) -> tuple[int, int]:
        compressor = zlib.compressobj(self.compress_level, zlib.DEFLATED, _GZIP_WBITS)
        bytes_in = 0
        bytes_out = 0

        async with aiofiles.open(source_path, "rb") as src:
            async with aiofiles.open(gzip_path, "wb") as dst:
                while True:
                    chunk = await src.read(self.chunk_size)
                    if not chunk:
                        break
                    bytes_in += len(chunk)
                    compressed = compressor.compress(chunk)
                    if compressed:
                        await dst.write(compressed)
                        bytes_out += len(compressed)

                tail = compressor.flush()
                await dst.write(tail)
                bytes_out += len(tail)

        return bytes_in, bytes_out
