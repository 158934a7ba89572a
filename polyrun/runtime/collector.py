"""
Output collection for a running command.

Reader threads pull chunks off the stdout and stderr pipes and feed them into
an ``OutputCollector`` labelled by stream. Each stream keeps at most
``limit_bytes``; bytes past the limit are read and dropped so the process
never blocks on a full pipe.
"""
import logging
import threading
from enum import Enum
from typing import BinaryIO, Dict, List, Optional

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class Stream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class _Buffer:
    def __init__(self, limit: int):
        self.limit = limit
        self.chunks: List[bytes] = []
        self.size = 0
        self.truncated = False

    def append(self, data: bytes) -> None:
        room = self.limit - self.size
        if room <= 0:
            if data:
                self.truncated = True
            return
        if len(data) > room:
            data = data[:room]
            self.truncated = True
        self.chunks.append(data)
        self.size += len(data)

    def getvalue(self) -> bytes:
        return b"".join(self.chunks)


class OutputCollector:
    """Bounded, per-stream buffer shared by the pipe reader threads."""

    def __init__(self, limit_bytes: int):
        if limit_bytes <= 0:
            raise ValueError(f"limit_bytes must be positive, got {limit_bytes}")
        self.limit_bytes = limit_bytes
        self._buffers: Dict[Stream, _Buffer] = {s: _Buffer(limit_bytes) for s in Stream}
        self._lock = threading.Lock()
        self._readers: List[threading.Thread] = []

    def feed(self, stream: Stream, data: bytes) -> None:
        with self._lock:
            self._buffers[Stream(stream)].append(data)

    def attach(self, stdout: Optional[BinaryIO], stderr: Optional[BinaryIO]) -> None:
        """Start one daemon reader thread per pipe."""
        for stream, pipe in ((Stream.STDOUT, stdout), (Stream.STDERR, stderr)):
            if pipe is None:
                continue
            reader = threading.Thread(
                target=self._pump,
                args=(stream, pipe),
                name=f"polyrun-{stream.value}-reader",
                daemon=True,
            )
            reader.start()
            self._readers.append(reader)

    def _pump(self, stream: Stream, pipe: BinaryIO) -> None:
        try:
            while True:
                chunk = pipe.read1(CHUNK_SIZE) if hasattr(pipe, "read1") else pipe.read(CHUNK_SIZE)
                if not chunk:
                    break
                self.feed(stream, chunk)
        except (OSError, ValueError) as e:
            # Pipe closed underneath us after a forced removal.
            logger.debug(f"{stream.value} reader stopped: {e}")
        finally:
            try:
                pipe.close()
            except OSError:
                pass

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the readers to hit EOF. Returns False if any is still running."""
        for reader in self._readers:
            reader.join(timeout)
        return not any(reader.is_alive() for reader in self._readers)

    def _text(self, stream: Stream, offset: int = 0) -> str:
        with self._lock:
            data = self._buffers[Stream(stream)].getvalue()
        return data[offset:].decode("utf-8", errors="replace")

    def since(self, stream: Stream, offset: int) -> str:
        """Text captured on ``stream`` after the first ``offset`` bytes."""
        return self._text(stream, offset)

    @property
    def stdout(self) -> str:
        return self._text(Stream.STDOUT)

    @property
    def stderr(self) -> str:
        return self._text(Stream.STDERR)

    @property
    def truncated(self) -> bool:
        with self._lock:
            return any(b.truncated for b in self._buffers.values())

    def size(self, stream: Stream) -> int:
        with self._lock:
            return self._buffers[Stream(stream)].size
