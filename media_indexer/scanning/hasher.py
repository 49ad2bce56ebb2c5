import hashlib
from pathlib import Path

from .. import config
from ..exceptions import HashComputationError


class FileHasher:
    def __init__(self, chunk_size: int = config.HASH_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def compute_hash(self, path: Path) -> str:
        """
        Computes the content identity of a file as the SHA-256 of its bytes.

        The file is streamed in fixed-size chunks so large media never has to
        fit in memory. The result depends only on the bytes, never on the
        name, location or timestamps of the file.

        Raises:
            HashComputationError: the file vanished, is not readable, or the
                read failed part way through.
        """
        h = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(self.chunk_size):
                    h.update(chunk)
        except OSError as e:
            raise HashComputationError(path, e.strerror or str(e)) from e
        return h.hexdigest()
