"""Document output: one JSON line per document, flushed as written."""

from __future__ import annotations

import threading
from typing import Any, TextIO

import orjson


# Fields the engine adds for ranking/pagination
TRANSIENT_FIELDS = ("sort", "_score")


class DocumentSink:
    """Writes stripped documents to an output stream.

    Each document is a separate write followed by a flush, so a consumer
    on the other end of a pipe sees documents as they arrive.
    """

    def __init__(self, stream: TextIO):
        self.stream = stream
        self.written = 0
        self._lock = threading.Lock()

    def emit(self, document: dict[str, Any]) -> dict[str, Any]:
        """Strip transient fields and write the document.

        Returns:
            The document as written
        """
        for key in TRANSIENT_FIELDS:
            document.pop(key, None)

        line = orjson.dumps(document).decode("utf-8") + "\n"

        with self._lock:
            self.stream.write(line)
            self.stream.flush()
            self.written += 1

        return document
