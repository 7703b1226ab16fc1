"""
Console output utilities for pull progress.

Renders the engine's JSON progress stream either as an interactive display
that redraws one line per layer, or as plain lines routed through logging
when the output is not a terminal.
"""

import codecs
import json
import logging
import sys
from typing import BinaryIO, Optional, TextIO

from forge_pull.core.exceptions import ProgressStreamError

progress_logger = logging.getLogger("forge_pull.progress")

_READ_SIZE = 4096
_ESC = "\x1b"


def is_terminal(out) -> bool:
    """Check if an output stream is attached to an interactive terminal."""
    isatty = getattr(out, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # isatty() on a closed stream
        return False


class LoggerWriter:
    """File-like object that emits every complete line as a log record."""

    def __init__(self, target: logging.Logger = progress_logger, level: int = logging.INFO):
        self._logger = target
        self._level = level
        self._buffer = ""

    def write(self, text: str) -> int:
        self._buffer += text
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            line = line.rstrip("\r")
            if line:
                self._logger.log(self._level, line)
        return len(text)

    def flush(self) -> None:
        if self._buffer.strip():
            self._logger.log(self._level, self._buffer.strip())
        self._buffer = ""

    def isatty(self) -> bool:
        return False


def format_progress(message: dict) -> str:
    """Build the textual progress bar for a message, if it carries one."""
    progress = message.get("progress")
    if progress:
        return progress

    detail = message.get("progressDetail") or {}
    current = detail.get("current")
    total = detail.get("total")
    if current is None:
        return ""
    if total:
        return f"{_human_size(current)}/{_human_size(total)}"
    return _human_size(current)


def _human_size(size: float) -> str:
    for unit in ("B", "kB", "MB", "GB"):
        if size < 1000:
            return f"{size:.4g}{unit}"
        size /= 1000
    return f"{size:.4g}TB"


def format_message(message: dict, with_progress: bool = True) -> str:
    """Format a single progress record as one display line."""
    parts = []
    if message.get("id"):
        parts.append(f"{message['id']}:")
    if message.get("status"):
        parts.append(message["status"])
    if with_progress:
        progress = format_progress(message)
        if progress:
            parts.append(progress)
    elif (message.get("progressDetail") or {}).get("total"):
        # Intermediate download/extract updates are noise outside a terminal
        return ""
    if message.get("stream"):
        parts.append(message["stream"].rstrip("\n"))
    return " ".join(parts)


def _raise_for_error(message: dict) -> None:
    detail = message.get("errorDetail") or {}
    error = detail.get("message") or message.get("error")
    if error:
        raise ProgressStreamError(error)


def iter_json_messages(stream: BinaryIO):
    """
    Decode concatenated JSON objects from a byte stream.

    The engine separates records with CRLF, but nothing guarantees a record
    is not split across reads, so decoding works on an accumulating buffer.

    Yields:
        Decoded message dictionaries

    Raises:
        ProgressStreamError: If the stream contains undecodable data
    """
    decoder = json.JSONDecoder()
    text_decoder = codecs.getincrementaldecoder("utf-8")()
    read = getattr(stream, "read1", stream.read)
    buffer = ""

    while True:
        chunk = read(_READ_SIZE)
        eof = not chunk
        try:
            buffer += text_decoder.decode(chunk, final=eof)
        except UnicodeDecodeError as e:
            raise ProgressStreamError(f"invalid utf-8 in progress stream: {e}") from e

        while True:
            buffer = buffer.lstrip()
            if not buffer:
                break
            try:
                message, end = decoder.raw_decode(buffer)
            except json.JSONDecodeError as e:
                # Records never contain raw newlines, so a failure with a
                # newline already buffered is bad data, not a partial read
                if eof or "\n" in buffer:
                    raise ProgressStreamError(f"invalid progress record: {e}") from e
                break
            if not isinstance(message, dict):
                raise ProgressStreamError(f"unexpected progress record: {message!r}")
            buffer = buffer[end:]
            yield message

        if eof:
            return


def display_json_messages_stream(
    stream: BinaryIO,
    out: Optional[TextIO] = None,
    terminal: Optional[bool] = None,
) -> None:
    """
    Render a JSON progress stream until EOF.

    In terminal mode each layer id keeps its own line, and updates move the
    cursor back to that line and redraw it. Otherwise every record becomes
    one output line and intermediate download progress is dropped.

    Args:
        stream: Binary stream of JSON progress records
        out: Text destination (defaults to stderr)
        terminal: Override terminal detection

    Raises:
        ProgressStreamError: On undecodable data or an error record
    """
    out = out if out is not None else sys.stderr
    if terminal is None:
        terminal = is_terminal(out)

    line_of: dict[str, int] = {}

    for message in iter_json_messages(stream):
        _raise_for_error(message)

        if not terminal:
            line = format_message(message, with_progress=False)
            if line:
                out.write(line + "\n")
            continue

        layer_id = message.get("id")
        line = format_message(message)
        if not layer_id:
            out.write(line + "\n")
            line_of.clear()
        elif layer_id not in line_of:
            line_of[layer_id] = len(line_of)
            out.write(line + "\n")
        else:
            diff = len(line_of) - line_of[layer_id]
            out.write(f"{_ESC}[{diff}A\r{_ESC}[2K{line}\r{_ESC}[{diff}B")
        out.flush()

    out.flush()
