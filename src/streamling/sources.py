"""
Re-readable document handles.

A job keeps its source for its whole life so the confidence evaluator can read
the original text again after each successful attempt.
"""

from __future__ import annotations

import asyncio
import typing as t
from pathlib import Path


def make_document_key(*, name: str, size: int, modified_ns: int) -> str:
    """
    Build a content identity key from a name, a byte size and a modification time.
    """
    return f"{name}::{size}::{modified_ns}"


@t.runtime_checkable
class DocumentSource(t.Protocol):
    """
    Minimal shape required by the scheduler to read a document.

    Attributes
    ----------
    name : str
        Display name of the document.
    key : str
        Stable identity used as the job id.
    """

    @property
    def name(self) -> str: ...

    @property
    def key(self) -> str: ...

    async def read_text(self) -> str: ...


class FileSource:
    """
    Document stored on the local filesystem.

    Parameters
    ----------
    path : Path | str
        Path to a UTF-8 text file.
    encoding : str, optional
        Text encoding.
    """

    def __init__(self, path: Path | str, encoding: str = "utf-8") -> None:
        self._path = Path(path)
        self._encoding = encoding
        stat = self._path.stat()
        self._key = make_document_key(
            name=self._path.name,
            size=stat.st_size,
            modified_ns=stat.st_mtime_ns,
        )

    def __repr__(self) -> str:
        return f"FileSource({self._path.as_posix()!r})"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def key(self) -> str:
        return self._key

    async def read_text(self) -> str:
        return await asyncio.to_thread(self._path.read_text, encoding=self._encoding)


class TextSource:
    """
    Document held in memory.
    """

    def __init__(self, name: str, text: str, modified_ns: int = 0) -> None:
        self._name = name
        self._text = text
        self._key = make_document_key(
            name=name,
            size=len(text.encode("utf-8")),
            modified_ns=modified_ns,
        )

    def __repr__(self) -> str:
        return f"TextSource({self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def key(self) -> str:
        return self._key

    async def read_text(self) -> str:
        return self._text
