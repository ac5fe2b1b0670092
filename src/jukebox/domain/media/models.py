"""
Media domain models.

Contains the data structures describing playable requests.
"""

import hashlib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal, Optional

SourceKind = Literal["local_file", "remote_url"]


@dataclass(frozen=True)
class MediaSource:
    """Where the media for a request comes from.

    Exactly one of path/url is meaningful, depending on kind.
    """

    kind: SourceKind
    path: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def local(cls, path: str) -> "MediaSource":
        return cls(kind="local_file", path=path)

    @classmethod
    def remote(cls, url: str) -> "MediaSource":
        return cls(kind="remote_url", url=url)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind}
        if self.path is not None:
            data["path"] = self.path
        if self.url is not None:
            data["url"] = self.url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MediaSource":
        return cls(kind=data["type"], path=data.get("path"), url=data.get("url"))


@dataclass(frozen=True)
class QueueItem:
    """An approved, playable unit of the request queue.

    Immutable once created; the only thing that changes is its position in
    the queue. requested_by stays None until the item is actually requested.
    """

    key: str  # Stable catalog identifier or synthesized id (e.g. "yt_<video id>")
    title: str
    source: MediaSource
    requested_by: Optional[str] = None

    def with_requester(self, requester: str) -> "QueueItem":
        """Return a copy attributed to the given requester."""
        return replace(self, requested_by=requester)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "title": self.title,
            "source": self.source.to_dict(),
            "requested_by": self.requested_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueItem":
        return cls(
            key=data["key"],
            title=data.get("title") or data["key"],
            source=MediaSource.from_dict(data["source"]),
            requested_by=data.get("requested_by"),
        )


def is_url(text: str) -> bool:
    """Check whether text looks like an http(s) URL."""
    return text.startswith(("http://", "https://"))


def item_from_argument(text: str) -> QueueItem:
    """Build a QueueItem from a local path or URL given on the command line.

    Local files are keyed by their stem; URLs get a short stable hash so the
    cache filename stays the same across runs.
    """
    if is_url(text):
        digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:11]
        return QueueItem(key=f"url_{digest}", title=text, source=MediaSource.remote(text))

    path = Path(text).expanduser()
    return QueueItem(key=path.stem, title=path.stem, source=MediaSource.local(str(path)))
