"""Version navigation and diff views for artifact documents.

A diff is always computed from two whole versions; nothing incremental is
stored or transmitted.
"""

from __future__ import annotations

import difflib
from collections.abc import Sequence
from dataclasses import dataclass, field

from agentchat.application.exceptions import DocumentNotFoundError, VersionNotFoundError
from agentchat.domain.models import DocumentVersion


@dataclass(frozen=True)
class DiffView:
    document_id: str
    old_version: int
    new_version: int
    old_content: str
    new_content: str
    unified_diff: list[str] = field(default_factory=list)


def version_at(versions: Sequence[DocumentVersion], index: int) -> DocumentVersion:
    if not versions:
        raise DocumentNotFoundError("Document has no versions")
    if not 0 <= index < len(versions):
        raise VersionNotFoundError(f"Version {index} does not exist (0..{len(versions) - 1})")
    return versions[index]


def build_diff_view(versions: Sequence[DocumentVersion], index: int) -> DiffView:
    """Compare version *index* with the version before it.

    Raises:
        VersionNotFoundError: *index* is out of range or is the first version.
    """
    new = version_at(versions, index)
    if index == 0:
        raise VersionNotFoundError("The first version has no previous version to compare with")
    old = version_at(versions, index - 1)
    diff = difflib.unified_diff(
        old.content.splitlines(keepends=True),
        new.content.splitlines(keepends=True),
        fromfile=f"{old.title} (v{old.version_index})",
        tofile=f"{new.title} (v{new.version_index})",
    )
    return DiffView(
        document_id=new.document_id,
        old_version=old.version_index,
        new_version=new.version_index,
        old_content=old.content,
        new_content=new.content,
        unified_diff=list(diff),
    )


@dataclass
class VersionCursor:
    """Position of the version being viewed, always within the saved versions."""

    count: int
    index: int = -1

    def __post_init__(self) -> None:
        if self.count < 1:
            raise DocumentNotFoundError("Document has no versions")
        self.index = self.count - 1 if self.index < 0 else min(self.index, self.count - 1)

    @property
    def is_latest(self) -> bool:
        return self.index == self.count - 1

    def previous(self) -> int:
        self.index = max(0, self.index - 1)
        return self.index

    def next(self) -> int:
        self.index = min(self.count - 1, self.index + 1)
        return self.index

    def latest(self) -> int:
        self.index = self.count - 1
        return self.index

    def grow(self, count: int) -> None:
        """A new version was saved; jump to it when viewing the latest."""
        follow = self.is_latest
        self.count = count
        if follow:
            self.index = count - 1
