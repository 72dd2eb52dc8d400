"""
Version Diff Engine

Word-level comparison of two version contents for the compare view.

The diff runs on tokens (words, whitespace runs, single punctuation
characters): each distinct token is mapped to one character, the encoded
strings are aligned with diff-match-patch and the result is decoded back
to text. ``diff_cleanupSemantic`` then folds short unchanged fragments
that sit between two edits into those edits, so "the cat sat" -> "a dog
ran" reads as one replacement rather than three interleaved ones.

Invariant: joining the ``equal`` and ``insertion`` spans yields the new
text; joining the ``equal`` and ``deletion`` spans yields the old text.
"""

from __future__ import annotations

import html
import re
import uuid
from collections.abc import Iterator
from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

from diff_match_patch import diff_match_patch

from draftdesk.core.errors import VersionNotFound
from draftdesk.models import Version

if TYPE_CHECKING:
    from draftdesk.services.versions import VersionStore


class DiffOp(StrEnum):
    EQUAL = "equal"
    INSERTION = "insertion"
    DELETION = "deletion"


Span = tuple[DiffOp, str]

_TOKEN_RE = re.compile(r"\w+|\s+|[^\w\s]")


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text)


_OPS = {
    diff_match_patch.DIFF_DELETE: DiffOp.DELETION,
    diff_match_patch.DIFF_EQUAL: DiffOp.EQUAL,
    diff_match_patch.DIFF_INSERT: DiffOp.INSERTION,
}
_CODES = {op: code for code, op in _OPS.items()}


def _cleanup(dmp: diff_match_patch, diffs: list) -> None:
    dmp.diff_cleanupSemantic(diffs)
    # Lossless shifting can leave two edits of the same kind side by side
    dmp.diff_cleanupMerge(diffs)


def _encode(text: str, token_array: list[str], token_hash: dict[str, int]) -> str:
    chars = []
    for token in tokenize(text):
        if token not in token_hash:
            token_array.append(token)
            token_hash[token] = len(token_array) - 1
        chars.append(chr(token_hash[token]))
    return "".join(chars)


def _token_spans(a: str, b: str) -> list[Span]:
    """Token-level diff of ``a`` against ``b`` after semantic cleanup."""
    dmp = diff_match_patch()
    # Index 0 stays unused, as in diff_linesToChars
    token_array = [""]
    token_hash: dict[str, int] = {}
    chars_a = _encode(a, token_array, token_hash)
    chars_b = _encode(b, token_array, token_hash)

    diffs = dmp.diff_main(chars_a, chars_b, False)
    dmp.diff_charsToLines(diffs, token_array)
    _cleanup(dmp, diffs)
    return [(_OPS[code], text) for code, text in diffs]


def cleanup_semantic(spans: list[Span]) -> list[Span]:
    """
    Run diff-match-patch's semantic cleanup over ``(DiffOp, text)`` spans.

    Short equalities surrounded by edits are folded into them and
    neighbouring spans of the same kind are merged.
    """
    diffs = [(_CODES[op], text) for op, text in spans]
    _cleanup(diff_match_patch(), diffs)
    return [(_OPS[code], text) for code, text in diffs]


class VersionDiff:
    """
    Lazy sequence of ``(DiffOp, text)`` spans between two texts.

    Nothing is computed until the first iteration; later iterations
    replay the same spans.
    """

    def __init__(self, content_a: str, content_b: str) -> None:
        self.content_a = content_a
        self.content_b = content_b
        self._spans: list[Span] | None = None

    def _compute(self) -> list[Span]:
        if self._spans is None:
            self._spans = _token_spans(self.content_a, self.content_b)
        return self._spans

    def __iter__(self) -> Iterator[Span]:
        return iter(self._compute())

    def __len__(self) -> int:
        return len(self._compute())

    @property
    def inserted_chars(self) -> int:
        return sum(len(t) for op, t in self if op == DiffOp.INSERTION)

    @property
    def deleted_chars(self) -> int:
        return sum(len(t) for op, t in self if op == DiffOp.DELETION)

    @property
    def is_identical(self) -> bool:
        return all(op == DiffOp.EQUAL for op, _ in self)

    def old_text(self) -> str:
        return "".join(t for op, t in self if op != DiffOp.INSERTION)

    def new_text(self) -> str:
        return "".join(t for op, t in self if op != DiffOp.DELETION)


def diff(content_a: str, content_b: str) -> VersionDiff:
    """Diff ``content_a`` (old) against ``content_b`` (new)."""
    return VersionDiff(content_a or "", content_b or "")


def render_html(spans: VersionDiff) -> str:
    """Render spans as HTML: insertions in ``<ins>``, deletions in ``<del>``."""
    parts = []
    for op, text in spans:
        escaped = html.escape(text).replace("\n", "<br/>")
        if op == DiffOp.INSERTION:
            parts.append(f"<ins>{escaped}</ins>")
        elif op == DiffOp.DELETION:
            parts.append(f"<del>{escaped}</del>")
        else:
            parts.append(escaped)
    return "".join(parts)


class VersionComparison(NamedTuple):
    base: Version
    target: Version
    diff: VersionDiff

    @property
    def inserted_chars(self) -> int:
        return self.diff.inserted_chars

    @property
    def deleted_chars(self) -> int:
        return self.diff.deleted_chars


async def compare_versions(
    store: VersionStore,
    version_a_id: uuid.UUID,
    version_b_id: uuid.UUID,
    project_id: uuid.UUID | None = None,
) -> VersionComparison:
    """
    Load two versions through ``store`` and diff their contents.

    Raises:
        VersionNotFound: Either version is missing or, when ``project_id``
            is given, belongs to another project.
    """
    base = await store.get_version(version_a_id)
    target = await store.get_version(version_b_id)
    if project_id is not None:
        for version in (base, target):
            if version.project_id != project_id:
                raise VersionNotFound(f"Version {version.id} not found")
    return VersionComparison(base, target, diff(base.content, target.content))
