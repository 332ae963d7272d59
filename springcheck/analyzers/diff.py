"""Unified diff parsing for git-style patches."""
from __future__ import annotations

import re
from dataclasses import dataclass, field

_HUNK_HEADER = re.compile(r"^@@\s+-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s+@@(.*)")


@dataclass
class DiffHunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    header: str
    added_lines: list[tuple[int, str]] = field(default_factory=list)
    context_lines: list[tuple[int, str]] = field(default_factory=list)
    removed_lines: list[tuple[int, str]] = field(default_factory=list)


@dataclass
class DiffFile:
    old_path: str | None
    new_path: str | None
    hunks: list[DiffHunk] = field(default_factory=list)
    is_new: bool = False
    is_deleted: bool = False
    is_renamed: bool = False
    is_binary: bool = False

    @property
    def path(self) -> str:
        return self.new_path or self.old_path or "<unknown>"

    @property
    def changed_lines(self) -> frozenset[int]:
        return frozenset(n for h in self.hunks for n, _ in h.added_lines)

    def new_text(self) -> str:
        """Post-image text of a newly added file."""
        return "\n".join(text for h in self.hunks for _, text in h.added_lines) + "\n"

    def fragment(self) -> str:
        """Post-image assembled from hunks; lines outside the hunks are blank."""
        known: dict[int, str] = {}
        for h in self.hunks:
            for n, text in h.context_lines:
                known[n] = text
            for n, text in h.added_lines:
                known[n] = text
        if not known:
            return ""
        last = max(known)
        return "\n".join(known.get(n, "") for n in range(1, last + 1)) + "\n"


def parse_diff(diff_text: str) -> list[DiffFile]:
    """Parse a unified diff (git or plain `diff -u`) into DiffFile objects.

    Hunk bodies are consumed by their header counts, so removed lines that
    happen to start with "--" are never mistaken for file headers.
    """
    files: list[DiffFile] = []
    current_file: DiffFile | None = None
    hunk: DiffHunk | None = None
    old_left = new_left = 0
    old_line_no = new_line_no = 0

    for line in diff_text.splitlines():
        if hunk is not None and (old_left > 0 or new_left > 0):
            if line.startswith("\\"):
                # "\ No newline at end of file"
                continue
            if line.startswith("+"):
                hunk.added_lines.append((new_line_no, line[1:]))
                new_line_no += 1
                new_left -= 1
            elif line.startswith("-"):
                hunk.removed_lines.append((old_line_no, line[1:]))
                old_line_no += 1
                old_left -= 1
            else:
                hunk.context_lines.append((new_line_no, line[1:]))
                old_line_no += 1
                new_line_no += 1
                old_left -= 1
                new_left -= 1
            continue
        hunk = None

        if line.startswith("diff --git"):
            parts = line.split()
            current_file = DiffFile(
                old_path=parts[2].removeprefix("a/") if len(parts) >= 4 else None,
                new_path=parts[3].removeprefix("b/") if len(parts) >= 4 else None,
            )
            files.append(current_file)
            continue

        if line.startswith("--- "):
            # Plain `diff -u` output has no git header; a --- line after a hunk starts a new file.
            if current_file is None or current_file.hunks:
                current_file = DiffFile(old_path=None, new_path=None)
                files.append(current_file)
            path = _strip_marker(line[4:])
            if path is None:
                current_file.is_new = True
            current_file.old_path = path
            continue

        if current_file is None:
            continue

        if line.startswith("+++ "):
            path = _strip_marker(line[4:])
            if path is None:
                current_file.is_deleted = True
            current_file.new_path = path
        elif line.startswith("new file"):
            current_file.is_new = True
        elif line.startswith("deleted file"):
            current_file.is_deleted = True
        elif line.startswith("rename from") or line.startswith("rename to"):
            current_file.is_renamed = True
        elif line.startswith("Binary files"):
            current_file.is_binary = True
        else:
            match = _HUNK_HEADER.match(line)
            if match:
                hunk = DiffHunk(
                    old_start=int(match.group(1)),
                    old_count=int(match.group(2) or 1),
                    new_start=int(match.group(3)),
                    new_count=int(match.group(4) or 1),
                    header=match.group(5).strip(),
                )
                current_file.hunks.append(hunk)
                old_left, new_left = hunk.old_count, hunk.new_count
                old_line_no, new_line_no = hunk.old_start, hunk.new_start

    return files


def _strip_marker(raw: str) -> str | None:
    path = raw.split("\t", 1)[0].strip()
    if path == "/dev/null":
        return None
    for prefix in ("a/", "b/"):
        if path.startswith(prefix):
            return path[len(prefix):]
    return path
