from __future__ import annotations

"""The set of files a pipeline hands from task to task."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class TmpFile:
    path: str
    file: Path


@dataclass
class Fileset:
    """Files keyed by their posix path relative to `root`.

    Tasks receive a fileset and return one; tasks that only read files return
    the fileset they were given.
    """

    root: Path | None = None
    tree: dict[str, TmpFile] = field(default_factory=dict)

    @classmethod
    def from_dir(cls, root: str | Path) -> "Fileset":
        root = Path(root)
        tree: dict[str, TmpFile] = {}
        if root.is_dir():
            for dirpath, _, files in os.walk(root):
                for name in files:
                    p = Path(dirpath) / name
                    rel = p.relative_to(root).as_posix()
                    tree[rel] = TmpFile(path=rel, file=p.resolve())
        return cls(root=root.resolve(), tree=tree)

    def output_files(self) -> list[TmpFile]:
        return [self.tree[k] for k in sorted(self.tree)]

    def tmp_file(self, path: str) -> Path:
        return self.tree[path].file

    def __contains__(self, path: object) -> bool:
        return path in self.tree

    def __len__(self) -> int:
        return len(self.tree)
