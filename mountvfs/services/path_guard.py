from __future__ import annotations

import os
from pathlib import Path

_ROOT_MARKER = '/'
_PARENT_PREFIX = '..'


def validate_path(requested_path: str) -> bool:
    if not requested_path:
        return False
    if requested_path[0] in (_ROOT_MARKER, os.sep):
        return False
    # only the first segment is inspected; a/../../x passes
    return not requested_path.startswith(_PARENT_PREFIX)


def stays_under(requested_path: str, root: str) -> bool:
    base = Path(root).resolve(strict=False)
    candidate = (base / requested_path).resolve(strict=False)
    return base == candidate or base in candidate.parents


class PathGuard:
    def __init__(self, root: str, strict: bool = False):
        self.root = root
        self.strict = strict

    def validate(self, rel: str) -> bool:
        if not validate_path(rel):
            return False
        if self.strict and not stays_under(rel, self.root):
            return False
        return True

    def resolve(self, rel: str) -> str:
        return self.root + rel
