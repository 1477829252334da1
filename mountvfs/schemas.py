from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Perms(int, Enum):
    # RW is its own request kind, not READ | WRITE
    READ = 1
    WRITE = 2
    RW = 4


class PermissionString(str, Enum):
    NONE = '--'
    READ = 'r-'
    WRITE = '-w'
    RW = 'rw'


class FileType(str, Enum):
    PIPE = 'PIPE'
    UNKNOWN = 'UNKNOWN'
    SOCKET = 'SOCKET'
    SYMLINK = 'SYMLINK'
    DIRECTORY = 'DIRECTORY'
    REGULAR = 'REGULAR FILE'
    BLOCK = 'BLOCK DEVICE'
    NOT_FOUND = 'DOES NOT EXIST'
    NONE = 'NOT-EVALUATED-YET TYPE'
    IMPLEMENTATION_DEFINED = 'IMPLEMENTATION-DEFINED TYPE'


NOT_FOUND = FileType.NOT_FOUND.value


class FileInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FileType = FileType.REGULAR
    permissions: PermissionString
    size: int = Field(ge=0)
    modified_time: str
    name: str


class StoreUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    used: int
    free: int
    percent: float
