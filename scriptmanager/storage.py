"""
File storage used by the manager.

The core only talks to FileStorage; LocalFileStorage is the plain filesystem
implementation used by the CLI and the tests.
"""

import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

from .errors import IOFailure
from .utils import date_to_milliseconds


@dataclass
class StoredFile:
    """A directory entry with its modification time"""
    name: str
    path: str
    last_modified: int


class FileStorage(ABC):
    """Storage collaborator. Implementations raise IOFailure on errors."""

    @abstractmethod
    def list_files(self, directory: str) -> List[StoredFile]:
        ...

    @abstractmethod
    def read_text(self, path: str) -> str:
        ...

    @abstractmethod
    def write_text(self, path: str, content: str) -> None:
        ...

    @abstractmethod
    def trash(self, path: str) -> None:
        ...

    @abstractmethod
    def make_dirs(self, path: str) -> None:
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def modified_ms(self, path: str) -> int:
        ...


class LocalFileStorage(FileStorage):
    """FileStorage over the local filesystem"""

    def list_files(self, directory: str) -> List[StoredFile]:
        try:
            names = sorted(os.listdir(directory))
        except OSError as e:
            raise IOFailure(f'could not list {directory}: {e}') from e
        files = []
        for name in names:
            path = os.path.join(directory, name)
            try:
                if not os.path.isfile(path):
                    continue
                files.append(StoredFile(name, path, date_to_milliseconds(os.path.getmtime(path))))
            except OSError:
                # removed between listdir and stat
                continue
        return files

    def read_text(self, path: str) -> str:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise IOFailure(f'could not read {path}: {e}') from e

    def write_text(self, path: str, content: str) -> None:
        try:
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
        except OSError as e:
            raise IOFailure(f'could not write {path}: {e}') from e

    def trash(self, path: str) -> None:
        try:
            if os.path.isdir(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except OSError as e:
            raise IOFailure(f'could not remove {path}: {e}') from e

    def make_dirs(self, path: str) -> None:
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise IOFailure(f'could not create {path}: {e}') from e

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def modified_ms(self, path: str) -> int:
        try:
            return date_to_milliseconds(os.path.getmtime(path))
        except OSError as e:
            raise IOFailure(f'could not stat {path}: {e}') from e
