"""
Local cache of @require resources.

Each script gets its own directory under the require location, holding one
file per dependency url (named by the sanitized url). Resources are fetched
once and reused until the script stops declaring them.
"""

import logging
import os
from typing import Iterable, List, Optional
from urllib.parse import urlsplit

from .errors import IOFailure
from .fetcher import RemoteFetcher
from .monitor import log_event
from .shared_config import REQUIRE_DIR
from .storage import FileStorage
from .utils import sanitize


class RequireCache:
    """Fetch-once storage for dependency code"""

    def __init__(self, storage: FileStorage, fetcher: RemoteFetcher,
                 require_dir: str = REQUIRE_DIR):
        self.storage = storage
        self.fetcher = fetcher
        self.require_dir = require_dir

    @staticmethod
    def resource_names(urls: Iterable[str]) -> List[str]:
        """Names recorded in the manifest for a list of @require urls."""
        return [sanitize(url) for url in urls]

    def directory_for(self, filename: str) -> str:
        return os.path.join(self.require_dir, filename)

    def path_for(self, filename: str, url: str) -> str:
        return os.path.join(self.directory_for(filename), sanitize(url))

    def update(self, filename: str, urls: List[str], file_type: str) -> bool:
        """
        Make sure every dependency of `filename` matching its type is cached.

        Urls that can't be fetched are logged and skipped. Returns False only
        when the cache itself can't be written.
        """
        directory = self.directory_for(filename)
        if not urls:
            if self.storage.exists(directory):
                self.discard(filename)
            return True

        for url in urls:
            path = urlsplit(url).path
            if not path:
                log_event('require.skip', f'no path in {url} for {filename}')
                continue
            if not path.endswith('.' + file_type):
                continue
            target = self.path_for(filename, url)
            if self.storage.exists(target):
                continue
            contents = self.fetcher.get_remote_contents(url)
            if contents is None:
                continue
            try:
                self.storage.make_dirs(directory)
                self.storage.write_text(target, contents)
            except IOFailure as e:
                log_event('require.write_failed', f'{filename}: {e}', logging.ERROR)
                return False
            log_event('require.cached', f'{url} for {filename}')
        return True

    def read(self, filename: str, url: str) -> Optional[str]:
        """Cached code for one dependency, or None if it isn't cached."""
        path = self.path_for(filename, url)
        try:
            return self.storage.read_text(path)
        except IOFailure as e:
            log_event('require.read_failed', str(e), logging.ERROR)
            return None

    def discard(self, filename: str) -> bool:
        """Remove the cache directory of a script. Failure is logged, not fatal."""
        directory = self.directory_for(filename)
        if not self.storage.exists(directory):
            return True
        try:
            self.storage.trash(directory)
        except IOFailure as e:
            log_event('require.discard_failed', str(e), logging.ERROR)
            return False
        log_event('require.discarded', f'removed cached resources for {filename}')
        return True
