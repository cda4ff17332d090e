"""
Remote update checker - compares local and remote @version and refreshes files.
"""

import logging
import os
import re
from typing import Dict, Iterable, List, Optional

from .errors import IOFailure, NetworkFailure, ParseFailure
from .fetcher import RemoteFetcher
from .matcher import validate_url
from .models import ScriptFile, UpdateInfo
from .monitor import log_event
from .parser import MetadataParser
from .storage import FileStorage

_NUMBER_RE = re.compile(r'[+-]?\d+')


def _component(value: str) -> int:
    return int(value) if _NUMBER_RE.fullmatch(value) else 0


def is_version_newer(current: str, remote: str) -> bool:
    """
    True if `remote` is newer than `current`.

    Components are compared left to right for as many components as the
    remote version has; missing or non-numeric components count as 0.
    """
    current_parts = current.split('.')
    for index, part in enumerate(remote.split('.')):
        a = _component(part)
        b = _component(current_parts[index]) if index < len(current_parts) else 0
        if a > b:
            return True
        if a < b:
            return False
    return False


class UpdateChecker:
    """Checks files declaring @version and @updateURL for newer remote copies."""

    def __init__(self, fetcher: RemoteFetcher, storage: FileStorage, save_location: str):
        self.fetcher = fetcher
        self.storage = storage
        self.save_location = save_location

    def fetch_remote_version(self, update_url: str) -> str:
        """
        Fetch and parse the file at update_url and return its @version.

        Raises:
            NetworkFailure: fetch failed
            ParseFailure: remote file has no metablock, @name or @version
        """
        remote = MetadataParser.parse_or_raise(self.fetcher.fetch(update_url))
        version = remote.first('version')
        if version is None:
            raise ParseFailure('MissingVersion', f'{update_url} declares no @version')
        return version

    def check_update(self, file: ScriptFile) -> Optional[UpdateInfo]:
        """
        UpdateInfo when the remote copy of `file` is newer, otherwise None.

        Raises NetworkFailure or ParseFailure when that can't be determined.
        """
        if not file.can_update:
            return None
        update_url = file.first('updateURL')
        # must point at a file of the same type
        if not update_url.endswith('.' + file.type):
            return None
        remote_version = self.fetch_remote_version(update_url)
        if not is_version_newer(file.first('version'), remote_version):
            return None
        return UpdateInfo(name=file.name, filename=file.filename, type=file.type, url=update_url)

    def check_for_remote_updates(self, files: Iterable[ScriptFile]) -> Optional[List[UpdateInfo]]:
        """
        Check every file. Stops at the first failure and returns None, so
        callers can tell "no updates" ([]) from "could not determine" (None).
        """
        files = list(files)
        updates = []
        for file in files:
            log_event('update.check', f'checking for remote updates for {file.filename}', logging.DEBUG)
            try:
                info = self.check_update(file)
            except (NetworkFailure, ParseFailure) as e:
                log_event('update.check', f'failed to check {file.filename}: {e}', logging.ERROR)
                return None
            if info is not None:
                updates.append(info)
        log_event('update.check', f'finished checking for remote updates for {len(files)} files')
        return updates

    def apply_update(self, filename: str) -> bool:
        """Overwrite a saved file with the content at its downloadURL (or updateURL)."""
        path = os.path.join(self.save_location, filename)
        try:
            parsed = MetadataParser.parse(self.storage.read_text(path))
        except IOFailure as e:
            log_event('update.apply', str(e), logging.ERROR)
            return False
        update_url = parsed.first('updateURL') if parsed else None
        if update_url is None:
            log_event('update.apply', f'{filename} has no updateURL', logging.ERROR)
            return False
        download_url = parsed.first('downloadURL', update_url)
        content = self.fetcher.get_remote_contents(download_url)
        if content is None:
            return False
        try:
            self.storage.write_text(path, content)
        except IOFailure as e:
            log_event('update.apply', str(e), logging.ERROR)
            return False
        log_event('update.apply', f'updated {filename} with contents fetched from {download_url}')
        return True

    def update_all_files(self, files: Iterable[ScriptFile]) -> bool:
        """Apply every available update. Individual failures are logged and skipped."""
        updates = self.check_for_remote_updates(files)
        if updates is None:
            log_event('update.all', 'failed to update files', logging.ERROR)
            return False
        for info in updates:
            self.apply_update(info.filename)
        return True

    def get_file_remote_update(self, content: str) -> Dict[str, str]:
        """
        Check editor content for an update.

        Returns {'content': new content}, {'info': ...} when up to date, or
        {'error': ...}.
        """
        parsed = MetadataParser.parse(content)
        if parsed is None:
            return {'error': 'Update failed, metadata missing'}
        version = parsed.first('version')
        if version is None:
            return {'error': 'Update failed, version value required'}
        update_url = parsed.first('updateURL')
        if update_url is None:
            return {'error': 'Update failed, update url required'}
        download_url = parsed.first('downloadURL', update_url)
        if not validate_url(update_url):
            return {'error': 'Update failed, invalid updateURL'}
        if not validate_url(download_url):
            return {'error': 'Update failed, invalid downloadURL'}

        remote_content = self.fetcher.get_remote_contents(update_url)
        if remote_content is None:
            return {'error': 'Update failed, updateURL unreachable'}
        remote = MetadataParser.parse(remote_content)
        remote_version = remote.first('version') if remote else None
        if remote_version is None:
            return {'error': "Update failed, couldn't parse remote file contents"}
        if not is_version_newer(version, remote_version):
            return {'info': 'No updates found'}

        if download_url != update_url:
            remote_content = self.fetcher.get_remote_contents(download_url)
            if remote_content is None:
                return {'error': 'Update failed, downloadURL unreachable'}
        return {'content': remote_content}
