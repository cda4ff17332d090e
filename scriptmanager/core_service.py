"""
Core service for scriptmanager.
Single entry point for saving, trashing, toggling, resolving, injecting and
updating scripts. Used by the CLI and by whatever bridge talks to the browser;
methods return plain dicts/lists and report named failures as {'error': ...}.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, List, Optional

from . import __version__
from .errors import IOFailure, ValidationFailure
from .fetcher import RemoteFetcher
from .injector import InjectionResolver
from .manifest import ManifestStore
from .models import ScriptFile
from .monitor import log_event, set_verbose
from .parser import MetadataParser
from .requires import RequireCache
from .settings import is_enabled
from .shared_config import (
    MANIFEST_FILE, MAX_FILENAME_LENGTH, REQUIRE_DIR, SAVE_LOCATION, SCRIPT_TYPES,
)
from .storage import FileStorage, LocalFileStorage
from .updater import UpdateChecker
from .utils import file_type, sanitize


class CoreService:
    def __init__(
        self,
        storage: Optional[FileStorage] = None,
        fetcher: Optional[RemoteFetcher] = None,
        save_location: str = SAVE_LOCATION,
        require_dir: str = REQUIRE_DIR,
        manifest_path: str = MANIFEST_FILE,
    ) -> None:
        self.storage = storage or LocalFileStorage()
        self.fetcher = fetcher or RemoteFetcher()
        self.save_location = save_location
        self.require_dir = require_dir
        self.require_cache = RequireCache(self.storage, self.fetcher, require_dir)
        self.store = ManifestStore(self.storage, manifest_path, self.require_cache)
        self.resolver = InjectionResolver(self.store, self.storage, save_location, self.require_cache)
        self.updater = UpdateChecker(self.fetcher, self.storage, save_location)

    # Directories
    def check_default_directories(self) -> bool:
        for path in (self.save_location, self.require_dir):
            try:
                self.storage.make_dirs(path)
            except IOFailure as exc:
                log_event('service.directories', str(exc), logging.ERROR)
                return False
        return True

    # Files
    def get_all_files(self) -> Optional[List[ScriptFile]]:
        """
        Every parseable .js/.css file in the save location.

        None when the save location can't be listed. Files without a valid
        metablock are skipped.
        """
        try:
            entries = self.storage.list_files(self.save_location)
        except IOFailure as exc:
            log_event('service.files', f'could not list save location: {exc}', logging.ERROR)
            return None
        disabled = set(self.store.load().disabled)
        files = []
        for entry in entries:
            if file_type(entry.name) not in SCRIPT_TYPES:
                continue
            try:
                content = self.storage.read_text(entry.path)
            except IOFailure as exc:
                log_event('service.files', f'ignoring {entry.name}: {exc}', logging.WARNING)
                continue
            parsed = MetadataParser.parse(content)
            if parsed is None:
                log_event('service.files', f'ignoring {entry.name}, metadata missing from file contents')
                continue
            files.append(ScriptFile.from_parsed(
                entry.name, parsed, last_modified=entry.last_modified,
                disabled=entry.name in disabled,
            ))
        return files

    def _files(self, files: Optional[Iterable[ScriptFile]]) -> Optional[List[ScriptFile]]:
        return list(files) if files else self.get_all_files()

    def refresh_manifest(self, files: Optional[Iterable[ScriptFile]] = None) -> bool:
        """Update matches and requires from the files on disk, then purge stale records."""
        with self.store.lock:
            files = self._files(files)
            if files is None:
                return False
            matches = self.store.update_matches(files)
            required = self.store.update_required(files)
            purged = self.store.purge(f.filename for f in files)
            return matches and required and purged

    @staticmethod
    def _check_filename(old_filename: str, new_filename: str, entries) -> None:
        if len(new_filename) > MAX_FILENAME_LENGTH:
            raise ValidationFailure(f'{new_filename} is longer than {MAX_FILENAME_LENGTH} characters')
        # overwriting the same file needs no collision check
        if old_filename.lower() == new_filename.lower():
            return
        kind = file_type(new_filename)
        taken = {e.name.lower() for e in entries if file_type(e.name) == kind}
        if new_filename.lower() in taken:
            raise ValidationFailure(f'{new_filename} already exists')

    def save_file(self, item: Dict[str, Any], content: str) -> Dict[str, Any]:
        """
        Save editor content for `item` ({'filename', 'type'}).

        The filename is derived from @name, so a changed name renames the file.
        """
        old_filename = item.get('filename')
        kind = item.get('type')
        if not isinstance(old_filename, str) or kind not in SCRIPT_TYPES:
            return {'error': 'invalid argument in save function'}
        parsed = MetadataParser.parse(content)
        if parsed is None:
            return {'error': 'failed to parse argument in save function'}
        new_filename = f'{sanitize(parsed.name)}.{kind}'

        with self.store.lock:
            try:
                entries = self.storage.list_files(self.save_location)
            except IOFailure as exc:
                log_event('service.save', str(exc), logging.ERROR)
                return {'error': 'failed to read save urls in save function'}

            try:
                self._check_filename(old_filename, new_filename, entries)
            except ValidationFailure as exc:
                log_event('service.save', str(exc), logging.ERROR)
                return {'error': 'filename validation failed in save function'}

            new_path = os.path.join(self.save_location, new_filename)
            try:
                self.storage.write_text(new_path, content)
                last_modified = self.storage.modified_ms(new_path)
            except IOFailure as exc:
                log_event('service.save', str(exc), logging.ERROR)
                return {'error': 'failed to write file to disk'}

            if old_filename != new_filename:
                # a new file may still carry its temporary name, which was never written
                old_path = os.path.join(self.save_location, old_filename)
                if old_filename and self.storage.exists(old_path):
                    try:
                        self.storage.trash(old_path)
                    except IOFailure as exc:
                        log_event('service.save', f'could not remove {old_filename}: {exc}',
                                  logging.WARNING)

            if not self.refresh_manifest():
                return {'error': "file save but manifest couldn't be updated"}

        log_event('service.save', f'saved {new_filename}')
        saved = ScriptFile.from_parsed(new_filename, parsed, last_modified=last_modified)
        response = {
            'canUpdate': saved.can_update,
            'content': content,
            'filename': new_filename,
            'lastModified': last_modified,
            'name': saved.name,
        }
        if saved.description is not None:
            response['description'] = saved.description
        return response

    def trash_file(self, item: Dict[str, Any]) -> bool:
        filename = item.get('filename')
        if not isinstance(filename, str) or not filename:
            log_event('service.trash', 'no filename given', logging.ERROR)
            return False
        path = os.path.join(self.save_location, filename)
        with self.store.lock:
            # already gone: assume the user removed it
            if self.storage.exists(path):
                try:
                    self.storage.trash(path)
                except IOFailure as exc:
                    log_event('service.trash', str(exc), logging.ERROR)
                    return False
            if not self.refresh_manifest():
                log_event('service.trash', f'manifest not updated after removing {filename}',
                          logging.ERROR)
                return False
        log_event('service.trash', f'removed {filename}')
        return True

    def toggle_file(self, filename: str, action: str) -> bool:
        if not self.storage.exists(os.path.join(self.save_location, filename)):
            log_event('service.toggle', f'{filename} not found', logging.ERROR)
            return False
        return self.store.toggle(filename, action)

    # Injection
    def resolve(self, url: str) -> Optional[List[str]]:
        """Filenames to inject for a url, see InjectionResolver.resolve."""
        return self.resolver.resolve(url)

    def get_code(self, filenames: List[str], is_top: bool) -> Dict[str, Any]:
        return self.resolver.assemble(filenames, is_top).to_dict()

    def get_injection(self, url: str, is_top: bool = True) -> Optional[Dict[str, Any]]:
        """Code to inject for a page request."""
        filenames = self.resolve(url)
        if filenames is None:
            return None
        plan = self.resolver.assemble(filenames, is_top)
        if plan.is_empty():
            log_event('service.inject', f'nothing to inject into {url}', logging.DEBUG)
        return plan.to_dict()

    # Popup
    def popup_matches(self, url: str, subframe_urls: List[str]) -> Optional[List[Dict]]:
        files = self.get_all_files()
        if files is None:
            return None
        return self.resolver.popup_matches(url, subframe_urls, files)

    def badge_count(self, url: str, subframe_urls: List[str]) -> Optional[int]:
        files = self.get_all_files()
        if files is None:
            return None
        return self.resolver.badge_count(url, subframe_urls, files)

    def popup_init(self) -> Optional[Dict[str, str]]:
        directories = self.check_default_directories()
        settings = self.store.check_settings()
        files = self.get_all_files()
        if files is None:
            log_event('service.init', 'failed to get files', logging.ERROR)
            return None
        with self.store.lock:
            purged = self.store.purge(f.filename for f in files)
            matches = self.store.update_matches(files)
            required = self.store.update_required(files)
        for ok, step in ((directories, 'check default directories'), (settings, 'check settings'),
                         (purged, 'purge manifest'), (matches, 'update manifest matches'),
                         (required, 'update manifest required')):
            if not ok:
                log_event('service.init', f'failed to {step}', logging.ERROR)
                return None
        manifest = self.store.load()
        set_verbose(is_enabled(manifest.settings, 'log'))
        return {
            'active': manifest.settings.get('active', 'true'),
            'saveLocation': self.save_location,
            'requireLocation': self.require_dir,
        }

    def update_all(self) -> bool:
        """Apply every available remote update and refresh the manifest."""
        files = self.get_all_files()
        if files is None:
            return False
        with self.store.lock:
            if not self.updater.update_all_files(files):
                return False
            # contents changed, re-read before deriving the manifest
            return self.refresh_manifest()

    def popup_update_all(self, url: str, subframe_urls: List[str]) -> Optional[List[Dict]]:
        if not self.update_all():
            return None
        return self.popup_matches(url, subframe_urls)

    def popup_update_single(self, filename: str, url: str,
                            subframe_urls: List[str]) -> Optional[List[Dict]]:
        with self.store.lock:
            if not self.updater.apply_update(filename):
                log_event('service.update', f'failed to update {filename}', logging.ERROR)
                return None
            if not self.refresh_manifest():
                return None
        return self.popup_matches(url, subframe_urls)

    def check_updates(self) -> Optional[List[Dict[str, str]]]:
        files = self.get_all_files()
        if files is None:
            return None
        updates = self.updater.check_for_remote_updates(files)
        if updates is None:
            return None
        return [u.to_dict() for u in updates]

    def get_file_remote_update(self, content: str) -> Dict[str, str]:
        return self.updater.get_file_remote_update(content)

    # Page
    def get_init_data(self) -> Dict[str, Any]:
        manifest = self.store.load()
        data: Dict[str, Any] = dict(manifest.settings)
        data['blacklist'] = list(manifest.blacklist)
        data['saveLocation'] = self.save_location
        data['version'] = __version__
        return data

    def update_settings(self, settings: Dict[str, str]) -> bool:
        return self.store.update_settings(settings)

    def update_blacklist(self, patterns: List[str]) -> bool:
        return self.store.update_blacklist(patterns)

    # Install
    def install_check(self, content: str) -> Optional[Dict[str, str]]:
        """Tell whether installing `content` adds a new script or replaces one."""
        files = self.get_all_files()
        if files is None:
            return None
        parsed = MetadataParser.parse(content)
        if parsed is None:
            return {'error': 'userscript metadata is invalid'}
        if parsed.name in {f.name for f in files}:
            return {'success': 'Click to re-install'}
        return {'success': 'Click to install'}

    def install_parse(self, content: str) -> Dict[str, Any]:
        parsed = MetadataParser.parse(content)
        if parsed is None:
            return {'error': 'userscript metadata is invalid'}
        return {key: list(values) for key, values in parsed.metadata.items()}

    def install_userscript(self, content: str) -> Dict[str, Any]:
        parsed = MetadataParser.parse(content)
        if parsed is None:
            log_event('service.install', 'userscript metadata is invalid', logging.ERROR)
            return {'error': 'userscript metadata is invalid'}
        filename = f'{sanitize(parsed.name)}.js'
        return self.save_file({'filename': filename, 'type': 'js'}, content)
