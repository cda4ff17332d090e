"""
Manifest persistence and consistency.

The manifest is a single JSON document. Every operation reads the whole
document, changes an in-memory copy and writes the whole document back. Calls
are serialized with one re-entrant lock per store, so composite operations
(save a file, then update matches, requires and purge) can hold it across
several calls.

Consistency is not enforced eagerly: records for files that no longer exist
are removed by purge(), and pattern indexes are re-derived from file metadata
by update_matches(). Running both again always converges to the same state.
"""

import json
import logging
import threading
from typing import Dict, Iterable, List, Optional

from .errors import IOFailure
from .models import Manifest, PATTERN_INDEXES, ScriptFile
from .monitor import log_event
from .requires import RequireCache
from .settings import drop_unknown, fill_missing
from .shared_config import MANIFEST_FILE
from .storage import FileStorage


def reconcile_pattern_index(filename: str, declared: Iterable[str],
                            index: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """
    Bring one pattern index in line with the patterns a file declares.

    Adds `filename` under every declared pattern that doesn't list it yet,
    removes it from patterns it no longer declares and drops patterns left
    without files. Returns a new index; the input is not modified.
    """
    result = {pattern: list(filenames) for pattern, filenames in index.items()}
    wanted = list(dict.fromkeys(declared))
    recorded = [pattern for pattern, filenames in result.items() if filename in filenames]

    for pattern in wanted:
        if pattern not in recorded:
            result.setdefault(pattern, []).append(filename)

    for pattern in recorded:
        if pattern in wanted:
            continue
        remaining = [f for f in result[pattern] if f != filename]
        if remaining:
            result[pattern] = remaining
        else:
            del result[pattern]

    return result


class ManifestStore:
    """Reads, writes and maintains the manifest document."""

    def __init__(self, storage: FileStorage, path: str = MANIFEST_FILE,
                 require_cache: Optional[RequireCache] = None):
        self.storage = storage
        self.path = path
        self.require_cache = require_cache
        self.lock = threading.RLock()

    def load(self) -> Manifest:
        """Read the manifest; a missing or unreadable one is replaced by a default."""
        with self.lock:
            if self.storage.exists(self.path):
                try:
                    data = json.loads(self.storage.read_text(self.path))
                    return Manifest.from_dict(data)
                except (IOFailure, ValueError, TypeError, AttributeError) as e:
                    log_event('manifest.invalid', f'{self.path}: {e}, writing a new one',
                              logging.WARNING)
            manifest = Manifest()
            self.save(manifest)
            return manifest

    def save(self, manifest: Manifest) -> bool:
        with self.lock:
            content = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False)
            try:
                self.storage.write_text(self.path, content)
            except IOFailure as e:
                log_event('manifest.write_failed', str(e), logging.ERROR)
                return False
            return True

    def update_matches(self, files: Iterable[ScriptFile]) -> bool:
        """Re-derive match, exclude-match, include and exclude from file metadata."""
        with self.lock:
            log_event('manifest.matches', 'update started', logging.DEBUG)
            manifest = self.load()
            before = manifest.to_dict()
            for file in files:
                for attr, key in PATTERN_INDEXES.items():
                    index = reconcile_pattern_index(
                        file.filename, file.values(key), manifest.pattern_index(attr))
                    setattr(manifest, attr, index)
            if manifest.to_dict() != before and not self.save(manifest):
                log_event('manifest.matches', 'failed to update manifest matches', logging.ERROR)
                return False
            log_event('manifest.matches', 'update complete', logging.DEBUG)
            return True

    def update_required(self, files: Iterable[ScriptFile]) -> bool:
        """
        Cache @require resources and record them per file.

        A file whose resources can't be cached is skipped; its manifest record
        is left as it was.
        """
        with self.lock:
            manifest = self.load()
            changed = False
            for file in files:
                required = list(file.values('require'))
                if self.require_cache is not None and not self.require_cache.update(
                        file.filename, required, file.type):
                    log_event('manifest.required',
                              f"couldn't fetch remote content for {file.filename}", logging.ERROR)
                    continue
                names = RequireCache.resource_names(required)
                if not names:
                    if manifest.require.pop(file.filename, None) is not None:
                        changed = True
                elif names != manifest.require.get(file.filename):
                    manifest.require[file.filename] = names
                    changed = True
            if changed and not self.save(manifest):
                log_event('manifest.required', "couldn't save required resources", logging.ERROR)
            return True

    def purge(self, filenames: Iterable[str]) -> bool:
        """
        Remove every record that points to a file not in `filenames`.

        Also drops settings that are no longer recognized and discards cached
        resources of removed require records.
        """
        with self.lock:
            present = set(filenames)
            manifest = self.load()
            update = False

            for attr, key in PATTERN_INDEXES.items():
                index = manifest.pattern_index(attr)
                for pattern in list(index):
                    stale = [f for f in index[pattern] if f not in present]
                    if not stale:
                        continue
                    update = True
                    for filename in stale:
                        log_event('manifest.purge',
                                  f'could not find {filename} in save location, '
                                  f'removed from {key} pattern - {pattern}')
                    remaining = [f for f in index[pattern] if f in present]
                    if remaining:
                        index[pattern] = remaining
                    else:
                        del index[pattern]
                        log_event('manifest.purge',
                                  f'no more files for {pattern} {key} pattern, removed from manifest')

            for filename in list(manifest.require):
                if filename in present:
                    continue
                del manifest.require[filename]
                update = True
                if self.require_cache is not None and not self.require_cache.discard(filename):
                    log_event('manifest.purge',
                              f'failed to remove required resources for {filename}', logging.ERROR)
                log_event('manifest.purge', f'no more required resources for {filename}, removed')

            disabled = [f for f in manifest.disabled if f in present]
            if disabled != manifest.disabled:
                for filename in set(manifest.disabled) - present:
                    log_event('manifest.purge', f'could not find {filename}, removed from disabled')
                manifest.disabled = disabled
                update = True

            for key in drop_unknown(manifest.settings):
                update = True
                log_event('manifest.purge', f'removed obsolete setting - {key}')

            if update and not self.save(manifest):
                log_event('manifest.purge', 'failed to purge manifest', logging.ERROR)
                return False
            return True

    def toggle(self, filename: str, action: str) -> bool:
        """Disable or enable a file. Already being in the requested state is success."""
        if action not in ('enable', 'disable'):
            log_event('manifest.toggle', f'unknown action {action}', logging.ERROR)
            return False
        with self.lock:
            manifest = self.load()
            disabled = filename in manifest.disabled
            if (action == 'disable') == disabled:
                return True
            if action == 'disable':
                manifest.disabled.append(filename)
            else:
                manifest.disabled = [f for f in manifest.disabled if f != filename]
            return self.save(manifest)

    def check_settings(self) -> bool:
        """Add default values for settings missing from the manifest."""
        with self.lock:
            manifest = self.load()
            if fill_missing(manifest.settings) and not self.save(manifest):
                log_event('manifest.settings', 'failed to update manifest settings', logging.ERROR)
                return False
            return True

    def update_settings(self, settings: Dict[str, str]) -> bool:
        with self.lock:
            manifest = self.load()
            manifest.settings = {str(k): str(v) for k, v in settings.items()}
            drop_unknown(manifest.settings)
            if not self.save(manifest):
                log_event('manifest.settings', 'failed to update settings', logging.ERROR)
                return False
            return True

    def update_blacklist(self, patterns: Iterable[str]) -> bool:
        with self.lock:
            manifest = self.load()
            manifest.blacklist = list(dict.fromkeys(patterns))
            return self.save(manifest)
