"""
Injection resolver - decides which files run on a page and assembles their code.
"""

import logging
import os
from typing import Dict, List, Optional

from .errors import IOFailure
from .manifest import ManifestStore
from .matcher import RUNTIME_PROTOCOLS, UrlProps, get_url_props, include, match_url
from .models import (
    CONTEXT_MENU, INJECT_INTO, RUN_AT,
    ContextMenuScript, InjectedScript, InjectedStyle, InjectionPlan, Manifest, ScriptFile,
)
from .monitor import log_event
from .parser import MetadataParser
from .requires import RequireCache
from .settings import is_enabled
from .storage import FileStorage
from .utils import file_type, normalize_weight


def _accumulate(target: List[str], seen: set, filenames: List[str], skip: set = frozenset()) -> None:
    for filename in filenames:
        if filename not in seen and filename not in skip:
            seen.add(filename)
            target.append(filename)


def matched_filenames(manifest: Manifest, props: UrlProps) -> List[str]:
    """
    Files whose match/include patterns accept the url and whose
    exclude-match/exclude patterns don't. Order is first-seen.
    """
    excluded: List[str] = []
    excluded_seen: set = set()
    for pattern, filenames in manifest.exclude_match.items():
        if match_url(props, pattern):
            _accumulate(excluded, excluded_seen, filenames)
    for pattern, filenames in manifest.exclude.items():
        if include(props.href, pattern):
            _accumulate(excluded, excluded_seen, filenames)

    matched: List[str] = []
    matched_seen: set = set()
    for pattern, filenames in manifest.match.items():
        if match_url(props, pattern):
            _accumulate(matched, matched_seen, filenames, excluded_seen)
    for pattern, filenames in manifest.include.items():
        if include(props.href, pattern):
            _accumulate(matched, matched_seen, filenames, excluded_seen)
    return matched


def is_blacklisted(manifest: Manifest, props: UrlProps) -> bool:
    return any(match_url(props, p) for p in manifest.blacklist)


def _is_web_page(url: str) -> bool:
    props = get_url_props(url)
    return props is not None and props.protocol.lower() in RUNTIME_PROTOCOLS


class InjectionResolver:
    """Turns a page url into the files, and code, to inject."""

    def __init__(self, store: ManifestStore, storage: FileStorage,
                 save_location: str, require_cache: RequireCache):
        self.store = store
        self.storage = storage
        self.save_location = save_location
        self.require_cache = require_cache

    def get_matched_files(self, url: str) -> List[str]:
        """Matched filenames for a url, ignoring the disabled list and blacklist."""
        log_event('inject.match', f'getting matched files for {url}', logging.DEBUG)
        props = get_url_props(url)
        if props is None:
            log_event('inject.match', f'could not decompose {url}', logging.ERROR)
            return []
        result = matched_filenames(self.store.load(), props)
        log_event('inject.match', f'got {len(result)} matched files for {url}', logging.DEBUG)
        return result

    def resolve(self, url: str) -> Optional[List[str]]:
        """
        Filenames to inject for a url.

        Empty when injection is turned off or the url is blacklisted; None when
        the url can't be decomposed.
        """
        props = get_url_props(url)
        if props is None:
            log_event('inject.resolve', f'could not decompose {url}', logging.ERROR)
            return None
        manifest = self.store.load()
        if not is_enabled(manifest.settings, 'active'):
            return []
        if is_blacklisted(manifest, props):
            return []
        disabled = set(manifest.disabled)
        return [f for f in matched_filenames(manifest, props) if f not in disabled]

    def _read_parsed(self, filename: str):
        path = os.path.join(self.save_location, filename)
        try:
            content = self.storage.read_text(path)
        except IOFailure as e:
            log_event('inject.read_failed', str(e), logging.ERROR)
            return None
        parsed = MetadataParser.parse(content)
        if parsed is None:
            log_event('inject.parse_failed', f'could not parse {filename}', logging.ERROR)
        return parsed

    def _with_requires(self, filename: str, code: str, requires) -> str:
        # last declared ends up closest to the main code
        for url in reversed(requires):
            required = self.require_cache.read(filename, url)
            if required is None:
                log_event('inject.require_missing', f'{url} for {filename}', logging.ERROR)
                continue
            code = f'{required}\n{code}'
        return code

    def assemble(self, filenames: List[str], is_top: bool) -> InjectionPlan:
        """
        Read, parse and group files for injection.

        Files that can't be read or parsed are skipped. @noframes files are
        skipped for subframe requests.
        """
        plan = InjectionPlan()
        for filename in filenames:
            parsed = self._read_parsed(filename)
            if parsed is None:
                continue
            if parsed.has('noframes') and not is_top:
                continue

            kind = file_type(filename)
            weight = normalize_weight(parsed.first('weight'))
            code = self._with_requires(filename, parsed.code, parsed.values('require'))
            grants = list(dict.fromkeys(parsed.values('grant')))

            if kind == 'css':
                plan.css.append(InjectedStyle(filename, code, weight))
                continue
            if kind != 'js':
                continue

            inject_into = parsed.first('inject-into', 'auto')
            if inject_into not in INJECT_INTO:
                inject_into = 'page'
            run_at = parsed.first('run-at', 'document-end')
            if run_at != CONTEXT_MENU and run_at not in RUN_AT:
                run_at = 'document-end'

            if run_at == CONTEXT_MENU:
                plan.context_menu[inject_into].append(
                    ContextMenuScript(filename, code, parsed.name, grants))
            else:
                plan.js[inject_into][run_at].append(InjectedScript(filename, code, weight, grants))

        # stable sort keeps resolution order among equal weights
        plan.css.sort(key=lambda s: s.weight)
        for grid in plan.js.values():
            for bucket in grid.values():
                bucket.sort(key=lambda s: s.weight)
        return plan

    def popup_matches(self, url: str, subframe_urls: List[str],
                      files: List[ScriptFile]) -> List[Dict]:
        """
        Files matching a page and its subframes, as dicts for the popup.

        Subframe-only matches are flagged with 'subframe' and exclude @noframes
        files.
        """
        if not _is_web_page(url):
            return []
        matched = self.get_matched_files(url)
        by_name = {f.filename: f for f in files}
        matches = [f.to_dict() for f in files if f.filename in matched]

        frame_matches: List[str] = []
        for frame_url in subframe_urls:
            if frame_url == url:
                continue
            for filename in self.get_matched_files(frame_url):
                file = by_name.get(filename)
                if file is None or file.noframes:
                    continue
                if filename not in matched and filename not in frame_matches:
                    frame_matches.append(filename)

        for file in files:
            if file.filename in frame_matches:
                d = file.to_dict()
                d['subframe'] = True
                matches.append(d)
        return matches

    def badge_count(self, url: str, subframe_urls: List[str], files: List[ScriptFile]) -> int:
        """Number of enabled files running on a page, 0 when counting is off."""
        if not _is_web_page(url):
            return 0
        manifest = self.store.load()
        if manifest.settings.get('showCount') == 'false':
            return 0
        props = get_url_props(url)
        if props is None or is_blacklisted(manifest, props):
            return 0
        if not is_enabled(manifest.settings, 'active'):
            return 0
        disabled = set(manifest.disabled)
        matches = self.popup_matches(url, subframe_urls, files)
        return len([m for m in matches if m['filename'] not in disabled])
