import json
import os

from scriptmanager.manifest import ManifestStore, reconcile_pattern_index
from scriptmanager.models import ScriptFile
from scriptmanager.parser import MetadataParser
from scriptmanager.requires import RequireCache
from scriptmanager.storage import LocalFileStorage


class _FakeFetcher:
    def __init__(self, contents=None):
        self.contents = contents or {}
        self.calls = []

    def get_remote_contents(self, url):
        self.calls.append(url)
        return self.contents.get(url)


class _CountingStorage(LocalFileStorage):
    def __init__(self):
        self.writes = 0

    def write_text(self, path, content):
        self.writes += 1
        super().write_text(path, content)


def _file(filename, *directives):
    lines = ['// ==UserScript==', f'// @name {filename.rsplit(".", 1)[0]}']
    lines += [f'// @{d}' for d in directives]
    lines += ['// ==/UserScript==', 'void 0;']
    return ScriptFile.from_parsed(filename, MetadataParser.parse('\n'.join(lines)))


def _store(tmp_path, fetcher=None, storage=None):
    storage = storage or LocalFileStorage()
    cache = RequireCache(storage, fetcher or _FakeFetcher(), str(tmp_path / 'require'))
    return ManifestStore(storage, str(tmp_path / 'manifest.json'), cache)


def test_reconcile_adds_and_removes_filename():
    index = {'https://a.com/*': ['A.js', 'B.js'], 'https://old.com/*': ['A.js']}

    result = reconcile_pattern_index('A.js', ['https://a.com/*', 'https://new.com/*'], index)

    assert result == {'https://a.com/*': ['A.js', 'B.js'], 'https://new.com/*': ['A.js']}
    # input untouched
    assert index['https://old.com/*'] == ['A.js']


def test_reconcile_is_idempotent_and_dedupes():
    declared = ['https://a.com/*', 'https://a.com/*', 'https://b.com/*']
    once = reconcile_pattern_index('A.js', declared, {'https://c.com/*': ['A.js', 'C.js']})
    twice = reconcile_pattern_index('A.js', declared, once)

    assert once == twice
    assert once == {
        'https://a.com/*': ['A.js'],
        'https://b.com/*': ['A.js'],
        'https://c.com/*': ['C.js'],
    }


def test_load_writes_default_manifest_when_missing(tmp_path):
    store = _store(tmp_path)

    manifest = store.load()

    assert manifest.match == {}
    assert manifest.settings['active'] == 'true'
    assert os.path.exists(tmp_path / 'manifest.json')


def test_load_replaces_invalid_manifest(tmp_path):
    (tmp_path / 'manifest.json').write_text('{not json', encoding='utf-8')
    store = _store(tmp_path)

    assert store.load().disabled == []
    with open(tmp_path / 'manifest.json', encoding='utf-8') as f:
        assert json.load(f)['exclude-match'] == {}


def test_update_matches_indexes_every_pattern_kind(tmp_path):
    store = _store(tmp_path)
    files = [
        _file('A.js', 'match https://a.com/*', 'exclude-match https://a.com/private/*'),
        _file('B.js', 'include *b.com*', 'exclude *b.com/logout*', 'match https://a.com/*'),
    ]

    assert store.update_matches(files)

    manifest = store.load()
    assert manifest.match == {'https://a.com/*': ['A.js', 'B.js']}
    assert manifest.exclude_match == {'https://a.com/private/*': ['A.js']}
    assert manifest.include == {'*b.com*': ['B.js']}
    assert manifest.exclude == {'*b.com/logout*': ['B.js']}


def test_update_matches_drops_undeclared_patterns(tmp_path):
    store = _store(tmp_path)
    store.update_matches([_file('A.js', 'match https://a.com/*')])

    store.update_matches([_file('A.js', 'match https://b.com/*')])

    assert store.load().match == {'https://b.com/*': ['A.js']}


def test_purge_removes_records_of_missing_files(tmp_path):
    store = _store(tmp_path)
    store.update_matches([
        _file('A.js', 'match https://shared.com/*'),
        _file('B.js', 'match https://shared.com/*', 'match https://b.com/*'),
    ])
    store.toggle('B.js', 'disable')

    assert store.purge(['A.js'])

    manifest = store.load()
    assert manifest.match == {'https://shared.com/*': ['A.js']}
    assert manifest.disabled == []


def test_purge_twice_is_a_noop(tmp_path):
    storage = _CountingStorage()
    store = _store(tmp_path, storage=storage)
    store.update_matches([_file('A.js', 'match https://a.com/*'), _file('B.js', 'match https://b.com/*')])

    store.purge(['A.js'])
    after_first = store.load().to_dict()
    writes = storage.writes
    store.purge(['A.js'])

    assert store.load().to_dict() == after_first
    assert storage.writes == writes


def test_purge_commutes_with_update_matches(tmp_path):
    seed = [
        _file('A.js', 'match https://shared.com/*', 'match https://a.com/*'),
        _file('B.js', 'match https://shared.com/*', 'match https://b.com/*'),
    ]
    edited = [_file('A.js', 'match https://a.com/*')]

    # B deleted, or B kept while still declaring the pattern A dropped
    for case, present in enumerate((['A.js'], ['A.js', 'B.js'])):
        results = []
        for order in ('purge-first', 'update-first'):
            root = tmp_path / f'{case}-{order}'
            root.mkdir()
            store = _store(root)
            store.update_matches(seed)
            if order == 'purge-first':
                store.purge(present)
                store.update_matches(edited)
            else:
                store.update_matches(edited)
                store.purge(present)
            results.append(store.load().to_dict())

        assert results[0] == results[1], present
        assert results[0]['match'].get('https://shared.com/*') == (['B.js'] if 'B.js' in present else None)


def test_purge_drops_unknown_settings(tmp_path):
    store = _store(tmp_path)
    manifest = store.load()
    manifest.settings['obsolete'] = 'true'
    store.save(manifest)

    store.purge([])

    assert 'obsolete' not in store.load().settings


def test_require_is_fetched_once(tmp_path):
    url = 'https://cdn.example.com/lib.js'
    fetcher = _FakeFetcher({url: 'var lib = 1;'})
    store = _store(tmp_path, fetcher)
    file = _file('A.js', f'require {url}')

    assert store.update_required([file])
    assert store.update_required([file])

    assert fetcher.calls == [url]
    assert store.load().require == {'A.js': [RequireCache.resource_names([url])[0]]}
    assert store.require_cache.read('A.js', url) == 'var lib = 1;'


def test_require_of_other_type_is_ignored(tmp_path):
    fetcher = _FakeFetcher()
    store = _store(tmp_path, fetcher)

    store.update_required([_file('A.js', 'require https://cdn.example.com/theme.css')])

    assert fetcher.calls == []


def test_dropping_requires_discards_cache(tmp_path):
    url = 'https://cdn.example.com/lib.js'
    store = _store(tmp_path, _FakeFetcher({url: 'var lib = 1;'}))
    store.update_required([_file('A.js', f'require {url}')])
    assert os.path.isdir(tmp_path / 'require' / 'A.js')

    store.update_required([_file('A.js')])

    assert not os.path.exists(tmp_path / 'require' / 'A.js')
    assert store.load().require == {}


def test_purge_discards_cached_requires(tmp_path):
    url = 'https://cdn.example.com/lib.js'
    store = _store(tmp_path, _FakeFetcher({url: 'var lib = 1;'}))
    store.update_required([_file('A.js', f'require {url}')])

    store.purge([])

    assert store.load().require == {}
    assert not os.path.exists(tmp_path / 'require' / 'A.js')


def test_toggle(tmp_path):
    store = _store(tmp_path)

    assert store.toggle('A.js', 'disable')
    assert store.toggle('A.js', 'disable')
    assert store.load().disabled == ['A.js']

    assert store.toggle('A.js', 'enable')
    assert store.load().disabled == []
    assert not store.toggle('A.js', 'flip')


def test_check_settings_fills_missing(tmp_path):
    store = _store(tmp_path)
    manifest = store.load()
    manifest.settings = {'active': 'false'}
    store.save(manifest)

    assert store.check_settings()

    settings = store.load().settings
    assert settings['active'] == 'false'
    assert settings['tabSize'] == '4'


def test_update_blacklist_dedupes(tmp_path):
    store = _store(tmp_path)
    assert store.update_blacklist(['https://a.com/*', 'https://a.com/*'])
    assert store.load().blacklist == ['https://a.com/*']
