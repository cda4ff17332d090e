import os

from scriptmanager.errors import NetworkFailure
from scriptmanager.models import ScriptFile
from scriptmanager.parser import MetadataParser
from scriptmanager.storage import LocalFileStorage
from scriptmanager.updater import UpdateChecker, is_version_newer


class _FakeFetcher:
    """Serves fixed contents; unknown urls fail like a 404."""

    def __init__(self, contents):
        self.contents = contents
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        if url not in self.contents:
            raise NetworkFailure(f'{url} returned status 404')
        return self.contents[url]

    def get_remote_contents(self, url):
        try:
            return self.fetch(url)
        except NetworkFailure:
            return None


def _script(name, version=None, update_url=None, download_url=None, code='void 0;'):
    lines = ['// ==UserScript==', f'// @name {name}']
    if version:
        lines.append(f'// @version {version}')
    if update_url:
        lines.append(f'// @updateURL {update_url}')
    if download_url:
        lines.append(f'// @downloadURL {download_url}')
    lines += ['// ==/UserScript==', code]
    return '\n'.join(lines)


def _checker(tmp_path, contents):
    save_location = str(tmp_path)
    return UpdateChecker(_FakeFetcher(contents), LocalFileStorage(), save_location)


def _saved(tmp_path, filename, content):
    with open(os.path.join(str(tmp_path), filename), 'w', encoding='utf-8') as f:
        f.write(content)
    return ScriptFile.from_parsed(filename, MetadataParser.parse(content))


def test_is_version_newer():
    assert is_version_newer('1.2', '1.3')
    assert not is_version_newer('2.0', '1.9')
    assert not is_version_newer('1.2.0', '1.2')
    assert not is_version_newer('1.2', '1.2.0')
    assert not is_version_newer('1.2', '1.2')
    assert is_version_newer('1.2', '1.2.1')
    assert is_version_newer('1.9', '1.10')


def test_is_version_newer_treats_non_numeric_as_zero():
    assert is_version_newer('1.beta', '1.1')
    assert not is_version_newer('1.1', '1.beta')
    assert is_version_newer('', '1')


def test_check_for_remote_updates_reports_newer_files(tmp_path):
    url_a = 'https://example.com/a.user.js'
    url_b = 'https://example.com/b.user.js'
    checker = _checker(tmp_path, {
        url_a: _script('A', '1.1', url_a),
        url_b: _script('B', '1.0', url_b),
    })
    files = [
        _saved(tmp_path, 'A.js', _script('A', '1.0', url_a)),
        _saved(tmp_path, 'B.js', _script('B', '1.0', url_b)),
        _saved(tmp_path, 'C.js', _script('C', '1.0')),
    ]

    updates = checker.check_for_remote_updates(files)

    assert [u.to_dict() for u in updates] == [
        {'name': 'A', 'filename': 'A.js', 'type': 'js', 'url': url_a},
    ]
    # no updateURL, no request
    assert checker.fetcher.calls == [url_a, url_b]


def test_check_update_requires_matching_type(tmp_path):
    url = 'https://example.com/a.user.css'
    checker = _checker(tmp_path, {url: _script('A', '9.0', url)})
    file = _saved(tmp_path, 'A.js', _script('A', '1.0', url))

    assert checker.check_update(file) is None
    assert checker.fetcher.calls == []


def test_check_for_remote_updates_fails_fast(tmp_path):
    url_a = 'https://example.com/missing.user.js'
    url_b = 'https://example.com/b.user.js'
    checker = _checker(tmp_path, {url_b: _script('B', '2.0', url_b)})
    files = [
        _saved(tmp_path, 'A.js', _script('A', '1.0', url_a)),
        _saved(tmp_path, 'B.js', _script('B', '1.0', url_b)),
    ]

    assert checker.check_for_remote_updates(files) is None
    assert checker.fetcher.calls == [url_a]


def test_check_for_remote_updates_fails_on_remote_without_version(tmp_path):
    url = 'https://example.com/a.user.js'
    checker = _checker(tmp_path, {url: _script('A')})
    files = [_saved(tmp_path, 'A.js', _script('A', '1.0', url))]

    assert checker.check_for_remote_updates(files) is None


def test_update_all_files_prefers_download_url(tmp_path):
    meta_url = 'https://example.com/a.meta.js'
    download_url = 'https://example.com/a.user.js'
    remote = _script('A', '2.0', meta_url, download_url, code='updated();')
    checker = _checker(tmp_path, {meta_url: remote, download_url: remote})
    files = [_saved(tmp_path, 'A.js', _script('A', '1.0', meta_url, download_url))]

    assert checker.update_all_files(files)

    with open(os.path.join(str(tmp_path), 'A.js'), encoding='utf-8') as f:
        assert f.read() == remote
    assert checker.fetcher.calls == [meta_url, download_url]


def test_apply_update_without_update_url(tmp_path):
    checker = _checker(tmp_path, {})
    _saved(tmp_path, 'A.js', _script('A', '1.0'))

    assert not checker.apply_update('A.js')
    assert not checker.apply_update('Missing.js')


def test_get_file_remote_update(tmp_path):
    url = 'https://example.com/a.user.js'
    remote = _script('A', '1.1', url, code='new();')
    checker = _checker(tmp_path, {url: remote})

    assert checker.get_file_remote_update(_script('A', '1.0', url)) == {'content': remote}
    assert checker.get_file_remote_update(_script('A', '1.1', url)) == {'info': 'No updates found'}


def test_get_file_remote_update_errors(tmp_path):
    checker = _checker(tmp_path, {})

    assert 'error' in checker.get_file_remote_update('no metablock')
    assert checker.get_file_remote_update(_script('A')) == {
        'error': 'Update failed, version value required'}
    assert checker.get_file_remote_update(_script('A', '1.0')) == {
        'error': 'Update failed, update url required'}
    assert checker.get_file_remote_update(_script('A', '1.0', 'ftp://example.com/a.js')) == {
        'error': 'Update failed, invalid updateURL'}
    assert checker.get_file_remote_update(_script('A', '1.0', 'https://example.com/a.js')) == {
        'error': 'Update failed, updateURL unreachable'}
