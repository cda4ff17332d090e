import json

from scriptmanager.cli import run_cli
from scriptmanager.core_service import CoreService
from scriptmanager.storage import LocalFileStorage


class _FakeFetcher:
    def get_remote_contents(self, url):
        return None


FOO = """// ==UserScript==
// @name  Foo
// @match https://example.com/*
// ==/UserScript==
foo();
"""


def _run(tmp_path, capsys, *argv):
    service = CoreService(
        storage=LocalFileStorage(),
        fetcher=_FakeFetcher(),
        save_location=str(tmp_path / 'scripts'),
        require_dir=str(tmp_path / 'require'),
        manifest_path=str(tmp_path / 'manifest.json'),
    )
    log = str(tmp_path / 'events.log')
    code = run_cli(['--monitor-file', log] + list(argv), service=service)
    return code, capsys.readouterr().out


def test_cli_save_list_resolve(tmp_path, capsys):
    script = tmp_path / 'foo.user.js'
    script.write_text(FOO, encoding='utf-8')

    code, out = _run(tmp_path, capsys, 'save', str(script))
    assert code == 0
    assert json.loads(out)['filename'] == 'Foo.js'

    # saving the same file again overwrites it
    code, _ = _run(tmp_path, capsys, 'save', str(script))
    assert code == 0

    code, out = _run(tmp_path, capsys, 'list')
    assert code == 0
    assert [f['filename'] for f in json.loads(out)] == ['Foo.js']

    code, out = _run(tmp_path, capsys, 'resolve', 'https://example.com/page')
    assert code == 0
    assert json.loads(out) == ['Foo.js']

    code, out = _run(tmp_path, capsys, 'code', 'https://example.com/page')
    assert code == 0
    assert json.loads(out)['js']['auto']['document-end']['Foo.js']['code'] == 'foo();'


def test_cli_disable_and_trash(tmp_path, capsys):
    script = tmp_path / 'foo.user.js'
    script.write_text(FOO, encoding='utf-8')
    _run(tmp_path, capsys, 'save', str(script))

    assert _run(tmp_path, capsys, 'disable', 'Foo.js')[0] == 0
    assert json.loads(_run(tmp_path, capsys, 'resolve', 'https://example.com/')[1]) == []

    assert _run(tmp_path, capsys, 'trash', 'Foo.js')[0] == 0
    assert json.loads(_run(tmp_path, capsys, 'list')[1]) == []
    assert _run(tmp_path, capsys, 'enable', 'Foo.js')[0] == 1


def test_cli_errors(tmp_path, capsys):
    assert _run(tmp_path, capsys, 'save', str(tmp_path / 'missing.js'))[0] == 1
    assert _run(tmp_path, capsys, 'resolve', 'not-a-url')[0] == 1


def test_cli_logs(tmp_path, capsys):
    _run(tmp_path, capsys, 'list')

    code, out = _run(tmp_path, capsys, 'logs', '--limit', '5')

    assert code == 0
    assert 'cli.start: command list' in out
