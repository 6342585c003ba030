from pathlib import Path

import pytest

from sprat.scripts import Provide, ScriptsTask, references
from sprat.test_harness import SAMPLE_PROVIDE, make_context, record_notifications, write_files


@pytest.fixture
def scripts_context(tmp_path: Path):
    source = tmp_path / 'src'
    write_files(source, {
        'js/a.js': 'var answer = 42;\n',
        'js/b.js': '$(".header").hide();\n',
        'js/app.min.js': 'old bundle',
        'js/vendor/dom.js': 'window.dom = function (s) { return s; };\n',
    })
    return make_context(source, tmp_path)


def bound_task(context, provide=SAMPLE_PROVIDE):
    task = ScriptsTask(provide)
    context.bind(task)
    return task


@pytest.mark.parametrize('text,symbol,expected', [
    ('$(".a")', '$', True),
    ('jQuery.ajax()', 'jQuery', True),
    ('var $el = 1;', '$', False),
    ('obj.$', '$', False),
    ('my$', '$', False),
    ('`${x}`', '$', False),
    ('myjQuery()', 'jQuery', False),
    ('"costs $5"', '$', False),
    ("alert('$ off')", '$', False),
    ('// $ is jQuery', '$', False),
    ('/* $ */ $("a")', '$', True),
    ('var s = "http://x"; $(s)', '$', True),
])
def test_references(text: str, symbol: str, expected: bool):
    assert references(text, symbol) is expected


def test_dotted_provide_rejected():
    with pytest.raises(ValueError, match='window.jQuery'):
        ScriptsTask({'window.jQuery': Provide(Path('js/vendor/jquery.js'), 'jQuery')})


def test_bundle_order_and_providers(scripts_context):
    task = bound_task(scripts_context)
    bundle = task.bundle(task.find_sources())
    vendor = bundle.index('window.dom')
    first = bundle.index('var answer')
    second = bundle.index('$(".header")')
    assert vendor < first < second
    assert '(function ($) {\n$(".header").hide();\n\n})(dom);' in bundle
    assert 'old bundle' not in bundle


def test_provider_included_once(scripts_context):
    write_files(scripts_context['source_dir'], {'js/c.js': '$(".footer").show();\n'})
    task = bound_task(scripts_context)
    bundle = task.bundle(task.find_sources())
    assert bundle.count('window.dom') == 1


def test_find_sources(scripts_context):
    task = bound_task(scripts_context)
    assert [p.name for p in task.find_sources()] == ['a.js', 'b.js']


def test_scripts_task(scripts_context, monkeypatch: pytest.MonkeyPatch):
    task = bound_task(scripts_context)
    notified = record_notifications(scripts_context, monkeypatch)
    task()
    assert notified == ['reload']
    script = (scripts_context['source_dir'] / 'js/app.min.js').read_text()
    assert 'old bundle' not in script
    assert '42' in script
    assert '.header' in script
    assert len(script) < len(task.bundle(task.find_sources()))


def test_scripts_error_is_swallowed(scripts_context, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture):
    def fail(self, script):
        raise ValueError('unexpected token')

    monkeypatch.setattr(ScriptsTask, 'minify', fail)
    task = bound_task(scripts_context)
    task()
    assert (scripts_context['source_dir'] / 'js/app.min.js').read_text() == 'old bundle'
    assert 'unexpected token' in capsys.readouterr().err


def test_scripts_missing_provider(scripts_context, capsys: pytest.CaptureFixture):
    task = bound_task(scripts_context, {'$': Provide(Path('js/vendor/missing.js'), 'missing')})
    task()
    assert (scripts_context['source_dir'] / 'js/app.min.js').read_text() == 'old bundle'
    assert "'scripts' failed" in capsys.readouterr().err
