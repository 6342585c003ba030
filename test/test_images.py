import json
from pathlib import Path

import pytest
from PIL import Image

from sprat.images import ImagesTask
from sprat.test_harness import make_context, record_notifications, write_image


@pytest.fixture
def images_context(tmp_path: Path):
    source = tmp_path / 'src'
    write_image(source / 'images/src/logo.png', (64, 64), 'orange')
    write_image(source / 'images/src/photos/beach.jpg', (64, 48), 'skyblue')
    (source / 'images/src/icon.svg').write_text('<svg xmlns="http://www.w3.org/2000/svg"/>')
    return make_context(source, tmp_path)


def run_images(context, **kwargs):
    task = ImagesTask(context['image_cache'], **kwargs)
    context.bind(task)
    task()
    return context['source_dir'] / 'images/dist'


def test_images_optimized(images_context):
    dist = run_images(images_context)
    with Image.open(dist / 'logo.png') as img:
        assert img.format == 'PNG'
        assert img.size == (64, 64)
    with Image.open(dist / 'photos/beach.jpg') as img:
        assert img.format == 'JPEG'
        assert img.size == (64, 48)
    source = images_context['source_dir'] / 'images/src'
    assert (dist / 'logo.png').stat().st_size <= (source / 'logo.png').stat().st_size
    assert (dist / 'icon.svg').read_bytes() == (source / 'icon.svg').read_bytes()


def test_images_cache_file(images_context):
    run_images(images_context)
    data = json.loads(images_context['image_cache'].read_text())
    assert data['parameters']['quality'] == 85
    assert set(data['records']) == {
        'source_dir/images/dist/logo.png',
        'source_dir/images/dist/photos/beach.jpg',
        'source_dir/images/dist/icon.svg',
    }


def test_images_skip_unchanged(images_context, monkeypatch: pytest.MonkeyPatch):
    dist = run_images(images_context)
    mtimes = {p: p.stat().st_mtime_ns for p in dist.rglob('*') if p.is_file()}

    calls = []
    monkeypatch.setattr(ImagesTask, 'optimize', lambda self, path, output: calls.append(path))
    run_images(images_context)
    assert calls == []
    assert {p: p.stat().st_mtime_ns for p in dist.rglob('*') if p.is_file()} == mtimes


def test_images_changed_source(images_context, monkeypatch: pytest.MonkeyPatch):
    run_images(images_context)
    logo = images_context['source_dir'] / 'images/src/logo.png'
    write_image(logo, (16, 16), 'purple')

    run_images(images_context)
    with Image.open(images_context['source_dir'] / 'images/dist/logo.png') as img:
        assert img.size == (16, 16)


def test_images_stale_parameters(images_context, monkeypatch: pytest.MonkeyPatch):
    run_images(images_context)
    calls = []
    monkeypatch.setattr(ImagesTask, 'optimize', lambda self, path, output: calls.append(path.name))
    run_images(images_context, quality=50)
    assert sorted(calls) == ['beach.jpg', 'icon.svg', 'logo.png']


def test_images_without_cache_file(images_context, monkeypatch: pytest.MonkeyPatch):
    task = ImagesTask(None)
    images_context.bind(task)
    task()
    assert not images_context['image_cache'].exists()

    calls = []
    monkeypatch.setattr(ImagesTask, 'optimize', lambda self, path, output: calls.append(path))
    task()
    assert calls == []


def test_images_notify(images_context, monkeypatch: pytest.MonkeyPatch):
    notified = record_notifications(images_context, monkeypatch)
    run_images(images_context)
    assert notified == ['reload']
    run_images(images_context)
    assert notified == ['reload']


def test_images_removed_source(images_context, monkeypatch: pytest.MonkeyPatch):
    dist = run_images(images_context)
    assert (dist / 'photos/beach.jpg').exists()

    (images_context['source_dir'] / 'images/src/photos/beach.jpg').unlink()
    notified = record_notifications(images_context, monkeypatch)
    run_images(images_context)
    assert not (dist / 'photos/beach.jpg').exists()
    assert not (dist / 'photos').exists()
    assert (dist / 'logo.png').exists()
    assert notified == ['reload']
    data = json.loads(images_context['image_cache'].read_text())
    assert set(data['records']) == {
        'source_dir/images/dist/logo.png',
        'source_dir/images/dist/icon.svg',
    }


def test_images_removed_source_without_cache(images_context):
    (images_context['source_dir'] / 'images/dist').mkdir(parents=True)
    (images_context['source_dir'] / 'images/dist/orphan.png').write_bytes(b'old')
    task = ImagesTask(None)
    images_context.bind(task)
    task()
    dist = images_context['source_dir'] / 'images/dist'
    assert not (dist / 'orphan.png').exists()
    assert (dist / 'logo.png').exists()


def test_images_missing_dir(tmp_path: Path):
    context = make_context(tmp_path / 'empty', tmp_path)
    dist = run_images(context)
    assert not dist.exists()
