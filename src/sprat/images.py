from __future__ import annotations

import io
import shutil
from pathlib import Path

from .core import Context, Task
from .custody import ChangeCache
from .dependencies import PipDependency
from .paths import glob
from .pretty_utils import print_with_style, track_progress


class ImagesTask(Task):
    """
    Compress every image below `images/src` into the mirrored location below
    `images/dist` using Pillow, skipping images whose output is current.
    """
    name = 'images'
    source_root = Path('images/src')
    output_root = Path('images/dist')

    def __init__(self,
                 cache_file: Path | None = None,
                 quality: int = 85,
                 progressive: bool = True):
        """
        @cache_file holds checksums between runs; without one, an output
        newer than its source counts as current. @quality applies to lossy
        formats.
        """
        self.cache_file = cache_file
        self.quality = quality
        self.progressive = progressive

    def get_dependencies(self):
        return {PipDependency('Pillow', check_name='PIL')}

    def bind(self, context: Context):
        super().bind(context)
        self.custodian = ChangeCache(
            self.cache_file,
            {'quality': self.quality, 'progressive': self.progressive},
        )
        self.custodian.bind(context)

    def get_save_options(self, image_format: str | None):
        """
        Return Pillow save() options for re-encoding @image_format, or None if
        the format should be copied as-is.
        """
        if image_format == 'JPEG':
            return {'quality': self.quality, 'optimize': True, 'progressive': self.progressive}
        if image_format == 'PNG':
            return {'optimize': True}
        if image_format == 'GIF':
            return {'optimize': True}
        if image_format == 'WEBP':
            return {'quality': self.quality, 'method': 6}
        return None

    def optimize(self, path: Path, output_path: Path):
        """
        Write a compressed copy of @path to @output_path. If re-encoding is
        unsupported or does not shrink the file, the original bytes are
        copied.
        """
        from PIL import Image, UnidentifiedImageError

        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with Image.open(path) as img:
                options = self.get_save_options(img.format)
                if options is None or getattr(img, 'is_animated', False):
                    data = None
                else:
                    buffer = io.BytesIO()
                    img.save(buffer, format=img.format, **options)
                    data = buffer.getvalue()
        except UnidentifiedImageError:
            data = None

        if data is None or len(data) >= path.stat().st_size:
            shutil.copyfile(path, output_path)
        else:
            output_path.write_bytes(data)

    def prune(self, output_root: Path, expected: set[Path]):
        """
        Delete files below @output_root that are not in @expected, along with
        their cache records and any directories left empty. Returns whether
        anything was removed.
        """
        removed = False
        for path in list(self.context.find_inputs(output_root)):
            if path in expected:
                continue
            path.unlink()
            self.custodian.forget(path)
            print_with_style('Removed', str(path), style='yellow')
            removed = True
        dirs = [p for p in output_root.rglob('*') if p.is_dir()] if output_root.is_dir() else []
        for directory in sorted(dirs, reverse=True):
            if not any(directory.iterdir()):
                directory.rmdir()
        return removed

    def __call__(self):
        source_dir: Path = self.context['source_dir']
        source_root = source_dir / self.source_root
        output_root = source_dir / self.output_root

        self.custodian.load()
        changed = False
        expected: set[Path] = set()
        paths = self.context.find(glob(f'{self.source_root.as_posix()}/**/*'))
        for path in track_progress(paths, 'Optimizing images...'):
            output_path = output_root / path.relative_to(source_root)
            expected.add(output_path)
            stale, msg = self.custodian.refresh_needed(path, output_path)
            if stale:
                self.optimize(path, output_path)
                self.custodian.add_step(path, output_path, msg)
                changed = True
            else:
                self.custodian.skip_step(path, output_path)
        if self.prune(output_root, expected):
            changed = True
        self.custodian.dump()

        if changed:
            self.context.notify('reload')
