from pathlib import Path

from sprat import InputProjectSettings, Preprocessor, Provide


# Optional, and can be overridden with CLI arguments.
SETTINGS = InputProjectSettings(
    source_dir=Path(__file__).parent / 'starter_site',
    output_dir=Path('output/starter_site'),
    preprocessor=Preprocessor.SASS,
    watch_extensions='html,htm,txt,json,md,woff,woff2',
    image_cache=Path('output/starter_site.json'),
    # Scripts may use $ without importing anything; the bundle starts with the
    # provider script whenever one of them does.
    provide={
        '$': Provide(Path('js/vendor/dom.js'), 'dom'),
    },
    deploy={
        'hostname': 'deploy@example.com',
        'destination': 'example.com/public_html/',
    },
)
