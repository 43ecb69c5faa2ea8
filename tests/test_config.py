import json

import pytest

import sitemill.config
from sitemill.sitemap import DEFAULT_MAX_CONTENT_SIZE


LOCAL_INI = '''[sitemap]
sniffContent = true
filter.hours.since.modified = 72

[metadata]
transfer = lang, seed.*
track.path = false'''


SYSTEM_INI = '''[sitemap]
sniffContent = false
filter.hours.since.modified = -1
strict = true

[filters]
urlfilters.config.file = conf/urlfilters.json
parsefilters.config.file ='''


URL_FILTERS = [
    {'class': 'BasicURLNormalizer', 'params': {'remove_anchor': True}},
]


@pytest.fixture
def conf_dir(tmp_path, monkeypatch):
    ''' Point the project root at a temporary directory. '''
    monkeypatch.setattr(sitemill.config, '_root', tmp_path)
    config_dir = tmp_path / 'conf'
    config_dir.mkdir()
    return config_dir


def test_get_config(conf_dir):
    with (conf_dir / 'local.ini').open('w') as f:
        f.write(LOCAL_INI)

    with (conf_dir / 'system.ini').open('w') as f:
        f.write(SYSTEM_INI)

    config = sitemill.config.get_config()
    sitemap = config['sitemap']
    assert sitemap['sniffContent'] == 'true'
    assert sitemap['filter.hours.since.modified'] == '72'
    assert sitemap['strict'] == 'true'


def test_stage_config(conf_dir):
    with (conf_dir / 'local.ini').open('w') as f:
        f.write(LOCAL_INI)
    with (conf_dir / 'system.ini').open('w') as f:
        f.write(SYSTEM_INI)
    with (conf_dir / 'urlfilters.json').open('w') as f:
        json.dump(URL_FILTERS, f)

    stage_config = sitemill.config.StageConfig.from_config(
        sitemill.config.get_config())
    assert stage_config.sniff_content
    assert stage_config.filter_hours_since_modified == 72
    assert stage_config.strict
    assert not stage_config.allow_partial
    assert stage_config.max_content_size == DEFAULT_MAX_CONTENT_SIZE
    assert stage_config.transfer_keys == ['lang', 'seed.*']
    assert not stage_config.track_path
    assert stage_config.track_depth
    assert stage_config.url_filters == URL_FILTERS
    assert stage_config.parse_filters == []


def test_stage_config_defaults(conf_dir):
    stage_config = sitemill.config.StageConfig.from_config(
        sitemill.config.get_config())
    assert stage_config == sitemill.config.StageConfig()


def test_filter_file_must_be_list(conf_dir):
    with (conf_dir / 'system.ini').open('w') as f:
        f.write('[filters]\nparsefilters.config.file = conf/parse.json\n')
    with (conf_dir / 'parse.json').open('w') as f:
        json.dump({'class': 'DomainParseFilter'}, f)
    with pytest.raises(ValueError):
        sitemill.config.StageConfig.from_config(sitemill.config.get_config())
