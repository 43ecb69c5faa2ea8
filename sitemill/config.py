import configparser
from dataclasses import dataclass, field
import json
import pathlib

from .sitemap import DEFAULT_MAX_CONTENT_SIZE


_root = pathlib.Path(__file__).resolve().parent.parent


def get_path(relpath):
    ''' Get absolute path to a project-relative path. '''
    return _root / relpath


def get_config():
    '''
    Read the application configuration from the standard configuration files.

    :rtype: ConfigParser
    '''
    config_dir = get_path("conf")
    config_files = [
        config_dir / "system.ini",
        config_dir / "local.ini",
    ]
    config = configparser.ConfigParser()
    config.optionxform = str
    config.read(config_files)
    return config


def _load_filter_docs(path):
    ''' Read a JSON list of filter documents. A blank path means no
    filters. '''
    if not path:
        return list()
    path = pathlib.Path(path)
    if not path.is_absolute():
        path = get_path(path)
    with path.open() as f:
        docs = json.load(f)
    if not isinstance(docs, list):
        raise ValueError('Filter file must contain a JSON list: {}'
            .format(path))
    return docs


@dataclass
class StageConfig:
    ''' Resolved settings for the sitemap stage. '''
    sniff_content: bool = False
    filter_hours_since_modified: int = -1
    strict: bool = False
    allow_partial: bool = False
    max_content_size: int = DEFAULT_MAX_CONTENT_SIZE
    transfer_keys: list = field(default_factory=list)
    track_path: bool = True
    track_depth: bool = True
    url_filters: list = field(default_factory=list)
    parse_filters: list = field(default_factory=list)

    @classmethod
    def from_config(cls, config):
        '''
        Read settings from the ``[sitemap]``, ``[metadata]``, and
        ``[filters]`` sections. Missing options keep their defaults.

        :param configparser.ConfigParser config:
        :rtype: StageConfig
        '''
        if not config.has_section('sitemap'):
            config.add_section('sitemap')
        if not config.has_section('metadata'):
            config.add_section('metadata')
        if not config.has_section('filters'):
            config.add_section('filters')
        sitemap = config['sitemap']
        metadata = config['metadata']
        filters = config['filters']

        return cls(
            sniff_content=sitemap.getboolean('sniffContent', False),
            filter_hours_since_modified=sitemap.getint(
                'filter.hours.since.modified', -1),
            strict=sitemap.getboolean('strict', False),
            allow_partial=sitemap.getboolean('allow.partial', False),
            max_content_size=sitemap.getint('max.content.size',
                DEFAULT_MAX_CONTENT_SIZE),
            transfer_keys=metadata.get('transfer', '').replace(',', ' ')
                .split(),
            track_path=metadata.getboolean('track.path', True),
            track_depth=metadata.getboolean('track.depth', True),
            url_filters=_load_filter_docs(filters.get(
                'urlfilters.config.file', '')),
            parse_filters=_load_filter_docs(filters.get(
                'parsefilters.config.file', '')),
        )
