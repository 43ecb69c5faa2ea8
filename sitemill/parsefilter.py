'''
Parse filters run once per sitemap, after its outlinks have been extracted.
They may annotate the sitemap's metadata or prune its outlinks.
'''
from dataclasses import dataclass, field
import logging

from yarl import URL

from .metadata import Metadata
from .urlfilter import FilterConfigError


logger = logging.getLogger(__name__)


def _invalid(message, location):
    ''' A helper for validating parse filter documents. '''
    raise FilterConfigError(f'{message} in {location}.')


@dataclass
class ParseResult:
    ''' The aggregate result of extracting links from one document. '''
    url: str
    metadata: Metadata
    outlinks: list = field(default_factory=list)


class ParseFilter:
    ''' Base class for parse filters. '''

    def filter(self, url, content, parse):
        '''
        Inspect or modify ``parse`` in place.

        :param str url:
        :param bytes content:
        :param ParseResult parse:
        '''
        raise NotImplementedError()


class DomainParseFilter(ParseFilter):
    ''' Record the document's host in its metadata. '''

    def __init__(self, doc):
        self._key = doc.get('key', 'domain')
        if not self._key:
            _invalid('Key is required', 'DomainParseFilter')

    def filter(self, url, content, parse):
        host = URL(url).host
        if host:
            parse.metadata.set_value(self._key, host.lower())


class OutlinkCountParseFilter(ParseFilter):
    ''' Record how many outlinks the document produced. '''

    def __init__(self, doc):
        self._key = doc.get('key', 'outlinks.count')
        if not self._key:
            _invalid('Key is required', 'OutlinkCountParseFilter')

    def filter(self, url, content, parse):
        parse.metadata.set_value(self._key, len(parse.outlinks))


PARSE_FILTER_CLASSES = {
    'DomainParseFilter': DomainParseFilter,
    'OutlinkCountParseFilter': OutlinkCountParseFilter,
}


class ParseFilters(ParseFilter):
    ''' Applies a sequence of parse filters in order. '''

    @classmethod
    def from_docs(cls, docs):
        '''
        Build a filter chain from filter documents, e.g.
        ``{'class': 'DomainParseFilter', 'params': {'key': 'host'}}``.

        :param docs: Filter documents.
        :type docs: list[dict]
        :rtype: ParseFilters
        '''
        filters = list()
        for index, doc in enumerate(docs or ()):
            location = 'parse filter #{}'.format(index+1)
            class_ = PARSE_FILTER_CLASSES.get(doc.get('class'))
            if class_ is None:
                _invalid('Unknown filter class "{}"'.format(doc.get('class')),
                    location)
            filters.append(class_(doc.get('params', dict())))
        return cls(filters)

    def __init__(self, filters=None):
        self._filters = list(filters or ())

    def __repr__(self):
        names = ', '.join(type(f).__name__ for f in self._filters)
        return '<ParseFilters [{}]>'.format(names)

    def __len__(self):
        return len(self._filters)

    def filter(self, url, content, parse):
        for parse_filter in self._filters:
            parse_filter.filter(url, content, parse)
