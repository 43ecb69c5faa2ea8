'''
URL filters are applied to every outlink extracted from a sitemap. Each filter
returns a (possibly modified) URL, or None to discard the URL.
'''
from collections import Counter
import logging
import re

import w3lib.url
from yarl import URL


logger = logging.getLogger(__name__)


class FilterConfigError(Exception):
    ''' A filter document is invalid. '''


class FilterFailure(Exception):
    ''' A filter raised an unexpected exception. '''

    def __init__(self, url, message, source='url filtering', cause=None):
        super().__init__(message)
        self.url = url
        self.source = source
        self.cause = cause


def _invalid(message, location=None):
    ''' A helper for validating filter documents. '''
    if location is None:
        raise FilterConfigError(f'{message}.')
    raise FilterConfigError(f'{message} in {location}.')


class URLFilter:
    ''' Base class for URL filters. '''

    def filter(self, source_url, source_metadata, url):
        '''
        Filter or modify ``url``.

        :param str source_url: The URL of the sitemap containing ``url``.
        :param sitemill.metadata.Metadata source_metadata: The sitemap's
            metadata.
        :param str url: An absolute URL.
        :returns: The URL to keep, or None to discard it.
        :rtype: str or None
        '''
        raise NotImplementedError()


class BasicURLNormalizer(URLFilter):
    ''' Remove anchors and unwanted query parameters. '''

    def __init__(self, doc):
        '''
        Initialize from a filter document.

        :param dict doc:
        '''
        self._remove_anchor = doc.get('remove_anchor', True)
        self._strip_parameters = doc.get('strip_parameters', list())
        self._canonicalize = doc.get('canonicalize', False)
        if not isinstance(self._strip_parameters, list):
            _invalid('Strip parameters must be a list', 'BasicURLNormalizer')

    def filter(self, source_url, source_metadata, url):
        if self._strip_parameters:
            url = w3lib.url.url_query_cleaner(url, remove=True,
                unique=False, parameterlist=self._strip_parameters,
                keep_fragments=True)
        if self._canonicalize:
            url = w3lib.url.canonicalize_url(url,
                keep_fragments=not self._remove_anchor)
        elif self._remove_anchor:
            url = url.split('#', 1)[0]
        return url


class BasicURLFilter(URLFilter):
    ''' Reject non-HTTP URLs, very long URLs, and URLs with looping paths. '''

    SCHEMES = ('http', 'https')

    def __init__(self, doc):
        '''
        Initialize from a filter document.

        :param dict doc:
        '''
        self._max_length = doc.get('max_length', -1)
        self._max_path_repetition = doc.get('max_path_repetition', 3)
        if not isinstance(self._max_length, int):
            _invalid('Max length must be an integer', 'BasicURLFilter')
        if not isinstance(self._max_path_repetition, int):
            _invalid('Max path repetition must be an integer',
                'BasicURLFilter')

    def filter(self, source_url, source_metadata, url):
        if 0 <= self._max_length < len(url):
            logger.debug('Rejecting long URL %s', url)
            return None
        parsed = URL(url)
        if parsed.scheme not in self.SCHEMES:
            return None
        if self._max_path_repetition > 0:
            segments = [s for s in parsed.path.split('/') if s]
            if segments:
                _, count = Counter(segments).most_common(1)[0]
                if count > self._max_path_repetition:
                    logger.debug('Rejecting repetitive path %s', url)
                    return None
        return url


class HostURLFilter(URLFilter):
    ''' Keep only URLs on the same host or domain as their sitemap. '''

    def __init__(self, doc):
        '''
        Initialize from a filter document.

        :param dict doc:
        '''
        self._ignore_outside_host = doc.get('ignore_outside_host', False)
        self._ignore_outside_domain = doc.get('ignore_outside_domain', True)

    def filter(self, source_url, source_metadata, url):
        source_host = URL(source_url).host or ''
        target_host = URL(url).host or ''
        if self._ignore_outside_host and \
                source_host.lower() != target_host.lower():
            return None
        if self._ignore_outside_domain and \
                _domain(source_host) != _domain(target_host):
            return None
        return url


def _domain(host):
    ''' Approximate a host's registered domain by its last two labels. '''
    labels = host.lower().rstrip('.').split('.')
    return '.'.join(labels[-2:])


class RegexURLFilter(URLFilter):
    '''
    Accept or reject URLs using an ordered list of regular expression rules.
    The first matching rule wins. The last rule has no pattern and supplies
    the default action.
    '''

    def __init__(self, doc):
        '''
        Initialize from a filter document.

        :param dict doc: Contains a ``rules`` list.
        '''
        rules = doc.get('rules')
        if not rules:
            _invalid('At least one regex rule is required')

        # Rules are stored as tuples: (pattern, match, accept)
        self._rules = list()
        max_index = len(rules) - 1

        for index, rule in enumerate(rules):
            if index < max_index:
                location = 'regex rule #{}'.format(index+1)
                if rule.get('pattern', '').strip() == '':
                    _invalid('Pattern is required', location)
                if rule.get('match') not in ('MATCHES', 'DOES_NOT_MATCH'):
                    _invalid('Match selector is required', location)
                try:
                    pattern_re = re.compile(rule['pattern'])
                except re.error:
                    _invalid('Invalid regular expression', location)
            else:
                location = 'last regex rule'
                if 'pattern' in rule:
                    _invalid('Pattern is not allowed', location)
                if 'match' in rule:
                    _invalid('Match selector is not allowed', location)
                pattern_re = None
            if rule.get('action') not in ('ACCEPT', 'REJECT'):
                _invalid('Action must be ACCEPT or REJECT', location)
            self._rules.append((
                pattern_re,
                rule.get('match'),
                rule['action'] == 'ACCEPT',
            ))

    def filter(self, source_url, source_metadata, url):
        for pattern, match, accept in self._rules:
            if pattern is not None:
                result = pattern.search(url) is not None
                if match == 'DOES_NOT_MATCH':
                    result = not result
                if not result:
                    continue
            return url if accept else None
        return None


URL_FILTER_CLASSES = {
    'BasicURLNormalizer': BasicURLNormalizer,
    'BasicURLFilter': BasicURLFilter,
    'HostURLFilter': HostURLFilter,
    'RegexURLFilter': RegexURLFilter,
}


class URLFilters(URLFilter):
    ''' Applies a sequence of URL filters, stopping at the first rejection. '''

    @classmethod
    def from_docs(cls, docs):
        '''
        Build a filter chain from filter documents, e.g.
        ``{'class': 'HostURLFilter', 'params': {'ignore_outside_host': True}}``.

        :param docs: Filter documents.
        :type docs: list[dict]
        :rtype: URLFilters
        '''
        filters = list()
        for index, doc in enumerate(docs or ()):
            location = 'URL filter #{}'.format(index+1)
            class_ = URL_FILTER_CLASSES.get(doc.get('class'))
            if class_ is None:
                _invalid('Unknown filter class "{}"'.format(doc.get('class')),
                    location)
            filters.append(class_(doc.get('params', dict())))
        return cls(filters)

    def __init__(self, filters=None):
        '''
        Constructor.

        :param list[URLFilter] filters:
        '''
        self._filters = list(filters or ())

    def __repr__(self):
        names = ', '.join(type(f).__name__ for f in self._filters)
        return '<URLFilters [{}]>'.format(names)

    def __len__(self):
        return len(self._filters)

    def filter(self, source_url, source_metadata, url):
        for url_filter in self._filters:
            url = url_filter.filter(source_url, source_metadata, url)
            if url is None or not url.strip():
                return None
        return url
