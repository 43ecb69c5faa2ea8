from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from sitemill.extractor import LinkExtractor, resolve_url, ResolutionFailure
from sitemill.metadata import Metadata
from sitemill.sitemap import (
    IndexEntry,
    SitemapDocument,
    SitemapKind,
    UrlEntry,
)
from sitemill.transfer import MetadataTransfer
from sitemill.urlfilter import FilterFailure, RegexURLFilter, URLFilters


BASE_URL = 'https://example.com/sitemaps/sitemap.xml'
NOW = datetime(2024, 1, 10, tzinfo=timezone.utc)


def make_extractor(url_filters=None, hours=-1, transfer=None):
    return LinkExtractor(
        url_filters or URLFilters(),
        transfer or MetadataTransfer(),
        filter_hours_since_modified=hours,
        clock=lambda: NOW,
    )


def test_resolve_url():
    assert resolve_url(BASE_URL, 'page1.html') == \
        'https://example.com/sitemaps/page1.html'
    assert resolve_url(BASE_URL, '/page2.html') == \
        'https://example.com/page2.html'
    assert resolve_url(BASE_URL, 'http://other.example/a') == \
        'http://other.example/a'
    assert resolve_url(BASE_URL, ' //cdn.example/b ') == \
        'https://cdn.example/b'


def test_resolve_malformed_url():
    with pytest.raises(ResolutionFailure):
        resolve_url(BASE_URL, 'http://[bad')
    with pytest.raises(ResolutionFailure):
        resolve_url(BASE_URL, 'mailto:someone@example.com')


def test_extract_index():
    ''' Sub-sitemaps are tagged so that they get parsed once fetched. '''
    doc = SitemapDocument(SitemapKind.INDEX, (
        IndexEntry('https://example.com/sm1.xml'),
        IndexEntry('sm2.xml'),
    ))
    outlinks = make_extractor().extract(BASE_URL, doc, Metadata())
    assert [ol.target_url for ol in outlinks] == [
        'https://example.com/sm1.xml',
        'https://example.com/sitemaps/sm2.xml',
    ]
    for outlink in outlinks:
        assert outlink.metadata.get_first_value('isSitemap') == 'true'


def test_extract_urlset():
    doc = SitemapDocument(SitemapKind.URLSET, (
        UrlEntry('/a'),
        UrlEntry('http://[bad'),
        UrlEntry('b', priority=0.5),
    ))
    parent = Metadata({'depth': '2', 'url.path': 'https://example.com/'})
    outlinks = make_extractor().extract(BASE_URL, doc, parent)
    assert [ol.target_url for ol in outlinks] == [
        'https://example.com/a',
        'https://example.com/sitemaps/b',
    ]
    metadata = outlinks[0].metadata
    assert metadata.get_first_value('isSitemap') == 'false'
    assert metadata.get_first_value('depth') == '3'
    assert metadata.get_values('url.path') == [
        'https://example.com/',
        BASE_URL,
    ]
    # Each outlink has its own metadata.
    assert outlinks[0].metadata is not outlinks[1].metadata


def test_extract_filters_by_last_modified():
    doc = SitemapDocument(SitemapKind.URLSET, (
        UrlEntry('https://example.com/old',
            datetime(2024, 1, 1, tzinfo=timezone.utc)),
        UrlEntry('https://example.com/recent',
            datetime(2024, 1, 9, 12, tzinfo=timezone.utc)),
        UrlEntry('https://example.com/boundary',
            datetime(2024, 1, 9, tzinfo=timezone.utc)),
        UrlEntry('https://example.com/undated'),
    ))
    outlinks = make_extractor(hours=24).extract(BASE_URL, doc, Metadata())
    assert [ol.target_url for ol in outlinks] == [
        'https://example.com/recent',
        'https://example.com/boundary',
        'https://example.com/undated',
    ]


def test_date_filter_disabled():
    doc = SitemapDocument(SitemapKind.INDEX, (
        IndexEntry('https://example.com/ancient.xml',
            datetime(1999, 1, 1, tzinfo=timezone.utc)),
    ))
    outlinks = make_extractor().extract(BASE_URL, doc, Metadata())
    assert len(outlinks) == 1


def test_date_filter_zero_hours():
    doc = SitemapDocument(SitemapKind.INDEX, (
        IndexEntry('https://example.com/past.xml',
            datetime(2024, 1, 9, 23, 59, tzinfo=timezone.utc)),
    ))
    outlinks = make_extractor(hours=0).extract(BASE_URL, doc, Metadata())
    assert outlinks == []


def test_stale_entries_skip_url_filters():
    url_filters = Mock()
    url_filters.filter.side_effect = lambda source, md, url: url
    doc = SitemapDocument(SitemapKind.URLSET, (
        UrlEntry('https://example.com/old',
            datetime(2020, 1, 1, tzinfo=timezone.utc)),
        UrlEntry('https://example.com/new'),
    ))
    make_extractor(url_filters, hours=1).extract(BASE_URL, doc, Metadata())
    assert url_filters.filter.call_count == 1
    assert url_filters.filter.call_args[0][2] == 'https://example.com/new'


def test_url_filters_applied():
    url_filters = URLFilters([RegexURLFilter({'rules': [
        {'pattern': r'/private/', 'match': 'MATCHES', 'action': 'REJECT'},
        {'action': 'ACCEPT'},
    ]})])
    doc = SitemapDocument(SitemapKind.URLSET, (
        UrlEntry('/public/a'),
        UrlEntry('/private/b'),
        UrlEntry('/public/c'),
    ))
    outlinks = make_extractor(url_filters).extract(BASE_URL, doc, Metadata())
    assert [ol.target_url for ol in outlinks] == [
        'https://example.com/public/a',
        'https://example.com/public/c',
    ]


def test_blank_filter_result_is_skipped():
    url_filters = Mock()
    url_filters.filter.return_value = '   '
    doc = SitemapDocument(SitemapKind.URLSET, (UrlEntry('/a'),))
    outlinks = make_extractor(url_filters).extract(BASE_URL, doc, Metadata())
    assert outlinks == []


def test_url_filter_exception():
    url_filters = Mock()
    url_filters.filter.side_effect = RuntimeError('boom')
    doc = SitemapDocument(SitemapKind.URLSET, (UrlEntry('/a'),))
    with pytest.raises(FilterFailure) as exc_info:
        make_extractor(url_filters).extract(BASE_URL, doc, Metadata())
    assert exc_info.value.source == 'url filtering'
    assert 'boom' in str(exc_info.value)


def test_metadata_transfer_exception():
    transfer = Mock()
    transfer.get_meta_for_outlink.side_effect = KeyError('depth')
    doc = SitemapDocument(SitemapKind.URLSET, (UrlEntry('/a'),))
    with pytest.raises(FilterFailure):
        make_extractor(transfer=transfer).extract(BASE_URL, doc, Metadata())


def test_extraction_is_deterministic():
    doc = SitemapDocument(SitemapKind.URLSET, tuple(
        UrlEntry('/page{}'.format(i)) for i in range(20)))
    extractor = make_extractor()
    first = extractor.extract(BASE_URL, doc, Metadata({'depth': '0'}))
    second = extractor.extract(BASE_URL, doc, Metadata({'depth': '0'}))
    assert first == second
