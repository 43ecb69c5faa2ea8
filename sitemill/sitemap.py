'''
Detect and parse sitemaps.

Sitemaps come in two shapes: a sitemap index, which lists other sitemaps, and
a URL set, which lists crawlable pages. Either shape may be served as XML,
gzipped XML, or plain text (one URL per line). RSS and Atom feeds are also
accepted and are treated as URL sets.
'''
from dataclasses import dataclass
from datetime import datetime, timezone
import enum
import logging
import zlib

import dateutil.parser
import feedparser
import lxml.etree
import mimeparse
import w3lib.encoding
from yarl import URL

from .metadata import IS_SITEMAP_KEY


logger = logging.getLogger(__name__)

SITEMAP_NAMESPACE = 'http://www.sitemaps.org/schemas/sitemap/0.9'
SNIFF_LENGTH = 200
DEFAULT_MAX_CONTENT_SIZE = 50 * 1024 * 1024
_GZIP_MAGIC = b'\x1f\x8b'
_GZIP_CHUNK_SIZE = 64 * 1024
_XML_TYPES = {
    ('text', 'xml'),
    ('application', 'xml'),
    ('application', 'x-xml'),
}
_FEED_TYPES = {
    ('application', 'rss+xml'),
    ('application', 'atom+xml'),
}
_GZIP_TYPES = {
    ('application', 'gzip'),
    ('application', 'x-gzip'),
    ('application', 'x-gunzip'),
    ('application', 'gzipped'),
    ('application', 'gzip-compressed'),
    ('gzip', 'document'),
}
_TEXT_TYPES = {
    ('text', 'plain'),
}
_FEED_ROOTS = ('rss', 'feed', 'RDF')


class ParseFailure(Exception):
    ''' A sitemap could not be parsed. '''
    source = 'sitemap parsing'

    def __init__(self, url, message, cause=None):
        super().__init__(message)
        self.url = url
        self.cause = cause


class SitemapKind(enum.Enum):
    INDEX = 'index'
    URLSET = 'urlset'


class ChangeFrequency(enum.Enum):
    ALWAYS = 'always'
    HOURLY = 'hourly'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    YEARLY = 'yearly'
    NEVER = 'never'

    @classmethod
    def parse(cls, text):
        '''
        Convert a ``<changefreq>`` value, returning None if it is not
        recognized.

        :param str text:
        :rtype: ChangeFrequency or None
        '''
        if text is None:
            return None
        try:
            return cls(text.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class IndexEntry:
    ''' A reference to another sitemap. '''
    target: str
    last_modified: datetime = None


@dataclass(frozen=True)
class UrlEntry:
    ''' A page listed in a URL set. '''
    target: str
    last_modified: datetime = None
    priority: float = None
    change_frequency: ChangeFrequency = None


@dataclass(frozen=True)
class SitemapDocument:
    '''
    A parsed sitemap. ``kind`` says which kind of entries are in ``entries``:
    ``IndexEntry`` for an index, ``UrlEntry`` for a URL set.
    '''
    kind: SitemapKind
    entries: tuple

    @property
    def is_index(self):
        return self.kind is SitemapKind.INDEX


def is_sitemap(metadata, content, sniff=False, url=None):
    '''
    Decide whether an item is a sitemap.

    A true ``isSitemap`` metadata value is authoritative. Otherwise, if
    ``sniff`` is enabled, the start of the content is checked for the sitemap
    namespace.

    :param sitemill.metadata.Metadata metadata:
    :param bytes content:
    :param bool sniff:
    :param str url: Only used for logging.
    :rtype: bool
    '''
    flag = metadata.get_first_value(IS_SITEMAP_KEY)
    if flag is not None and flag.strip().lower() == 'true':
        return True
    if sniff and sniff_sitemap(content):
        logger.info('%s detected as sitemap based on content', url)
        return True
    return False


def sniff_sitemap(content):
    '''
    Return True if the sitemap namespace appears within the first
    ``SNIFF_LENGTH`` bytes of ``content``. Only works for uncompressed XML.

    :param bytes content:
    :rtype: bool
    '''
    beginning = content[:SNIFF_LENGTH]
    return SITEMAP_NAMESPACE.encode('ascii') in beginning


class SitemapParser:
    ''' Parses raw sitemap bytes into a ``SitemapDocument``. '''

    def __init__(self, strict=False, allow_partial=False,
            max_content_size=DEFAULT_MAX_CONTENT_SIZE):
        '''
        Constructor.

        :param bool strict: Require the sitemap namespace, drop URL set
            entries that are not under the sitemap's location, and reject
            invalid lines in plain text sitemaps.
        :param bool allow_partial: Recover what can be parsed from malformed
            XML instead of failing.
        :param int max_content_size: Reject documents larger than this many
            bytes (after decompression).
        '''
        self._strict = strict
        self._allow_partial = allow_partial
        self._max_content_size = max_content_size

    def __repr__(self):
        return '<SitemapParser strict={} allow_partial={}>'.format(
            self._strict, self._allow_partial)

    @property
    def strict(self):
        return self._strict

    def parse(self, url, content, content_type=None):
        '''
        Parse a sitemap.

        If ``content_type`` is blank or an octet stream, the format is
        detected from the content. Otherwise the content type selects the
        decoder.

        :param str url: The URL the sitemap was fetched from.
        :param bytes content:
        :param str content_type: Optional content type hint.
        :rtype: SitemapDocument
        :raises ParseFailure:
        '''
        self._check_size(url, content)

        if not content_type or not content_type.strip() or \
                'octet-stream' in content_type:
            return self._parse_autodetect(url, content)

        try:
            type_, subtype, _ = mimeparse.parse_mime_type(content_type)
        except ValueError:
            logger.debug('Cannot parse content type "%s" for %s',
                content_type, url)
            return self._parse_autodetect(url, content)

        mime = (type_, subtype)
        if mime in _FEED_TYPES:
            return self._parse_feed(url, content)
        elif mime in _XML_TYPES or subtype.endswith('+xml'):
            return self._parse_xml(url, content)
        elif mime in _GZIP_TYPES:
            return self._parse_gzip(url, content)
        elif mime in _TEXT_TYPES:
            return self._parse_text(url, content)

        raise ParseFailure(url, 'Unknown sitemap format: {}'.format(
            content_type))

    def _check_size(self, url, content):
        if len(content) > self._max_content_size:
            raise ParseFailure(url, 'Sitemap exceeds {} bytes'.format(
                self._max_content_size))

    def _parse_autodetect(self, url, content):
        ''' Choose a decoder by inspecting the content. '''
        if content.startswith(_GZIP_MAGIC):
            return self._parse_gzip(url, content)

        _, bom = w3lib.encoding.read_bom(content)
        head = content[len(bom):] if bom else content
        if head.lstrip().startswith(b'<'):
            return self._parse_xml(url, content)

        return self._parse_text(url, content)

    def _parse_gzip(self, url, content):
        ''' Decompress and then parse the inner document. '''
        return self._parse_autodetect(url, self._gunzip(url, content))

    def _gunzip(self, url, content):
        '''
        Decompress gzip content in bounded chunks, failing as soon as the
        output exceeds the maximum content size.

        :param str url:
        :param bytes content:
        :rtype: bytes
        :raises ParseFailure:
        '''
        decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        output = bytearray()
        data = content
        try:
            while True:
                chunk = decompressor.decompress(data, _GZIP_CHUNK_SIZE)
                output += chunk
                if len(output) > self._max_content_size:
                    raise ParseFailure(url, 'Decompressed sitemap exceeds {} '
                        'bytes'.format(self._max_content_size))
                if decompressor.eof:
                    data = decompressor.unused_data
                    if not data.startswith(_GZIP_MAGIC):
                        break
                    # Concatenated gzip members.
                    decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
                    continue
                data = decompressor.unconsumed_tail
                if not chunk and not data:
                    raise ParseFailure(url, 'Invalid gzip content: truncated')
        except zlib.error as exc:
            raise ParseFailure(url, 'Invalid gzip content: {}'.format(exc),
                exc) from exc
        return bytes(output)

    def _parse_xml(self, url, content):
        ''' Parse an XML sitemap index or URL set. '''
        parser = lxml.etree.XMLParser(
            recover=self._allow_partial,
            resolve_entities=False,
            no_network=True,
            remove_comments=True,
            remove_pis=True,
        )
        try:
            root = lxml.etree.fromstring(content, parser)
        except lxml.etree.XMLSyntaxError as exc:
            raise ParseFailure(url, 'Invalid XML: {}'.format(exc), exc) \
                from exc
        if root is None:
            raise ParseFailure(url, 'Empty XML document')

        name = lxml.etree.QName(root)
        if name.localname in _FEED_ROOTS:
            return self._parse_feed(url, content)
        if self._strict and name.namespace != SITEMAP_NAMESPACE:
            raise ParseFailure(url, 'Missing sitemap namespace on <{}>'
                .format(name.localname))

        if name.localname == 'sitemapindex':
            kind = SitemapKind.INDEX
            entry_tag = 'sitemap'
        elif name.localname == 'urlset':
            kind = SitemapKind.URLSET
            entry_tag = 'url'
        else:
            raise ParseFailure(url, 'Unknown sitemap root element <{}>'
                .format(name.localname))

        entries = list()
        for element in root:
            if _local_name(element) != entry_tag:
                continue
            fields = _child_text(element)
            target = fields.get('loc')
            if not target:
                continue
            if self._strict and kind is SitemapKind.URLSET and \
                    not _is_under_location(url, target):
                logger.debug('%s is not under sitemap location %s', target,
                    url)
                continue
            last_modified = _parse_datetime(fields.get('lastmod'))
            if kind is SitemapKind.INDEX:
                entries.append(IndexEntry(target, last_modified))
            else:
                entries.append(UrlEntry(
                    target,
                    last_modified,
                    _parse_priority(fields.get('priority')),
                    ChangeFrequency.parse(fields.get('changefreq')),
                ))

        logger.debug('Parsed %s with %d entries from %s', kind.value,
            len(entries), url)
        return SitemapDocument(kind, tuple(entries))

    def _parse_feed(self, url, content):
        ''' Parse an RSS or Atom feed into a URL set. '''
        doc = feedparser.parse(content)
        if not doc.get('version'):
            raise ParseFailure(url, 'Unrecognized feed format',
                doc.get('bozo_exception'))
        if self._strict and doc.get('bozo'):
            exc = doc.get('bozo_exception')
            raise ParseFailure(url, 'Malformed feed: {}'.format(exc), exc)

        entries = list()
        for entry in doc.entries:
            target = entry.get('link')
            if not target:
                continue
            timestamp = entry.get('updated_parsed') or \
                entry.get('published_parsed')
            last_modified = None
            if timestamp is not None:
                last_modified = datetime(*timestamp[:6], tzinfo=timezone.utc)
            entries.append(UrlEntry(target, last_modified))

        return SitemapDocument(SitemapKind.URLSET, tuple(entries))

    def _parse_text(self, url, content):
        ''' Parse a plain text sitemap containing one URL per line. '''
        encoding, bom = w3lib.encoding.read_bom(content)
        if bom:
            content = content[len(bom):]
        text = w3lib.encoding.to_unicode(content, encoding or 'utf-8')

        entries = list()
        for line_number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            if not _is_absolute_http(line):
                if self._strict:
                    raise ParseFailure(url, 'Invalid URL on line {}: {}'
                        .format(line_number, line))
                logger.debug('Skipping invalid line %d in %s', line_number,
                    url)
                continue
            entries.append(UrlEntry(line))

        return SitemapDocument(SitemapKind.URLSET, tuple(entries))


def _local_name(element):
    ''' Return an element's tag without its namespace, or None for
    non-element nodes. '''
    if not isinstance(element.tag, str):
        return None
    return lxml.etree.QName(element).localname


def _child_text(element):
    ''' Map each child's local name to its stripped text. '''
    fields = dict()
    for child in element:
        name = _local_name(child)
        if name is not None and name not in fields:
            fields[name] = (child.text or '').strip()
    return fields


def _parse_datetime(text):
    '''
    Parse a W3C datetime. A missing month or day means the first one, and
    naive values are assumed to be UTC.

    :param str text:
    :rtype: datetime or None
    '''
    if not text:
        return None
    try:
        parsed = dateutil.parser.isoparse(text)
    except (ValueError, OverflowError):
        logger.debug('Invalid lastmod: %s', text)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_priority(text):
    if not text:
        return None
    try:
        priority = float(text)
    except ValueError:
        return None
    if 0.0 <= priority <= 1.0:
        return priority
    return None


def _is_absolute_http(text):
    try:
        parsed = URL(text)
    except ValueError:
        return False
    return parsed.is_absolute() and parsed.scheme in ('http', 'https')


def _is_under_location(sitemap_url, target):
    '''
    True if ``target`` is on the same host as ``sitemap_url`` and under its
    directory, as the sitemaps.org protocol requires.
    '''
    try:
        base = URL(sitemap_url)
        resolved = base.join(URL(target))
    except ValueError:
        return False
    directory = base.path.rsplit('/', 1)[0] + '/'
    return resolved.scheme == base.scheme and \
        resolved.host == base.host and \
        resolved.port == base.port and \
        resolved.path.startswith(directory)
