from datetime import datetime, timedelta, timezone
import logging

from yarl import URL

from .metadata import IS_SITEMAP_KEY
from .model import Outlink
from .urlfilter import FilterFailure


logger = logging.getLogger(__name__)


class ResolutionFailure(ValueError):
    ''' A sitemap entry cannot be resolved to an absolute URL. '''


def resolve_url(base_url, target):
    '''
    Resolve ``target`` against ``base_url``.

    :param str base_url: An absolute URL.
    :param str target: An absolute or relative URL.
    :returns: An absolute URL.
    :rtype: str
    :raises ResolutionFailure:
    '''
    try:
        absolute = URL(base_url).join(URL(target.strip()))
    except ValueError as exc:
        raise ResolutionFailure('Malformed URL: {}'.format(target)) from exc
    if not absolute.is_absolute() or not absolute.host:
        raise ResolutionFailure('Not an absolute URL: {}'.format(target))
    return str(absolute)


class LinkExtractor:
    ''' Turns a parsed sitemap into outlinks. '''

    def __init__(self, url_filters, metadata_transfer,
            filter_hours_since_modified=-1, clock=None):
        '''
        Constructor.

        :param sitemill.urlfilter.URLFilter url_filters: Applied to each
            resolved outlink.
        :param sitemill.transfer.MetadataTransfer metadata_transfer: Derives
            outlink metadata from the sitemap's metadata.
        :param int filter_hours_since_modified: Entries last modified more
            than this many hours ago are dropped. A negative value disables
            this check.
        :param clock: A callable returning the current time as an aware
            datetime. Defaults to the system clock.
        '''
        self._url_filters = url_filters
        self._metadata_transfer = metadata_transfer
        self._filter_hours_since_modified = filter_hours_since_modified
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return '<LinkExtractor hours_since_modified={}>'.format(
            self._filter_hours_since_modified)

    def extract(self, url, document, parent_metadata):
        '''
        Extract outlinks from a sitemap, in document order.

        Sub-sitemaps of an index are tagged ``isSitemap=true`` so that they
        are parsed once fetched; pages of a URL set are tagged
        ``isSitemap=false``.

        :param str url: The sitemap's URL, used to resolve relative entries.
        :param sitemill.sitemap.SitemapDocument document:
        :param sitemill.metadata.Metadata parent_metadata:
        :rtype: list[Outlink]
        :raises FilterFailure: If a URL filter or the metadata transfer
            raises.
        '''
        is_sitemap = 'true' if document.is_index else 'false'
        cutoff = None
        if self._filter_hours_since_modified >= 0:
            cutoff = self._clock() - timedelta(
                hours=self._filter_hours_since_modified)

        outlinks = list()
        for entry in document.entries:
            try:
                target = resolve_url(url, entry.target)
            except ResolutionFailure:
                logger.debug('Malformed URL in %s: %s', url, entry.target)
                continue

            if cutoff is not None and entry.last_modified is not None and \
                    entry.last_modified < cutoff:
                logger.info('%s has a modified date %s which is more than %d '
                    'hours old', target, entry.last_modified.isoformat(),
                    self._filter_hours_since_modified)
                continue

            try:
                target = self._url_filters.filter(url, parent_metadata,
                    target)
            except Exception as exc:
                raise FilterFailure(url, 'URL filter failed on {}: {}'.format(
                    target, exc), cause=exc) from exc
            if target is None or not target.strip():
                continue

            try:
                metadata = self._metadata_transfer.get_meta_for_outlink(
                    target, url, parent_metadata)
            except Exception as exc:
                raise FilterFailure(url, 'Metadata transfer failed on {}: {}'
                    .format(target, exc), cause=exc) from exc
            metadata.set_value(IS_SITEMAP_KEY, is_sitemap)

            outlinks.append(Outlink(target, metadata))
            logger.debug('%s : [sitemap] %s', url, target)

        return outlinks
