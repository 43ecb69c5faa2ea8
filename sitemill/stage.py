from dataclasses import dataclass, field
import logging

from .extractor import LinkExtractor
from .metadata import (
    CONTENT_TYPE_KEY,
    STATUS_ERROR_MESSAGE,
    STATUS_ERROR_SOURCE,
)
from .model import Status, StatusEvent
from .parsefilter import ParseFilters, ParseResult
from .sitemap import is_sitemap, ParseFailure, SitemapParser
from .transfer import MetadataTransfer
from .urlfilter import FilterFailure, URLFilters


logger = logging.getLogger(__name__)


def make_stats():
    ''' Make an empty stats dictionary. '''
    return {
        'item_count': 0,
        'passthrough_count': 0,
        'sitemap_count': 0,
        'error_count': 0,
        'outlink_count': 0,
    }


@dataclass
class StageResult:
    '''
    What the stage emits for one item: either the item itself, forwarded on
    the main channel, or a sequence of status events.
    '''
    forward: object = None
    events: list = field(default_factory=list)


class SitemapParserStage:
    '''
    Extracts links from sitemaps.

    Items that are not sitemaps are forwarded unchanged on the main channel.
    For sitemaps, every extracted link is sent to the status channel as
    DISCOVERED, followed by the sitemap itself as FETCHED (or a single ERROR
    if parsing or filtering failed). Every item is acknowledged exactly once.
    '''

    @classmethod
    def from_config(cls, stage_config, send_channel, status_channel,
            recv_channel=None, stats=None):
        '''
        Build a stage and its collaborators from resolved settings.

        :param sitemill.config.StageConfig stage_config:
        :rtype: SitemapParserStage
        '''
        parser = SitemapParser(
            strict=stage_config.strict,
            allow_partial=stage_config.allow_partial,
            max_content_size=stage_config.max_content_size,
        )
        transfer = MetadataTransfer(stage_config.transfer_keys,
            stage_config.track_path, stage_config.track_depth)
        extractor = LinkExtractor(
            URLFilters.from_docs(stage_config.url_filters),
            transfer,
            stage_config.filter_hours_since_modified,
        )
        parse_filters = ParseFilters.from_docs(stage_config.parse_filters)
        return cls(send_channel, status_channel, recv_channel, parser,
            extractor, parse_filters, stage_config.sniff_content, stats)

    def __init__(self, send_channel, status_channel, recv_channel, parser,
            extractor, parse_filters, sniff_content=False, stats=None):
        '''
        Constructor.

        :param trio.SendChannel send_channel: The main channel, which receives
            ``WorkItem`` instances that are not sitemaps.
        :param trio.SendChannel status_channel: Receives ``StatusEvent``
            instances.
        :param trio.ReceiveChannel recv_channel: Delivers ``Delivery``
            instances. May be None if only ``handle()`` is used.
        :param sitemill.sitemap.SitemapParser parser:
        :param sitemill.extractor.LinkExtractor extractor:
        :param sitemill.parsefilter.ParseFilter parse_filters:
        :param bool sniff_content: If True, items without an ``isSitemap``
            flag are checked for the sitemap namespace.
        :param dict stats: A dictionary of stage statistics.
        '''
        self._send_channel = send_channel
        self._status_channel = status_channel
        self._recv_channel = recv_channel
        self._parser = parser
        self._extractor = extractor
        self._parse_filters = parse_filters
        self._sniff_content = sniff_content
        self._stats = stats if stats is not None else make_stats()

    def __repr__(self):
        return '<SitemapParserStage sniff={}>'.format(self._sniff_content)

    @property
    def stats(self):
        return self._stats

    async def run(self):
        '''
        Read deliveries from the receive channel and handle each one.

        :returns: This function runs until the receive channel is closed.
        '''
        async for delivery in self._recv_channel:
            try:
                await self.handle(delivery)
            except Exception:
                logger.exception('%r Sitemap stage exception on %r', self,
                    delivery)

    async def handle(self, delivery):
        '''
        Process one delivery, emit the result, and acknowledge it.

        :param sitemill.model.Delivery delivery:
        '''
        try:
            result = self.process(delivery.item)
            if result.forward is not None:
                await self._send_channel.send(result.forward)
            for event in result.events:
                await self._status_channel.send(event)
        finally:
            delivery.ack()

    def process(self, item):
        '''
        Run detection, parsing, extraction, and parse filters on one item.

        This never raises for a malformed sitemap or a failing filter; such
        failures become a single ERROR event.

        :param sitemill.model.WorkItem item:
        :rtype: StageResult
        '''
        self._stats['item_count'] += 1
        url = item.url
        metadata = item.metadata

        if not is_sitemap(metadata, item.content, self._sniff_content, url):
            self._stats['passthrough_count'] += 1
            return StageResult(forward=item)

        self._stats['sitemap_count'] += 1
        content_type = metadata.get_first_value(CONTENT_TYPE_KEY) or \
            metadata.get_first_value('Content-Type')

        try:
            document = self._parser.parse(url, item.content, content_type)
            outlinks = self._extractor.extract(url, document, metadata)
        except (ParseFailure, FilterFailure) as exc:
            return self._error(item, exc.source,
                'Exception while parsing {}: {}'.format(url, exc))
        except Exception as exc:
            logger.exception('%r Unexpected exception parsing %s', self, url)
            return self._error(item, 'sitemap parsing',
                'Exception while parsing {}: {}'.format(url, exc))

        parse = ParseResult(url, metadata, outlinks)
        try:
            self._parse_filters.filter(url, item.content, parse)
        except Exception as exc:
            return self._error(item, 'content filtering',
                'Exception while running parse filters on {}: {}'
                .format(url, exc))

        events = [StatusEvent.from_outlink(ol) for ol in parse.outlinks]
        self._stats['outlink_count'] += len(events)
        events.append(StatusEvent(url, metadata, Status.FETCHED))
        logger.info('%r Extracted %d links from %s', self, len(events) - 1,
            url)
        return StageResult(events=events)

    def _error(self, item, source, message):
        ''' Record an error on the item and build its ERROR event. '''
        logger.error(message)
        self._stats['error_count'] += 1
        item.metadata.set_value(STATUS_ERROR_SOURCE, source)
        item.metadata.set_value(STATUS_ERROR_MESSAGE, message)
        return StageResult(events=[
            StatusEvent(item.url, item.metadata, Status.ERROR),
        ])
