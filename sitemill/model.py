from dataclasses import dataclass, field
import enum

from .metadata import Metadata


class AlreadyAcknowledgedError(Exception):
    ''' A delivery was acknowledged more than once. '''


class Status(enum.Enum):
    ''' Crawl state transitions reported on the status channel. '''
    DISCOVERED = 'DISCOVERED'
    FETCHED = 'FETCHED'
    ERROR = 'ERROR'


@dataclass
class WorkItem:
    ''' A fetched document delivered to the sitemap stage. '''
    url: str
    content: bytes
    metadata: Metadata = field(default_factory=Metadata)

    def __post_init__(self):
        ''' Accept a plain dict for metadata. '''
        if not isinstance(self.metadata, Metadata):
            self.metadata = Metadata(self.metadata)


@dataclass
class Outlink:
    ''' A discovered URL and the metadata derived for it. '''
    target_url: str
    metadata: Metadata = field(default_factory=Metadata)


@dataclass
class StatusEvent:
    ''' A message sent on the status channel. '''
    url: str
    metadata: Metadata
    status: Status

    @classmethod
    def from_outlink(cls, outlink):
        '''
        Create a DISCOVERED event for an outlink.

        :param Outlink outlink:
        '''
        return cls(outlink.target_url, outlink.metadata, Status.DISCOVERED)


class Delivery:
    '''
    One work item together with the acknowledgment handle supplied by the
    delivery substrate.
    '''

    def __init__(self, item, on_ack=None):
        '''
        Constructor.

        :param WorkItem item:
        :param on_ack: A callable invoked with the item when it is
            acknowledged.
        '''
        self._item = item
        self._on_ack = on_ack
        self._acked = False

    def __repr__(self):
        return '<Delivery url={} acked={}>'.format(self._item.url,
            self._acked)

    @property
    def item(self):
        return self._item

    @property
    def acked(self):
        '''
        True once ``ack()`` has been called.

        :rtype: bool
        '''
        return self._acked

    def ack(self):
        ''' Acknowledge the item. May only be called once. '''
        if self._acked:
            raise AlreadyAcknowledgedError(
                'Item already acknowledged: {}'.format(self._item.url))
        self._acked = True
        if self._on_ack is not None:
            self._on_ack(self._item)
