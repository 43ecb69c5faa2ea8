import logging

from .metadata import Metadata, RESERVED_KEYS


logger = logging.getLogger(__name__)
PATH_KEY = 'url.path'
DEPTH_KEY = 'depth'


class MetadataTransfer:
    '''
    Decides which metadata an outlink inherits from the document it was found
    in.
    '''

    def __init__(self, transfer_keys=None, track_path=True, track_depth=True):
        '''
        Constructor.

        :param list[str] transfer_keys: Keys copied from the parent. A key
            ending in ``*`` copies every key with that prefix.
        :param bool track_path: Record the chain of URLs that led to the
            outlink under ``url.path``.
        :param bool track_depth: Record the outlink's depth (parent depth
            plus one) under ``depth``.
        '''
        self._transfer_keys = list(transfer_keys or ())
        self._track_path = track_path
        self._track_depth = track_depth

    def __repr__(self):
        return '<MetadataTransfer keys={} path={} depth={}>'.format(
            len(self._transfer_keys), self._track_path, self._track_depth)

    def get_meta_for_outlink(self, target_url, source_url, parent_metadata):
        '''
        Derive an outlink's metadata from its parent.

        :param str target_url:
        :param str source_url:
        :param Metadata parent_metadata:
        :rtype: Metadata
        '''
        metadata = Metadata()

        if self._track_path:
            path = parent_metadata.get_values(PATH_KEY)
            path.append(source_url)
            metadata.set_values(PATH_KEY, path)

        if self._track_depth:
            parent_depth = parent_metadata.get_first_value(DEPTH_KEY)
            try:
                depth = int(parent_depth) if parent_depth else 0
            except ValueError:
                logger.debug('Invalid depth "%s" on %s', parent_depth,
                    source_url)
                depth = 0
            metadata.set_value(DEPTH_KEY, depth + 1)

        for key in parent_metadata.keys():
            if key in RESERVED_KEYS or key in (PATH_KEY, DEPTH_KEY):
                continue
            if self._should_transfer(key):
                metadata.set_values(key, parent_metadata.get_values(key))

        return metadata

    def _should_transfer(self, key):
        for pattern in self._transfer_keys:
            if pattern.endswith('*'):
                if key.startswith(pattern[:-1]):
                    return True
            elif key == pattern:
                return True
        return False
