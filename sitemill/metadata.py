'''
Metadata attached to crawl items: an ordered multimap of string keys to one or
more string values.
'''

IS_SITEMAP_KEY = 'isSitemap'
STATUS_ERROR_SOURCE = 'error.source'
STATUS_ERROR_MESSAGE = 'error.message'
CONTENT_TYPE_KEY = 'content-type'
RESERVED_KEYS = (IS_SITEMAP_KEY, STATUS_ERROR_SOURCE, STATUS_ERROR_MESSAGE)


class Metadata:
    ''' An ordered multimap. Keys keep their first insertion order. '''

    def __init__(self, values=None):
        '''
        Constructor.

        :param values: Initial contents. Each value may be a single string or
            a list of strings.
        :type values: dict or None
        '''
        self._data = dict()
        if values is not None:
            for key, value in values.items():
                if isinstance(value, (list, tuple)):
                    self.add_values(key, value)
                else:
                    self.add_value(key, value)

    def __repr__(self):
        return 'Metadata({!r})'.format(self._data)

    def __contains__(self, key):
        return key in self._data

    def __eq__(self, other):
        if not isinstance(other, Metadata):
            return NotImplemented
        return self._data == other._data

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def get_first_value(self, key):
        '''
        Return the first value stored for ``key``.

        :param str key:
        :rtype: str or None
        '''
        values = self._data.get(key)
        if not values:
            return None
        return values[0]

    def get_values(self, key):
        '''
        Return all of the values stored for ``key``.

        :param str key:
        :returns: A new list, empty if the key is absent.
        :rtype: list[str]
        '''
        return list(self._data.get(key, ()))

    def set_value(self, key, value):
        ''' Replace any values for ``key`` with the single ``value``. '''
        self._data[key] = [str(value)]

    def set_values(self, key, values):
        ''' Replace any values for ``key`` with ``values``. '''
        self._data[key] = [str(value) for value in values]

    def add_value(self, key, value):
        ''' Append ``value`` to the values for ``key``. '''
        self._data.setdefault(key, []).append(str(value))

    def add_values(self, key, values):
        ''' Append each of ``values`` to the values for ``key``. '''
        bucket = self._data.setdefault(key, [])
        bucket.extend(str(value) for value in values)

    def remove(self, key):
        '''
        Remove ``key`` and return its values.

        :rtype: list[str]
        '''
        return self._data.pop(key, [])

    def keys(self):
        return list(self._data.keys())

    def items(self):
        ''' Yield ``(key, values)`` pairs in insertion order. '''
        for key, values in self._data.items():
            yield key, list(values)

    def copy(self):
        '''
        Return a deep copy; value lists are not shared with the original.

        :rtype: Metadata
        '''
        clone = Metadata()
        for key, values in self._data.items():
            clone._data[key] = list(values)
        return clone

    def to_dict(self):
        ''' A plain dict of key to list of values. '''
        return {key: list(values) for key, values in self._data.items()}
