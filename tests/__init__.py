from functools import wraps
import math
from os.path import dirname
from sys import path

import pytest
import trio


# Add this project to the Python path.
path.append(dirname(dirname(__file__)))


URLSET_NS = 'http://www.sitemaps.org/schemas/sitemap/0.9'


def make_urlset(*entries, namespace=True):
    '''
    Build a URL set document. Each entry is a URL string or a dict of child
    element names to text.
    '''
    return _make_sitemap('urlset', 'url', entries, namespace)


def make_index(*entries, namespace=True):
    ''' Build a sitemap index document, like ``make_urlset()``. '''
    return _make_sitemap('sitemapindex', 'sitemap', entries, namespace)


def _make_sitemap(root, tag, entries, namespace):
    xmlns = ' xmlns="{}"'.format(URLSET_NS) if namespace else ''
    parts = ['<?xml version="1.0" encoding="UTF-8"?>',
        '<{}{}>'.format(root, xmlns)]
    for entry in entries:
        if isinstance(entry, str):
            entry = {'loc': entry}
        children = ''.join('<{0}>{1}</{0}>'.format(name, text)
            for name, text in entry.items())
        parts.append('  <{0}>{1}</{0}>'.format(tag, children))
    parts.append('</{}>'.format(root))
    return '\n'.join(parts).encode('utf8')


def open_channels():
    '''
    Open unbounded main and status channels.

    :returns: (send, main_recv, status, status_recv)
    '''
    send_channel, main_recv = trio.open_memory_channel(math.inf)
    status_channel, status_recv = trio.open_memory_channel(math.inf)
    return send_channel, main_recv, status_channel, status_recv


def drain(recv_channel):
    ''' Return everything currently buffered in ``recv_channel``. '''
    items = list()
    while True:
        try:
            items.append(recv_channel.receive_nowait())
        except (trio.WouldBlock, trio.EndOfChannel):
            break
    return items


class fail_after:
    ''' This decorator fails if the runtime of the decorated function (as
    measured by the Trio clock) exceeds the specified value. '''
    def __init__(self, seconds):
        self._seconds = seconds

    def __call__(self, fn):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            with trio.move_on_after(self._seconds) as cancel_scope:
                await fn(*args, **kwargs)
            if cancel_scope.cancelled_caught:
                pytest.fail('Test runtime exceeded the maximum {} seconds'
                    .format(self._seconds))
        return wrapper
