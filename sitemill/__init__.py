'''
The sitemap stage of a crawl pipeline: detects sitemaps, extracts their links,
and reports crawl status events.
'''
from .version import __version__
