import argparse
import logging
import math
import pathlib
import sys

import trio

from .config import get_config, StageConfig
from .metadata import CONTENT_TYPE_KEY, IS_SITEMAP_KEY, Metadata
from .model import Delivery, WorkItem
from .stage import SitemapParserStage


def configure_logging(log_level, error_log):
    ''' Set default format and output stream for logging. '''
    log_format = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    log_date_format = '%Y-%m-%d %H:%M:%S'
    log_formatter = logging.Formatter(log_format, log_date_format)
    log_level = getattr(logging, log_level.upper())
    log_handler = logging.StreamHandler(sys.stderr)
    log_handler.setFormatter(log_formatter)
    log_handler.setLevel(log_level)
    logger = logging.getLogger()
    logger.addHandler(log_handler)
    logger.setLevel(log_level)

    if error_log is not None:
        exc_handler = logging.FileHandler(error_log)
        exc_handler.setFormatter(log_formatter)
        exc_handler.setLevel(logging.ERROR)
        logger.addHandler(exc_handler)


def get_args(argv=None):
    ''' Parse command line arguments. '''
    arg_parser = argparse.ArgumentParser(
        description='Extract links from a sitemap file')
    arg_parser.add_argument(
        'url',
        help='The URL the sitemap was fetched from (used to resolve relative '
             'links)'
    )
    arg_parser.add_argument(
        'file',
        help='Path to the sitemap content'
    )
    arg_parser.add_argument(
        '--content-type',
        help='Content type hint (default: detect from content)'
    )
    arg_parser.add_argument(
        '--sniff',
        action='store_true',
        help='Detect sitemaps from content instead of assuming the file is '
             'one.'
    )
    arg_parser.add_argument(
        '--strict',
        action='store_true',
        help='Reject documents that do not follow the sitemap protocol.'
    )
    arg_parser.add_argument(
        '--hours-since-modified',
        type=int,
        metavar='HOURS',
        help='Skip entries modified more than HOURS ago.'
    )
    arg_parser.add_argument(
        '--log-level',
        default='warning',
        metavar='LEVEL',
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        help='Set logging verbosity (default: warning)'
    )
    arg_parser.add_argument(
        '--error-log',
        help='Copy error logs to the specified file.'
    )
    return arg_parser.parse_args(argv)


def format_metadata(metadata):
    ''' Render metadata as space separated key=value pairs. '''
    return ' '.join('{}={}'.format(key, ','.join(values))
        for key, values in metadata.items())


async def run_file(stage_config, url, content, metadata, out=None):
    '''
    Run a single item through the sitemap stage and print what it emits.

    :param sitemill.config.StageConfig stage_config:
    :param str url:
    :param bytes content:
    :param sitemill.metadata.Metadata metadata:
    :returns: The stage statistics.
    :rtype: dict
    '''
    if out is None:
        out = sys.stdout
    send_channel, main_recv = trio.open_memory_channel(math.inf)
    status_channel, status_recv = trio.open_memory_channel(math.inf)
    stage = SitemapParserStage.from_config(stage_config, send_channel,
        status_channel)
    await stage.handle(Delivery(WorkItem(url, content, metadata)))
    send_channel.close()
    status_channel.close()

    async for item in main_recv:
        print('FORWARD {} {}'.format(item.url, format_metadata(
            item.metadata)), file=out)
    async for event in status_recv:
        print('{} {} {}'.format(event.status.name, event.url,
            format_metadata(event.metadata)), file=out)
    return stage.stats


def main(argv=None):
    ''' Run the sitemap stage over a local file. '''
    args = get_args(argv)
    configure_logging(args.log_level, args.error_log)
    stage_config = StageConfig.from_config(get_config())
    if args.sniff:
        stage_config.sniff_content = True
    if args.strict:
        stage_config.strict = True
    if args.hours_since_modified is not None:
        stage_config.filter_hours_since_modified = args.hours_since_modified

    content = pathlib.Path(args.file).read_bytes()
    metadata = Metadata()
    if not args.sniff:
        metadata.set_value(IS_SITEMAP_KEY, 'true')
    if args.content_type:
        metadata.set_value(CONTENT_TYPE_KEY, args.content_type)

    stats = trio.run(run_file, stage_config, args.url, content, metadata)
    return 1 if stats['error_count'] else 0


if __name__ == '__main__':
    sys.exit(main())
