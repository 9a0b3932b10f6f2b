#!/usr/bin/env python3
"""
Entry points: `suumo-import scrape|preview <url>` and the Lambda handler.

Lambda event:
    {"operation": "scrape" | "preview", "url": "https://suumo.jp/...",
     "max_pages": 3, "skip_images": false, "dry_run": false,
     "rate_limit_delay": 2.0, "tenant_id": "t1", "session_id": "..."}
"""
import argparse
import json
import os
import sys
import time
from datetime import datetime

import requests

from .access_info import AccessInfoParser, load_station_master
from .config import load_config
from .dynamodb_utils import GeocodeQueue, PropertyStore
from .log_utils import SessionLogger, setup_logging
from .models import ScrapeOptions
from .scraper_service import ScraperService

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_URL = 2


def validate_url(url, config):
    """Only SUUMO URLs may be crawled"""
    if not url:
        raise ValueError('URL is required')
    if not url.startswith(config.allowed_url_prefix):
        raise ValueError(f"URL must start with {config.allowed_url_prefix}: {url}")


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or '').lower() in ('true', '1', 'yes')


def _optional_int(value):
    if value in (None, ''):
        return None
    return int(value)


def build_service(config, tenant_id=None, station_master_file=None, logger=None):
    store = PropertyStore.from_config(config, tenant_id=tenant_id)
    access_parser = AccessInfoParser(load_station_master(station_master_file)) if station_master_file else None
    return ScraperService(
        config,
        store,
        geocoder=GeocodeQueue.from_config(config),
        access_parser=access_parser,
        logger=logger,
    )


def parse_arguments(argv=None):
    """Parse command line arguments with environment variable fallbacks"""
    parser = argparse.ArgumentParser(description="Import SUUMO rental listings into DynamoDB")
    parser.add_argument(
        '--config',
        default=os.environ.get('SUUMO_CONFIG_FILE') or None,
        help='YAML config file (default: packaged config.yaml)'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    scrape = subparsers.add_parser('scrape', help='Crawl search results and import buildings, rooms and photos')
    scrape.add_argument('url', help='SUUMO search-result URL')
    scrape.add_argument(
        '--max-pages',
        type=int,
        default=_optional_int(os.environ.get('MAX_PAGES')),
        help='Stop after this many pages (default: follow pagination to the end)'
    )
    scrape.add_argument(
        '--rate-limit',
        type=float,
        default=None,
        help='Seconds to sleep between requests (default: from config)'
    )
    scrape.add_argument(
        '--skip-images',
        action='store_true',
        default=_as_bool(os.environ.get('SKIP_IMAGES')),
        help='Do not download photos'
    )
    scrape.add_argument(
        '--dry-run',
        action='store_true',
        default=_as_bool(os.environ.get('DRY_RUN')),
        help='Look up buildings and rooms without writing anything'
    )
    scrape.add_argument(
        '--tenant-id',
        default=os.environ.get('TENANT_ID') or None,
        help='Scope created and matched buildings to this tenant'
    )
    scrape.add_argument(
        '--station-master',
        default=os.environ.get('STATION_MASTER_FILE') or None,
        help='YAML file of railway lines and stations used to resolve access info'
    )

    preview = subparsers.add_parser('preview', help='Parse one page and print what would be imported')
    preview.add_argument('url', help='SUUMO search-result URL')

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    config = load_config(args.config)
    setup_logging(config.log_level)
    logger = SessionLogger(f"suumo-{datetime.now().strftime('%Y%m%d-%H%M%S')}", log_level=config.log_level)

    try:
        validate_url(args.url, config)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_BAD_URL

    if args.command == 'preview':
        service = ScraperService(config, store=None, logger=logger)
        try:
            result = service.preview(args.url)
        except requests.RequestException as e:
            logger.error(f"Preview failed: {e}")
            return EXIT_FAILED
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return EXIT_OK

    options = ScrapeOptions(
        rate_limit_delay=args.rate_limit if args.rate_limit is not None else config.default_rate_limit,
        max_pages=args.max_pages,
        skip_images=args.skip_images,
        dry_run=args.dry_run,
    )
    service = build_service(config, tenant_id=args.tenant_id, station_master_file=args.station_master, logger=logger)
    stats = service.scrape(args.url, options)
    print(json.dumps(stats, ensure_ascii=False, indent=2))
    return EXIT_OK if stats['pages_processed'] > 0 else EXIT_FAILED


def lambda_handler(event, context):
    """AWS Lambda handler"""
    session_id = event.get('session_id', f'suumo-import-{int(time.time())}')
    config = load_config()
    logger = SessionLogger(session_id, log_level=event.get('log_level', config.log_level))
    operation = event.get('operation', 'scrape')
    url = event.get('url')

    logger.info(f"SUUMO import Lambda started: {operation} {url}")

    try:
        validate_url(url, config)
    except ValueError as e:
        logger.error(str(e))
        return {
            'statusCode': 400,
            'body': json.dumps({'error': str(e), 'session_id': session_id}, ensure_ascii=False)
        }

    try:
        if operation == 'preview':
            result = ScraperService(config, store=None, logger=logger).preview(url)
        elif operation == 'scrape':
            rate_limit = event.get('rate_limit_delay')
            options = ScrapeOptions(
                rate_limit_delay=float(rate_limit) if rate_limit is not None else config.default_rate_limit,
                max_pages=_optional_int(event.get('max_pages')),
                skip_images=_as_bool(event.get('skip_images')),
                dry_run=_as_bool(event.get('dry_run')),
            )
            service = build_service(
                config,
                tenant_id=event.get('tenant_id'),
                station_master_file=os.environ.get('STATION_MASTER_FILE') or None,
                logger=logger,
            )
            result = {'stats': service.scrape(url, options)}
        else:
            return {
                'statusCode': 400,
                'body': json.dumps({'error': f'Unknown operation: {operation}', 'session_id': session_id})
            }

        result['session_id'] = session_id
        result['timestamp'] = datetime.now().isoformat()
        logger.info(f"SUUMO import Lambda finished: {operation}")
        return {
            'statusCode': 200,
            'body': json.dumps(result, ensure_ascii=False)
        }

    except Exception as e:
        logger.error(f"Lambda failed: {str(e)}")
        return {
            'statusCode': 500,
            'body': json.dumps({'error': str(e), 'session_id': session_id})
        }


if __name__ == '__main__':
    sys.exit(main())
