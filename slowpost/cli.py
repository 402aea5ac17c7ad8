#!/usr/bin/env python3
"""
slow-post - stress-testing tool which uses slow HTTP POST.

Opens many concurrent connections to the target, declares a large request
body and sends it a few bytes at a time, reconnecting forever until
interrupted.

Usage:
    slow-post [options] hostname

Examples:
    # 25 clients against a local server on port 8080
    slow-post --port 8080 127.0.0.1

    # HTTPS through a SOCKS proxy, 200 clients
    slow-post --ssl --port 443 --concurrency 200 --socks-proxy 127.0.0.1:9050 test.example
"""
import argparse
import asyncio
import sys

from . import config as defaults
from .config import ClientConfig, parse_proxy
from .errors import ConfigError
from .logging_config import enable_console_logging
from .pool import ClientPool


def build_parser():
    parser = argparse.ArgumentParser(
        prog="slow-post",
        description="Stress-testing tool which uses slow HTTP POST",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('hostname',
                        help='target host name')
    parser.add_argument('--ssl', action='store_true',
                        help='use HTTPS')
    parser.add_argument('--port', type=int, default=defaults.DEFAULT_PORT,
                        help=f'target port number (default: {defaults.DEFAULT_PORT})')
    parser.add_argument('--path', default=defaults.DEFAULT_PATH,
                        help=f'request path (default: {defaults.DEFAULT_PATH})')
    parser.add_argument('--concurrency', type=int, default=defaults.DEFAULT_CONCURRENCY,
                        help=f'number of concurrent connections (default: {defaults.DEFAULT_CONCURRENCY})')
    parser.add_argument('--min-chunk-size', type=int, default=defaults.DEFAULT_MIN_CHUNK_SIZE,
                        metavar='BYTES',
                        help=f'min post body chunk size in bytes (default: {defaults.DEFAULT_MIN_CHUNK_SIZE})')
    parser.add_argument('--max-chunk-size', type=int, default=defaults.DEFAULT_MAX_CHUNK_SIZE,
                        metavar='BYTES',
                        help=f'max post body chunk size in bytes (default: {defaults.DEFAULT_MAX_CHUNK_SIZE})')
    parser.add_argument('--min-body-size', type=int, default=defaults.DEFAULT_MIN_BODY_SIZE,
                        metavar='BYTES',
                        help=f'min post body size (default: {defaults.DEFAULT_MIN_BODY_SIZE})')
    parser.add_argument('--max-body-size', type=int, default=defaults.DEFAULT_MAX_BODY_SIZE,
                        metavar='BYTES',
                        help=f'max post body size (default: {defaults.DEFAULT_MAX_BODY_SIZE})')
    parser.add_argument('--body-send-delay', type=float, default=defaults.DEFAULT_BODY_SEND_DELAY,
                        metavar='SEC',
                        help='delay in seconds between completion of sending previous chunk '
                             f'and start of sending next chunk (default: {defaults.DEFAULT_BODY_SEND_DELAY:g})')
    parser.add_argument('--connection-delay', type=float, default=defaults.DEFAULT_CONNECTION_DELAY,
                        metavar='SEC',
                        help='delay in seconds before reconnecting, failed connections wait '
                             f'{defaults.PENALTY_FACTOR}x longer (default: {defaults.DEFAULT_CONNECTION_DELAY:g})')
    parser.add_argument('--user-agent', default='', metavar='STRING',
                        help='http user agent (default: no User-Agent header)')
    parser.add_argument('--socks-proxy', metavar='HOST:PORT',
                        help='use specified SOCKS4a proxy')
    parser.add_argument('--crlf', action='store_true',
                        help='terminate header lines with CRLF instead of LF')
    parser.add_argument('--quiet', action='store_true',
                        help='only log connection failures')
    return parser


def config_from_args(args):
    """Build the shared ClientConfig from parsed arguments."""
    proxy = parse_proxy(args.socks_proxy) if args.socks_proxy else None
    return ClientConfig(
        host=args.hostname,
        port=args.port,
        path=args.path,
        ssl=args.ssl,
        proxy=proxy,
        min_chunk_size=args.min_chunk_size,
        max_chunk_size=args.max_chunk_size,
        min_body_size=args.min_body_size,
        max_body_size=args.max_body_size,
        body_send_delay=args.body_send_delay,
        connection_delay=args.connection_delay,
        user_agent=args.user_agent,
        crlf=args.crlf,
    )


async def run(config, concurrency):
    """Spawn the clients and keep the loop running until cancelled."""
    pool = ClientPool()
    pool.spawn(concurrency, config)
    try:
        await asyncio.Event().wait()
    finally:
        pool.stop()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.concurrency < 1:
        parser.error("--concurrency must be at least 1")
    try:
        config = config_from_args(args)
    except ConfigError as e:
        parser.error(str(e))

    enable_console_logging(level="WARNING" if args.quiet else "INFO")

    try:
        asyncio.run(run(config, args.concurrency))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == '__main__':
    sys.exit(main())
