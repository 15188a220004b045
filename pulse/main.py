#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

# Load environment variables from .env file
from dotenv import load_dotenv

from pulse.pipeline.pulse_pipeline import PulsePipeline, PulseResponse
from pulse.utils.logging_config import setup_logging
from pulse.utils.settings import ConfigError, load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pulse multi-source retrieval pipeline")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('--trending', action='store_true', help='Compute trending topics')
    mode.add_argument('--timeline', metavar='TOPIC', help='Build an event timeline for a topic')
    mode.add_argument('--discover', metavar='QUERY', help='Search and deduplicate results')
    mode.add_argument('--news', metavar='QUERY', help='News-only search, breaking items first')
    mode.add_argument('--fact-check', metavar='CLAIM', help='Search fact-checking sites for a claim')
    mode.add_argument('--feeds', metavar='CATEGORY', help='Fetch articles from the RSS feeds of a category')
    mode.add_argument('--search-feeds', metavar='QUERY', help='Keyword search over recent feed articles')
    mode.add_argument('--context', metavar='TITLE', help='Assemble retrieval context for an article title')
    mode.add_argument('--health', action='store_true', help='Show endpoint health')

    parser.add_argument('--placeholders', action='store_true',
                        help='With --trending: keep failed candidates as zero-score placeholders')
    parser.add_argument('--category', help='With --discover: search category (default: general)')
    parser.add_argument('--limit', type=int, default=20, help='Maximum articles/results (default: 20)')
    parser.add_argument('--description', default='', help='With --context: article description')
    parser.add_argument('--url', default='', help='With --context: article URL')
    parser.add_argument('--log-level', help='Override PULSE_LOG_LEVEL')
    parser.add_argument('--json-logs', action='store_true', help='Emit structured JSON log lines on stderr')
    return parser


async def run_command(args: argparse.Namespace, pipeline: PulsePipeline) -> PulseResponse:
    if args.trending:
        return await pipeline.trending(placeholders=args.placeholders)
    if args.timeline:
        return await pipeline.timeline(args.timeline)
    if args.discover:
        return await pipeline.discover(args.discover, category=args.category, max_results=args.limit)
    if args.news:
        return await pipeline.news(args.news, max_results=args.limit)
    if args.fact_check:
        return await pipeline.verify_claim(args.fact_check)
    if args.feeds:
        return await pipeline.feeds(args.feeds, limit=args.limit)
    if args.search_feeds:
        return await pipeline.search_feeds(args.search_feeds, limit=args.limit)
    if args.context:
        return await pipeline.summarize_article({
            "title": args.context,
            "description": args.description,
            "url": args.url,
        })
    return PulseResponse(data=pipeline.health())


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        log_level=args.log_level or config.log_level,
        log_dir=config.log_dir,
        enable_file_logging=bool(config.log_dir),
        enable_structured_logging=args.json_logs,
    )

    pipeline = PulsePipeline(config)
    try:
        response = await run_command(args, pipeline)
    except KeyboardInterrupt:
        print("\n⚠️ Shutting down gracefully...", file=sys.stderr)
        return 130
    except Exception:
        logging.exception("Fatal error in main")
        return 1
    finally:
        await pipeline.close()

    print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
    return 0 if response.ok else 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
