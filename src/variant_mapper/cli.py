"""Command-line interface for the variant mapper."""

import asyncio
import json
import sys
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from variant_mapper.config import Config, settings
from variant_mapper.injection import VariantInjectionAgent
from variant_mapper.intelligence.adapter_store import ThemeAdapterStore
from variant_mapper.jobs import MappingJobManager
from variant_mapper.logging_config import setup_logging
from variant_mapper.markup import build_injection_payload, render_payload_script
from variant_mapper.models import JobStatus, MappingOptions, MappingRequest, ThemeAdapter


async def _run_mapping(request: MappingRequest, config: Config):
    """Run one mapping job to completion.

    Args:
        request: Validated mapping request
        config: Engine configuration

    Returns:
        Final MappingJob snapshot
    """
    store = ThemeAdapterStore(config.adapter_store_path)
    try:
        manager = MappingJobManager(store=store, config=config)
        job = manager.submit(request)
        return await manager.run_job(job.id)
    finally:
        store.close()


def _write_output(output: str, output_file: Optional[str]) -> None:
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        print(f"Results written to {output_file}")
    else:
        print(output)


def map_command(args):
    """Discover a Theme Adapter for one product page."""
    config = Config.from_env()
    if args.timeout:
        config.fetch_timeout = args.timeout

    shop_id = args.shop
    if args.url and not shop_id:
        shop_id = urlparse(args.url).netloc
    if not shop_id:
        print("Error: --shop is required unless a product URL is given")
        sys.exit(1)

    options = {"reuse_cached": not args.no_cache}
    if args.min_confidence is not None:
        options["confidence_threshold"] = args.min_confidence

    try:
        request = MappingRequest(
            shop_id=shop_id,
            product_url=args.url,
            product_handle=args.handle,
            product_gid=args.gid,
            theme_id=args.theme_id,
            options=MappingOptions(**options),
        )
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    job = asyncio.run(_run_mapping(request, config))
    _write_output(json.dumps(job.to_dict(), indent=2, default=str), args.output_file)
    if job.status != JobStatus.COMPLETED:
        sys.exit(1)


def inject_command(args):
    """Apply a page's embedded variant payload and write the result."""
    with open(args.html_file) as f:
        document = BeautifulSoup(f.read(), "html.parser")

    report = VariantInjectionAgent().apply(document)
    if not report.payload_found:
        print("No variant payload found; page left unmodified", file=sys.stderr)
    else:
        print(f"Applied: {', '.join(report.applied) or 'nothing'}", file=sys.stderr)
        for diagnostic in report.diagnostics:
            print(f"  Skipped {diagnostic}", file=sys.stderr)

    output = str(document)
    if args.output_file:
        with open(args.output_file, "w") as f:
            f.write(output)
    else:
        print(output)


def payload_command(args):
    """Render the embedded payload script for a variant and adapter."""
    with open(args.adapter) as f:
        adapter = ThemeAdapter.from_dict(json.load(f))
    with open(args.variant) as f:
        variant_data = json.load(f)

    payload = build_injection_payload(variant_data, adapter, args.min_confidence)
    _write_output(render_payload_script(payload), args.output_file)


def main():
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Variant Mapper - Discover theme selectors and inject product page variants"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper(),
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Map command parser
    map_parser = subparsers.add_parser(
        "map", help="Discover a theme adapter for a product page."
    )
    map_parser.add_argument(
        "url", nargs="?", help="Product page URL (or use --shop with --handle/--gid)"
    )
    map_parser.add_argument("--shop", help="Shop id or storefront domain")
    map_parser.add_argument("--handle", help="Product handle")
    map_parser.add_argument("--gid", help="Product gid (gid://shopify/Product/<id>)")
    map_parser.add_argument("--theme-id", help="Theme id to record on the adapter")
    map_parser.add_argument(
        "--min-confidence",
        type=float,
        help="Mark fields below this confidence as low-confidence "
             "(default: MAPPING_CONFIDENCE_FLOOR)",
    )
    map_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Always run discovery even when a stored adapter matches",
    )
    map_parser.add_argument(
        "--timeout",
        type=float,
        help="Fetch timeout in seconds (default: MAPPING_FETCH_TIMEOUT)",
    )
    map_parser.add_argument(
        "--output-file",
        "-f",
        help="Write job JSON to file",
    )
    map_parser.set_defaults(func=map_command)

    # Inject command parser
    inject_parser = subparsers.add_parser(
        "inject", help="Apply the embedded variant payload of an HTML file."
    )
    inject_parser.add_argument("html_file", help="HTML page containing the payload block")
    inject_parser.add_argument(
        "--output-file",
        "-f",
        help="Write modified HTML to file",
    )
    inject_parser.set_defaults(func=inject_command)

    # Payload command parser
    payload_parser = subparsers.add_parser(
        "payload", help="Render the payload script for a variant."
    )
    payload_parser.add_argument("--adapter", required=True, help="Theme adapter JSON file")
    payload_parser.add_argument("--variant", required=True, help="Variant content JSON file")
    payload_parser.add_argument(
        "--min-confidence",
        type=float,
        help="Leave out adapter fields scoring below this",
    )
    payload_parser.add_argument(
        "--output-file",
        "-f",
        help="Write the script tag to file",
    )
    payload_parser.set_defaults(func=payload_command)

    args = parser.parse_args()

    # Configure logging based on flags
    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
