import argparse
import asyncio
import json
import logging

from .candidates import Mode
from .config import Settings
from .errors import RecommendError
from .pipeline import Recommendation, recommend
from .scraper import VISIBILITY_HINTS, AsyncLetterboxdScraper, clean_username

logger = logging.getLogger(__name__)


def _format_candidate(index: int, candidate) -> list[str]:
    year = f" ({candidate.year})" if candidate.year else ""
    lines = [f"{index}. {candidate.title}{year} - Score: {candidate.score:.3f}"]
    if candidate.providers:
        lines.append(f"   Streaming: {', '.join(sorted(candidate.providers))}")
    if candidate.reasons:
        lines.append(f"   Why: {', '.join(candidate.reasons)}")
    return lines


def _output_recommendation(rec: Recommendation, args: argparse.Namespace) -> None:
    """Format and log a recommendation in the requested format."""
    output_format = getattr(args, 'format', 'text')

    if output_format == 'json':
        logger.info(json.dumps(rec.to_dict(), indent=2))
        return

    diag = rec.diagnostics
    logger.info(f"\nTonight's pick for {rec.username} ({rec.mode} mode):")
    for line in _format_candidate(1, rec.top_pick):
        logger.info(line)
    if diag.get("fallback"):
        logger.info("   Note: nothing matched your subscriptions, so this is the best match overall")

    if rec.alternates:
        logger.info("\nAlternates:")
        for i, candidate in enumerate(rec.alternates, 2):
            for line in _format_candidate(i, candidate):
                logger.info(line)

    if getattr(args, 'diagnostics', False):
        logger.info("\nDiagnostics:")
        for key, value in diag.items():
            logger.info(f"  {key}: {value}")


def cmd_recommend(args: argparse.Namespace) -> int:
    """Recommend a film for one member."""
    try:
        rec = recommend(
            args.username,
            mode=args.mode,
            only_flatrate=args.only_flatrate,
            settings=Settings.from_env(),
            show_progress=args.progress,
        )
    except RecommendError as exc:
        if getattr(args, 'format', 'text') == 'json':
            logger.error(json.dumps(exc.to_dict(), indent=2))
        else:
            logger.error(exc.message)
        return 1

    _output_recommendation(rec, args)
    return 0


async def _diagnose_async(username: str, settings: Settings) -> list[dict]:
    async with AsyncLetterboxdScraper(settings) as scraper:
        return await scraper.visibility_report(username)


def cmd_diagnose(args: argparse.Namespace) -> int:
    """Show what Letterboxd serves an anonymous visitor for this member."""
    username = clean_username(args.username)
    if not username:
        logger.error("A Letterboxd username is required")
        return 1

    rows = asyncio.run(_diagnose_async(username, Settings.from_env()))

    logger.info(f"User: {username}\n")
    for row in rows:
        logger.info(f"- {row['label']}: status {row['status']} | items: {row['items']}")
        if row['snippet']:
            logger.info(f"  snippet: {row['snippet']}")

    logger.info("\nInterpretation:")
    for hint in VISIBILITY_HINTS:
        logger.info(f"- {hint}")
    return 0


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="Letterboxd taste recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Recommend command
    rec_parser = subparsers.add_parser("recommend", help="Pick a film to watch tonight")
    rec_parser.add_argument("username", help="Letterboxd username")
    rec_parser.add_argument("--mode", choices=[m.value for m in Mode], default=Mode.AI.value,
                            help="Rank your watchlist, or discover related titles (default: ai)")
    rec_parser.add_argument("--only-flatrate", action="store_true",
                            help="Prefer films included in a streaming subscription")
    rec_parser.add_argument("--format", choices=['text', 'json'], default='text',
                            help="Output format")
    rec_parser.add_argument("--diagnostics", action="store_true",
                            help="Show pipeline counters after the recommendation")
    rec_parser.add_argument("--progress", action="store_true",
                            help="Show progress bars while fetching film metadata")
    rec_parser.set_defaults(func=cmd_recommend)

    # Diagnose command
    diag_parser = subparsers.add_parser("diagnose", help="Report which Letterboxd pages are publicly visible")
    diag_parser.add_argument("username", help="Letterboxd username")
    diag_parser.set_defaults(func=cmd_diagnose)

    args = parser.parse_args(argv)

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    return args.func(args)
