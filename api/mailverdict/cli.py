import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import get_settings
from .logging_config import configure_logging
from .message import ParsedMessage, load_messages
from .models import Verdict
from .orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def format_scorecard(message: ParsedMessage, verdict: Verdict) -> str:
    signals = verdict.signal_summary
    lines = [
        "==============================",
        f"Email: {message.id}",
        "",
        "----- EMAIL SCORECARD -----",
        f"FINAL DECISION: {verdict.status.value} (Score: {verdict.decision_score:.1f}/10.0)",
        "---------------------------",
        "Detailed Breakdown:",
        f" [ ] Domain: {verdict.details.domain}",
        f" [ ] SPF:    {verdict.details.spf}",
        f" [ ] DKIM:   {verdict.details.dkim}",
    ]
    if signals.classifier is not None:
        lines.append(f" [ ] SA:     Score {signals.classifier.combined_score:.1f}")
    else:
        lines.append(" [ ] SA:     N/A")
    if signals.language_model is not None:
        lines.append(f" [ ] LLM:    Confidence {signals.language_model.confidence:.2f}")
    else:
        lines.append(" [ ] LLM:    N/A")
    if signals.adversarial.is_flagged:
        lines.append(f" [!] SECURITY: {signals.adversarial.reason_code}")
    if signals.unavailable:
        lines.append(f" [?] Unavailable: {', '.join(signals.unavailable)}")
    lines.append("Reasons:")
    lines.extend(f" - {reason}" for reason in verdict.reasons)
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Score a directory of .eml files as CLEAN, QUARANTINE or SPAM")
    parser.add_argument("--samples", default=settings.sample_dir, help=f"Directory with .eml files (default: {settings.sample_dir})")
    parser.add_argument("--dry-run", action="store_true", help="Print verdicts without moving files")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    logger.info("Loading emails from %s", args.samples)
    try:
        messages = load_messages(args.samples)
    except OSError as exc:
        logger.error("Failed to load emails: %s", exc)
        return 1
    if not messages:
        print(f"No .eml files found in {args.samples}")
        return 0

    orchestrator = Orchestrator.from_settings(settings)
    results = asyncio.run(orchestrator.evaluate_batch(messages))

    for message, verdict in results:
        print(format_scorecard(message, verdict))
        if args.dry_run:
            continue
        try:
            target = orchestrator.relocate(message, verdict.status)
        except OSError as exc:
            print(f"Error moving file: {exc}")
        else:
            print(f"Moved to: {target.parent}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
