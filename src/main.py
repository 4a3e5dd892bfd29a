"""CLI entrypoint for the ATS application agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from ats_agent.config import DEFAULT_BROWSER, MAX_ATTEMPTS, OUTPUT_ROOT
from ats_agent.profiles import SAMPLE_PROFILE, load_profile, load_resume
from ats_agent.robustness import ActionNoEffectError, ElementNotInteractableError
from ats_agent.runner import ACTION_FAILED, run_application


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Navigate a job application page and submit it with a stored profile.")
    parser.add_argument("--url", required=True, help="Application entry URL.")
    parser.add_argument("--profile", help="Vault export JSON with identity and work authorization data.")
    parser.add_argument("--resume", help="Resume file to attach to upload fields.")
    parser.add_argument("--job-id", help="Identifier carried on every notification.")
    parser.add_argument("--entry-selector", help="Selector of the apply entry point to click before navigating.")
    parser.add_argument("--headless", action="store_true", help="Run the browser in headless mode.")
    parser.add_argument(
        "--browser",
        default=DEFAULT_BROWSER,
        help="Browser engine to use (chrome, chromium, firefox, or webkit).",
    )
    parser.add_argument("--profile-dir", help="Optional user data directory to reuse between runs.")
    parser.add_argument("--max-attempts", type=int, default=MAX_ATTEMPTS, help="Navigation loop ceiling.")
    parser.add_argument("--outdir", default=str(OUTPUT_ROOT), help="Directory to store captures and telemetry.")
    parser.add_argument("--log-level", default="INFO", help="Python logging level.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    log_file = _configure_logging(args.log_level)
    logging.info("Log file: %s", log_file)
    _validate_args(args)

    if args.profile:
        profile = load_profile(Path(args.profile).expanduser(), Path(args.resume).expanduser() if args.resume else None)
    else:
        logging.warning("No profile provided; using the built-in sample profile.")
        profile = SAMPLE_PROFILE.model_copy()
        if args.resume:
            profile.resume = load_resume(Path(args.resume).expanduser())

    try:
        result = asyncio.run(
            run_application(
                args.url,
                profile,
                job_id=args.job_id,
                entry_selector=args.entry_selector,
                headless=args.headless,
                browser=args.browser,
                profile_dir=args.profile_dir,
                max_attempts=args.max_attempts,
                out_dir=args.outdir,
            )
        )
    except (ElementNotInteractableError, ActionNoEffectError) as exc:
        print(json.dumps({"success": False, "reason": ACTION_FAILED, "message": str(exc)}, indent=2))
        sys.exit(1)

    print(json.dumps(result.model_dump(mode="json", exclude={"final_classification"}), indent=2))
    if not result.success:
        sys.exit(1)


def _validate_args(args: argparse.Namespace) -> None:
    for option in ("profile", "resume"):
        value = getattr(args, option)
        if value and not Path(value).expanduser().is_file():
            raise SystemExit(f"{option.capitalize()} file not found: {value}")
    if args.profile_dir:
        profile_path = Path(args.profile_dir).expanduser()
        if profile_path.exists() and not profile_path.is_dir():
            raise SystemExit(f"Profile directory must be a directory path: {profile_path}")
    if args.max_attempts < 1:
        raise SystemExit("--max-attempts must be at least 1")


def _configure_logging(log_level: str) -> Path:
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / f"ats-agent-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[stream_handler, file_handler])
    return log_file


if __name__ == "__main__":
    main()
