"""
Command-line entry point for the listing walker.
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .browser import BrowserPage
from .errors import JobRejectedError, JobValidationError, WalkerError
from .kv_store import create_store
from .models import StepOutcome
from .resilience.progress_tracker import ProgressTracker
from .result_sink import HttpResultSink, JsonFileResultSink, ResultSink
from .resilience.retry_handler import RetryHandler
from .scraper_controller import WalkController
from .settings import Settings

logger = logging.getLogger(__name__)

EXIT_CODES = {
    StepOutcome.FINALIZED: 0,
    StepOutcome.IDLE: 0,
    StepOutcome.TRANSITIONED: 0,
    StepOutcome.BLOCKED: 2,
    StepOutcome.HALTED: 1,
}


def build_sink(settings: Settings) -> ResultSink:
    if settings.result_endpoint:
        return HttpResultSink(
            settings.result_endpoint,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
            retry_handler=RetryHandler(config=settings.retry_config)
        )
    return JsonFileResultSink(settings.output_dir)


def build_controller(settings: Settings, store, start_url: Optional[str] = None) -> WalkController:
    page = BrowserPage(headless=settings.headless, start_url=start_url)
    return WalkController(
        page=page,
        store=store,
        sink=build_sink(settings),
        block_config=settings.block_config,
        retry_config=settings.retry_config,
    )


def print_status(stats: dict):
    print("\n" + "=" * 60)
    print("WALKER STATUS")
    print("=" * 60)
    print(f"State:       {stats['state']}")
    print(f"Job:         {stats.get('job_id') or '-'}")
    print(f"Progress:    {stats.get('cursor', 0)}/{stats.get('total', 0)} ({stats.get('percent', 0.0):.1f}%)")
    print(f"Extracted:   {stats.get('extracted', 0)}")
    if stats.get('errors'):
        print(f"Errors:      {stats['errors']}")
    block = stats['block']
    if block['blocked']:
        print(f"Blocked:     {block['remaining_seconds'] / 60:.1f} minutes remaining")


def run_command(args, settings: Settings) -> int:
    store = create_store(settings.store_backend, str(settings.state_dir))

    start_url = None
    job_data = None
    if args.command == 'start':
        job_data = json.loads(Path(args.job).read_text(encoding='utf-8'))
    else:
        progress = ProgressTracker(store).load()
        start_url = progress.anchor_resource if progress else None

    # The browser only starts on first page access, so these stay offline
    controller = build_controller(settings, store, start_url=start_url)
    if args.command == 'status':
        print_status(controller.status())
        return 0
    if args.command == 'resume':
        controller.resume()
        print("✓ Block flag cleared")
        return 0
    if args.command == 'cancel':
        print("✓ Job cancelled" if controller.cancel_job() else "No active job")
        return 0

    def stop(signum, frame):
        print("\nStop signal received; progress is saved after every item")
        controller.page.close()
        sys.exit(130)

    previous_handler = signal.signal(signal.SIGINT, stop)
    if hasattr(signal, 'SIGTERM') and sys.platform != 'win32':
        signal.signal(signal.SIGTERM, stop)

    try:
        if args.command == 'start':
            outcome = controller.start_job(job_data)
            if outcome is StepOutcome.TRANSITIONED and not args.no_walk:
                outcome = controller.run(max_steps=args.max_steps)
        elif args.command == 'step':
            outcome = controller.step()
        else:
            outcome = controller.run(max_steps=args.max_steps)
    finally:
        controller.page.close()
        signal.signal(signal.SIGINT, previous_handler)

    print(f"\nOutcome: {outcome.value}")
    if controller.last_result is not None:
        print(f"Records: {len(controller.last_result.records)}")
    print_status(controller.status())
    return EXIT_CODES[outcome]


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Resumable listing walker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  listing-walker start --job job.json      # Collect targets and walk
  listing-walker run                       # Continue the walk after a restart
  listing-walker step                      # Run a single incarnation
  listing-walker status                    # Show progress and block state
  listing-walker resume                    # Clear the block flag manually
  listing-walker cancel                    # Drop the active job
        """
    )
    parser.add_argument('--headless', action='store_true', help='Run browser without a window')
    parser.add_argument('--visible', action='store_true', help='Show browser window (overrides settings)')
    parser.add_argument('--state-dir', type=str, help='Directory for persisted state')
    parser.add_argument('--env-file', type=str, default='.env', help='Environment file to load')

    subparsers = parser.add_subparsers(dest='command', required=True)
    start = subparsers.add_parser('start', help='Start a new job')
    start.add_argument('--job', required=True, help='Path to job JSON ({id, token, config})')
    start.add_argument('--no-walk', action='store_true', help='Only collect targets')
    start.add_argument('--max-steps', type=int, default=None, help='Stop after N steps')
    run = subparsers.add_parser('run', help='Drive steps until the walk stops')
    run.add_argument('--max-steps', type=int, default=None, help='Stop after N steps')
    subparsers.add_parser('step', help='Run one incarnation')
    subparsers.add_parser('status', help='Show job status')
    subparsers.add_parser('resume', help='Clear the block flag')
    subparsers.add_parser('cancel', help='Cancel the active job')

    args = parser.parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    overrides = {}
    if args.state_dir:
        overrides['state_dir'] = Path(args.state_dir)
    if args.headless:
        overrides['headless'] = True
    if args.visible:
        overrides['headless'] = False
    settings = Settings(**overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    try:
        return run_command(args, settings)
    except JobValidationError as e:
        print(f"✗ {e}")
        return 1
    except JobRejectedError as e:
        print(f"✗ Job rejected: {e}")
        return 1
    except (WalkerError, OSError, ValueError) as e:
        logger.error("Walker failed: %s", e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
