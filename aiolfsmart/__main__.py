"""CLI entry point: connect to the scale and print live brewing telemetry."""

import argparse
import asyncio
import logging
import signal

from .assistant import BrewAssistant
from .config import BrewConfig
from .const import DEFAULT_MIN_DOSE_GRAMS, SCALE_NAME_FILTER


def _format(assistant: BrewAssistant) -> str:
    snap = assistant.snapshot()
    return (
        f"[{snap.connection_state:>12}] {snap.session_state:<16} "
        f"{snap.weight_grams:7.1f} g  {snap.flow_rate_grams_per_second:5.1f} g/s  "
        f"{snap.elapsed_seconds:6.1f} s  dose {snap.dose_grams:.1f} g  {snap.ratio_text}"
    )


async def run(args: argparse.Namespace) -> None:
    """Run the assistant until interrupted."""
    config = BrewConfig(min_dose_grams=args.min_dose)
    assistant = BrewAssistant(config=config, name_filter=args.name)
    if args.auto_start:
        assistant.toggle_auto_start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    assistant.add_listener(lambda: print(_format(assistant), end="\r"))

    await assistant.async_start()
    try:
        await stop_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        print()
        await assistant.async_stop()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Show live weight and flow rate from an LFSmart scale"
    )
    parser.add_argument(
        "--name",
        type=str,
        default=SCALE_NAME_FILTER,
        help=f"Advertised name substring to connect to (default: {SCALE_NAME_FILTER})",
    )
    parser.add_argument(
        "--auto-start",
        action="store_true",
        help="Start the brew timer automatically after dosing",
    )
    parser.add_argument(
        "--min-dose",
        type=float,
        default=DEFAULT_MIN_DOSE_GRAMS,
        help=f"Minimum dose weight in grams (default: {DEFAULT_MIN_DOSE_GRAMS})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nReceived interrupt signal")


if __name__ == "__main__":
    main()
