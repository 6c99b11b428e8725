"""
Main entry point for the camswitch voice console.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from ..core.level_monitor import AudioLevelMonitor
from ..core.microphone import list_input_devices
from ..core.pipeline import VoiceCommandPipeline
from ..core.speech_api import SpeechApiClient
from ..core.types import PipelineStatus
from ..utils.cameras import CameraRegistry
from ..utils.config import RecognitionConfig, load_system_config
from ..utils.errors import DeviceUnavailable

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="camswitch", description="Switch camera feeds by voice")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Listen for voice commands and switch cameras")
    run.add_argument("--cameras", required=True, help="JSON file with the camera list")
    run.add_argument("--config", help="JSON file with the system configuration")
    run.add_argument("--api-key", help="Speech API key (overrides the config file)")
    run.add_argument("--threshold", type=int, help="Confidence threshold 0-100")
    run.add_argument("--no-auto-switch", action="store_true", help="Only report recognized text")
    run.add_argument("--meter", action="store_true", help="Log the microphone level")
    run.add_argument("--duration", type=float, help="Stop after this many seconds")

    check = sub.add_parser("check-key", help="Validate a Speech-to-Text API key")
    check.add_argument("api_key", help="API key to test")

    sub.add_parser("devices", help="List audio input devices")
    return parser


def resolve_config(args: argparse.Namespace) -> RecognitionConfig:
    """System configuration from the file, with command-line overrides."""
    base = load_system_config(args.config) if args.config else RecognitionConfig()
    return RecognitionConfig(
        api_key=args.api_key if args.api_key is not None else base.api_key,
        confidence_threshold=args.threshold if args.threshold is not None else base.confidence_threshold,
        auto_switch_enabled=False if args.no_auto_switch else base.auto_switch_enabled,
    )


def _log_status(status: PipelineStatus) -> None:
    logger.info(
        f"📡 {status.state.value} | backend: {status.backend_label} | "
        f"{'listening' if status.listening else 'stopped'} | "
        f"threshold: {status.confidence_threshold}% | "
        f"auto-switch: {'on' if status.auto_switch_enabled else 'off'}"
    )


async def _run_meter(monitor: AudioLevelMonitor) -> None:
    try:
        levels = await monitor.start()
    except DeviceUnavailable:
        return
    count = 0
    async for level in levels:
        count += 1
        if count % int(monitor.frame_rate) == 0:
            bar = "#" * int(min(level * 2, 100) / 5)
            logger.info(f"🎚️  {bar:<20} {level:.0f}")


async def run_console(args: argparse.Namespace) -> int:
    recognition_config = resolve_config(args)
    registry = CameraRegistry.from_file(args.cameras)

    pipeline = VoiceCommandPipeline(
        registry,
        on_text_recognized=lambda text, confidence: logger.info(f"💬 \"{text}\" ({confidence:.0f}%)"),
        on_command_matched=lambda camera_id, text, confidence: logger.info(
            f"🎯 Voice command matched camera {camera_id} ({confidence:.0f}% confidence)"
        ),
        on_status=_log_status,
        on_notice=lambda message: logger.warning(f"ℹ️  {message}"),
    )

    monitor = AudioLevelMonitor()
    meter_task = asyncio.create_task(_run_meter(monitor)) if args.meter else None

    try:
        if not await pipeline.activate(recognition_config):
            return 1
        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        monitor.stop()
        if meter_task is not None:
            meter_task.cancel()
        await pipeline.aclose()
    return 0


async def check_key(api_key: str) -> int:
    client = SpeechApiClient(api_key)
    try:
        validation = await client.validate_key()
    finally:
        await client.aclose()

    if validation.valid:
        logger.info(f"✅ {validation.message}")
        return 0
    logger.error(f"❌ {validation.message}")
    for line in validation.diagnostics:
        logger.error(f"   - {line}")
    return 1


def show_devices() -> int:
    devices = list_input_devices()
    logger.info(f"✅ Found {len(devices)} input devices")
    for device in devices:
        logger.info(f"   [{device['index']}] {device['name']} ({device['max_input_channels']} ch)")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the camswitch console."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        if args.command == "run":
            logger.info("🚀 Starting camswitch voice console...")
            return asyncio.run(run_console(args))
        if args.command == "check-key":
            return asyncio.run(check_key(args.api_key))
        return show_devices()

    except KeyboardInterrupt:
        logger.info("👋 Shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    sys.exit(main())
