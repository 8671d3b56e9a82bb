"""
Command-line voice client.

Wires the default microphone and speaker (sounddevice) to a VoiceClient,
prints transcripts and notifications, and runs until Ctrl-C.

    voice-client --relay-url ws://localhost:3002/api/openai-realtime
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
from dataclasses import replace
from typing import Any

from dotenv import load_dotenv

from audio.devices import SoundDeviceInput, SoundDeviceOutput
from config import AppConfig
from observability import logger
from session.client import VoiceClient
from session.session_config import PromptRef


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Realtime voice client")
    parser.add_argument("--relay-url", help="Relay WebSocket URL (overrides VOICE_RELAY_URL)")
    parser.add_argument("--voice", help="Voice profile id")
    parser.add_argument("--prompt-id", help="Stored prompt id (replaces instructions)")
    parser.add_argument("--prompt-version", default=None, help="Stored prompt version")
    parser.add_argument("--instructions", help="Free-text instructions")
    parser.add_argument("--quiet-logs", action="store_true", help="Disable JSONL logs")
    return parser.parse_args(argv)


def _print_control(msg: dict[str, Any]) -> None:
    kind = msg.get("type")
    if kind == "TRANSCRIPT" and msg.get("is_final"):
        print(f"[{msg['speaker']}] {msg['text']}")
    elif kind == "NOTIFICATION":
        print(f"! {msg['message']}")
    elif kind == "STATE":
        print(f"-- {msg['state']}")


async def _run(args: argparse.Namespace) -> None:
    config = AppConfig.load_from_env()
    if args.relay_url:
        config = replace(config, relay_url=args.relay_url)
    logger.configure(
        enabled=config.enable_json_logs and not args.quiet_logs,
        level=config.log_level,
    )

    session_config = config.session_config()
    if args.voice:
        session_config = replace(session_config, voice=args.voice)
    if args.prompt_id:
        session_config = session_config.with_prompt(
            PromptRef(id=args.prompt_id, version=args.prompt_version or config.prompt_version)
        )
    elif args.instructions:
        session_config = replace(session_config, prompt=None, instructions=args.instructions)

    loop = asyncio.get_running_loop()
    speaker = SoundDeviceOutput(loop)
    speaker.open()

    client = VoiceClient(
        SoundDeviceInput(loop),
        speaker,
        relay_url=config.relay_url,
        api_key=config.openai_api_key,
        session_config=session_config,
        listener=_print_control,
    )

    stop = asyncio.Event()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, stop.set)

    try:
        await client.start()
        await stop.wait()
    finally:
        await client.disconnect()
        speaker.close()


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    main()
