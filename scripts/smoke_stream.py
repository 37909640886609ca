#!/usr/bin/env python3
"""Smoke test: fan one prompt out to several providers through a running relay.

Usage:
  python scripts/smoke_stream.py --target openai:gpt-4o-mini --target gemini:gemini-2.5-flash \
      --key openai=sk-... --key gemini=AIza...

Keys not given on the command line fall back to CHAT_PANELS_KEY_<PROVIDER>, then
to the PROVIDER_CREDENTIALS setting read from the environment.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys

import httpx

from chatpanels.providers.types import ProviderCredentials
from chatpanels.services.dispatch import DispatchEngine, TargetConfiguration
from chatpanels.services.relay_client import HttpRelayClient


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat panels multi-target smoke test")
    parser.add_argument("--base-url", default=os.getenv("CHAT_PANELS_RELAY_URL", "http://127.0.0.1:8000"))
    parser.add_argument(
        "--target",
        action="append",
        required=True,
        help="provider:model, repeatable",
    )
    parser.add_argument("--key", action="append", default=[], help="provider=api-key, repeatable")
    parser.add_argument("--message", default="Smoke test: say hello in one sentence.")
    parser.add_argument("--system-prompt", default=None)
    parser.add_argument("--thinking", action="store_true")
    parser.add_argument("--stream-timeout", type=float, default=120.0)
    return parser.parse_args()


def exit_with(message: str, code: int = 1) -> None:
    print(message, file=sys.stderr)
    raise SystemExit(code)


def parse_keys(pairs: list[str]) -> dict[str, str]:
    keys = {}
    for pair in pairs:
        provider_id, sep, key = pair.partition("=")
        if not sep:
            exit_with(f"--key expects provider=api-key, got {pair!r}")
        keys[provider_id] = key
    return keys


def build_targets(args: argparse.Namespace) -> dict[str, TargetConfiguration]:
    keys = parse_keys(args.key)
    targets = {}
    for index, entry in enumerate(args.target):
        provider_id, sep, model = entry.partition(":")
        if not sep or not model:
            exit_with(f"--target expects provider:model, got {entry!r}")
        key = keys.get(provider_id) or os.getenv(f"CHAT_PANELS_KEY_{provider_id.upper()}", "")
        targets[f"{index}:{entry}"] = TargetConfiguration(
            provider_id=provider_id,
            model=model,
            credentials=ProviderCredentials(api_key=key),
            system_prompt=args.system_prompt,
            enable_thinking=args.thinking,
        )
    return targets


async def run(args: argparse.Namespace) -> int:
    base_url = args.base_url.rstrip("/")
    async with httpx.AsyncClient(timeout=httpx.Timeout(args.stream_timeout, connect=10.0)) as client:
        try:
            health = await client.get(f"{base_url}/health")
        except httpx.HTTPError as exc:
            exit_with(f"Health check failed: {exc}")
        if health.status_code != 200:
            exit_with(f"Health check failed: HTTP {health.status_code} {health.text}")

        engine = DispatchEngine(HttpRelayClient(base_url, client=client))
        transcripts = await engine.send(args.message, build_targets(args))

    failures = 0
    for target_id, transcript in transcripts.items():
        turn = transcript.last_turn
        print(f"== {target_id} [{transcript.state.value}]")
        if turn.reasoning:
            print(f"-- reasoning ({len(turn.reasoning)} chars)")
        print(turn.content)
        if turn.usage:
            print(f"-- usage {turn.usage.to_dict()}")
        if turn.suggestions:
            print(f"-- suggestions {turn.suggestions}")
        failures += turn.error
    return 1 if failures else 0


def main() -> None:
    raise SystemExit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
