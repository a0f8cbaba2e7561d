#!/usr/bin/env python3
"""
Comparison Runner Script

Sends one prompt to several targets concurrently and prints each target's
outcome side by side, the same way the /compare endpoint would.

Credentials come from the environment (OPENROUTER_API_KEY, FAL_KEY,
HUGGINGFACE_API_KEY) or from the command-line flags, which take priority.

Usage:
    python scripts/run_compare.py "A red fox in snow" openai/gpt-4o-mini fal-ai/flux-dev
    python scripts/run_compare.py "Hello" openai/gpt-4o-mini --temperature 0.2
    python scripts/run_compare.py "A castle" fal-ai/recraft-v3 --dry-run
    python scripts/run_compare.py "A castle" hf-runwayml/stable-diffusion-v1-5 --json
"""

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from arena.config import configure_logging, get_settings
from arena.dispatcher import ConversationTurn, CredentialSet, DispatchResult, SamplingParams, compare
from arena.dispatcher.handlers import close_clients
from arena.main import server_credentials
from arena.router import plan_route
from arena.schemas import build_compare_response

PREVIEW_LENGTH = 80


def _preview(content: str) -> str:
    if content.startswith("data:"):
        return f"<inline image, {len(content)} chars>"
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content


def print_plan(targets: list[str]) -> None:
    print(f"\n  {'Target':<45} {'Family':<12} {'Fallback'}")
    print(f"  {'-'*45} {'-'*12} {'-'*30}")
    for target in targets:
        plan = plan_route(target)
        print(f"  {target:<45} {plan.family.value:<12} {plan.fallback_target or '-'}")


def print_report(results: dict[str, DispatchResult], elapsed_ms: float) -> None:
    succeeded = sum(1 for r in results.values() if r.success)

    print("\n" + "=" * 60)
    print("COMPARISON RESULTS")
    print("=" * 60)
    print(f"\n  Succeeded: {succeeded}/{len(results)}")
    print(f"  Elapsed:   {elapsed_ms:.0f}ms")

    for target, result in results.items():
        print(f"\n[{target}]")
        if result.success:
            envelope = result.envelope
            served = f"{envelope.model} (fallback)" if envelope.fallback_used else envelope.model
            usage = envelope.usage
            print(f"  Served by: {served}")
            print(f"  Latency:   {result.latency_ms:.0f}ms")
            print(
                f"  Tokens:    {usage.input_tokens} in / {usage.output_tokens} out"
                f"{' (estimated)' if usage.estimated else ''}"
            )
            print(f"  Trust:     {envelope.trust_score}")
            print(f"  Output:    {_preview(envelope.content)}")
        else:
            print(f"  ERROR [{result.error.code}]: {result.error.message}")
        if len(result.attempts) > 1:
            chain = " -> ".join(
                f"{a.target} ({'ok' if a.success else a.error_code})" for a in result.attempts
            )
            print(f"  Attempts:  {chain}")


async def run_compare(
    prompt: str,
    targets: list[str],
    credentials: CredentialSet,
    sampling: SamplingParams,
) -> tuple[dict[str, DispatchResult], float]:
    turns = (ConversationTurn(role="user", content=prompt),)
    start_time = time.perf_counter()
    try:
        results = await compare(targets, {t: turns for t in targets}, credentials, sampling)
    finally:
        await close_clients()
    return results, (time.perf_counter() - start_time) * 1000


def main():
    """Main entry point for the comparison runner."""

    parser = argparse.ArgumentParser(
        description="Send one prompt to several AI targets and compare the results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_compare.py "A red fox" openai/gpt-4o-mini fal-ai/flux-dev
  python scripts/run_compare.py "A red fox" fal-ai/flux-dev --dry-run
  python scripts/run_compare.py "Hi" openai/gpt-4o-mini --json
        """,
    )

    parser.add_argument("prompt", help="Prompt sent to every target")
    parser.add_argument("targets", nargs="+", help="Target identifiers")
    parser.add_argument("--openrouter-key", help="OpenRouter API key (overrides env)")
    parser.add_argument("--fal-key", help="fal.ai API key (overrides env)")
    parser.add_argument("--huggingface-key", help="Hugging Face token (overrides env)")
    parser.add_argument("--temperature", type=float, help="Sampling temperature for chat targets")
    parser.add_argument("--max-tokens", type=int, help="Max output tokens for chat targets")
    parser.add_argument(
        "--output-format",
        choices=["jpeg", "png"],
        help="Image format for image targets",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the routing plan without calling any provider",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the /compare response body instead of a report",
    )

    args = parser.parse_args()
    settings = get_settings()
    targets = list(dict.fromkeys(args.targets))

    if not args.json:
        configure_logging(settings)
        print("=" * 60)
        print("Arena Comparison Runner")
        print("=" * 60)
        print_plan(targets)

    if args.dry_run:
        if not args.json:
            print("\n--dry-run specified, skipping dispatch.")
        sys.exit(0)

    if len(targets) > settings.max_targets:
        print(f"ERROR: at most {settings.max_targets} targets can be compared at once")
        sys.exit(1)

    credentials = CredentialSet(
        chat=args.openrouter_key,
        fal=args.fal_key,
        huggingface=args.huggingface_key,
    ).merged_with(server_credentials(settings))

    if not any(credentials.configured().values()):
        print("ERROR: no provider credentials. Set OPENROUTER_API_KEY, FAL_KEY or HUGGINGFACE_API_KEY.")
        sys.exit(1)

    sampling = SamplingParams(
        temperature=args.temperature,
        max_tokens=args.max_tokens,
        output_format=args.output_format,
    )

    results, elapsed_ms = asyncio.run(run_compare(args.prompt, targets, credentials, sampling))

    if args.json:
        print(json.dumps(build_compare_response(results, elapsed_ms).model_dump(), indent=2))
    else:
        print_report(results, elapsed_ms)

    sys.exit(0 if all(r.success for r in results.values()) else 1)


if __name__ == "__main__":
    main()
