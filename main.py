#!/usr/bin/env python3
"""Caregiver assistant CLI: conversation memory with ground-truth record answers."""

import argparse
import logging
import sys
import uuid

from config.settings import Settings
from errors import EngineError
from orchestrator import ConversationOrchestrator
from utils.seed_demo_data import seed_demo_household


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Caregiver Assistant - conversation memory with answers from care records"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default="data/conversations.db",
        help="SQLite database path (default: data/conversations.db)"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default="openai",
        help="LLM provider (default: openai)"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Override the provider's default model"
    )
    parser.add_argument(
        "--patient",
        type=str,
        help="Default patient id for single-subject households"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Interactive chat session")
    chat.add_argument("--session", "-s", type=str, help="Session ID to resume")

    ask = subparsers.add_parser("ask", help="Process a single question")
    ask.add_argument("question", type=str, help="User question")
    ask.add_argument("--session", "-s", type=str, help="Session ID")

    stats = subparsers.add_parser("stats", help="Show memory statistics for a session")
    stats.add_argument("session", type=str, help="Session ID")

    subparsers.add_parser("seed-demo", help="Create the record tables and load a demo household")

    return parser


def run_chat(orchestrator: ConversationOrchestrator, session_id: str):
    """Interactive loop with streamed replies."""
    print(f"Session: {session_id} (type 'exit' to quit)\n")
    while True:
        try:
            text = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not text:
            continue
        if text.lower() in ("exit", "quit"):
            break

        try:
            print("assistant> ", end="", flush=True)
            result = None
            for event in orchestrator.stream_turn(session_id, text):
                if event.delta:
                    print(event.delta, end="", flush=True)
                if event.done:
                    result = event.result
            print()
            if result and result.answered_from_store:
                print("  [answered from care records]")
            print()
        except EngineError as e:
            print(f"\n{e.user_message}\n", file=sys.stderr)


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if args.command == "seed-demo":
        count = seed_demo_household(args.db_path)
        print(f"Seeded {count} demo rows into {args.db_path}")
        return

    settings = Settings(
        db_path=args.db_path,
        llm_provider=args.provider,
        llm_model=args.model,
        default_patient_id=args.patient,
        verbose=args.verbose,
    )
    orchestrator = ConversationOrchestrator(settings=settings)

    try:
        if args.command == "chat":
            run_chat(orchestrator, args.session or str(uuid.uuid4()))

        elif args.command == "ask":
            session_id = args.session or str(uuid.uuid4())
            result = orchestrator.handle_turn(session_id, args.question)
            print("\n" + "="*60)
            print("ANSWERED FROM CARE RECORDS" if result.answered_from_store else "ASSISTANT REPLY")
            print("="*60 + "\n")
            print(result.reply)
            print(f"\n(session: {session_id})\n")

        elif args.command == "stats":
            stats = orchestrator.memory_stats(args.session)
            for field, value in stats.model_dump().items():
                print(f"{field}: {value}")

    except EngineError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
