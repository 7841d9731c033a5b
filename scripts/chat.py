#!/usr/bin/env python3
"""
Interactive multi-turn chat against the healthcare routing agents.

Usage:
    python scripts/chat.py
    python scripts/chat.py --chat-id demo-1 --user-id alice --log-level DEBUG
    python scripts/chat.py --check-config

Commands inside the session:
    /reset   forget the current conversation
    /quit    leave (Ctrl-D works too)
"""

import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from loguru import logger
from infrastructure import config
from infrastructure.log import setup_logging
from infrastructure.observability import flush
from agents.orchestrator import build_agent
from services.chat_service import ChatRequest, ChatService


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Chat with the healthcare insurance assistant",
    )
    parser.add_argument("--chat-id", default=None, help="Resume/Name the conversation (default: new)")
    parser.add_argument("--user-id", default="anonymous", help="User id reported in telemetry")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument("--check-config", action="store_true", help="Validate secrets and exit")
    parser.add_argument("--no-search", action="store_true", help="Answer FAQs without document search")
    args = parser.parse_args()

    setup_logging("INFO" if args.check_config else args.log_level, for_cli=True)

    if args.check_config:
        config.dump("INFO")
        try:
            config.validate()
        except ValueError as exc:
            logger.error("{}", exc)
            sys.exit(1)
        logger.success("Configuration OK")
        return

    config.dump()
    for name in config.missing_secrets():
        logger.warning("{} is not set; related features fall back or fail", name)

    service = ChatService(build_agent(enable_search=not args.no_search))
    chat_id = args.chat_id

    print("Healthcare assistant - type /quit to leave, /reset to start over.")
    try:
        while True:
            try:
                message = input("\nyou> ").strip()
            except EOFError:
                break
            if not message:
                continue
            if message == "/quit":
                break
            if message == "/reset":
                if chat_id:
                    service.reset(chat_id)
                chat_id = None
                print("(conversation reset)")
                continue

            response = service.handle(ChatRequest(message, chat_id=chat_id, user_id=args.user_id))
            chat_id = response.chat_id

            print(f"\nassistant> {response.message}")
            if response.agents_used:
                print(f"  agents: {', '.join(response.agents_used)}")
            if response.references:
                print(f"  references: {', '.join(response.references)}")
            if response.status_code != 200:
                logger.warning("Request failed with status {}", response.status_code)
    except KeyboardInterrupt:
        print()
    finally:
        flush()
        if chat_id:
            print(f"\nchat id: {chat_id}")


if __name__ == "__main__":
    main()
