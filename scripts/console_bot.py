#!/usr/bin/env python3
"""
Console Bot — chat with a planning dialog from the terminal.

The bot asks for your name and greets you. Typing "help" at any point runs
the help step and then re-asks the pending question.

Usage:
    # Local, in-memory state:
    python scripts/console_bot.py

    # Keep state between runs:
    python scripts/console_bot.py --storage file --data-dir ./data

    # Forget the conversation after 60 seconds of inactivity:
    python scripts/console_bot.py --expire-after-ms 60000
"""
import asyncio
import os
import sys
import argparse

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def build_bot(settings, storage):
    from dialogs import SendActivity, SetProperty, TextInput
    from planning import PlanningDialog
    from recognizers import RegexRecognizer
    from rules import FallbackRule, IntentRule

    bot = PlanningDialog(config=settings.planning, storage=storage)
    bot.set_recognizer(RegexRecognizer(intents={"help": r"\bhelp\b"}))
    bot.add_rule(
        IntentRule("help", steps=[
            SendActivity("I'm a simple bot. Tell me your name and I'll remember it."),
        ]),
        FallbackRule([
            SetProperty("user.name", ""),
            TextInput("user.name", "Hi! what's your name?"),
            SendActivity("Hi {{user.name}}. It's nice to meet you."),
        ]),
    )
    return bot


async def chat(args):
    from config.settings import load_settings
    settings = load_settings(args.config)
    if args.expire_after_ms is not None:
        settings.planning.expire_after_ms = args.expire_after_ms
    if args.storage:
        settings.storage.backend = args.storage
    if args.data_dir:
        settings.storage.file_dir = args.data_dir

    from database import create_storage
    storage = create_storage({
        "backend": settings.storage.backend,
        "file_dir": settings.storage.file_dir,
    })
    bot = build_bot(settings, storage)

    print(f"{settings.app_name} — type 'quit' to exit.")
    while True:
        try:
            text = input("you> ").strip()
        except EOFError:
            break
        if text.lower() in ("quit", "exit"):
            break

        result = await bot.run({
            "type": "message",
            "text": text,
            "channelId": "console",
            "from": {"id": args.user, "role": "user"},
            "recipient": {"id": "bot", "role": "bot"},
            "conversation": {"id": args.conversation},
        })
        for activity in result.activities or []:
            print(f"bot> {activity.text}")
        if args.verbose:
            print(f"     [{result.turn_result.status.value}]")


def main():
    parser = argparse.ArgumentParser(description="Chat with a planning dialog")
    parser.add_argument("--config", default=None, help="Path to settings.yaml")
    parser.add_argument("--storage", choices=["memory", "file"], default=None)
    parser.add_argument("--data-dir", default=None, help="Directory for file storage")
    parser.add_argument("--expire-after-ms", type=int, default=None)
    parser.add_argument("--user", default="console-user")
    parser.add_argument("--conversation", default="console")
    parser.add_argument("--verbose", action="store_true", help="Print each turn's status")
    args = parser.parse_args()
    asyncio.run(chat(args))


if __name__ == "__main__":
    main()
