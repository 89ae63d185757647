#!/usr/bin/env python3
"""
Quiz Runner - Discord entry point.

Usage:
    python main.py [path/to/config.json]

Copy config.example.json to config.json and fill in the bot token, or set
DISCORD_BOT_TOKEN, which takes precedence over the file.
"""

import asyncio
import sys
import os
import json
import logging
from pathlib import Path

from quiz_runner.bot import run_bot

DEFAULT_CONFIG_PATH = "config.json"
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"


def load_config(path=DEFAULT_CONFIG_PATH):
    """Load the JSON configuration, exiting with a message when unusable."""
    config_path = Path(path)

    if not config_path.exists():
        print(f"❌ Error: {config_path} not found!")
        print("Copy config.example.json to config.json and set your Discord bot token.")
        sys.exit(1)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON in {config_path}: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error reading {config_path}: {e}")
        sys.exit(1)

    if not isinstance(config, dict):
        print(f"❌ Error: {config_path} must contain a JSON object")
        sys.exit(1)
    return config


def get_bot_token(config):
    """Get bot token from environment variable or config file."""
    token = os.getenv('DISCORD_BOT_TOKEN')
    if token:
        return token

    token = config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print("  2. Update the 'token' field in config.json")
        sys.exit(1)

    return token


def setup_logging_from_config(config):
    """Set up console and file logging from the "logging" section."""
    log_config = config.get('logging', {})
    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))

    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "bot.log", encoding='utf-8')
        ]
    )
    # discord.py is chatty at INFO
    logging.getLogger('discord').setLevel(max(log_level, logging.WARNING))


async def run_bot_with_config(config_path=DEFAULT_CONFIG_PATH):
    """Run the bot with configuration."""
    config = load_config(config_path)
    setup_logging_from_config(config)
    token = get_bot_token(config)
    await run_bot(token, config)


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONFIG_PATH
    try:
        print("🤖 Starting Quiz Runner...")
        asyncio.run(run_bot_with_config(path))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
