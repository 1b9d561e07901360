#!/usr/bin/env python3
"""
Safe dexbot Startup Script

This script helps you safely start the bot by:
1. Checking that .env file exists
2. Validating the strategy configuration
3. Running pre-flight checks
4. Starting bot with proper error handling
"""

import os
import sys
from pathlib import Path


def check_env_file():
    """Verify .env file exists and names the trading account."""
    env_file = Path('.env')

    if not env_file.exists():
        print("❌ ERROR: .env file not found")
        print("\nCreate .env file with at least:")
        print("  DEXBOT_USERNAME=youraccount")
        print("  DEXBOT_SIGNER_URL=http://127.0.0.1:8787  (signing relay)")
        return False

    with open(env_file) as f:
        content = f.read()
        if 'DEXBOT_USERNAME' not in content:
            print("❌ ERROR: Missing DEXBOT_USERNAME in .env")
            return False

    print("✅ .env file present and valid")
    return True


def check_config():
    """Parse the strategy file and validate the selected strategy's pairs."""
    from dotenv import load_dotenv
    load_dotenv()
    from dexbot.config.config import ConfigError, Settings
    from dexbot.config import pairs

    try:
        cfg = Settings.load()
        section = pairs.load_strategy_section(cfg.config_path, cfg.strategy)
        parser = {
            "gridBot": pairs.parse_grid_pairs,
            "spikeBot": lambda s: pairs.parse_spike_config(s).pairs,
            "swapper": pairs.parse_swap_pairs,
            "marketMaker": pairs.parse_market_maker_pairs,
        }[cfg.strategy]
        parsed = parser(section)
    except ConfigError as e:
        print(f"❌ ERROR: {e}")
        return False

    if not parsed:
        print(f"❌ ERROR: No pairs configured for {cfg.strategy} in {cfg.config_path}")
        return False

    print(f"✅ {cfg.config_path}: {len(parsed)} {cfg.strategy} pair(s)")
    return True


def check_state_directory():
    """Ensure the state directory exists when persistence is configured."""
    state_dir = os.getenv('DEXBOT_STATE_DIR')
    if not state_dir:
        print("⚠️  DEXBOT_STATE_DIR not set: tracked orders will not survive a restart")
        return True
    Path(state_dir).mkdir(parents=True, exist_ok=True)
    print("✅ State directory ready")
    return True


def show_account():
    """Show which account and endpoints the bot will trade with."""
    print(f"\n🔴 Account: {os.getenv('DEXBOT_USERNAME')}")
    print(f"   Strategy: {os.getenv('DEXBOT_STRATEGY', 'gridBot')}")
    print(f"   API: {os.getenv('DEXBOT_API_ROOT', 'https://dex.api.mainnet.metalx.com/dex')}")
    print("   ⚠️  Orders are placed on-chain with real funds")


def confirm_startup(auto_confirm: bool = False):
    """Get user confirmation before starting."""
    print("\n" + "=" * 60)
    print("PRE-FLIGHT CHECKS")
    print("=" * 60)

    checks = [
        ("Environment file", check_env_file),
        ("Configuration file", check_config),
        ("State directory", check_state_directory),
    ]

    all_passed = True
    for name, check_func in checks:
        if not check_func():
            all_passed = False
            # Later checks read the .env file.
            if name == "Environment file":
                break

    if not all_passed:
        print("\n❌ Pre-flight checks FAILED")
        print("Fix errors above and try again")
        return False

    print("\n✅ All pre-flight checks passed!")
    show_account()

    # Skip confirmation if auto_confirm (for systemd)
    if auto_confirm:
        print("\n✅ Auto-confirm enabled (--no-confirm)")
        print("✅ Starting bot...")
        return True

    print("\n" + "=" * 60)
    print("STARTUP CONFIRMATION")
    print("=" * 60)

    print("\nBefore starting, confirm:")
    print("  □ Pair limits and amounts are correct")
    print("  □ The account holds enough of both tokens")
    print("  □ The signing relay is running")

    response = input("\nType 'START' to continue: ").strip().upper()

    if response != 'START':
        print("❌ Startup cancelled")
        return False

    print("\n✅ Starting bot...")
    return True


def main():
    """Run pre-flight checks and start bot."""
    import argparse

    parser = argparse.ArgumentParser(description='dexbot limit-order trading bot')
    parser.add_argument('--no-confirm', action='store_true',
                        help='Skip startup confirmation (for systemd/automated use)')
    args = parser.parse_args()

    try:
        if not confirm_startup(auto_confirm=args.no_confirm):
            sys.exit(1)

        import asyncio
        from dexbot.main import main as bot_main
        code = asyncio.run(bot_main())
        if code:
            sys.exit(code)

        print("\n\n✅ Bot stopped gracefully")

    except KeyboardInterrupt:
        print("\n\n⏹️  Bot shutdown requested (Ctrl+C)")
        print("Cleaning up...")
    except Exception as e:
        print(f"\n❌ Error: {e}")
        print("\nCheck dexbot.log for details")
        sys.exit(1)


if __name__ == '__main__':
    main()
    print("\n💡 Bot session ended. Terminal ready for next command.")
