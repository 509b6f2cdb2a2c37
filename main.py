#!/usr/bin/env python3
"""
LTI OIDC Bridge - launch-gated OIDC login
Protects the lti_state handoff across the identity-provider round trip.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep bridge imports lazy (inside functions) so `--help` works without the web stack.
#


def check_config() -> int:
    """Validate environment configuration and report what is missing."""
    from ltibridge.auth.config import load_bridge_config
    from ltibridge.auth.errors import ConfigurationError

    try:
        cfg = load_bridge_config().validate()
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1
    print(f"✅ Provider: {cfg.provider} ({cfg.provider_base_url})")
    print(f"✅ Callback: {cfg.redirect_uri}")
    print(f"✅ State cookie: {cfg.state_cookie_name} (ttl={cfg.state_ttl_seconds}s, secure={cfg.cookie_secure})")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="LTI OIDC Bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the bridge server
  python main.py serve --port 8080

  # Check configuration without starting
  python main.py check-config
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the bridge HTTP server")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8080, help="Port (default: 8080)")

    sub.add_parser("check-config", help="Validate configuration from environment")

    args = parser.parse_args()

    if args.command == "serve":
        from ltibridge.api.app import run

        run(host=args.host, port=args.port)
        return 0
    if args.command == "check-config":
        return check_config()

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
