#!/usr/bin/env python3
"""
StakeCourt Command Line Interface.

Provides commands for running and exercising the court:
    - serve: Start the API server
    - check: Verify installation and configuration
    - info: Display system and court configuration
    - simulate: Run a draft simulation described in a YAML file

Usage:
    stakecourt serve [--host HOST] [--port PORT] [--debug] [--production]
    stakecourt check
    stakecourt info
    stakecourt simulate --config court.yaml [--output report.json]
    stakecourt --version
"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "hex_sum_tree.py")):
    sys.path.insert(0, os.path.dirname(__file__))

VERSION = "0.1.0"


def cmd_serve(args):
    """Start the StakeCourt API server."""
    from api import create_app
    from monitoring import configure_logging

    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = args.port or int(os.getenv("PORT", 5000))
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    print(f"Starting StakeCourt API server on {host}:{port}")
    flask_app = create_app()

    if not args.production:
        flask_app.run(host=host, port=port, debug=debug)
        return

    try:
        import gunicorn.app.base
    except ImportError:
        print("Error: gunicorn not installed. Install with: pip install stakecourt[production]")
        sys.exit(1)

    class StandaloneApplication(gunicorn.app.base.BaseApplication):
        """Gunicorn WSGI wrapper serving the in-process Flask app.

        The court lives in memory, so a single worker serves every request.
        """

        def __init__(self, app, options=None):
            self.options = options or {}
            self.application = app
            super().__init__()

        def load_config(self):
            for key, value in self.options.items():
                if key in self.cfg.settings and value is not None:
                    self.cfg.set(key.lower(), value)

        def load(self):
            return self.application

    options = {
        "bind": f"{host}:{port}",
        "workers": 1,
        "worker_class": "sync",
        "timeout": 120,
        "accesslog": "-",
        "errorlog": "-",
    }
    StandaloneApplication(flask_app, options).run()


def cmd_check(args):
    """Check installation and configuration."""
    print("StakeCourt Installation Check")
    print("=" * 40)

    checks = []

    try:
        from court import create_court

        court = create_court()
        checks.append(("Court assembly", "OK"))
        checks.append((f"Sum tree (height {court.registry.tree.height()})", "OK"))
    except ImportError as e:
        checks.append(("Court assembly", f"FAIL: {e}"))

    try:
        from court_config import CourtConfig
        from court_exceptions import InvalidConfig

        try:
            CourtConfig.from_env().validate()
            checks.append(("Court configuration", "OK"))
        except (InvalidConfig, ValueError) as e:
            checks.append(("Court configuration", f"FAIL: {e}"))
    except ImportError as e:
        checks.append(("Court configuration", f"FAIL: {e}"))

    try:
        from api import create_app

        create_app(init=False)
        checks.append(("Flask API", "OK"))
    except ImportError as e:
        checks.append(("Flask API", f"FAIL: {e}"))

    try:
        import gunicorn  # noqa: F401

        checks.append(("Production server (gunicorn)", "OK"))
    except ImportError:
        checks.append(("Production server (gunicorn)", "SKIP (gunicorn not installed)"))

    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    print("Some checks failed. See above for details.")
    return 1


def cmd_info(args):
    """Display system information."""
    import platform

    from court_config import CourtConfig

    print("StakeCourt System Information")
    print("=" * 40)
    print(f"Version: {VERSION}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    print()
    print("Configuration:")
    print(f"  LOG_LEVEL: {os.getenv('LOG_LEVEL', 'INFO (default)')}")
    print(f"  LOG_FORMAT: {os.getenv('LOG_FORMAT', 'console (default)')}")

    print()
    print("Court:")
    config = CourtConfig.from_yaml(args.config) if args.config else CourtConfig.from_env()
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")
    print(f"  draft_lock_amount: {config.draft_lock_amount()}")

    return 0


def cmd_simulate(args):
    """Run a draft simulation and print a JSON report."""
    from court import run_simulation_file
    from court_exceptions import CourtError
    from monitoring import configure_logging

    configure_logging(level=args.log_level or os.getenv("LOG_LEVEL", "WARNING"))

    try:
        report = run_simulation_file(args.config)
    except CourtError as e:
        print(f"Simulation failed: {e}", file=sys.stderr)
        return 1

    output = json.dumps(report, indent=2, default=str)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"Report written to {args.output}")
    else:
        print(output)
    return 0


def main():
    """Main CLI entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="stakecourt",
        description="StakeCourt - Stake-Weighted Juror Sortition Court",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 5000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument("--production", action="store_true", help="Use gunicorn for production")

    subparsers.add_parser("check", help="Check installation and configuration")

    info_parser = subparsers.add_parser("info", help="Display system information")
    info_parser.add_argument("--config", help="YAML court config (default: environment)")

    simulate_parser = subparsers.add_parser("simulate", help="Run a draft simulation")
    simulate_parser.add_argument("--config", required=True, help="YAML simulation file")
    simulate_parser.add_argument("--output", "-o", help="Write the JSON report to a file")
    simulate_parser.add_argument("--log-level", help="Log level (default: WARNING)")

    args = parser.parse_args()

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "check":
        sys.exit(cmd_check(args))
    elif args.command == "info":
        sys.exit(cmd_info(args))
    elif args.command == "simulate":
        sys.exit(cmd_simulate(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
