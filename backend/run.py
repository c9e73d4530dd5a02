"""
Run the expense approval API with uvicorn.

Usage:
    python run.py
    python run.py --reload          # auto-reload, development only
    python run.py --seed --reload   # load the demo expenses first
    python run.py --tokens          # print demo bearer tokens and exit
"""
import argparse
import uvicorn

from expense_approval.config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the Expense Approval API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (ignored with --reload)"
    )
    parser.add_argument("--seed", action="store_true", help="Seed demo expenses before serving")
    parser.add_argument("--tokens", action="store_true", help="Print demo bearer tokens and exit")
    args = parser.parse_args()

    if args.tokens:
        from scripts.seed_data import print_tokens
        print_tokens()
        return

    if args.reload and settings.is_production:
        parser.error("--reload is not allowed when ENVIRONMENT=production")

    if args.seed:
        from scripts.seed_data import main as seed
        seed()

    print(f"Starting Expense Approval API on {args.host}:{args.port} ({settings.environment})")
    print(f"  Database: {settings.mongo_db}")
    print(f"  Base currency: {settings.base_currency}")
    if not args.reload and args.workers > 1:
        print(f"  Workers: {args.workers}")

    uvicorn.run(
        "expense_approval.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
