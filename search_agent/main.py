"""Entry point: search | status | providers."""

import argparse
import sys

from search_agent.core.config import SUPPORTED_SEARCH_TYPES


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="search-agent",
        description="Aggregate search across MCP providers",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Run one search and print the outcome as JSON")
    search.add_argument("query", nargs="*", help="Query text (read from stdin when omitted)")
    search.add_argument("--type", "-t", dest="search_type", default="all", choices=SUPPORTED_SEARCH_TYPES)
    search.add_argument("--max-results", "-n", type=int, default=None)
    search.add_argument("--timeout-ms", type=int, default=None)
    search.add_argument("--enrich", action="store_true", help="Annotate results with the LLM enricher")

    sub.add_parser("status", help="Connect providers and print the health snapshot")
    sub.add_parser("providers", help="Connect providers and print their capabilities")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from search_agent.interfaces.oneshot import main as run_oneshot_main

    if args.command == "search":
        query = " ".join(args.query).strip() if args.query else sys.stdin.read().strip()
        return run_oneshot_main(
            "search",
            query=query,
            search_type=args.search_type,
            max_results=args.max_results,
            timeout_ms=args.timeout_ms,
            enrich=args.enrich,
        )
    return run_oneshot_main(args.command)


if __name__ == "__main__":
    sys.exit(main())
