"""Dinopedia - dinosaur encyclopedia

Simple CLI for researching dinosaurs and running the API server.
"""

import argparse
import asyncio
import sys

from dinopedia.agents.dinosaur_agent import DinosaurAgent
from dinopedia.errors import ConfigurationError


async def run_research(names: list[str], model: str | None = None, backend_url: str | None = None) -> int:
    """Research the given dinosaurs and print a summary for each."""
    print(f"Researching: {', '.join(names)}")
    print("-" * 50)

    try:
        agent = DinosaurAgent(openai_model=model, backend_url=backend_url)
    except ConfigurationError as e:
        print(f"[!] Configuration error: {e}")
        return 2

    try:
        results = await agent.research_many(names)
    finally:
        await agent.aclose()

    failures = 0
    for name, result in zip(names, results):
        if result.success and result.dinosaur and result.dinosaur.data:
            info = result.dinosaur.data.basic_info
            saved = result.dinosaur.data.saved_data
            print(f"\n[+] {name} ({result.processing_time}ms)")
            print(f"   Scientific name: {info.scientific_name or 'Unknown'}")
            print(f"   Period: {info.period or '-'}   Diet: {info.diet or '-'}")
            print(f"   Record id: {saved.get('id', '-')}")
            print(f"   Images: {len(result.dinosaur.data.images)}")
            for warning in result.dinosaur.errors or []:
                print(f"   [~] {warning}")
        else:
            failures += 1
            print(f"\n[!] {name} failed ({result.processing_time}ms): {result.error}")
            for err in result.errors or []:
                print(f"   - {err}")

    print(f"\n{'='*50}")
    print(f"Done: {len(names) - failures} succeeded, {failures} failed")
    return 1 if failures else 0


def serve(host: str, port: int, reload: bool) -> None:
    import uvicorn

    uvicorn.run("dinopedia.main:app", host=host, port=port, reload=reload)


def main():
    parser = argparse.ArgumentParser(description="Dinopedia dinosaur encyclopedia")
    subparsers = parser.add_subparsers(dest="command", required=True)

    research = subparsers.add_parser("research", help="Research one or more dinosaurs")
    research.add_argument("names", nargs="+", help="Dinosaur names")
    research.add_argument("--model", "-m", help="Model to use (default: from config)")
    research.add_argument("--backend-url", "-b", help="Backend REST URL (default: from config)")

    server = subparsers.add_parser("serve", help="Run the API server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", "-p", type=int, default=3000)
    server.add_argument("--reload", action="store_true")

    args = parser.parse_args()

    if args.command == "serve":
        serve(args.host, args.port, args.reload)
        return

    sys.exit(asyncio.run(run_research(args.names, args.model, args.backend_url)))


if __name__ == "__main__":
    main()
