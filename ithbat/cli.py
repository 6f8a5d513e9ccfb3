"""Command line entry points: run research, inspect site configs."""

import argparse
import asyncio
import json
import sys

from ithbat.agents.orchestrator import ResearchOrchestrator
from ithbat.models.research import ResearchTranscript
from ithbat.tools.crawler import Crawler
from ithbat.traverser.config_store import get_config_store
from ithbat.traverser.extraction import (
    extract_content,
    extract_search_results,
    search_url,
    site_summary,
)


async def run_research(query: str) -> int:
    """Run research on the given query, printing progress as it streams."""
    print(f"Research query: {query}")
    print("-" * 50)

    orchestrator = ResearchOrchestrator()
    transcript = ResearchTranscript()

    async for event in orchestrator.research(query):
        transcript.apply(event)
        event_type = event.event.value
        data = event.data

        if event_type == "personal_question":
            print("[!] This looks like a personal question; consult a qualified scholar for a fatwa.")

        elif event_type == "step_start":
            print(f"\n[~] {data.get('stepTitle')}...")

        elif event_type == "step_content" and data.get("step") != "understanding":
            print(data.get("content", ""), end="", flush=True)

        elif event_type == "step_complete":
            print(f"  [+] {data.get('step')} complete")

        elif event_type == "response_start":
            print(f"\n{'=' * 50}")
            print("RESPONSE:")
            print(f"{'=' * 50}")

        elif event_type == "response_content":
            print(data.get("content", ""), end="", flush=True)

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('error', 'Unknown error')}")

    print(f"\n\n[*] Sources: {len(transcript.sources)}")
    for src in transcript.sources:
        marker = "trusted" if src.trusted else "unverified"
        print(f"  [{src.id}] {src.title} - {src.url} ({marker})")
    return 0 if transcript.done else 1


def list_sites() -> int:
    configs = get_config_store().all()
    print(f"Configured sites ({len(configs)}):")
    for config in configs:
        types = ", ".join(t.value for t in config.evidence_types)
        print(f"  {config.domain:<20} {config.name} [{types}]")
    return 0


def show_site(domain: str) -> int:
    config = get_config_store().get(domain)
    if config is None:
        print(f"No config for {domain}", file=sys.stderr)
        return 1
    print(site_summary(config))
    return 0


async def test_url(url: str) -> int:
    crawler = Crawler()
    html = await crawler.fetch(url)
    extracted = extract_content(html, url, crawler.config_store.get(url))
    payload = extracted.to_dict()
    payload["content"] = payload["content"][:1000]
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


async def test_search(domain: str, query: str) -> int:
    config = get_config_store().get(domain)
    if config is None:
        print(f"No config for {domain}", file=sys.stderr)
        return 1
    url = search_url(query, config)
    print(f"Search URL: {url}")
    html = await Crawler().fetch(url)
    results = extract_search_results(html, config)
    print(f"Found {len(results)} results:")
    for link in results:
        print(f"  {link}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ithbat Islamic knowledge research")
    commands = parser.add_subparsers(dest="command", required=True)

    research = commands.add_parser("research", help="Run a research query")
    research.add_argument("--query", "-q", required=True, help="Research query")

    traverse = commands.add_parser("traverse", help="Inspect site traversal configs")
    actions = traverse.add_subparsers(dest="action", required=True)
    actions.add_parser("list", help="List configured sites")
    show = actions.add_parser("show", help="Show config for a domain")
    show.add_argument("domain")
    test = actions.add_parser("test", help="Fetch a URL and print its extracted content")
    test.add_argument("url")
    search = actions.add_parser("search", help="Run a site search and print result links")
    search.add_argument("domain")
    search.add_argument("query", nargs="+")

    args = parser.parse_args(argv)

    if args.command == "research":
        return asyncio.run(run_research(args.query))
    if args.action == "list":
        return list_sites()
    if args.action == "show":
        return show_site(args.domain)
    if args.action == "test":
        return asyncio.run(test_url(args.url))
    return asyncio.run(test_search(args.domain, " ".join(args.query)))


if __name__ == "__main__":
    sys.exit(main())
