"""Leadgen - Search Orchestration

Simple CLI for running one search through the orchestration engine.
"""

import argparse
import asyncio
import sys

from leadgen.agents.orchestrator import run_orchestration
from leadgen.errors import SearchNotFound
from leadgen.models.events import OrchestrationEvent


async def print_event(event: OrchestrationEvent) -> None:
    event_type = event.event.value
    data = event.data

    if event_type == "progress":
        task = data.get("task")
        suffix = f" ({task} settled)" if task else ""
        print(f"[~] {data.get('phase')}: {data.get('progress')}%{suffix}")

    elif event_type == "personas_ready":
        print(f"[+] {data.get('task')}: {data.get('count')} personas via {data.get('source')}")
        for title in data.get("titles", []):
            print(f"     - {title}")

    elif event_type == "businesses_found":
        print(f"[+] business discovery: {data.get('count')} businesses")
        if data.get("failed_countries"):
            print(f"     skipped: {', '.join(data['failed_countries'])}")

    elif event_type == "market_research_ready":
        print(f"[+] market research: {data.get('sources')} sources via {data.get('provider')}")

    elif event_type == "task_failed":
        print(f"[!] {data.get('task')} failed: {data.get('error')}")

    elif event_type == "completed":
        print("\n[*] Search completed")

    elif event_type == "error":
        print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


async def run_search(search_id: str, user_id: str) -> int:
    print(f"Search: {search_id}")
    print("-" * 50)
    try:
        result = await run_orchestration(search_id, user_id, listener=print_event)
    except SearchNotFound:
        print(f"[!] Search {search_id} not found")
        return 2

    print(f"{'=' * 50}")
    for key, outcome in result.per_task_status.items():
        print(f"  {key}: {outcome}")
    for failure in result.dispatch_failures:
        print(f"  [!] job {failure.job_type} not enqueued: {failure.error}")
    return 0 if result.success else 1


def main():
    parser = argparse.ArgumentParser(description="Leadgen search orchestration")
    parser.add_argument("--search-id", "-s", required=True, help="Search id (user_searches.id)")
    parser.add_argument("--user-id", "-u", required=True, help="Owner of the search")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_search(args.search_id, args.user_id)))


if __name__ == "__main__":
    main()
