"""Degen Research - crypto project research reports

Simple CLI for running one research report or starting the API server.
"""

import argparse
import asyncio
import json
import sys

from degen_research.errors import ResearchError
from degen_research.models.research import ResearchRequest


async def run_research(request: ResearchRequest, as_json: bool = False) -> int:
    """Run the pipeline for one project and print the report."""
    from degen_research.api.deps import get_orchestrator

    print(f"Researching: {request.project_name}", file=sys.stderr)
    print("-" * 50, file=sys.stderr)

    try:
        orchestrator = get_orchestrator()
        report = await orchestrator.generate_report(request)
    except ResearchError as exc:
        print(f"\n[!] Error: {exc}", file=sys.stderr)
        return 1

    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
        return 0

    meta = report.metadata
    print(f"\n[*] Research Complete!", file=sys.stderr)
    print(f"   Runtime: {meta.get('durationMs')}ms", file=sys.stderr)
    print(f"   Tokens: {meta.get('totalTokens')}", file=sys.stderr)
    print(f"   Sources: {meta.get('sourcesFound')} found, {meta.get('sourcesUsed')} used", file=sys.stderr)
    print(f"   Confidence: {report.confidence_score}", file=sys.stderr)
    print(f"   Validation passed: {meta.get('validationPassed')}", file=sys.stderr)
    print(f"\n{'='*50}")
    print("REPORT:")
    print(f"{'='*50}")
    print(report.report)
    return 0


def serve() -> None:
    import uvicorn

    from degen_research.config import settings

    uvicorn.run("degen_research.main:app", host=settings.host, port=settings.port)


def main():
    parser = argparse.ArgumentParser(description="Degen Research crypto project report generator")
    parser.add_argument("--project", "-p", help="Project name to research")
    parser.add_argument("--website", "-w", default="", help="Project website")
    parser.add_argument("--twitter", "-t", default="", help="Project Twitter/X handle or URL")
    parser.add_argument("--contract", "-c", default="", help="Token contract address")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP API instead")

    args = parser.parse_args()

    if args.serve:
        serve()
        return

    if not args.project or not args.project.strip():
        parser.error("--project is required unless --serve is given")

    request = ResearchRequest(
        project_name=args.project.strip(),
        website=args.website.strip(),
        twitter=args.twitter.strip(),
        contract_address=args.contract.strip(),
    )
    sys.exit(asyncio.run(run_research(request, args.json)))


if __name__ == "__main__":
    main()
