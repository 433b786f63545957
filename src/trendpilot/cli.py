"""trendpilot.cli

Command-line entry point (`trendpilot ...`).

Every command opens the SQLite stores at `--db` (default from
`PipelineConfig.from_env()`), runs synchronously through the inline scheduler
and prints JSON to stdout.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .coordinator import Coordinator
from .core.config import PipelineConfig
from .core.errors import TrendpilotError
from .core.models import StreamType
from .core.runtime import to_snapshot
from .integrations.llm_client import LLMClient, RemoteLLMClient
from .integrations.search_client import SearchClient, TavilySearchClient
from .logging import configure_logging, get_logger
from .scheduler import InlineScheduler
from .storage import Stores

logger = get_logger(__name__)


def make_clients(config: PipelineConfig) -> Tuple[LLMClient, SearchClient]:
    if not config.tavily_api_key:
        raise TrendpilotError("TAVILY_API_KEY is required for this command")
    llm = RemoteLLMClient(
        base_url=config.llm_base_url,
        model=config.llm_model,
        api_key=config.llm_api_key,
        timeout_s=config.llm_timeout_s,
    )
    search = TavilySearchClient(api_key=config.tavily_api_key, base_url=config.tavily_base_url)
    return llm, search


def build_coordinator(config: PipelineConfig, stores: Stores) -> Coordinator:
    llm, search = make_clients(config)
    return Coordinator(stores=stores, llm=llm, search=search, scheduler=InlineScheduler(), config=config)


def _open_stores(config: PipelineConfig) -> Stores:
    path = Path(config.db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return Stores.sqlite(path)


def _thread_view(stores: Stores, thread_id: str) -> Dict[str, Any]:
    thread = stores.threads.get(thread_id)
    if thread is None:
        raise TrendpilotError(f"Thread not found: {thread_id}")
    return {
        **thread.to_json(),
        "trends": [t.to_json() for t in stores.trends.list_by_thread(thread_id)],
        "ideas": [i.to_json() for i in stores.ideas.list_by_thread(thread_id)],
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trendpilot", description="Trend research and content ideation pipeline")
    parser.add_argument("--db", default=None, help="SQLite database path")
    parser.add_argument("--log-level", default=None, help="Log level (default: TRENDPILOT_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("new", help="Create a thread")
    p.add_argument("prompt")

    for name, help_text in (
        ("research", "Run research until the approval step"),
        ("approve", "Approve the trends and generate ideas"),
        ("restart", "Reset the thread"),
        ("ideas", "Generate ideas per platform"),
        ("status", "Show the thread with its trends and ideas"),
        ("history", "List checkpoints, newest first"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("thread_id")

    p = sub.add_parser("refine", help="Re-run research with feedback")
    p.add_argument("thread_id")
    p.add_argument("feedback")

    p = sub.add_parser("events", help="Print persisted progress events")
    p.add_argument("thread_id")
    p.add_argument("--stream", choices=[s.value for s in StreamType], default=StreamType.RESEARCH.value)
    p.add_argument("--after", type=int, default=None)

    return parser


def run(args: argparse.Namespace, config: PipelineConfig) -> Any:
    stores = _open_stores(config)
    cmd = args.command

    if cmd == "status":
        return _thread_view(stores, args.thread_id)
    if cmd == "events":
        events = stores.events.list(args.thread_id, StreamType(args.stream), after=args.after)
        return [e.to_json() for e in events]
    if cmd == "history":
        tuples = stores.checkpoints.list(args.thread_id, config.checkpoint_ns, limit=config.history_limit)
        out: List[Dict[str, Any]] = []
        for tup in tuples:
            snap = to_snapshot(tup)
            out.append(
                {
                    "checkpoint_id": snap.checkpoint_id,
                    "parent_checkpoint_id": snap.parent_checkpoint_id,
                    "next": snap.next,
                    "step": tup.checkpoint.get("step"),
                    "source": snap.metadata.get("source"),
                    "node": snap.metadata.get("node"),
                    "current_step": snap.values.get("current_step"),
                    "interrupted": snap.interrupt is not None,
                    "created_at": snap.created_at,
                }
            )
        return out

    coordinator = build_coordinator(config, stores)
    if cmd == "new":
        return coordinator.create_thread(args.prompt).to_json()
    if cmd == "research":
        accepted = coordinator.start_research(args.thread_id)
    elif cmd == "approve":
        accepted = coordinator.approve(args.thread_id)
    elif cmd == "refine":
        accepted = coordinator.refine(args.thread_id, args.feedback)
    elif cmd == "restart":
        accepted = coordinator.restart(args.thread_id)
    elif cmd == "ideas":
        accepted = coordinator.start_ideas_generation(args.thread_id)
    else:
        raise TrendpilotError(f"Unknown command: {cmd}")
    return {**accepted, "thread": _thread_view(stores, args.thread_id)}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    config = PipelineConfig.from_env()
    if args.db:
        config = config.with_overrides(db_path=args.db)

    try:
        result = run(args, config)
    except TrendpilotError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
