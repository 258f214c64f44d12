from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from context_recall import ContextOrchestrator
from context_recall.cli import output as out
from context_recall.cli.config import Config, config_exists, config_path_display, load_config
from context_recall.errors import ContextRecallError

DESCRIPTION = """\
context-recall: long-term memory and context awareness for assistants

Remembers what you mark as important, keeps a rolling conversation log
and decides which bits of ambient context (time, place, weather, apps)
are relevant enough to put in front of the model for a given question.

Default storage is a local SQLite file; embeddings are computed locally
unless an OpenAI key is configured."""


# ── Infrastructure helpers ──────────────────────────────────────────


def _config_to_dict(cfg: Config) -> dict[str, Any]:
    """Convert CLI Config into the canonical config dict for ContextOrchestrator."""
    store_config: dict[str, Any] = {}
    if cfg.store_provider == "sqlite":
        store_config = {"path": cfg.db_path}

    embeddings: dict[str, Any] = {"provider": cfg.embeddings_provider}
    if cfg.uses_openai:
        embeddings["api_key"] = cfg.openai_api_key
        if cfg.embeddings_model:
            embeddings["model"] = cfg.embeddings_model

    return {
        "store": {"provider": cfg.store_provider, "config": store_config},
        "embeddings": embeddings,
        "engine": cfg.engine,
    }


def _build_ctx(cfg: Config) -> ContextOrchestrator:
    try:
        return ContextOrchestrator.from_config(_config_to_dict(cfg))
    except ValueError as exc:
        out.error(str(exc))
        sys.exit(1)


def _require_persistent(cfg: Config, command: str) -> None:
    """Warn that *command* has nothing to work with on the memory store."""
    if cfg.is_persistent:
        return
    out.warn(
        f"'{command}' is running against the in-memory store; "
        "nothing from earlier runs is available."
    )


async def _open(cfg: Config) -> ContextOrchestrator:
    ctx = _build_ctx(cfg)
    try:
        await ctx.init()
    except ContextRecallError as exc:
        out.error(str(exc))
        sys.exit(1)
    return ctx


# ── config ──────────────────────────────────────────────────────────


async def cmd_config_show(args: argparse.Namespace) -> None:
    """Display current configuration."""
    cfg = load_config()

    source = config_path_display() if config_exists() else "defaults"
    out.header(f"Configuration ({source})")
    print()

    if cfg.openai_api_key:
        masked = cfg.openai_api_key[:7] + "..." + cfg.openai_api_key[-4:]
        out.kv("OpenAI API key", masked)
    else:
        out.kv("OpenAI API key", out.dim("not set"))
    out.kv("Store", cfg.store_provider)
    if cfg.is_persistent:
        out.kv("Database", cfg.db_path)
    out.kv("Embeddings", cfg.embeddings_provider)
    if cfg.embeddings_model:
        out.kv("Model", cfg.embeddings_model)
    for key, value in sorted(cfg.engine.items()):
        out.kv(key, value)
    print()


async def cmd_config_path(args: argparse.Namespace) -> None:
    print(config_path_display())


# ── preprocess ──────────────────────────────────────────────────────


async def cmd_preprocess(args: argparse.Namespace) -> None:
    ctx = _build_ctx(load_config())
    result = ctx.preprocess(args.query)

    out.header("Preprocessed query")
    print()
    out.kv("Original", result.original)
    out.kv("Normalized", result.normalized)
    for correction in result.corrections:
        out.kv(
            "Corrected",
            f"{correction.original} → {correction.corrected} "
            f"{out.dim(f'(distance {correction.edit_distance})')}",
        )
    for expansion in result.expansions:
        out.kv("Expansion", expansion)
    print()


# ── remember ────────────────────────────────────────────────────────


async def cmd_remember(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "remember")

    ctx = await _open(cfg)
    try:
        memory = await ctx.mark_as_important(
            None, args.text, context=args.context, tag=args.tag
        )
    finally:
        await ctx.close()

    if memory is None:
        out.error("Could not save the memory (see --verbose for details).")
        sys.exit(1)
    out.success(f"Remembered {out.dim(memory.id)}")


# ── memories ────────────────────────────────────────────────────────


async def cmd_memories_list(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "memories list")

    ctx = await _open(cfg)
    try:
        memories = await ctx.list_memories()
    finally:
        await ctx.close()

    if not memories:
        out.warn("No memories yet. Run 'context-recall remember \"...\"' first.")
        return

    total = len(memories)
    if args.limit:
        memories = memories[: args.limit]
        out.header(f"Memories (showing {len(memories)} of {total:,})")
    else:
        out.header(f"Memories ({total:,})")
    print()

    for m in memories:
        stamp = m.created_at.strftime("%Y-%m-%d %H:%M")
        tag = f" #{m.tag}" if m.tag else ""
        print(f"  [{stamp}] {m.content}{out.dim(tag)}")
        if m.context:
            print(f"      {out.dim(m.context)}")
        print(f"      {out.dim(m.id)}")
    print()


async def cmd_memories_search(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "memories search")

    ctx = await _open(cfg)
    try:
        results = await ctx.search_memories(args.query, top_k=args.top_k)
    finally:
        await ctx.close()

    if not results:
        out.warn("No matching memories found.")
        return

    out.header(f"Results for \"{args.query}\" ({len(results)})")
    print()
    for r in results:
        similarity = r.similarity if r.similarity is not None else 0.0
        print(f"  {out.score_bar(similarity, 10)} {similarity:.2f}  {r.content}")
    print()


async def cmd_memories_forget(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "memories forget")

    ctx = await _open(cfg)
    try:
        forgotten = await ctx.forget_memory(args.memory_id)
    finally:
        await ctx.close()

    if not forgotten:
        out.error(f"No active memory with id {args.memory_id}")
        sys.exit(1)
    out.success(f"Forgot {args.memory_id}")


# ── context / prompt ────────────────────────────────────────────────


async def cmd_context(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "context")

    ctx = await _open(cfg)
    try:
        text = await ctx.get_context_for_prompt(args.max_chars)
    finally:
        await ctx.close()

    if not text:
        out.warn("Nothing to add to the prompt yet.")
        return
    out.header(f"Prompt context ({len(text):,} chars)")
    print()
    out.block(text)
    print()


async def cmd_prompt(args: argparse.Namespace) -> None:
    cfg = load_config()
    ctx = await _open(cfg)
    try:
        if args.base is not None:
            enhanced = await ctx.build_enhanced_prompt(args.base, args.query)
            prompt = enhanced.enhanced_prompt
            scores = enhanced.relevance_scores
            used = enhanced.context_used
        else:
            try:
                prepared = await ctx.prepare_prompt(args.query)
            except ContextRecallError as exc:
                out.error(str(exc))
                sys.exit(1)
            prompt = prepared.prompt
            scores = prepared.enhanced.relevance_scores
            used = prepared.context_used
    finally:
        await ctx.close()

    out.header("Relevance")
    print()
    for domain, score in sorted(scores.items(), key=lambda kv: kv[1], reverse=True):
        marker = out.green("✓") if domain in used else " "
        print(f"  {marker} {domain:<10} {out.score_bar(score)} {score:.2f}")

    out.header(f"Prompt ({len(prompt):,} chars)")
    print()
    out.block(prompt)
    print()


# ── export / clear ──────────────────────────────────────────────────


async def cmd_export(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "export")

    ctx = await _open(cfg)
    try:
        data = await ctx.export_all_data()
    finally:
        await ctx.close()

    if not data:
        out.error("Export failed (see --verbose for details).")
        sys.exit(1)

    payload = json.dumps(data, indent=2, ensure_ascii=False)
    if args.out is None:
        print(payload)
        return

    path = Path(args.out).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload + "\n", encoding="utf-8")
    out.success(
        f"Exported {len(data['memories'])} memories and "
        f"{len(data['conversation']['messages'])} messages to {path}"
    )


async def cmd_clear(args: argparse.Namespace) -> None:
    cfg = load_config()

    if not args.yes:
        if not sys.stdin.isatty():
            out.error("Refusing to clear without --yes in a non-interactive shell.")
            sys.exit(1)
        answer = input("  Delete all conversation and memory data? [y/N] ").strip()
        if answer.lower() not in ("y", "yes"):
            out.info("Nothing deleted.")
            return

    ctx = await _open(cfg)
    try:
        cleared = await ctx.clear_all_data()
    finally:
        await ctx.close()

    if not cleared:
        out.error("Could not clear the store (see --verbose for details).")
        sys.exit(1)
    out.success("All data cleared")


# ── Parser ──────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="context-recall",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  context-recall remember "My dog is called Rex"   '
            "Store a memory\n"
            "  context-recall memories list                     "
            "Browse memories\n"
            '  context-recall memories search "dog"             '
            "Semantic search\n"
            "  context-recall context                           "
            "Show the conversation context block\n"
            '  context-recall prompt "whats the wether like"    '
            "Build a full prompt\n"
            "\n"
            "Configuration:\n"
            "  context-recall config show                       "
            "Show current settings\n"
            "  context-recall config path                       "
            "Print config file location\n"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed logs (migrations, breaker transitions, queueing)",
    )
    sub = parser.add_subparsers(dest="command", title="commands")

    p_pre = sub.add_parser("preprocess", help="Normalize, spell-correct and expand a query")
    p_pre.add_argument("query", help="Raw query text")

    p_rem = sub.add_parser("remember", help="Mark a piece of text as important")
    p_rem.add_argument("text", help="What to remember")
    p_rem.add_argument("--context", default=None, help="Short note on where it came from")
    p_rem.add_argument("--tag", default=None, help="Optional category tag")

    p_mem = sub.add_parser("memories", help="Browse, search and forget memories")
    mem_sub = p_mem.add_subparsers(dest="memories_command", title="memories commands")

    p_list = mem_sub.add_parser("list", help="List active memories, newest first")
    p_list.add_argument("--limit", type=int, default=None, help="Show at most N")

    p_search = mem_sub.add_parser("search", help="Semantic search over memories")
    p_search.add_argument("query", help="Search text")
    p_search.add_argument("--top-k", type=int, default=None, help="Maximum results")

    p_forget = mem_sub.add_parser("forget", help="Tombstone a memory by id")
    p_forget.add_argument("memory_id", help="Memory id (see 'memories list')")

    p_ctx = sub.add_parser("context", help="Show the conversation/memory context block")
    p_ctx.add_argument("--max-chars", type=int, default=None, help="Character budget")

    p_prompt = sub.add_parser("prompt", help="Build the prompt for a query")
    p_prompt.add_argument("query", help="User query")
    p_prompt.add_argument(
        "--base",
        default=None,
        help="Only append contextual fragments to this base prompt",
    )

    p_export = sub.add_parser("export", help="Export all data as JSON")
    p_export.add_argument("--out", default=None, help="Write to file instead of stdout")

    p_clear = sub.add_parser("clear", help="Delete all conversation and memory data")
    p_clear.add_argument("-y", "--yes", action="store_true", help="Do not ask")

    p_cfg = sub.add_parser("config", help="Inspect configuration")
    cfg_sub = p_cfg.add_subparsers(dest="config_command", title="config commands")
    cfg_sub.add_parser("show", help="Show current settings")
    cfg_sub.add_parser("path", help="Print config file location")

    return parser


# ── Dispatch ────────────────────────────────────────────────────────

_CommandHandler = Callable[[argparse.Namespace], Coroutine[Any, Any, None]]

_COMMAND_MAP: dict[str, _CommandHandler] = {
    "preprocess": cmd_preprocess,
    "remember": cmd_remember,
    "context": cmd_context,
    "prompt": cmd_prompt,
    "export": cmd_export,
    "clear": cmd_clear,
}

_MEMORIES_MAP: dict[str, _CommandHandler] = {
    "list": cmd_memories_list,
    "search": cmd_memories_search,
    "forget": cmd_memories_forget,
}

_CONFIG_MAP: dict[str, _CommandHandler] = {
    "show": cmd_config_show,
    "path": cmd_config_path,
}


def main() -> None:
    import logging

    parser = _build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="  %(name)s: %(message)s",
        )
    logging.getLogger("LiteLLM").setLevel(logging.CRITICAL)
    logging.getLogger("litellm").setLevel(logging.CRITICAL)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not args.command:
        parser.print_help()
        return

    if args.command == "memories":
        if not args.memories_command:
            parser.parse_args(["memories", "--help"])
            return
        handler = _MEMORIES_MAP.get(args.memories_command)
    elif args.command == "config":
        if not args.config_command:
            parser.parse_args(["config", "--help"])
            return
        handler = _CONFIG_MAP.get(args.config_command)
    else:
        handler = _COMMAND_MAP.get(args.command)

    if handler is None:
        parser.print_help()
        return

    try:
        asyncio.run(handler(args))
    except KeyboardInterrupt:
        print()


if __name__ == "__main__":
    main()
