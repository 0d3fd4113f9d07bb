"""Command-line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Iterator

from juno.config import (
    Settings,
    check_required_settings,
    exclude_patterns,
    include_patterns,
    load_settings,
    vectors_path,
)
from juno.conversation import ConversationCallbacks, ConversationEngine
from juno.errors import (
    AggregateConfigurationMissingError,
    ConfigurationError,
    ConversationCancelledError,
    JunoError,
)
from juno.events import UIEvent, function_call_notifier
from juno.functions.loop import FunctionCallLoop
from juno.functions.registry import FunctionRegistry
from juno.llm.embeddings import OpenAIEmbedder
from juno.llm.openai import OpenAIProvider
from juno.models import IndexingReport, Message, SourceFile
from juno.prompts import (
    CHAT_INSTRUCTIONS,
    CREATE_CODE_INSTRUCTIONS,
    QUERY_REPO_SYSTEM_MESSAGE,
    SUGGEST_IMPROVEMENTS_INSTRUCTIONS,
    SUGGEST_IMPROVEMENTS_PROMPT,
    create_system_message,
    initialize_conversation,
    query_repo_user_message,
)
from juno.retrieval.chunker import TextChunker
from juno.retrieval.index import VectorIndex
from juno.retrieval.indexer import RepositoryIndexer
from juno.tools.context_tool import RepositoryContextTool
from juno.workspace import collect_source_files, language_id, read_source_file

LOGGER = logging.getLogger(__name__)

EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="juno", description="Repository-aware LLM assistant.")
    parser.add_argument(
        "--workspace",
        type=Path,
        default=Path.cwd(),
        help="Workspace root (defaults to the current directory).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("index", help="Index every matching file in the workspace.")

    index_file = sub.add_parser("index-file", help="Index a single file.")
    index_file.add_argument("path", type=Path)

    query = sub.add_parser("query", help="Ask a question answered from the repository index.")
    query.add_argument("question")

    chat = sub.add_parser("chat", help="Start an interactive conversation.")
    chat.add_argument("--scratchpad", type=Path, help="File shown to the assistant as reference code.")

    suggest = sub.add_parser("suggest", help="Suggest improvements to a file.")
    suggest.add_argument("path", type=Path)

    create_code = sub.add_parser("create-code", help="Start an interactive code-writing session.")
    create_code.add_argument("--scratchpad", type=Path, help="File shown to the assistant as reference code.")

    sub.add_parser("delete-index", help="Delete the workspace vector index.")
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> int:
    workspace: Path = args.workspace.resolve()
    index = VectorIndex(vectors_path(settings, workspace))

    if args.command == "delete-index":
        if index.delete_index():
            print("Vector index deleted")
        else:
            print("No vector index to delete")
        return 0

    check_required_settings(settings)
    if args.command == "index":
        return await _index_workspace(settings, workspace, index)
    if args.command == "index-file":
        return await _index_single_file(settings, workspace, index, args.path)
    if args.command == "query":
        return await _query(settings, workspace, index, args.question)
    if args.command == "chat":
        return await _chat(settings, CHAT_INSTRUCTIONS, args.scratchpad)
    if args.command == "create-code":
        return await _chat(settings, CREATE_CODE_INSTRUCTIONS, args.scratchpad)
    if args.command == "suggest":
        return await _suggest(settings, args.path)
    raise ValueError(f"Unknown command: {args.command}")


async def _index_workspace(settings: Settings, workspace: Path, index: VectorIndex) -> int:
    indexer = RepositoryIndexer(
        OpenAIEmbedder(settings),
        index,
        TextChunker(settings.chunk_size, settings.chunk_overlap),
        max_file_size=settings.max_file_size,
        concurrency=settings.embedding_concurrency,
        progress=_print_progress,
    )
    files = collect_source_files(workspace, include_patterns(settings), exclude_patterns(settings))
    print(f"indexing {len(files)} files (Ctrl-C to cancel)")
    report = await _run_cancellable(indexer, files)
    return _summarize(report)


async def _index_single_file(settings: Settings, workspace: Path, index: VectorIndex, path: Path) -> int:
    path = path.resolve()
    display = path.relative_to(workspace).as_posix() if path.is_relative_to(workspace) else None
    source = read_source_file(path, display)
    if source is None:
        print(f"Cannot index {path}: not a readable text file", file=sys.stderr)
        return 1
    indexer = RepositoryIndexer(
        OpenAIEmbedder(settings),
        index,
        TextChunker(settings.file_chunk_size, settings.file_chunk_overlap),
        max_file_size=settings.max_file_size,
        concurrency=settings.embedding_concurrency,
        progress=_print_progress,
    )
    report = await _run_cancellable(indexer, [source])
    return _summarize(report)


async def _query(settings: Settings, workspace: Path, index: VectorIndex, question: str) -> int:
    if settings.active_indexing:
        status = await _index_workspace(settings, workspace, index)
        if status != 0:
            return status
    if not index.is_created():
        print("Vector database needs to be indexed first. Run `juno index` to create it.", file=sys.stderr)
        return 1

    embedder = OpenAIEmbedder(settings)
    registry = FunctionRegistry([RepositoryContextTool(embedder, index, settings.context_top_k)])
    registry.freeze()
    loop = FunctionCallLoop(
        ConversationEngine(OpenAIProvider(settings), default_model=settings.model),
        registry,
        model=settings.function_model,
        temperature=settings.temperature,
        max_rounds=settings.max_tool_rounds,
        notify=function_call_notifier(_print_event),
    )
    with _cancel_on_sigint() as cancel_event:
        try:
            await loop.run(
                QUERY_REPO_SYSTEM_MESSAGE,
                query_repo_user_message(question),
                callbacks=_stdout_callbacks(),
                cancel_event=cancel_event,
            )
        except ConversationCancelledError:
            print("\ncancelled", file=sys.stderr)
            return EXIT_CANCELLED
    return 0


def _scratchpad_system_message(settings: Settings, instructions: str, scratchpad_path: Path | None) -> str:
    scratchpad = None
    language = None
    if scratchpad_path is not None:
        scratchpad = scratchpad_path.read_text(encoding="utf-8")
        detected = language_id(scratchpad_path)
        language = None if detected == "plaintext" else detected
    return create_system_message(
        instructions,
        assistant_name=settings.assistant_name,
        user_name=settings.user_name,
        language=language,
        scratchpad=scratchpad,
    )


async def _chat(settings: Settings, instructions: str, scratchpad_path: Path | None) -> int:
    """Interactive session; Ctrl-C stops the current reply but keeps the session."""

    history = initialize_conversation(_scratchpad_system_message(settings, instructions, scratchpad_path))
    engine = ConversationEngine(OpenAIProvider(settings), default_model=settings.model)
    callbacks = _stdout_callbacks()

    print(f"{settings.assistant_name}: How may I be of assistance? (empty line to quit)")
    while True:
        user_input = (await asyncio.to_thread(input, "> ")).strip()
        if not user_input:
            return 0
        history.append(Message.user(user_input))
        with _cancel_on_sigint() as cancel_event:
            try:
                result = await engine.run(history, callbacks=callbacks, cancel_event=cancel_event)
            except ConversationCancelledError:
                history.pop()
                print("\n[reply cancelled]", file=sys.stderr)
                continue
        history.append(Message.assistant(result))


async def _suggest(settings: Settings, path: Path) -> int:
    history = initialize_conversation(
        _scratchpad_system_message(settings, SUGGEST_IMPROVEMENTS_INSTRUCTIONS, path)
    )
    history.append(Message.user(SUGGEST_IMPROVEMENTS_PROMPT))
    engine = ConversationEngine(OpenAIProvider(settings), default_model=settings.model)
    with _cancel_on_sigint() as cancel_event:
        try:
            await engine.run(history, callbacks=_stdout_callbacks(), cancel_event=cancel_event)
        except ConversationCancelledError:
            print("\ncancelled", file=sys.stderr)
            return EXIT_CANCELLED
    return 0


@contextlib.contextmanager
def _cancel_on_sigint() -> Iterator[asyncio.Event]:
    """Yield an event that Ctrl-C sets instead of interrupting the loop."""

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        installed = True
    except NotImplementedError:
        # No loop signal handlers on this platform; Ctrl-C aborts outright.
        installed = False
    try:
        yield cancel_event
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _run_cancellable(indexer: RepositoryIndexer, files: list[SourceFile]) -> IndexingReport:
    """Run an indexing batch that Ctrl-C stops cooperatively."""

    with _cancel_on_sigint() as cancel_event:
        return await indexer.index_files(files, cancel_event=cancel_event)


def _summarize(report: IndexingReport) -> int:
    print(file=sys.stderr)
    for path in report.skipped_files:
        print(f"skipped {path} due to excessive size", file=sys.stderr)
    for path, reason in report.failed_files.items():
        print(f"failed to index {path}: {reason}", file=sys.stderr)
    if report.cancelled:
        print(
            "Repository did not finish indexing and you will experience degraded query capabilities. "
            "Run `juno delete-index` to remove the partial index.",
            file=sys.stderr,
        )
        return EXIT_CANCELLED
    print(
        f"Indexed {len(report.indexed_files)} files ({report.chunks_indexed} chunks), "
        f"{len(report.unchanged_files)} unchanged."
    )
    return 0


def _print_progress(done: int, total: int) -> None:
    value = round(100 * done / total) if total else 100
    print(f"\rJuno indexing: {value}%", end="", file=sys.stderr, flush=True)


def _print_event(event: UIEvent) -> None:
    print(f"[{event.content}]", file=sys.stderr, flush=True)


def _stdout_callbacks() -> ConversationCallbacks:
    return ConversationCallbacks(
        on_chunk=lambda delta: print(delta, end="", flush=True),
        on_end=lambda content: print() if content else None,
        on_error=lambda error: LOGGER.warning("%s", error),
    )


def main(argv: list[str] | None = None) -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        exit_code = asyncio.run(run(args, settings))
    except (ConfigurationError, AggregateConfigurationMissingError) as exc:
        keys = getattr(exc, "settings_keys", None) or [exc.settings_key]
        hint = f" Set {', '.join(keys)} in the environment or a .env file."
        print(f"{exc}.{hint}", file=sys.stderr)
        raise SystemExit(2) from exc
    except JunoError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\ncancelled", file=sys.stderr)
        raise SystemExit(EXIT_CANCELLED) from None
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
