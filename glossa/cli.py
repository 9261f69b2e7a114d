"""Command line interface for the Glossa reading aid."""

from __future__ import annotations

import argparse
import asyncio
import pathlib
import re
import sys
from typing import Iterable, Optional

from .configuration import SettingsStore, get_settings
from .documents import detect_handler
from .errors import GlossaError, TranslationProviderConfigurationError
from .interaction import InteractionController
from .policy import Notice, describe_failure, summarise_report
from .providers import (
    build_block_provider,
    build_word_analyzer,
    build_word_translator,
    verify_api_key,
)
from .structures import PageReport
from .translator import PageTranslator, validate_paths


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="glossa",
        description=(
            "Replace the article of a saved web page with a translation at your "
            "proficiency level, tokenised for word lookups."
        ),
    )
    parser.add_argument(
        "input_file",
        nargs="?",
        help="Path to the saved .html page to translate.",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Language you are learning (default from settings: German).",
    )
    parser.add_argument(
        "-n",
        "--native-language",
        help="Language you already speak (default from settings: English).",
    )
    parser.add_argument(
        "-l",
        "--level",
        help="CEFR level of the translation, A1 to C2 (default from settings: B1).",
    )
    parser.add_argument(
        "--no-simplify",
        action="store_true",
        help="Translate faithfully instead of simplifying for the level.",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier (default: openai).",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Chat model or deployment override for the provider.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds before a translation batch is abandoned (default: 120).",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "--analyze",
        metavar="WORD",
        help="Analyse a single word instead of translating a page.",
    )
    parser.add_argument(
        "--context",
        default="",
        help="Sentence the analysed word appears in.",
    )
    parser.add_argument(
        "--test-key",
        action="store_true",
        help="Check that the configured OpenAI API key is accepted.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def execute_translation(
    *,
    input_file: str,
    output_file: str | None,
    store: SettingsStore,
    provider: str | None,
    model: str | None,
    timeout: float,
    force_overwrite: bool,
    verbose: bool,
    provider_debug: bool,
) -> tuple[int, PageReport | None, Notice | None]:
    """Translate a saved page and return the exit code, report, and notice."""

    settings = store.read()
    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, settings.target_language)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
        _, handler = detect_handler(input_path)
    except (FileNotFoundError, GlossaError) as exc:
        return 1, None, Notice(kind="error", title=str(exc))

    document = handler.load()
    try:
        config = get_settings()
        block_provider = build_block_provider(
            provider, config, debug=provider_debug, model=model
        )
        controller = InteractionController(
            document,
            settings_store=store,
            word_translator=build_word_translator(config),
        )
        page = PageTranslator(
            document,
            provider=block_provider,
            settings_store=store,
            controller=controller,
            timeout=timeout,
            verbose=verbose,
        )
        report = asyncio.run(page.translate_page())
    except GlossaError as exc:
        return 1, None, describe_failure(exc)
    except KeyboardInterrupt:
        return 2, None, Notice(kind="error", title="Translation interrupted by user.")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    handler.save(document, output_path)
    if verbose:
        print(f"Wrote {output_path}")
    return 0, report, summarise_report(report)


def execute_analysis(
    *,
    word: str,
    context: str,
    store: SettingsStore,
    model: str | None,
    provider_debug: bool,
) -> int:
    try:
        analyzer = build_word_analyzer(get_settings(), debug=provider_debug, model=model)
        analysis = analyzer.analyze(word, context, store.read())
    except GlossaError as exc:
        print_notice(describe_failure(exc))
        return 1

    heading = " ".join(part for part in (analysis.article, word) if part)
    print(heading + (f" ({analysis.pos})" if analysis.pos else ""))
    print(f"  {analysis.translation}")
    if analysis.example:
        print(f'  "{analysis.example}"')
    if analysis.explanation:
        print(f"  {analysis.explanation}")
    return 0


def print_notice(notice: Notice) -> None:
    print(notice.title)
    if notice.hint:
        print(f"  {notice.hint}")
    if notice.show_settings:
        print("  Settings: set OPENAI_API_KEY in the environment, a .env file or glossa.yaml.")


def print_summary(report: PageReport) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    if report.title:
        print(f"  Page:            {report.title}")
    print(
        f"  Blocks:          {report.applied_blocks} rewritten / "
        f"{report.matched_blocks} matched"
    )
    print(
        f"  Batches:         {report.total_batches - report.failed_batches} translated / "
        f"{report.total_batches} total"
    )
    print(f"  Target:          {report.target_language} ({report.cefr_level})")
    print(f"  Elapsed time:    {report.elapsed_seconds:.2f} seconds")
    if report.error_messages:
        print("  Notes:")
        for message in report.error_messages:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        config = get_settings()
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return 1
    provider_debug = bool(args.debug_provider or config.GLOSSA_PROVIDER_DEBUG)

    store = SettingsStore()
    overrides = {
        "target_language": args.target_language,
        "native_language": args.native_language,
        "cefr_level": args.level,
        "simplify": False if args.no_simplify else None,
    }
    try:
        store.write(**{key: value for key, value in overrides.items() if value is not None})
    except ValueError as exc:
        parser.error(str(exc))

    if args.test_key:
        try:
            verify_api_key(config.OPENAI_API_KEY)
        except GlossaError as exc:
            print_notice(describe_failure(exc))
            return 1
        print("API key is valid.")
        return 0

    if args.analyze:
        return execute_analysis(
            word=args.analyze,
            context=args.context,
            store=store,
            model=args.model,
            provider_debug=provider_debug,
        )

    if args.input_file is None:
        parser.error("the following arguments are required: input_file")

    exit_code, report, notice = execute_translation(
        input_file=args.input_file,
        output_file=args.output,
        store=store,
        provider=args.provider,
        model=args.model,
        timeout=args.timeout or config.GLOSSA_BATCH_TIMEOUT,
        force_overwrite=args.force,
        verbose=args.verbose,
        provider_debug=provider_debug,
    )

    if notice:
        print_notice(notice)
    if report:
        print_summary(report)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
