"""
Command Line Interface for NeuroScribe
======================================

This module provides the command-line interface for turning clinical
recordings and transcripts into structured notes.

Usage:
------
    # Process a recording end to end
    neuroscribe rounds.webm

    # Choose providers explicitly
    neuroscribe rounds.webm --provider assemblyai --fallback groq

    # Transcription only (no note)
    neuroscribe rounds.webm --transcribe-only

    # Analyze a transcript directly
    neuroscribe --text "Post-op day 2. GCS 15. Plan for MRI tomorrow."

CLI Design Principles:
---------------------
1. Sensible defaults (works out of the box)
2. Clear help messages
3. Progress feedback
4. Exit codes for scripting
"""

import argparse
import json
import logging
import os
import sys
from typing import Optional

from config import get_settings
from core.formatter import calculate_speaking_stats, format_labeled_transcript
from exceptions import NeuroScribeError, clinician_message
from models import DocumentationResult, EncounterType, ProcessingStatus, TranscriptionProvider
from pipeline import create_pipeline, save_result_to_file


# ANSI colors for terminal output
class Colors:
    """ANSI color codes for pretty terminal output."""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def colorize(text: str, color: str) -> str:
    """Add color to text if terminal supports it."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.ENDC}"
    return text


PROVIDER_CHOICES = [provider.value for provider in TranscriptionProvider]
ENCOUNTER_CHOICES = [encounter.value for encounter in EncounterType]


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="neuroscribe",
        description="Convert clinical recordings and transcripts into structured notes",
        epilog="Example: neuroscribe rounds.webm --provider groq --output ./notes",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "audio_file",
        nargs="?",
        help="Path to the audio file to process"
    )
    parser.add_argument(
        "--text", "-t",
        type=str,
        help="Analyze this transcript instead of an audio file"
    )

    # Output options
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output directory for results (default: settings.output_dir)"
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Don't save results to files, just print"
    )

    # Processing options
    parser.add_argument(
        "--transcribe-only",
        action="store_true",
        help="Only transcribe audio, don't generate a note"
    )
    parser.add_argument(
        "--provider", "-p",
        choices=PROVIDER_CHOICES,
        help="Primary transcription provider (default: settings.primary_provider)"
    )
    parser.add_argument(
        "--fallback", "-f",
        action="append",
        choices=PROVIDER_CHOICES,
        help="Fallback provider, repeatable and tried in order"
    )
    parser.add_argument(
        "--encounter-type", "-e",
        choices=ENCOUNTER_CHOICES,
        help="Encounter type hint for template selection"
    )
    parser.add_argument(
        "--enhance",
        action="store_true",
        help="Request AI enhancement from the local Ollama model"
    )
    parser.add_argument(
        "--ollama-model",
        type=str,
        help="Ollama model name (overrides config)"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use mock providers (no network, for demos and smoke tests)"
    )

    # Output format
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output result as JSON"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output with debug info"
    )

    return parser


def setup_logging_for_cli(verbose: bool, quiet: bool) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )


def progress_callback(status: ProcessingStatus, message: str, progress: int) -> None:
    """Print one pipeline progress update."""
    status_colors = {
        ProcessingStatus.PENDING: Colors.YELLOW,
        ProcessingStatus.TRANSCRIBING: Colors.BLUE,
        ProcessingStatus.ANALYZING: Colors.CYAN,
        ProcessingStatus.ENHANCING: Colors.HEADER,
        ProcessingStatus.COMPLETED: Colors.GREEN,
        ProcessingStatus.FAILED: Colors.RED,
    }

    color = status_colors.get(status, Colors.ENDC)
    status_str = f"[{status.value.upper():^12}]"
    print(f"{colorize(status_str, color)} {progress:3d}% {message}")


def print_documentation(documentation: DocumentationResult) -> None:
    """Print a structured note with its classification summary."""
    analysis = documentation.clinical_documentation
    summary = (
        f"Template: {analysis.suggested_template} "
        f"(confidence {analysis.confidence:.2f}, completeness {analysis.completeness_score:.0%})"
    )
    if documentation.fallback:
        summary += " [fallback]"
    print(colorize(summary, Colors.CYAN))
    print(analysis.structured_note.to_formatted_string())

    if analysis.follow_up_items:
        print(colorize("\nFollow-up:", Colors.HEADER))
        for item in analysis.follow_up_items:
            print(f"  - [{item.priority.value}] {item.item}")

    if documentation.ai_enhancement:
        print(colorize("\nAI insights:", Colors.HEADER))
        for insight in documentation.ai_enhancement.neurosurgical_insights:
            print(f"  - {insight}")


def main(args: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    setup_logging_for_cli(parsed_args.verbose, parsed_args.quiet)

    if not parsed_args.audio_file and not parsed_args.text:
        parser.error("Either audio_file or --text is required")
    if parsed_args.transcribe_only and not parsed_args.audio_file:
        parser.error("--transcribe-only requires audio_file")

    try:
        # get_settings() is cached, so overrides go in before the first call
        if parsed_args.ollama_model:
            os.environ["NEUROSCRIBE_OLLAMA_MODEL"] = parsed_args.ollama_model

        settings = get_settings()
        pipeline = create_pipeline(settings, use_mock=parsed_args.mock)
        include_enhancement = True if parsed_args.enhance else None
        output_dir = parsed_args.output or settings.output_dir

        if parsed_args.text:
            if not parsed_args.quiet:
                print(colorize("\nAnalyzing transcript...\n", Colors.CYAN))

            documentation = pipeline.analyze_only(
                parsed_args.text,
                encounter_type_hint=parsed_args.encounter_type,
                include_enhancement=include_enhancement,
            )
            if parsed_args.json:
                print(json.dumps(documentation.model_dump(mode="json"), indent=2))
            else:
                print_documentation(documentation)

        elif parsed_args.transcribe_only:
            if not parsed_args.quiet:
                print(colorize("\nTranscribing audio...\n", Colors.CYAN))

            transcription = pipeline.transcribe_only(
                parsed_args.audio_file, parsed_args.provider, parsed_args.fallback
            )
            if parsed_args.json:
                print(json.dumps(transcription.model_dump(mode="json"), indent=2))
            else:
                print(colorize("\n--- TRANSCRIPTION ---\n", Colors.HEADER))
                if transcription.has_diarization:
                    print(format_labeled_transcript(transcription.raw_utterances))
                    print(colorize("\n--- SPEAKERS ---", Colors.HEADER))
                    for stats in calculate_speaking_stats(transcription.raw_utterances):
                        print(f"   {stats.speaker}: {stats.duration_seconds:.1f}s, "
                              f"{stats.word_count} words ({stats.percentage}%)")
                else:
                    print(transcription.text)
                note = f"\n[Model: {transcription.model}"
                if transcription.fallback:
                    note += " (fallback)"
                print(colorize(note + "]", Colors.CYAN))

        else:
            if not parsed_args.quiet:
                print(colorize(f"\nProcessing: {parsed_args.audio_file}\n", Colors.CYAN))

            result = pipeline.process(
                parsed_args.audio_file,
                primary_provider=parsed_args.provider,
                fallback_providers=parsed_args.fallback,
                encounter_type_hint=parsed_args.encounter_type,
                include_enhancement=include_enhancement,
                progress_callback=None if parsed_args.quiet else progress_callback,
            )

            if result.status == ProcessingStatus.FAILED:
                print(colorize(f"\nError: {result.error_message}", Colors.RED))
                return 1

            if parsed_args.json:
                print(json.dumps(result.model_dump(mode="json"), indent=2, default=str))
            else:
                print_documentation(result.documentation)

            if not parsed_args.no_save and settings.save_transcriptions:
                saved = save_result_to_file(result, output_dir)
                if not parsed_args.quiet:
                    print(colorize(f"\nResults saved to: {output_dir}", Colors.GREEN))
                    for file_type, path in saved.items():
                        print(f"   - {file_type}: {path}")

        if not parsed_args.quiet:
            print(colorize("\nDone!\n", Colors.GREEN))
        return 0

    except NeuroScribeError as e:
        print(colorize(f"\nError: {clinician_message(e)}", Colors.RED))
        if parsed_args.verbose:
            print(colorize(f"   Details: {e.to_dict()}", Colors.YELLOW))
        return 1

    except KeyboardInterrupt:
        print(colorize("\n\nInterrupted by user", Colors.YELLOW))
        return 130

    except Exception as e:
        print(colorize(f"\nUnexpected error: {e}", Colors.RED))
        if parsed_args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main_entry() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    sys.exit(main())
