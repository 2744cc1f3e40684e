"""Tests for the command line interface (mock providers only)."""

import json

import pytest

from cli import create_parser, main

from tests.conftest import ROUNDS_TRANSCRIPT


class TestParser:

    def test_repeatable_fallbacks(self):
        args = create_parser().parse_args(["a.webm", "-p", "litellm", "-f", "groq", "-f", "assemblyai"])
        assert args.provider == "litellm"
        assert args.fallback == ["groq", "assemblyai"]

    def test_rejects_unknown_provider(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["a.webm", "--provider", "deepgram"])


class TestMain:

    def test_requires_input(self):
        with pytest.raises(SystemExit):
            main([])

    def test_analyze_text(self, capsys):
        assert main(["--mock", "--quiet", "--text", ROUNDS_TRANSCRIPT]) == 0
        output = capsys.readouterr().out
        assert "Template: neuro_rounds" in output
        assert "NEUROSURGERY ROUNDS NOTE" in output

    def test_analyze_text_as_json(self, capsys):
        assert main(["--mock", "--quiet", "--json", "--text", ROUNDS_TRANSCRIPT]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["clinical_documentation"]["suggested_template"] == "neuro_rounds"

    def test_short_text_is_an_error(self, capsys):
        assert main(["--mock", "--quiet", "--text", "GCS 15"]) == 1
        assert "too short" in capsys.readouterr().out

    def test_process_audio_and_save(self, capsys, audio_file, tmp_path):
        output_dir = tmp_path / "notes"
        assert main(["--mock", "--quiet", str(audio_file), "--output", str(output_dir)]) == 0
        assert len(list(output_dir.glob("*_result.json"))) == 1

    def test_transcribe_only(self, capsys, audio_file):
        assert main(["--mock", "--quiet", "--no-save", str(audio_file), "--transcribe-only"]) == 0
        assert "[Model: groq/mock]" in capsys.readouterr().out

    def test_missing_audio_file(self, capsys, tmp_path):
        assert main(["--mock", "--quiet", str(tmp_path / "missing.webm")]) == 1
        assert "could not be read" in capsys.readouterr().out
