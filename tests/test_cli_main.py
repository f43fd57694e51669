from __future__ import annotations

import json

import pytest

from loudscan.cli.main import EXIT_BAD_ARGS, EXIT_CACHE_ERROR, EXIT_OK, main
from loudscan.corpus.cache import ResultCache
from loudscan.types import Measurement
from tests.conftest import write_corpus, write_tone


def _exit_code(argv) -> int:
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_measure_folder_with_cache(tmp_path, capsys):
    corpus = tmp_path / "corpus"
    write_corpus(corpus, ["a", "b", "c"], seconds=1.0)
    (corpus / "broken.wav").write_bytes(b"not audio at all" * 16)
    cache_path = tmp_path / "cache.json"

    code = _exit_code(["measure", str(corpus), str(cache_path), "--ext", "wav", "--workers", "2"])
    assert code == EXIT_OK
    captured = capsys.readouterr()
    assert sum("LUFS" in line for line in captured.out.splitlines()) == 3
    assert "broken: failed" in captured.err
    assert ResultCache.load(cache_path).keys() == ["a", "b", "c"]

    code = _exit_code(["measure", str(corpus), str(cache_path), "--ext", ".wav"])
    assert code == EXIT_OK
    out = capsys.readouterr().out.splitlines()
    assert sum(line.endswith("skipping") for line in out) == 3


def test_measure_single_file_without_cache(tmp_path, capsys):
    path = write_tone(tmp_path / "tone.wav", seconds=1.0)
    assert _exit_code(["measure", str(path)]) == EXIT_OK
    out = capsys.readouterr().out.splitlines()
    assert len(out) == 1 and out[0].startswith("[0] tone:")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["tone.wav"]


def test_measure_malformed_cache(tmp_path, capsys):
    corpus = tmp_path / "corpus"
    write_corpus(corpus, ["a"], seconds=1.0)
    cache_path = tmp_path / "cache.json"
    cache_path.write_text("[1, 2", encoding="utf-8")
    code = _exit_code(["measure", str(corpus), str(cache_path), "--ext", "wav"])
    assert code == EXIT_CACHE_ERROR
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "malformed" in captured.err
    assert cache_path.read_text(encoding="utf-8") == "[1, 2"


def test_measure_missing_path(tmp_path, capsys):
    assert _exit_code(["measure", str(tmp_path / "nope")]) == EXIT_BAD_ARGS
    assert "does not exist" in capsys.readouterr().err


def test_measure_writes_summary(tmp_path, capsys):
    corpus = tmp_path / "corpus"
    write_corpus(corpus, ["a", "b"], seconds=1.0)
    summary_path = tmp_path / "summary.json"
    code = _exit_code([
        "measure", str(corpus), "--ext", "wav", "--summary-json", str(summary_path)
    ])
    assert code == EXIT_OK
    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["totals"]["status_counts"]["measured"] == 2
    assert summary["cache_file"] is None


def test_inspect_cache(tmp_path, capsys):
    cache_path = tmp_path / "cache.json"
    ResultCache({"a": Measurement(-14.0, 10.0), "b": Measurement(-16.0, 20.0)}).snapshot(cache_path)
    assert _exit_code(["inspect-cache", str(cache_path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "Entries: 2" in out
    assert "mean -15.00 LUFS" in out

    assert _exit_code(["inspect-cache", str(cache_path), "--json"]) == EXIT_OK
    summary = json.loads(capsys.readouterr().out)
    assert summary["entries"] == 2


def test_inspect_cache_errors(tmp_path, capsys):
    assert _exit_code(["inspect-cache", str(tmp_path / "missing.json")]) == EXIT_BAD_ARGS
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    assert _exit_code(["inspect-cache", str(bad)]) == EXIT_CACHE_ERROR
