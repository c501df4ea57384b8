"""Tests for the constellation command line."""

import json

import pytest
from click.testing import CliRunner

from constellation.cli import main
from constellation.config import ExportConfig, ResolutionConfig


@pytest.fixture
def graph_file(tmp_path, two_triangles):
    keys, edges = two_triangles
    path = tmp_path / "graph.json"
    path.write_text(json.dumps({
        "generated_at": "2024-01-01T00:00:00Z",
        "nodes": [{"slug": k, "created_at": "2024-01-01T00:00:00Z", "outbound": 1} for k in keys],
        "edges": [{"source": s, "target": t} for s, t in edges],
    }))
    return path


class TestCli:
    """Test the constellation command."""

    def test_writes_snapshot(self, tmp_path, graph_file) -> None:
        out = tmp_path / "static" / "constellation.json"
        result = CliRunner().invoke(main, ["--input", str(graph_file), "--out", str(out)])

        assert result.exit_code == 0, result.output
        assert "Wrote constellation to" in result.output
        assert "(2 clusters, 6 pages, 6 links)" in result.output
        data = json.loads(out.read_text())
        assert data["totals"] == {"pages": 6, "links": 6, "clusters": 2}

    def test_pinned_timestamp_is_reproducible(self, tmp_path, graph_file) -> None:
        outputs = []
        for name in ("one.json", "two.json"):
            out = tmp_path / name
            result = CliRunner().invoke(main, [
                "--input", str(graph_file), "--out", str(out),
                "--generated-at", "2024-05-01T12:00:00Z",
            ])
            assert result.exit_code == 0, result.output
            outputs.append(out.read_bytes())
        assert outputs[0] == outputs[1]
        assert json.loads(outputs[0])["generated_at"] == "2024-05-01T12:00:00Z"

    def test_verbose_and_timing(self, tmp_path, graph_file) -> None:
        out = tmp_path / "snap.json"
        result = CliRunner().invoke(main, [
            "--input", str(graph_file), "--out", str(out), "--verbose", "--timing",
        ])
        assert result.exit_code == 0, result.output
        assert "Found 2 communities" in result.output
        assert "TIMING SUMMARY" in result.output

    def test_custom_ladder_and_sample(self, tmp_path, graph_file) -> None:
        out = tmp_path / "snap.json"
        result = CliRunner().invoke(main, [
            "--input", str(graph_file), "--out", str(out),
            "--small-resolutions", "1.2,1.0", "--sample-size", "1",
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text())
        assert all(len(c["sample"]) == 1 for c in data["clusters"])

    def test_malformed_input(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"edges": []}))
        result = CliRunner().invoke(main, ["--input", str(path), "--out", str(tmp_path / "o.json")])
        assert result.exit_code != 0
        assert "nodes" in result.output

    def test_invalid_config(self, tmp_path, graph_file) -> None:
        result = CliRunner().invoke(main, [
            "--input", str(graph_file), "--out", str(tmp_path / "o.json"),
            "--escalation-factor", "1.0",
        ])
        assert result.exit_code == 2
        assert "escalation_factor" in result.output

    def test_bad_ladder(self, tmp_path, graph_file) -> None:
        result = CliRunner().invoke(main, [
            "--input", str(graph_file), "--out", str(tmp_path / "o.json"),
            "--small-resolutions", "fast,slow",
        ])
        assert result.exit_code == 2

    def test_duplicate_slug_reported_without_traceback(self, tmp_path) -> None:
        path = tmp_path / "dup.json"
        path.write_text(json.dumps({"nodes": [{"slug": "a"}, {"slug": "a"}], "edges": []}))
        result = CliRunner().invoke(main, ["--input", str(path), "--out", str(tmp_path / "o.json")])

        assert result.exit_code == 1
        assert "repeats slug 'a'" in result.output
        assert isinstance(result.exception, SystemExit)
        assert not (tmp_path / "o.json").exists()

    def test_defaults_match_config(self) -> None:
        """Option defaults come from the config dataclasses."""
        defaults = {p.name: p.default for p in main.params}
        resolution = ResolutionConfig()
        export = ExportConfig()

        assert defaults["target_clusters"] == resolution.target_clusters
        assert defaults["small_graph_divisor"] == resolution.small_graph_divisor
        assert defaults["min_target_clusters"] == resolution.min_target_clusters
        assert defaults["small_graph_threshold"] == resolution.small_graph_threshold
        assert defaults["escalation_factor"] == resolution.escalation_factor
        assert defaults["max_escalations"] == resolution.max_escalations
        assert defaults["nodes_per_bucket"] == resolution.nodes_per_bucket
        assert defaults["min_buckets"] == resolution.min_buckets
        assert defaults["max_buckets"] == resolution.max_buckets
        assert defaults["seed"] == resolution.random_seed
        assert defaults["max_sweeps"] == resolution.max_sweeps
        assert defaults["sample_size"] == export.sample_size
        assert defaults["indent"] == export.indent
        assert tuple(float(r) for r in defaults["large_resolutions"].split(",")) \
            == resolution.large_graph_resolutions
        assert tuple(float(r) for r in defaults["small_resolutions"].split(",")) \
            == resolution.small_graph_resolutions
