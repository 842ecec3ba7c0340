"""
Tests for the `vca-stage` command line entry point.

Only paths that never reach a provider are exercised here.
"""

import json

import pytest

from vca.api import cli


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


@pytest.fixture
def product_file(tmp_path):
    return _write(tmp_path / "product.json", {
        "id": "p-1", "name": "Gum Tree", "height_cm": 180, "pot_height_cm": 15,
    })


class TestCli:

    async def test_shallow_container_prints_geometry_and_fails(self, tmp_path, product_file, capsys):
        container_file = _write(tmp_path / "container.json", {
            "id": "c-1", "name": "Low Bowl", "height_cm": 16,
        })
        args = cli._args([
            "--product", product_file,
            "--container", container_file,
            "--scene", "scene_minimal",
            "--lift", "50",
            "--settings", str(tmp_path / "settings.json"),
        ])

        code = await cli.run(args)

        out = capsys.readouterr().out
        assert code == 1
        assert "Calculated Visual Height: 181cm (Lift: 1cm)" in out
        assert "Gum Tree" in out
        assert "No base image produced." in out

    def test_missing_file_exits_with_usage_error(self, tmp_path, product_file, capsys):
        with pytest.raises(SystemExit) as info:
            cli.main(["--product", product_file, "--container", str(tmp_path / "missing.json")])

        assert info.value.code == 2
        assert "error:" in capsys.readouterr().err

    def test_invalid_record_exits_with_usage_error(self, tmp_path, product_file):
        container_file = _write(tmp_path / "container.json", {"id": "c-1", "height_cm": 30})

        with pytest.raises(SystemExit) as info:
            cli.main(["--product", product_file, "--container", container_file])

        assert info.value.code == 2
