"""Tests for file-map documents and saved stack outputs."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from confetti.errors import ConfigError
from confetti.serialize import file_maps_to_str, load_file_maps, save_outputs, str_to_file_maps


def test_save_outputs_keys_are_outputs_plus_stack_id(tmp_path: Path) -> None:
    outputs = {
        "bucket_name": {"description": "Bucket", "output_value": "site-bucket"},
        "access_key": {"description": "Key", "output_value": "AKIA"},
    }
    target = tmp_path / "www-example-com.confetti.yaml"

    written = save_outputs(target, "arn:stack", outputs)

    on_disk = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert on_disk == written
    assert set(on_disk) == {"stack_id", "bucket_name", "access_key"}
    assert on_disk["stack_id"] == "arn:stack"
    assert on_disk["bucket_name"] == "site-bucket"


def test_relative_files_resolve_against_base(tmp_path: Path) -> None:
    text = """
- s3-key: index.html
  file: public/index.html
  metadata:
    cache-control: max-age=60
- s3_key: abs.txt
  file: /tmp/abs.txt
"""
    maps = str_to_file_maps(text, base=tmp_path)

    assert maps[0]["s3_key"] == "index.html"
    assert maps[0]["file"] == tmp_path / "public" / "index.html"
    assert maps[0]["metadata"] == {"cache_control": "max-age=60"}
    assert maps[1]["file"] == Path("/tmp/abs.txt")
    assert maps[1]["metadata"] == {}


def test_json_documents_are_accepted(tmp_path: Path) -> None:
    text = '[{"s3-key": "app.js", "file": "dist/app.js", "metadata": {"content-type": "text/javascript"}}]'
    maps = str_to_file_maps(text, base=tmp_path)
    assert maps == [
        {
            "s3_key": "app.js",
            "file": tmp_path / "dist" / "app.js",
            "metadata": {"content_type": "text/javascript"},
        }
    ]


def test_load_file_maps_defaults_base_to_document_dir(tmp_path: Path) -> None:
    doc = tmp_path / "maps" / "fmap.yaml"
    doc.parent.mkdir()
    doc.write_text("- {s3_key: a.txt, file: a.txt}\n", encoding="utf-8")
    assert load_file_maps(doc)[0]["file"] == doc.parent / "a.txt"


def test_file_maps_to_str_reads_back(tmp_path: Path) -> None:
    maps = [{"s3_key": "a.txt", "file": tmp_path / "a.txt", "metadata": {"content_type": "text/plain"}}]
    assert str_to_file_maps(file_maps_to_str(maps)) == maps


@pytest.mark.parametrize(
    "text",
    ["{s3_key: a}", "- {s3_key: a.txt}", "- {file: a.txt}", "- just-a-string"],
)
def test_invalid_documents_raise_config_error(text: str) -> None:
    with pytest.raises(ConfigError):
        str_to_file_maps(text)
