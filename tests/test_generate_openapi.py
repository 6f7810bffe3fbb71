"""Tests for scripts/generate_openapi.py."""

import importlib.util
import json
from pathlib import Path


def load_script():
    script_path = Path(__file__).parent.parent / "scripts" / "generate_openapi.py"
    spec = importlib.util.spec_from_file_location("generate_openapi", script_path)
    assert spec is not None
    assert spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_generate_openapi_writes_schema(tmp_path):
    out = tmp_path / "nested" / "openapi.json"

    written = load_script().main(["--out", str(out)])

    assert written == out
    schema = json.loads(out.read_text(encoding="utf-8"))
    assert schema["openapi"] == "3.1.0"
    assert schema["info"]["title"] == "HTML to PDF Service API"
    assert {"/", "/health", "/generate-pdf"} <= set(schema["paths"])
    assert "PdfRequest" in schema["components"]["schemas"]
    assert out.read_text(encoding="utf-8").endswith("}\n")


def test_generate_openapi_is_deterministic(tmp_path):
    script = load_script()

    first = script.main(["--out", str(tmp_path / "a.json")]).read_text(encoding="utf-8")
    second = script.main(["--out", str(tmp_path / "b.json")]).read_text(encoding="utf-8")

    assert first == second
