import unittest
from pathlib import Path
import sys
import os
import io
import json
import tempfile
from contextlib import redirect_stderr, redirect_stdout

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from cli.config import parse_entries, resolve_out_path
from cli.main import EXIT_BAD_ROOT, EXIT_NO_ENTRY, EXIT_OK, format_endpoint, main
from routemap import EndpointDescriptor, ParamType


def write_file(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def run_main(argv):
    stdout = io.StringIO()
    stderr = io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        code = main(argv)
    return code, stdout.getvalue(), stderr.getvalue()


SERVER_JS = """
const express = require('express');
const app = express();
app.get('/items/:id', (req, res) => {
  const verbose = req.query.verbose === 'true';
  res.json({ id: req.params.id, verbose });
});
app.post('/items', (req, res) => {
  const { title } = req.body;
  res.status(201).json({ title });
});
"""


class TestConfig(unittest.TestCase):
    def test_parse_entries(self):
        self.assertEqual(parse_entries(None), [])
        self.assertEqual(parse_entries(["a.js,b.js", " a.js ", "c.ts"]), ["a.js", "b.js", "c.ts"])

    def test_resolve_out_path(self):
        workspace = Path("/tmp/ws")
        root = Path("/srv/shop-api")
        self.assertEqual(
            resolve_out_path(root, None, workspace_root=workspace),
            Path("/tmp/ws/route-map/shop-api/endpoints.json").resolve(),
        )
        self.assertEqual(
            resolve_out_path(root, "workspace/custom", workspace_root=workspace),
            Path("/tmp/ws/custom/endpoints.json").resolve(),
        )
        self.assertEqual(
            resolve_out_path(root, "/tmp/elsewhere/api.json", workspace_root=workspace),
            Path("/tmp/elsewhere/api.json").resolve(),
        )


class TestFormatting(unittest.TestCase):
    def test_format_endpoint(self):
        endpoint = EndpointDescriptor(
            method="GET",
            url="/items/:id",
            headers=("authorization",),
            request_data_type="params",
            param_types=(ParamType("id", "number", True),),
            query_param_types=(ParamType("verbose", "boolean", False),),
            body_param_types=(),
        )
        line = format_endpoint(endpoint)
        self.assertIn("GET", line)
        self.assertIn("/items/:id", line)
        self.assertIn("[params]", line)
        self.assertIn("params(id:number)", line)
        self.assertIn("query(verbose:boolean?)", line)
        self.assertIn("headers(authorization)", line)
        self.assertNotIn("body(", line)


class TestCli(unittest.TestCase):
    def test_scan_writes_catalogue_and_prints_json(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve() / "shop"
            write_file(root, "server.js", SERVER_JS)
            out = Path(temp_dir).resolve() / "out" / "catalogue.json"

            code, stdout, _ = run_main(["scan", str(root), "--out", str(out), "--quiet", "--json"])
            self.assertEqual(code, EXIT_OK)
            printed = json.loads(stdout)
            self.assertEqual([(item["method"], item["url"]) for item in printed], [
                ("GET", "/items/:id"),
                ("POST", "/items"),
            ])
            self.assertEqual(printed[1]["bodyParamTypes"], [{"name": "title", "type": "string", "required": True}])

            saved = json.loads(out.read_text(encoding="utf-8"))
            self.assertEqual(saved["meta"]["entry_files"], ["server.js"])
            self.assertEqual(list(saved["meta"]["file_hashes"]), ["server.js"])
            self.assertEqual(saved["endpoints"], printed)

    def test_scan_summary_output(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve() / "shop"
            write_file(root, "server.js", SERVER_JS)
            out = Path(temp_dir).resolve() / "out"

            code, stdout, _ = run_main(["scan", str(root), "--out", str(out), "--quiet"])
            self.assertEqual(code, EXIT_OK)
            self.assertIn("2 endpoints from 1 file", stdout)
            self.assertIn("/items/:id", stdout)
            self.assertIn(f"catalogue: {out / 'endpoints.json'}", stdout)
            self.assertTrue((out / "endpoints.json").exists())

    def test_scan_with_pinned_entry(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve() / "shop"
            write_file(root, "server.js", SERVER_JS)
            write_file(root, "admin/entry.js", "app.delete('/cache', (req, res) => res.end());\n")
            out = Path(temp_dir).resolve() / "out.json"

            code, stdout, _ = run_main(
                ["scan", str(root), "--entry", "admin/entry.js", "--out", str(out), "--quiet", "--json"]
            )
            self.assertEqual(code, EXIT_OK)
            self.assertEqual([(item["method"], item["url"]) for item in json.loads(stdout)], [("DELETE", "/cache")])

    def test_scan_reports_warnings(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve() / "shop"
            write_file(root, "server.js", SERVER_JS)
            write_file(root, "broken.js", "app.get('/x', (req, res) => {\n")
            out = Path(temp_dir).resolve() / "out.json"

            code, _, stderr = run_main(["scan", str(root), "--out", str(out), "--quiet", "--json"])
            self.assertEqual(code, EXIT_OK)
            self.assertIn("warning:", stderr)
            self.assertIn("broken.js", stderr)

    def test_scan_without_entry_point(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(root, "notes.txt", "nothing here\n")
            code, _, stderr = run_main(["scan", str(root), "--quiet"])
            self.assertEqual(code, EXIT_NO_ENTRY)
            self.assertIn("no backend entry point", stderr)

    def test_scan_bad_root(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            code, _, stderr = run_main(["scan", os.path.join(temp_dir, "missing"), "--quiet"])
            self.assertEqual(code, EXIT_BAD_ROOT)
            self.assertIn("error:", stderr)

    def test_entrypoints_command(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(root, "server.js", SERVER_JS)
            code, stdout, _ = run_main(["entrypoints", str(root)])
            self.assertEqual(code, EXIT_OK)
            self.assertEqual(stdout.splitlines(), ["server.js"])

    def test_entrypoints_follow_project_config(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(root, "server.js", SERVER_JS)
            write_file(root, "admin/entry.js", "app.delete('/cache', (req, res) => res.end());\n")
            write_file(root, ".routemap.json", '{"entrypoints": ["admin/entry.js"]}')
            code, stdout, _ = run_main(["entrypoints", str(root)])
            self.assertEqual(code, EXIT_OK)
            self.assertEqual(stdout.splitlines(), ["admin/entry.js"])

            write_file(root, ".routemap.json", '{"exclude_dirs": ["admin"]}')
            code, stdout, _ = run_main(["entrypoints", str(root)])
            self.assertEqual(code, EXIT_OK)
            self.assertEqual(stdout.splitlines(), ["server.js"])

            write_file(root, ".routemap.json", '{"entrypoints": ["gone.js"]}')
            code, _, stderr = run_main(["entrypoints", str(root)])
            self.assertEqual(code, EXIT_NO_ENTRY)
            self.assertIn("gone.js", stderr)

    def test_entrypoints_bad_root(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            code, _, _ = run_main(["entrypoints", os.path.join(temp_dir, "missing")])
            self.assertEqual(code, EXIT_BAD_ROOT)


if __name__ == "__main__":
    unittest.main()
