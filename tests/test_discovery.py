import unittest
from pathlib import Path
import sys
import os
import tempfile

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from routemap import (
    DiscoveryOptions,
    ProjectAnalysisState,
    ProjectRootError,
    ProjectWalker,
    ScanTracker,
    discover_endpoints,
    scan_project,
)
from ir import load_catalogue, save_catalogue


def write_file(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def params(items):
    return [(param.name, param.type, param.required) for param in items]


def by_key(endpoints):
    return {endpoint.key: endpoint for endpoint in endpoints}


SERVER_JS = """
const express = require('express');
const userRouter = require('./userRouter');
const app = express();
app.get('/health', (req, res) => res.send('ok'));
app.use('/api/users', userRouter);
app.listen(3000);
"""

USER_ROUTER_JS = """
const express = require('express');
const router = express.Router();
router.get('/:id', (req, res) => {
  res.json({ id: req.params.id });
});
router.post('/', (req, res) => {
  const { name, email } = req.body;
  res.json({ name, email });
});
module.exports = router;
"""


def write_users_project(root: Path) -> None:
    write_file(root, "server.js", SERVER_JS)
    write_file(root, "userRouter.js", USER_ROUTER_JS)


class TestDiscoveryScenarios(unittest.TestCase):
    def test_mounted_user_router(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            endpoints = discover_endpoints(root)
            self.assertEqual(
                [endpoint.to_dict() for endpoint in endpoints],
                [
                    {
                        "method": "GET",
                        "url": "/health",
                        "headers": [],
                        "requestDataType": "none",
                        "paramTypes": [],
                        "queryParamTypes": [],
                        "bodyParamTypes": [],
                    },
                    {
                        "method": "GET",
                        "url": "/api/users/:id",
                        "headers": [],
                        "requestDataType": "params",
                        "paramTypes": [{"name": "id", "type": "string", "required": True}],
                        "queryParamTypes": [],
                        "bodyParamTypes": [],
                    },
                    {
                        "method": "POST",
                        "url": "/api/users",
                        "headers": [],
                        "requestDataType": "body",
                        "paramTypes": [],
                        "queryParamTypes": [],
                        "bodyParamTypes": [
                            {"name": "name", "type": "string", "required": True},
                            {"name": "email", "type": "string", "required": True},
                        ],
                    },
                ],
            )

    def test_scan_result_lists_files(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            result = scan_project(root)
            self.assertEqual(result.project_root, str(root))
            self.assertEqual(result.entry_files, [str(root / "server.js"), str(root / "userRouter.js")])
            self.assertEqual(result.analyzed_files, [str(root / "server.js"), str(root / "userRouter.js")])
            self.assertEqual(result.diagnostics, [])

    def test_repeated_scans_are_identical(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            first = [endpoint.to_dict() for endpoint in discover_endpoints(root)]
            second = [endpoint.to_dict() for endpoint in discover_endpoints(root)]
            self.assertEqual(first, second)

    def test_cross_file_handlers(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(
                root,
                "server.js",
                """
const express = require('express');
const { getUser, listUsers } = require('./controllers/users');
const createUser = require('./controllers/createUser');
const orders = require('./controllers/orders');
const app = express();
app.get('/users', listUsers);
app.get('/users/:id', authenticate, getUser);
app.post('/users', createUser);
app.get('/orders/:orderId', orders.show);
function authenticate(req, res, next) { next(); }
""",
            )
            write_file(
                root,
                "controllers/users.js",
                """
exports.listUsers = (req, res) => {
  const limit = parseInt(req.query.limit);
  const search = req.query.search;
  res.json([]);
};
exports.getUser = function (req, res) {
  const token = req.headers.authorization;
  res.json({ id: req.params.id });
};
""",
            )
            write_file(
                root,
                "controllers/createUser.js",
                """
module.exports = async (req, res) => {
  const { name, age } = req.body;
  const next = age + 1;
  res.status(201).json({ name });
};
""",
            )
            write_file(
                root,
                "controllers/orders.js",
                """
function show(req, res) {
  res.json({ id: Number(req.params.orderId) });
}
module.exports = { show };
""",
            )
            endpoints = by_key(discover_endpoints(root))
            self.assertEqual(
                set(endpoints),
                {("GET", "/users"), ("GET", "/users/:id"), ("POST", "/users"), ("GET", "/orders/:orderId")},
            )
            listing = endpoints[("GET", "/users")]
            self.assertEqual(
                params(listing.query_param_types),
                [("limit", "number", False), ("search", "string", False)],
            )
            self.assertEqual(listing.request_data_type, "query")

            detail = endpoints[("GET", "/users/:id")]
            self.assertEqual(detail.headers, ("authorization",))
            self.assertEqual(params(detail.param_types), [("id", "string", True)])
            self.assertEqual(detail.request_data_type, "params")

            create = endpoints[("POST", "/users")]
            self.assertEqual(params(create.body_param_types), [("name", "string", True), ("age", "number", True)])
            self.assertEqual(create.request_data_type, "body")

            order = endpoints[("GET", "/orders/:orderId")]
            self.assertEqual(params(order.param_types), [("orderId", "number", True)])

    def test_typescript_esm_project(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(
                root,
                "src/index.ts",
                """
import express, { Request, Response } from 'express';
import usersRouter from './routes/users';
const app = express();
app.use(express.json());
app.use('/api/users', usersRouter);
app.listen(3000);
""",
            )
            write_file(
                root,
                "src/routes/users.ts",
                """
import { Router, Request, Response } from 'express';
import { createUser } from '../controllers/users.js';
const router = Router();
router.get('/', (req: Request, res: Response) => {
  const page = Number(req.query.page);
  res.json({ page });
});
router.post('/', createUser);
export default router;
""",
            )
            write_file(
                root,
                "src/controllers/users.ts",
                """
import { Request, Response } from 'express';
export const createUser = async (req: Request, res: Response) => {
  const { email, role = 'member' } = req.body as { email: string; role?: string };
  res.status(201).json({ email, role });
};
""",
            )
            endpoints = by_key(discover_endpoints(root))
            self.assertEqual(set(endpoints), {("GET", "/api/users"), ("POST", "/api/users")})
            listing = endpoints[("GET", "/api/users")]
            self.assertEqual(params(listing.query_param_types), [("page", "number", False)])
            self.assertEqual(listing.request_data_type, "query")
            create = endpoints[("POST", "/api/users")]
            self.assertEqual(
                params(create.body_param_types),
                [("email", "string", True), ("role", "string", True)],
            )

    def test_nested_mounts_seed_prefix_params(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(
                root,
                "server.js",
                """
const express = require('express');
const orgs = require('./routes/orgs');
const app = express();
app.use('/orgs/:orgId', orgs);
""",
            )
            write_file(
                root,
                "routes/orgs.js",
                """
const express = require('express');
const members = require('./members');
const router = express.Router({ mergeParams: true });
router.get('/', (req, res) => res.json([]));
router.use('/members', members);
module.exports = router;
""",
            )
            write_file(
                root,
                "routes/members.js",
                """
const router = require('express').Router({ mergeParams: true });
router.get('/:memberId', (req, res) => {
  res.json({ org: req.params.orgId, member: req.params.memberId });
});
module.exports = router;
""",
            )
            endpoints = discover_endpoints(root)
            self.assertEqual(
                [endpoint.key for endpoint in endpoints],
                [("GET", "/orgs/:orgId"), ("GET", "/orgs/:orgId/members/:memberId")],
            )
            self.assertEqual(params(endpoints[0].param_types), [("orgId", "string", True)])
            self.assertEqual(endpoints[0].request_data_type, "params")
            self.assertEqual(
                params(endpoints[1].param_types),
                [("orgId", "string", True), ("memberId", "string", True)],
            )

    def test_router_comes_before_trailing_middleware(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(
                root,
                "server.js",
                """
const express = require('express');
const cors = require('cors');
const userRouter = require('./userRouter');
const errorHandler = require('./errorHandler');
const auth = require('./auth');
const app = express();
app.use('/api/users', userRouter, errorHandler);
app.use('/admin/users', cors, auth, userRouter);
""",
            )
            write_file(
                root,
                "userRouter.js",
                """
const router = require('express').Router();
router.get('/:id', (req, res) => res.json({ id: req.params.id }));
module.exports = router;
""",
            )
            write_file(root, "errorHandler.js", "module.exports = (err, req, res, next) => res.status(500).end();\n")
            write_file(root, "auth.js", "module.exports = (req, res, next) => next();\n")
            endpoints = scan_project(root, DiscoveryOptions(entrypoints=["server.js"])).endpoints
            self.assertEqual(
                [(endpoint.method, endpoint.url, endpoint.request_data_type) for endpoint in endpoints],
                [("GET", "/api/users/:id", "params"), ("GET", "/admin/users/:id", "params")],
            )

    def test_cyclic_imports_terminate(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(
                root,
                "index.js",
                """
const express = require('express');
const app = express();
const register = require('./b');
app.get('/a', (req, res) => res.send('a'));
module.exports = app;
""",
            )
            write_file(
                root,
                "b.js",
                """
const app = require('./index');
function register(server) {
  server.get('/b', (req, res) => res.send('b'));
}
module.exports = register;
""",
            )
            result = scan_project(root)
            self.assertEqual(sorted(endpoint.key for endpoint in result.endpoints), [("GET", "/a"), ("GET", "/b")])
            self.assertEqual(sorted(result.analyzed_files), [str(root / "b.js"), str(root / "index.js")])

    def test_invalid_file_is_skipped(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            write_file(root, "broken.js", "app.get('/broken', (req, res) => {\n")
            result = scan_project(root)
            keys = {endpoint.key for endpoint in result.endpoints}
            self.assertIn(("GET", "/health"), keys)
            self.assertIn(("POST", "/api/users"), keys)
            self.assertNotIn(("GET", "/broken"), keys)
            self.assertEqual(
                [(d.kind, d.path) for d in result.diagnostics],
                [("parse_failure", str(root / "broken.js"))],
            )
            self.assertEqual(len(result.warnings), 1)

    def test_oversized_file_is_skipped(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            result = scan_project(root, DiscoveryOptions(max_file_bytes=len(SERVER_JS) + 10))
            self.assertEqual(
                [(d.kind, d.path) for d in result.diagnostics],
                [("too_large", str(root / "userRouter.js"))],
            )
            self.assertEqual([endpoint.key for endpoint in result.endpoints], [("GET", "/health")])

    def test_config_pins_entry_points(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            write_file(root, "app/start.js", "app.get('/only', (req, res) => res.send(req.query.x));\n")
            write_file(root, ".routemap.json", '{\n  // only this one\n  "entrypoints": ["app/start.js"]\n}\n')
            result = scan_project(root)
            self.assertEqual(result.entry_files, [str(root / "app/start.js")])
            self.assertEqual([endpoint.key for endpoint in result.endpoints], [("GET", "/only")])

    def test_explicit_entries_override_config(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            write_file(root, ".routemap.json", '{"entrypoints": ["missing.js"]}')
            result = scan_project(root, DiscoveryOptions(entrypoints=["server.js"]))
            self.assertEqual(result.entry_files, [str(root / "server.js")])
            self.assertEqual(len(result.endpoints), 3)

    def test_missing_pinned_entry_reports_and_returns_nothing(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            result = scan_project(root, DiscoveryOptions(entrypoints=["nope.js"]))
            self.assertEqual(result.entry_files, [])
            self.assertEqual(result.endpoints, [])
            self.assertEqual([d.kind for d in result.diagnostics], ["config"])

    def test_no_entry_point(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(root, "README.md", "# nothing\n")
            result = scan_project(root)
            self.assertEqual(result.entry_files, [])
            self.assertEqual(result.endpoints, [])

    def test_bad_root_raises(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(ProjectRootError):
                scan_project(Path(temp_dir) / "missing")

    def test_catalogue_round_trip(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve() / "api"
            write_users_project(root)
            catalogue = scan_project(root).to_catalogue()
            meta = catalogue["meta"]
            self.assertEqual(meta["entry_files"], ["server.js", "userRouter.js"])
            self.assertEqual(sorted(meta["file_hashes"]), ["server.js", "userRouter.js"])
            self.assertEqual(len(catalogue["endpoints"]), 3)
            out = Path(temp_dir) / "out" / "endpoints.json"
            save_catalogue(out, catalogue)
            self.assertEqual(load_catalogue(out), catalogue)


def write_layered_project(root: Path) -> None:
    write_file(
        root,
        "server.js",
        "const a = require('./routes/a');\nconst b = require('./routes/b');\nconst pkg = require('lodash');\n"
        "app.use('/a', a);\napp.use('/b', b);\n",
    )
    write_file(
        root,
        "routes/a.js",
        "const shared = require('../lib/shared');\n"
        "router.get('/:id', shared.show);\nmodule.exports = router;\n",
    )
    write_file(
        root,
        "routes/b.js",
        "const shared = require('../lib/shared');\nconst a = require('./a');\n"
        "router.post('/', (req, res) => res.json(req.body.name));\nmodule.exports = router;\n",
    )
    write_file(
        root,
        "lib/shared.js",
        "exports.show = (req, res) => res.json({ id: Number(req.params.id) });\n",
    )


class TestWalker(unittest.TestCase):
    def test_thread_pool_walks_every_import(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_layered_project(root)
            expected = [
                str(root / "server.js"),
                str(root / "routes/a.js"),
                str(root / "lib/shared.js"),
                str(root / "routes/b.js"),
            ]
            for workers in (1, 4):
                state = ProjectAnalysisState(project_root=str(root))
                walker = ProjectWalker(state, max_file_bytes=100_000, workers=workers)
                walker.walk([str(root / "server.js")])
                self.assertEqual(state.analyzed_files, expected)
                self.assertEqual(sorted(state.visited), sorted(expected))
                self.assertEqual(state.diagnostics, [])

    def test_thread_pool_survives_cycles(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_file(root, "a.js", "require('./b');\n")
            write_file(root, "b.js", "require('./c');\n")
            write_file(root, "c.js", "require('./a');\n")
            state = ProjectAnalysisState(project_root=str(root))
            ProjectWalker(state, max_file_bytes=100_000, workers=3).walk([str(root / "a.js")])
            self.assertEqual(state.analyzed_files, [str(root / name) for name in ("a.js", "b.js", "c.js")])

    def test_scan_is_the_same_with_and_without_threads(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_layered_project(root)
            sequential = scan_project(root, DiscoveryOptions(entrypoints=["server.js"], workers=1))
            threaded = scan_project(root, DiscoveryOptions(entrypoints=["server.js"], workers=4))
            self.assertEqual(
                [endpoint.to_dict() for endpoint in threaded.endpoints],
                [endpoint.to_dict() for endpoint in sequential.endpoints],
            )
            self.assertEqual(threaded.analyzed_files, sequential.analyzed_files)
            self.assertEqual(len(threaded.analyzed_files), 4)
            endpoints = by_key(threaded.endpoints)
            self.assertEqual(set(endpoints), {("GET", "/a/:id"), ("POST", "/b")})
            self.assertEqual(params(endpoints[("GET", "/a/:id")].param_types), [("id", "number", True)])
            self.assertEqual(params(endpoints[("POST", "/b")].body_param_types), [("name", "string", True)])

    def test_claim_is_exclusive(self):
        state = ProjectAnalysisState(project_root="/tmp/project")
        self.assertTrue(state.claim("/tmp/project/a.js"))
        self.assertFalse(state.claim("/tmp/project/a.js"))


class TestScanTracker(unittest.TestCase):
    def test_stale_results_are_rejected(self):
        tracker = ScanTracker()
        first = tracker.begin()
        second = tracker.begin()
        self.assertTrue(tracker.complete(second))
        self.assertFalse(tracker.complete(first))
        self.assertEqual(tracker.latest, second)

    def test_scan_project_takes_a_generation(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            write_users_project(root)
            tracker = ScanTracker()
            result = scan_project(root, tracker=tracker)
            self.assertEqual(result.generation, 1)
            self.assertTrue(tracker.complete(result.generation))


if __name__ == "__main__":
    unittest.main()
