from __future__ import annotations

import re

ROUTEMAP_CONFIG_FILES = (".routemap.json", "routemap.json")

DEFAULT_MAX_FILE_BYTES = 1_000_000
DEFAULT_WORKERS = 4

EXCLUDE_DIRS = {
    ".cache",
    ".git",
    ".idea",
    ".nyc_output",
    ".vscode",
    "__pycache__",
    "assets",
    "build",
    "coverage",
    "dist",
    "logs",
    "node_modules",
    "public",
    "static",
    "temp",
    "tmp",
    "uploads",
}

SOURCE_EXTENSIONS = (".js", ".ts", ".mjs", ".cjs", ".jsx", ".tsx")
DECLARATION_SUFFIX = ".d.ts"

# Order matters: tried in sequence when a specifier has no usable extension.
RESOLVE_EXTENSIONS = (".js", ".ts", ".mjs", ".jsx", ".tsx", ".cjs")
TS_SIBLING_EXTENSIONS = {
    ".js": (".ts", ".tsx"),
    ".jsx": (".tsx",),
}

ENTRY_SEARCH_DIRS = ("", "src", "server", "backend", "api")
ENTRY_NAME_PRIORITY = ("server", "index", "app", "main")
ENTRY_EXTENSIONS = (".js", ".ts", ".mjs", ".cjs")

FRAMEWORK_SIGNATURE_RE = re.compile(
    r"|".join(
        (
            r"require\(\s*['\"]express['\"]\s*\)",
            r"import\s+\w+\s+from\s+['\"]express['\"]",
            r"import\s+\*\s+as\s+\w+\s+from\s+['\"]express['\"]",
            r"import\s*\{[^}]*\}\s*from\s+['\"]express['\"]",
            r"\bexpress\(\s*\)",
            r"\.get\s*\(",
            r"\.post\s*\(",
            r"\.put\s*\(",
            r"\.patch\s*\(",
            r"\.delete\s*\(",
            r"\.use\s*\(",
            r"\.listen\s*\(",
            r"\bRouter\s*\(",
        )
    )
)

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "head", "options", "all")
MOUNT_METHOD = "use"

REQUEST_BUCKETS = ("body", "query", "params")
HEADERS_PROPERTY = "headers"
HEADER_ACCESSORS = {"get", "header"}
# params and body fields are required; query fields are optional.
BUCKET_REQUIRED = {"body": True, "query": False, "params": True}

NUMERIC_COERCIONS = {"parseInt", "parseFloat", "Number"}
BOOLEAN_COERCIONS = {"Boolean"}
STRING_COERCIONS = {"String", "toString", "toLowerCase", "toUpperCase", "trim"}
ARITHMETIC_OPERATORS = {"-", "*", "/", "%", "**"}

URL_PARAM_RE = re.compile(r":([a-zA-Z_$][a-zA-Z0-9_$]*)")
TEMPLATE_PLACEHOLDER = "${...}"
