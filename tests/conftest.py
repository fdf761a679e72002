"""Pytest configuration and shared fixtures."""

import asyncio
import json

import pytest

# Sample diffs for testing
SAMPLE_TS_AND_MD_DIFF = """\
diff --git a/src/app.ts b/src/app.ts
index 1234567..abcdefg 100644
--- a/src/app.ts
+++ b/src/app.ts
@@ -1,4 +1,5 @@
 import { start } from './server';
-const port = 3000;
+const port = Number(process.env.PORT);
+console.log('starting');
 start(port);
 export default port;
diff --git a/README.md b/README.md
index 1111111..2222222 100644
--- a/README.md
+++ b/README.md
@@ -1,2 +1,3 @@
 # App
+Run with PORT set.
 Docs.
"""

SAMPLE_RENAME_DIFF = """\
diff --git a/src/old_name.py b/src/new_name.py
similarity index 90%
rename from src/old_name.py
rename to src/new_name.py
index 1234567..abcdefg 100644
--- a/src/old_name.py
+++ b/src/new_name.py
@@ -10,3 +10,3 @@ def handler():
     value = compute()
-    print(value)
+    logger.info(value)
     return value
"""

SAMPLE_MIXED_DIFF = """\
diff --git a/assets/logo.png b/assets/logo.png
index 1234567..abcdefg 100644
Binary files a/assets/logo.png and b/assets/logo.png differ
diff --git a/src/removed.js b/src/removed.js
deleted file mode 100644
index 1234567..0000000
--- a/src/removed.js
+++ /dev/null
@@ -1,2 +0,0 @@
-const a = 1;
-module.exports = a;
diff --git a/src/added.js b/src/added.js
new file mode 100644
index 0000000..1234567
--- /dev/null
+++ b/src/added.js
@@ -0,0 +1,2 @@
+const b = 2;
+module.exports = b;
"""

SAMPLE_TS_FILE = """\
import { start } from './server';
const port = Number(process.env.PORT);
console.log('starting');
start(port);
export default port;
"""


def make_rule(rule_id: str = "no-console-log", severity: str = "warning", **overrides):
    """Build a valid ReviewRule with sensible defaults."""
    from cconv.models import ReviewRule

    data = {
        "id": rule_id,
        "description": "Do not leave console.log calls in production code paths.",
        "severity": severity,
        "correct": "logger.info('starting');",
        "incorrect": "console.log('starting');",
        "fix": "Replace console.log with the project logger or remove the call.",
    }
    data.update(overrides)
    return ReviewRule.model_validate(data)


def make_result(file: str = "src/app.ts", line: int = 3, rule_id: str = "no-console-log", **overrides):
    """Build a ReviewResult."""
    from cconv.models import ReviewResult

    data = {
        "file": file,
        "line": line,
        "column": 1,
        "ruleId": rule_id,
        "message": "console.log left in code",
        "severity": "warning",
    }
    data.update(overrides)
    return ReviewResult.model_validate(data)


def make_fix(start: int, end: int, fixed: str, success: bool = True, **overrides):
    """Build a FixResult."""
    from cconv.models import FixResult

    data = {
        "success": success,
        "description": "Replace console.log",
        "startLine": start,
        "endLine": end,
        "originalContent": "",
        "fixedContent": fixed,
        "reasoning": "The rule forbids console.log in production code.",
        "confidence": 90,
        "appliedChange": "replaced call",
    }
    data.update(overrides)
    return FixResult.model_validate(data)


def result_envelope(payload, session_id: str = "sess-1", **fields) -> str:
    """Agent stdout: a JSON result envelope wrapping a JSON string answer."""
    envelope = {
        "type": "result",
        "subtype": "success",
        "is_error": False,
        "session_id": session_id,
        "result": payload if isinstance(payload, str) else json.dumps(payload),
    }
    envelope.update(fields)
    return json.dumps(envelope)


class FakeProvider:
    """Stands in for AgentProvider; records calls and tracks concurrency."""

    def __init__(self, review_results=None, fixes=None, rules=None, delay: float = 0.0):
        self.review_results = review_results or {}
        self.fixes = fixes or {}
        self.rules = rules or {}
        self.delay = delay
        self.calls: list[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, call: tuple):
        self.calls.append(call)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    @staticmethod
    def _resolve(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def review_file(self, path, content, rule):
        await self._enter(("review_file", path, rule.id))
        return self._resolve(self.review_results.get((path, rule.id), []))

    async def review_diff(self, path, diff_text, rule):
        await self._enter(("review_diff", path, rule.id))
        return self._resolve(self.review_results.get((path, rule.id), []))

    async def generate_rules(self, content):
        await self._enter(("generate_rules", content))
        for marker, value in self.rules.items():
            if marker in content:
                return self._resolve(value)
        return []

    async def fix_issue(self, path, content, issue, rule):
        await self._enter(("fix_issue", path, issue.line))
        value = self.fixes[(path, issue.line)]
        if callable(value):
            value = value(content)
        return self._resolve(value)


@pytest.fixture
def sample_diff() -> str:
    """A diff touching one TypeScript file and one markdown file."""
    return SAMPLE_TS_AND_MD_DIFF


@pytest.fixture
def sample_rename_diff() -> str:
    return SAMPLE_RENAME_DIFF


@pytest.fixture
def sample_mixed_diff() -> str:
    """Binary, deleted and added files."""
    return SAMPLE_MIXED_DIFF


@pytest.fixture
def sample_rules():
    """Rules at every severity."""
    return [
        make_rule("no-eval", "critical"),
        make_rule("no-unused-vars", "error"),
        make_rule("no-console-log", "warning"),
        make_rule("prefer-const", "info"),
    ]


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """An isolated working directory with a small source tree."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.ts").write_text(SAMPLE_TS_FILE)
    (tmp_path / "src" / "util.py").write_text("def helper():\n    return 1\n")
    (tmp_path / "src" / "notes.md").write_text("# Notes\n")
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib" / "index.js").write_text("module.exports = {};\n")
    monkeypatch.chdir(tmp_path)
    return tmp_path
