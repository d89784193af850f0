"""Compiler bridge: turns buffer snapshots into preview documents.

CompilerBridge is the contract the debounce scheduler calls. The
TemplateCompiler implementation prepares React/TSX component source for
in-browser execution — fences and prose stripped, module imports mapped
to UMD globals, the default export bound to a global — and renders it
into a self-contained HTML document. Transpilation itself happens inside
the sandboxed document.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from livesynth.buffer import BufferSnapshot
from livesynth.schemas.preview import CompileResult

logger = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).parent / "templates"

# UMD bundles loaded into the preview document, keyed by dependency name
_RUNTIME_SCRIPTS: dict[str, str] = {
    "react": "https://unpkg.com/react@18/umd/react.development.js",
    "react-dom": "https://unpkg.com/react-dom@18/umd/react-dom.development.js",
    "lucide-react": "https://unpkg.com/lucide-react@latest/dist/umd/lucide-react.js",
    "clsx": "https://unpkg.com/clsx@2.1.0/dist/clsx.min.js",
    "babel": "https://unpkg.com/@babel/standalone@7.24.0/babel.min.js",
    "tailwind": "https://cdn.tailwindcss.com",
}

# Module specifier -> global the UMD bundle exposes
_MODULE_GLOBALS: dict[str, str] = {
    "react": "React",
    "react-dom": "ReactDOM",
    "react-dom/client": "ReactDOM",
    "lucide-react": "LucideReact",
    "clsx": "clsx",
}

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?")
_CODE_START_RE = re.compile(r"^(import|interface|type|const|let|function|export|class|//|/\*)")
_IMPORT_RE = re.compile(
    r"^[ \t]*import[ \t]+(?P<clause>[^;'\"]+?)[ \t]+from[ \t]+['\"](?P<module>[^'\"]+)['\"];?[ \t]*$",
    re.MULTILINE,
)
_SIDE_EFFECT_IMPORT_RE = re.compile(r"^[ \t]*import[ \t]+['\"][^'\"]+['\"];?[ \t]*$", re.MULTILINE)
_EXPORT_DEFAULT_RE = re.compile(r"\bexport[ \t]+default[ \t]+")
_EXPORT_RE = re.compile(r"^([ \t]*)export[ \t]+(?=(const|let|var|function|class|interface|type|enum|async)\b)", re.MULTILINE)
_COMPONENT_DECL_RE = re.compile(
    r"^(?:function[ \t]+|const[ \t]+|let[ \t]+|class[ \t]+)(?P<name>[A-Z]\w*)", re.MULTILINE
)

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_TEMPLATE_LITERAL_RE = re.compile(r"`(?:\\.|[^`\\])*`", re.DOTALL)
_STRING_RE = re.compile(r"'(?:\\.|[^'\\\n])*'|\"(?:\\.|[^\"\\\n])*\"")
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")

# A literal </script inside generated code would close the inline script tag
_SCRIPT_CLOSE_RE = re.compile(r"</(script)", re.IGNORECASE)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")": "(", "]": "[", "}": "{"}


class CompilerBridge(ABC):
    """Opaque, possibly slow compile step between buffer and preview."""

    @abstractmethod
    async def compile(self, snapshot: BufferSnapshot) -> CompileResult:
        """Compile *snapshot* into a renderable artifact.

        Returns a failed CompileResult for source that cannot be compiled;
        raising is treated the same way by the scheduler.
        """


def extract_component_code(response: str) -> str:
    """Strip markdown fences and any prose before the first code line."""
    code = _FENCE_RE.sub("", response).strip()
    lines = code.split("\n")
    for index, line in enumerate(lines):
        if _CODE_START_RE.match(line.lstrip()):
            return "\n".join(lines[index:])
    return code


def check_structure(code: str) -> str | None:
    """Return a reason if *code* is structurally incomplete, else None.

    Strings, template literals and comments are blanked out first, then
    (), [] and {} must nest and close.
    """
    scrubbed = _BLOCK_COMMENT_RE.sub(" ", code)
    if "/*" in scrubbed:
        return "Unterminated block comment"
    scrubbed = _TEMPLATE_LITERAL_RE.sub('""', scrubbed)
    if scrubbed.count("`") % 2:
        return "Unterminated template literal"
    scrubbed = _STRING_RE.sub('""', scrubbed)
    scrubbed = _LINE_COMMENT_RE.sub("", scrubbed)

    stack: list[tuple[str, int]] = []
    line = 1
    for ch in scrubbed:
        if ch == "\n":
            line += 1
        elif ch in _OPENERS:
            stack.append((ch, line))
        elif ch in _CLOSERS:
            if not stack or stack[-1][0] != _CLOSERS[ch]:
                return f"Unexpected '{ch}' on line {line}"
            stack.pop()
    if stack:
        opener, opened_on = stack[-1]
        return f"Unclosed '{opener}' from line {opened_on} (source incomplete)"
    return None


def detect_dependencies(code: str) -> list[str]:
    """Runtime libraries the component needs in the preview document."""
    dependencies = ["react", "react-dom"]
    if "lucide-react" in code:
        dependencies.append("lucide-react")
    if "clsx" in code or "cn(" in code:
        dependencies.append("clsx")
    return dependencies


def _rewrite_import(match: re.Match[str], unresolved: list[str]) -> str:
    clause = match.group("clause").strip()
    module = match.group("module")

    if clause.startswith("type ") or clause.startswith("type{"):
        return ""

    global_name = _MODULE_GLOBALS.get(module)
    if global_name is None:
        unresolved.append(module)
        return f"// livesynth: unresolved import from '{module}'"

    statements: list[str] = []
    default_part = clause
    named_part = ""
    if "{" in clause:
        default_part, _, rest = clause.partition("{")
        named_part = rest.rsplit("}", 1)[0]
        default_part = default_part.strip().rstrip(",").strip()

    if default_part.startswith("* as "):
        statements.append(f"const {default_part[5:].strip()} = {global_name};")
    elif default_part and default_part != global_name:
        statements.append(f"const {default_part} = {global_name};")

    specifiers = []
    for spec in named_part.split(","):
        spec = spec.strip()
        if not spec or spec.startswith("type "):
            continue
        if " as " in spec:
            original, alias = (part.strip() for part in spec.split(" as ", 1))
            specifiers.append(f"{original}: {alias}")
        else:
            specifiers.append(spec)
    if specifiers:
        statements.append(f"const {{ {', '.join(specifiers)} }} = {global_name};")

    return " ".join(statements)


def preprocess_code(code: str) -> tuple[str, str | None, list[str]]:
    """Make component source executable against UMD globals.

    Returns:
        (processed_source, fallback_component_name, unresolved_modules).
        The fallback name is the last capitalized top-level declaration,
        used when the source has no default export yet.
    """
    unresolved: list[str] = []
    processed = _IMPORT_RE.sub(lambda m: _rewrite_import(m, unresolved), code)
    processed = _SIDE_EFFECT_IMPORT_RE.sub("", processed)

    processed = _EXPORT_RE.sub(r"\1", processed)

    fallback: str | None = None
    if _EXPORT_DEFAULT_RE.search(processed):
        processed = _EXPORT_DEFAULT_RE.sub("window.GeneratedComponent = ", processed, count=1)
    else:
        names = [m.group("name") for m in _COMPONENT_DECL_RE.finditer(processed)]
        if names:
            fallback = names[-1]
    return processed, fallback, unresolved


class TemplateCompiler(CompilerBridge):
    """Renders component source into a self-contained preview document."""

    def __init__(
        self,
        *,
        props: dict[str, Any] | None = None,
        title: str = "livesynth preview",
        include_tailwind: bool = True,
        template_name: str = "document.html.j2",
    ) -> None:
        self._props = props or {}
        self._title = title
        self._include_tailwind = include_tailwind
        env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._template = env.get_template(template_name)

    async def compile(self, snapshot: BufferSnapshot) -> CompileResult:
        code = extract_component_code(snapshot.text)
        if not code.strip():
            return CompileResult.failed("Nothing to compile yet")

        problem = check_structure(code)
        if problem:
            return CompileResult.failed(problem)

        processed, fallback, unresolved = preprocess_code(code)
        if fallback is None and "window.GeneratedComponent" not in processed:
            return CompileResult.failed("No component found to render")
        if unresolved:
            logger.info("Preview cannot resolve imports: %s", ", ".join(sorted(set(unresolved))))

        dependencies = detect_dependencies(code)
        document = self._render_document(processed, fallback, dependencies, snapshot.length)
        return CompileResult.ok(document, dependencies)

    def _render_document(
        self,
        source: str,
        fallback: str | None,
        dependencies: list[str],
        snapshot_length: int,
    ) -> str:
        scripts = [_RUNTIME_SCRIPTS[name] for name in dependencies if name in _RUNTIME_SCRIPTS]
        scripts.append(_RUNTIME_SCRIPTS["babel"])
        if self._include_tailwind:
            scripts.append(_RUNTIME_SCRIPTS["tailwind"])

        return self._template.render(
            title=self._title,
            scripts=scripts,
            source=_SCRIPT_CLOSE_RE.sub(r"<\\/\1", source),
            fallback_component=fallback,
            props_json=json.dumps(self._props),
            filename="component.tsx",
            snapshot_length=snapshot_length,
        )
