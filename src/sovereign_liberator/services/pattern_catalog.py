"""Pattern catalog — the registry of proprietary platform markers.

Pure data plus matching helpers; no I/O.  The catalog is an immutable
object so callers (and tests) can inject their own ruleset instead of
mutating module state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

# ── Default rules ───────────────────────────────────────────────────────────

_VENDOR_MODULE = r"(?:@lovable/|@gptengineer/|@bolt/|lovable-|gptengineer|gpt-engineer|bolt-core)"

IMPORT_PATTERNS: tuple[str, ...] = (
    # import { x } from "lovable-tagger";   import * as y from '@lovable/core'
    rf"""^[ \t]*import\s+[^;'"]*?\s+from\s+['"]{_VENDOR_MODULE}[^'"]*['"][ \t]*;?[ \t]*\n?""",
    # import "@gptengineer/runtime";
    rf"""^[ \t]*import\s+['"]{_VENDOR_MODULE}[^'"]*['"][ \t]*;?[ \t]*\n?""",
    # const x = require("lovable-tagger");
    rf"""^[ \t]*(?:const|let|var)\s+[^=;\n]+=\s*require\(\s*['"]{_VENDOR_MODULE}[^'"]*['"]\s*\)[ \t]*;?[ \t]*\n?""",
)

PROPRIETARY_FILES: frozenset[str] = frozenset(
    {
        ".bolt",
        ".lovable",
        ".gptengineer",
        ".gpteng",
        "lovable.config",
        "gptengineer.config",
        ".lovable.json",
        ".gptengineer.json",
        "bolt.config",
        ".bolt.json",
    }
)

VENDOR_DIRS: frozenset[str] = frozenset(
    {"node_modules", ".lovable", ".gptengineer", ".bolt"}
)

LOCKFILES: frozenset[str] = frozenset(
    {
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "bun.lock",
        "npm-shrinkwrap.json",
    }
)

CONTENT_PATTERNS: tuple[str, ...] = (
    # Comment markers
    r"//[ \t]*@(?:lovable|gptengineer|bolt)\b[^\n]*\n?",
    r"/\*\s*@(?:lovable|gptengineer|bolt)\b[\s\S]*?\*/",
    # Data attributes left by visual editors
    r"""\s*data-(?:lovable|gpt|bolt)[\w-]*="[^"]*\"""",
    r"""\s*data-lov-(?:id|component|name)="[^"]*\"""",
    # Dynamic globals injected at runtime
    r"(?:window\.)?__(?:lovable|gpteng)\w*\s*=\s*[^;\n]*;?",
)

TELEMETRY_DOMAINS: tuple[str, ...] = (
    "lovable.app",
    "lovable.dev",
    "events.lovable",
    "telemetry.lovable",
    "gptengineer.app",
    "analytics.lovable",
    "tracking.lovable",
    "api.lovable.dev",
    "ws.lovable.dev",
    "cdn.lovable.dev",
    "cdn.gptengineer.app",
    "assets.lovable",
    "static.lovable",
)

SUSPICIOUS_PACKAGES: tuple[str, ...] = (
    "lovable-tagger",
    "@lovable/core",
    "@lovable/cli",
    "@lovable/runtime",
    "@lovable/plugin-react",
    "@gptengineer/core",
    "@gptengineer/cli",
    "gpt-engineer",
    "bolt-core",
    "@bolt/core",
    "lovable-analytics",
    "gpt-engineer-tracker",
)

MANIFEST_SCRIPT_TERMS: tuple[str, ...] = ("lovable", "gpteng", "bolt")

HIDDEN_PLUGIN_PATTERNS: tuple[str, ...] = (
    # lovablePlugin(), gptengineerDevPlugin({...}),
    r"\b\w*(?:lovable|gptengineer)\w*plugin\w*\([^()]*\)[ \t]*,?",
    r"\b\w*inject\w*telemetry\w*\([^()]*\)[ \t]*,?",
    r"\b\w*hidden\w*tracker\w*\([^()]*\)[ \t]*,?",
)

BUILD_CONFIG_PATTERNS: tuple[str, ...] = (
    r"""mode\s*===\s*['"]development['"]\s*&&\s*componentTagger\(\)[ \t]*,?[ \t]*\n?""",
    r"componentTagger\(\)[ \t]*,?[ \t]*\n?",
)

HTML_PATTERNS: tuple[str, ...] = (
    r"<script[^>]*(?:lovable|gptengineer|gpteng)[^>]*>[\s\S]*?</script>[ \t]*\n?",
    r"""\s*data-(?:lov|gpt)[\w-]*="[^"]*\"""",
)

PACKAGE_MANIFEST = "package.json"
BUILD_CONFIG_NAMES: frozenset[str] = frozenset(
    {"vite.config.ts", "vite.config.js", "vite.config.mjs", "vite.config.mts"}
)
HTML_ENTRY = "index.html"
DEPENDENCY_SECTIONS: tuple[str, ...] = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


# ── Catalog ─────────────────────────────────────────────────────────────────


def _compile(patterns: tuple[str, ...], flags: int = 0) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, flags) for p in patterns)


@dataclass(frozen=True)
class PatternCatalog:
    """Immutable ruleset consumed by the content sanitizer."""

    import_patterns: tuple[re.Pattern[str], ...]
    proprietary_files: frozenset[str]
    vendor_dirs: frozenset[str]
    lockfiles: frozenset[str]
    content_patterns: tuple[re.Pattern[str], ...]
    telemetry_domains: tuple[str, ...]
    suspicious_packages: tuple[str, ...]
    manifest_script_terms: tuple[str, ...]
    hidden_plugin_patterns: tuple[re.Pattern[str], ...]
    build_config_patterns: tuple[re.Pattern[str], ...]
    html_patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def build(
        cls,
        *,
        import_patterns: tuple[str, ...] = IMPORT_PATTERNS,
        proprietary_files: frozenset[str] = PROPRIETARY_FILES,
        vendor_dirs: frozenset[str] = VENDOR_DIRS,
        lockfiles: frozenset[str] = LOCKFILES,
        content_patterns: tuple[str, ...] = CONTENT_PATTERNS,
        telemetry_domains: tuple[str, ...] = TELEMETRY_DOMAINS,
        suspicious_packages: tuple[str, ...] = SUSPICIOUS_PACKAGES,
        manifest_script_terms: tuple[str, ...] = MANIFEST_SCRIPT_TERMS,
        hidden_plugin_patterns: tuple[str, ...] = HIDDEN_PLUGIN_PATTERNS,
        build_config_patterns: tuple[str, ...] = BUILD_CONFIG_PATTERNS,
        html_patterns: tuple[str, ...] = HTML_PATTERNS,
    ) -> PatternCatalog:
        """Compile a catalog; every keyword defaults to the built-in rules."""
        return cls(
            import_patterns=_compile(import_patterns, re.MULTILINE),
            proprietary_files=proprietary_files,
            vendor_dirs=vendor_dirs,
            lockfiles=lockfiles,
            content_patterns=_compile(content_patterns),
            telemetry_domains=telemetry_domains,
            suspicious_packages=suspicious_packages,
            manifest_script_terms=manifest_script_terms,
            hidden_plugin_patterns=_compile(hidden_plugin_patterns, re.IGNORECASE),
            build_config_patterns=_compile(build_config_patterns),
            html_patterns=_compile(html_patterns, re.IGNORECASE),
        )

    # ── Filename rules ──────────────────────────────────────────────────

    def is_lockfile(self, path: str) -> bool:
        return _filename(path) in self.lockfiles

    def should_remove_file(self, path: str) -> bool:
        """Return *True* for vendor config files, vendor directories and lockfiles."""
        parts = [p for p in path.split("/") if p]
        if not parts:
            return False
        if any(part in self.vendor_dirs for part in parts[:-1]):
            return True
        if parts[-1] in self.lockfiles:
            return True
        return any(
            part == marker or part.startswith(marker + ".")
            for part in parts
            for marker in self.proprietary_files
        )

    # ── Content rules ───────────────────────────────────────────────────

    def telemetry_pattern(self, domain: str) -> re.Pattern[str]:
        """Match a whole quoted literal (', " or `) that mentions *domain*."""
        return _telemetry_pattern(domain)

    def detect_hidden_plugins(self, content: str) -> list[str]:
        return [m.group(0) for p in self.hidden_plugin_patterns for m in p.finditer(content)]

    def mentions_suspicious_package(self, content: str) -> bool:
        return any(f'"{pkg}"' in content for pkg in self.suspicious_packages)


@lru_cache(maxsize=256)
def _telemetry_pattern(domain: str) -> re.Pattern[str]:
    escaped = re.escape(domain)
    return re.compile(
        rf"""(['"`])[^'"`\n]*{escaped}[^'"`\n]*\1""",
        re.IGNORECASE,
    )


def _filename(path: str) -> str:
    return path.rsplit("/", maxsplit=1)[-1]


def is_package_manifest(path: str) -> bool:
    return _filename(path) == PACKAGE_MANIFEST


def is_build_config(path: str) -> bool:
    return _filename(path) in BUILD_CONFIG_NAMES


def is_html_entry(path: str) -> bool:
    return _filename(path) == HTML_ENTRY


@lru_cache(maxsize=1)
def default_catalog() -> PatternCatalog:
    """Return the shared default catalog (compiled once)."""
    return PatternCatalog.build()
