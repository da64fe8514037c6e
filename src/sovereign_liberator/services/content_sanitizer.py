"""Content sanitizer — strips proprietary platform markers from one file.

Transformations run in a fixed order:

1. filename-based removal (short-circuits everything else)
2. import-statement and content-regex stripping
3. telemetry-domain neutralisation (quoted literal becomes ``""``)
4. structured cleanup of ``package.json``, ``vite.config.*`` and ``index.html``
5. blank-line and trailing-comma normalisation

Every step that actually changes the content records one entry in
``changes``; a pattern that does not match never records anything.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from sovereign_liberator.domain.entities import CleaningResult
from sovereign_liberator.services.pattern_catalog import (
    DEPENDENCY_SECTIONS,
    PatternCatalog,
    default_catalog,
    is_build_config,
    is_html_entry,
    is_package_manifest,
)

logger = logging.getLogger(__name__)

_BLANK_RUNS = re.compile(r"\n{3,}")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def needs_cleaning(content: str, catalog: PatternCatalog | None = None) -> bool:
    """Cheap pre-filter: does any catalog rule match *content*?

    Membership tests only, no parsing.  Covers every rule that
    :func:`clean_file_content` can apply, so a ``False`` here guarantees
    the cleaner would leave the content untouched.
    """
    cat = catalog or default_catalog()

    lowered = content.lower()
    if any(domain.lower() in lowered for domain in cat.telemetry_domains):
        return True

    patterns = (
        *cat.import_patterns,
        *cat.content_patterns,
        *cat.hidden_plugin_patterns,
        *cat.build_config_patterns,
        *cat.html_patterns,
    )
    if any(p.search(content) for p in patterns):
        return True

    if any(f'"{section}"' in content for section in DEPENDENCY_SECTIONS):
        if cat.mentions_suspicious_package(content):
            return True
    if '"scripts"' in content and any(term in content for term in cat.manifest_script_terms):
        return True

    return False


def clean_file_content(
    path: str, content: str, catalog: PatternCatalog | None = None
) -> CleaningResult:
    """Return the cleaned version of *content*, or a removal verdict."""
    cat = catalog or default_catalog()
    changes: list[str] = []

    if cat.should_remove_file(path):
        return CleaningResult(
            path=path,
            original_content=content,
            cleaned_content="",
            changes=(f"Removed proprietary file: {path}",),
            removed=True,
        )

    cleaned = content

    for pattern in cat.import_patterns:
        cleaned = _apply(pattern, "", cleaned, changes, f"Removed proprietary import: {pattern.pattern[:60]}")

    for pattern in cat.content_patterns:
        cleaned = _apply(pattern, "", cleaned, changes, f"Removed proprietary content: {pattern.pattern[:60]}")

    for domain in cat.telemetry_domains:
        cleaned = _apply(cat.telemetry_pattern(domain), '""', cleaned, changes, f"Neutralised telemetry endpoint: {domain}")

    if is_package_manifest(path):
        cleaned = _clean_manifest(cleaned, cat, changes)
    elif is_build_config(path):
        cleaned = _clean_build_config(path, cleaned, cat, changes)
    elif is_html_entry(path):
        cleaned = _clean_html(path, cleaned, cat, changes)

    if changes:
        normalised = _TRAILING_COMMA.sub(r"\1", _BLANK_RUNS.sub("\n\n", cleaned))
        if normalised != cleaned:
            changes.append("Normalised blank lines and trailing commas")
            cleaned = normalised

    return CleaningResult(
        path=path,
        original_content=content,
        cleaned_content=cleaned,
        changes=tuple(changes),
        removed=False,
    )


# ── Steps ───────────────────────────────────────────────────────────────────


def _apply(
    pattern: re.Pattern[str],
    replacement: str,
    text: str,
    changes: list[str],
    description: str,
) -> str:
    """Substitute *pattern* and log one change, only when it really matched."""
    if not pattern.search(text):
        return text
    new_text = pattern.sub(replacement, text)
    if new_text != text:
        changes.append(description)
    return new_text


def _clean_manifest(text: str, cat: PatternCatalog, changes: list[str]) -> str:
    """Delete vendor dependencies and scripts; re-serialise only if anything went."""
    try:
        manifest: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("package.json is not valid JSON, skipping manifest cleanup: %s", exc)
        return text
    if not isinstance(manifest, dict):
        return text

    removed: list[str] = []
    for section in DEPENDENCY_SECTIONS:
        deps = manifest.get(section)
        if not isinstance(deps, dict):
            continue
        for pkg in cat.suspicious_packages:
            if pkg in deps:
                del deps[pkg]
                removed.append(f"Removed {section} entry: {pkg}")

    scripts = manifest.get("scripts")
    if isinstance(scripts, dict):
        for name, command in list(scripts.items()):
            if isinstance(command, str) and any(t in command for t in cat.manifest_script_terms):
                del scripts[name]
                removed.append(f"Removed script: {name}")

    if not removed:
        return text
    changes.extend(removed)
    return json.dumps(manifest, indent=2, ensure_ascii=False)


def _clean_build_config(path: str, text: str, cat: PatternCatalog, changes: list[str]) -> str:
    before = text
    hidden = cat.detect_hidden_plugins(text)
    if hidden:
        logger.info("Hidden plugins in %s: %s", path, ", ".join(h.rstrip(", ") for h in hidden))
    for pattern in (*cat.build_config_patterns, *cat.hidden_plugin_patterns):
        if pattern.search(text):
            text = pattern.sub("", text)
    if text != before:
        changes.append(f"Stripped proprietary plugins from {path}")
    return text


def _clean_html(path: str, text: str, cat: PatternCatalog, changes: list[str]) -> str:
    before = text
    for pattern in cat.html_patterns:
        if pattern.search(text):
            text = pattern.sub("", text)
    if text != before:
        changes.append(f"Stripped proprietary scripts and attributes from {path}")
    return text
