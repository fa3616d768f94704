"""Keep the version in pyproject.toml and src/canopy/__init__.py in step.

Usage:
    uv run python scripts/bump_version.py --patch        # 0.1.0 → 0.1.1
    uv run python scripts/bump_version.py --minor        # 0.1.1 → 0.2.0
    uv run python scripts/bump_version.py --major        # 0.2.0 → 1.0.0
    uv run python scripts/bump_version.py --set 0.3.0
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
TARGETS = {
    ROOT / "pyproject.toml": re.compile(r'^(version\s*=\s*")(\d+\.\d+\.\d+)(")', re.MULTILINE),
    ROOT / "src" / "canopy" / "__init__.py": re.compile(
        r'^(__version__\s*=\s*")(\d+\.\d+\.\d+)(")', re.MULTILINE
    ),
}
SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+$")


def current_version() -> str:
    pyproject, pattern = next(iter(TARGETS.items()))
    match = pattern.search(pyproject.read_text())
    if not match:
        sys.exit("error: could not find version in pyproject.toml")
    return match.group(2)


def next_version(version: str, part: str) -> str:
    major, minor, patch = (int(p) for p in version.split("."))
    if part == "major":
        return f"{major + 1}.0.0"
    if part == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Bump project version")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--major", action="store_const", const="major", dest="part")
    group.add_argument("--minor", action="store_const", const="minor", dest="part")
    group.add_argument("--patch", action="store_const", const="patch", dest="part")
    group.add_argument("--set", dest="explicit", metavar="X.Y.Z")
    args = parser.parse_args()

    old = current_version()
    new = args.explicit or next_version(old, args.part)
    if not SEMVER_RE.match(new):
        sys.exit(f"error: not a X.Y.Z version: {new!r}")

    for path, pattern in TARGETS.items():
        text = path.read_text()
        if not pattern.search(text):
            print(f"warning: no version found in {path.name}, skipping", file=sys.stderr)
            continue
        path.write_text(pattern.sub(rf"\g<1>{new}\3", text))

    print(f"{old} → {new}")


if __name__ == "__main__":
    main()
