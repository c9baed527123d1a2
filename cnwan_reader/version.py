"""The running version of the reader."""

from __future__ import annotations

import argparse

MAJOR_VERSION = 0
MINOR_VERSION = 5
PATCH_VERSION = 0


def version_string(short: bool = False) -> str:
    """Return the short (``vX.Y.Z``) or long version description."""
    short_version = f"v{MAJOR_VERSION}.{MINOR_VERSION}.{PATCH_VERSION}"
    if short:
        return short_version
    return f"MAJOR={MAJOR_VERSION}; MINOR={MINOR_VERSION}; GIT-VERSION={short_version}"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="version", description="Print the running version of CN-WAN Reader."
    )
    parser.add_argument("-s", "--short", action="store_true", help="print a short version")
    args = parser.parse_args(argv)
    print(version_string(args.short))
    return 0