#!/usr/bin/env python3
"""Gate: no PII in runtime logs.

Fails if, anywhere under src/:
- print( is used instead of the JSON logger
- a logger call mentions guest contact fields or raw request bodies
  without going through safe_log_context / redact_value

Usage:
    python scripts/gate_security_pii.py
"""

import re
import sys
from pathlib import Path

SENSITIVE_KEYWORDS = (
    "guest_name",
    "guest_email",
    "guest_phone",
    "payload",
    "request.body",
    "request.json",
    "phone",
    "email",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")
LOGGER_CALL_PATTERN = re.compile(r"logger\.(debug|info|warning|error|critical|exception)\s*\(")

REDACTION_PATTERNS = ("safe_log_context", "redact_value", "redact_string")

# Lines after a logger call that still belong to it
_CALL_WINDOW = 12


def check_file(filepath: Path) -> list[str]:
    """Violations in one file, as "path:line: message" strings."""
    try:
        lines = filepath.read_text(encoding="utf-8").splitlines()
    except UnicodeDecodeError:
        return []

    errors = []
    for lineno, line in enumerate(lines, start=1):
        code = line.split("#", 1)[0]
        if not code.strip():
            continue

        if PRINT_PATTERN.search(code):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if not LOGGER_CALL_PATTERN.search(code):
            continue

        call = "\n".join(lines[lineno - 1 : lineno - 1 + _CALL_WINDOW])
        call = call.split("\n\n", 1)[0]
        if any(rp in call for rp in REDACTION_PATTERNS):
            continue
        lowered = call.lower()
        for keyword in SENSITIVE_KEYWORDS:
            if keyword in lowered:
                errors.append(
                    f"{filepath}:{lineno}: logger call with '{keyword}' "
                    "must use redaction (safe_log_context/redact_value)"
                )
    return errors


def main() -> int:
    src_dir = Path("src")
    if not src_dir.exists():
        src_dir = Path(__file__).parent.parent / "src"
    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("PII gate FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate PASSED\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
