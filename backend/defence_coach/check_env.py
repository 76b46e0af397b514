"""Validate the environment the service needs, or write a sample .env file.

Usage:
    defence-coach-check-env                 # check variables, exit 1 if any are missing
    defence-coach-check-env --generate-env  # write .env.sample in the current directory
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from dotenv import load_dotenv

CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "Store": ("DATABASE_URL",),
    "Voice": ("VAPI_WEB_TOKEN", "VAPI_WORKFLOW_ID"),
    "Language model": ("LLM_API_KEY",),
}

SAMPLE_VALUES: Dict[str, str] = {
    "DATABASE_URL": "sqlite+aiosqlite:///./data.db",
}


class VarStatus:
    def __init__(self, name: str, value: Optional[str]) -> None:
        self.name = name
        self.value = value.strip() if value else None

    @property
    def defined(self) -> bool:
        return bool(self.value)

    @property
    def display(self) -> str:
        if not self.value:
            return "<unset>"
        if "KEY" in self.name or "TOKEN" in self.name:
            if len(self.value) <= 10:
                return "*" * len(self.value)
            return f"{self.value[:5]}...{self.value[-5:]}"
        return self.value if len(self.value) <= 30 else f"{self.value[:25]}..."


def validate_value(name: str, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if name == "DATABASE_URL" and "://" not in value:
        return "Doesn't look like a database URL"
    if "API_KEY" in name and len(value) < 10:
        return "Looks too short for an API key"
    if name == "VAPI_WEB_TOKEN" and len(value) < 30:
        return "Looks too short for a voice token"
    return None


def check(env: Mapping[str, str]) -> Dict[str, List[VarStatus]]:
    return {category: [VarStatus(name, env.get(name)) for name in names] for category, names in CATEGORIES.items()}


def sample_env() -> str:
    lines = ["# AI Project Defence Coach environment variables", ""]
    for category, names in CATEGORIES.items():
        lines.append(f"# {category}")
        for name in names:
            value = SAMPLE_VALUES.get(name, f"your-{name.lower().replace('_', '-')}-here")
            lines.append(f'{name}="{value}"')
        lines.append("")
    lines.append("# Development only: serve placeholder data when the store is unreachable")
    lines.append('DEV_MOCK_FALLBACK="0"')
    return "\n".join(lines) + "\n"


def format_category(name: str, results: Sequence[VarStatus]) -> str:
    defined = sum(1 for r in results if r.defined)
    total = len(results)
    marker = "OK " if defined == total else ("-- " if defined == 0 else "!! ")
    return f"{marker}{name}: {defined}/{total} variables set"


def run(env: Mapping[str, str], out=sys.stdout) -> int:
    results = check(env)
    print("\n--- Environment Variables Check ---\n", file=out)
    for category, statuses in results.items():
        print(format_category(category, statuses), file=out)
    print(file=out)

    missing = [s for statuses in results.values() for s in statuses if not s.defined]
    if missing:
        print("Missing environment variables:", file=out)
        for status in missing:
            print(f"  - {status.name}", file=out)
        print("\nTo generate a sample .env file, run:\n  defence-coach-check-env --generate-env", file=out)
        return 1

    print("All required environment variables are set.\n", file=out)
    print("Current values:", file=out)
    for statuses in results.values():
        for status in statuses:
            warning = validate_value(status.name, status.value)
            suffix = f"  (warning: {warning})" if warning else ""
            print(f"  - {status.name}: {status.display}{suffix}", file=out)
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Check the defence coach environment configuration.")
    p.add_argument("--generate-env", action="store_true", help="Write a sample .env.sample file and exit")
    p.add_argument("--env-file", default=".env", help="Optional dotenv file loaded before checking")
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    if args.generate_env:
        path = Path.cwd() / ".env.sample"
        path.write_text(sample_env(), encoding="utf-8")
        print(f"Sample environment file created at: {path}")
        print("Rename it to .env and fill in your credentials.")
        return 0
    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
    return run(os.environ)


if __name__ == "__main__":
    sys.exit(main())
