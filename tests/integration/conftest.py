"""Fixtures for integration tests."""

import json
from pathlib import Path
from typing import Protocol

import pytest

CLOSED_CONTRACT = {
    "Closed": {"outcome": {"repayment": {"collateral_repayment_txid": "txid1"}}}
}


class WriteScriptFn(Protocol):
    """Protocol for shell script creation function."""

    def __call__(self, name: str, body: str) -> Path:
        """Write an executable script and return its path."""


@pytest.fixture
def write_script(tmp_path: Path) -> WriteScriptFn:
    """Return a function to create executable shell scripts."""

    def _write(name: str, body: str) -> Path:
        script = tmp_path / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(0o755)
        return script

    return _write


@pytest.fixture
def fake_borrower_cli(write_script: WriteScriptFn, tmp_path: Path) -> Path:
    """Create a script that behaves like the borrower CLI.

    Creation and repayment fail until MNEMONIC is set. get-contract writes a
    closed contract to --output-file. Every call is appended to calls.log.
    """
    contract = json.dumps(CLOSED_CONTRACT).replace('"', '\\"')
    calls = tmp_path / "calls.log"
    return write_script(
        "loans-borrower-cli",
        f"""
echo "$*" >> "{calls}"
if [ -z "$MNEMONIC" ]; then
    echo "MNEMONIC is not set" >&2
    exit 3
fi
case "$*" in
    *"borrow init"*)
        echo "Loan request submitted"
        echo "New contract ID: contract42"
        ;;
    *"borrow repay"*)
        echo "Repayment sent"
        ;;
    *get-contract*)
        while [ "$#" -gt 0 ]; do
            if [ "$1" = "--output-file" ]; then
                echo "{contract}" > "$2"
            fi
            shift
        done
        ;;
    *)
        echo "unknown command: $*" >&2
        exit 2
        ;;
esac
""",
    )
