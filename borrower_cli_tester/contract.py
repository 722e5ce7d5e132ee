"""Inspection of CLI output and the contract JSON artifact."""

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from borrower_cli_tester.errors import ParsingError
from borrower_cli_tester.run_log import StepLogger

log = logging.getLogger(__name__)

CONTRACT_ID_PATTERN = re.compile(r"New contract ID: ([a-zA-Z0-9]+)")

CLOSED_KEY = "Closed"
REPAYMENT_PATH: Sequence[str] = (
    CLOSED_KEY,
    "outcome",
    "repayment",
    "collateral_repayment_txid",
)
REPAYMENT_POINTER = "/Closed/outcome/repayment/collateral_repayment_txid"


def extract_contract_id(stdout: str, stderr: str) -> str:
    """Extract the new contract id from CLI output.

    Stdout is searched first, stderr only when stdout has no match.

    Raises:
        ParsingError: If neither stream contains the marker

    """
    for stream in (stdout, stderr):
        if match := CONTRACT_ID_PATTERN.search(stream):
            return match.group(1)

    raise ParsingError("Failed to extract contract-id from stdout or stderr")


def parse_contract(raw_text: str) -> Any:
    """Decode the contract document."""
    try:
        return json.loads(raw_text)
    except (json.JSONDecodeError, RecursionError) as e:
        raise ParsingError(f"Failed to parse JSON: {e}") from e


def is_closed_with_repayment(document: Any, log: StepLogger = log) -> bool:
    """Check that the contract is closed with a collateral repayment.

    Walks Closed -> outcome -> repayment and checks that
    collateral_repayment_txid is present. Its value is not inspected, so
    null counts as present. Any missing or non-object link yields False.
    """
    *parents, leaf = REPAYMENT_PATH
    node = document
    for depth, key in enumerate(parents):
        if not isinstance(node, Mapping) or key not in node:
            where = f"in {parents[depth - 1]}" if depth else "in JSON"
            log.info("No '%s' object found %s", key, where)
            return False
        log.info("Found '%s' object", key)
        node = node[key]

    if not isinstance(node, Mapping):
        log.info("'%s' is not an object", parents[-1])
        return False

    has_txid = leaf in node
    log.info("Has %s: %s", leaf, has_txid)
    return has_txid


def lookup_pointer(document: Any, pointer: str) -> bool:
    """Return whether an RFC 6901 JSON pointer resolves in document."""
    node = document
    for token in pointer.split("/")[1:]:
        key = token.replace("~1", "/").replace("~0", "~")
        if isinstance(node, Mapping) and key in node:
            node = node[key]
        elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
        else:
            return False
    return True
