"""Models for lifecycle test results."""

from datetime import datetime

from pydantic import Field

from borrower_cli_tester.models.base import Model


class TestResult(Model):
    """Outcome of one loan lifecycle run.

    Built once per run as a snapshot of the run state; never updated.
    """

    __test__ = False

    id: str = Field(..., description="Unique run identifier (uuid4)")
    success: bool = Field(..., description="Whether the loan closed with repayment")
    details: str = Field(..., description="Human readable outcome")
    mnemonic: str = Field(..., description="Mnemonic used by the run")
    btc_address: str = Field(..., description="Derived testnet P2WPKH address")
    lava_pubkey: str = Field(..., description="Counterparty key sent to the faucet")
    contract_id: str | None = Field(default=None, description="Created contract id")
    steps_completed: tuple[str, ...] = Field(
        default_factory=tuple, description="Labels of successful steps, in order"
    )
    logs: str = Field(default="", description="Accumulated run log")
    timestamp: datetime = Field(..., description="Result construction time (UTC)")
