"""Settings for the lifecycle tester, loaded from the environment."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from borrower_cli_tester.retry import RetryPolicy


class HarnessSettings(BaseSettings):
    """Tester settings.

    Variables use the BORROWER_TESTER_ prefix, except DATABASE_PATH, HOST and
    PORT which keep their historical names. Retry policies are given as JSON,
    e.g. BORROWER_TESTER_LOAN_RETRY='{"max_attempts": 3, "backoff": 30}'.
    """

    model_config = SettingsConfigDict(
        env_prefix="BORROWER_TESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # CLI and filesystem
    cli_path: Path = Field(
        default=Path("./loans-borrower-cli"), description="Borrower CLI executable"
    )
    work_dir: Path = Field(
        default=Path("."), description="Directory that must be writable by the CLI"
    )
    data_dir: Path = Field(default=Path("./data"), description="CLI data directory")
    output_dir: Path = Field(
        default=Path("./output"), description="Where contract JSON files are written"
    )
    mnemonic_env_var: str = Field(
        default="MNEMONIC", description="Variable the CLI reads the mnemonic from"
    )
    process_timeout: float | None = Field(
        default=None, gt=0, description="Seconds before a CLI call is killed"
    )

    # Loan parameters passed to `borrow init`
    loan_capital_asset: str = "solana-lava-usd"
    ltv_ratio_bp: int = Field(default=5000, ge=1, le=10000)
    loan_duration_days: int = Field(default=4, ge=1)
    loan_amount: int = Field(default=2, ge=1)

    # Faucets
    btc_faucet_url: str = "https://faucet.testnet.lava.xyz/mint-mutinynet"
    lava_faucet_url: str = "https://faucet.testnet.lava.xyz/transfer-lava-usd"
    faucet_sats: int = Field(default=100_000, ge=1)
    faucet_timeout: float = Field(
        default=30.0, gt=0, description="Total timeout of one faucet request"
    )

    # Delays
    faucet_retry: RetryPolicy = RetryPolicy(max_attempts=3, backoff=5)
    loan_retry: RetryPolicy = RetryPolicy(max_attempts=3, backoff=30)
    post_creation_wait: float = Field(
        default=60.0, ge=0, description="Seconds to wait after the loan is created"
    )
    post_repayment_wait: float = Field(
        default=60.0, ge=0, description="Seconds to wait after the loan is repaid"
    )

    # Service
    database_path: Path = Field(
        default=Path("data/test_results.db"), alias="DATABASE_PATH"
    )
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, ge=1, le=65535, alias="PORT")
