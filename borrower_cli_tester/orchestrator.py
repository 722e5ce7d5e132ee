"""Loan lifecycle orchestrator driving the borrower CLI end to end."""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path

from borrower_cli_tester.config import HarnessSettings
from borrower_cli_tester.contract import (
    CLOSED_KEY,
    REPAYMENT_POINTER,
    extract_contract_id,
    is_closed_with_repayment,
    lookup_pointer,
    parse_contract,
)
from borrower_cli_tester.credentials import CredentialSet, build_credentials
from borrower_cli_tester.errors import (
    HarnessError,
    IoError,
    NetworkError,
    ParsingError,
    ProcessError,
    RetryExhaustedError,
)
from borrower_cli_tester.faucet import FaucetClient
from borrower_cli_tester.models.result import TestResult
from borrower_cli_tester.process import ProcessOutput, ensure_executable, invoke
from borrower_cli_tester.retry import Sleep, run_with_retry
from borrower_cli_tester.run_log import RunLog

log = logging.getLogger(__name__)

BASE_CLI_ARGS: Sequence[str] = ("--testnet", "--disable-backup-contracts")
PREVIEW_CHARS = 100

STEP_CREDENTIALS = "Step 1: Generated/used credentials"
STEP_FAUCET = "Step 2: Called testnet faucet"
STEP_CLI = "Step 3: Verified CLI availability"
STEP_CREATE = "Step 4: Created a new loan"
STEP_CONTRACT_ID = "Step 5: Captured contract-id"
STEP_REPAY = "Step 6: Repaid the loan"
STEP_FETCH = "Step 7: Got contract details"
STEP_VERIFY = "Step 9: Verified loan is closed with repayment"


@dataclass(kw_only=True)
class _RunState:
    """Mutable state of a single run. Never shared between runs."""

    id: str
    log: RunLog
    mnemonic: str | None = None
    credentials: CredentialSet | None = None
    contract_id: str | None = None
    closed_with_repayment: bool = False
    steps_completed: list[str] = field(default_factory=list)

    def complete(self, label: str) -> None:
        self.steps_completed.append(label)
        self.log.info("✓ %s", label)

    def require_contract_id(self) -> str:
        if self.contract_id is None:
            raise ParsingError("Missing contract-id")
        return self.contract_id

    def to_result(self, *, success: bool, details: str) -> TestResult:
        credentials = self.credentials
        return TestResult(
            id=self.id,
            success=success,
            details=details,
            mnemonic=credentials.mnemonic if credentials else self.mnemonic or "",
            btc_address=credentials.btc_address if credentials else "",
            lava_pubkey=credentials.lava_pubkey if credentials else "",
            contract_id=self.contract_id,
            steps_completed=tuple(self.steps_completed),
            logs=self.log.text,
            timestamp=datetime.now(timezone.utc),
        )


@dataclass(frozen=True, kw_only=True)
class LifecycleOrchestrator:
    """Runs the create, repay and verify lifecycle against the testnet.

    The orchestrator holds no per-run state, so one instance can serve
    concurrent runs.
    """

    settings: HarnessSettings
    faucet: FaucetClient
    sleep: Sleep = asyncio.sleep

    async def run(
        self, mnemonic: str | None = None, *, skip_faucet: bool = False
    ) -> TestResult:
        """Run the full lifecycle once.

        Args:
            mnemonic: Phrase to use instead of generating a new one
            skip_faucet: Do not request funds (accounts are pre-funded)

        Returns:
            The run result. Execution errors are reported in the result, with
            success=False and the error in details.

        """
        run_id = str(uuid.uuid4())
        state = _RunState(id=run_id, log=RunLog(run_id), mnemonic=mnemonic)
        state.log.info("Starting Borrower CLI Test Suite")

        stages: Sequence[tuple[str, Callable[[], Awaitable[None]]]] = (
            ("step 1", partial(self._generate_credentials, state)),
            ("step 2", partial(self._call_faucets, state, skip=skip_faucet)),
            ("step 3", partial(self._check_cli, state)),
            ("step 4", partial(self._create_loan, state)),
            (
                "post-creation wait",
                partial(self._settle, state, self.settings.post_creation_wait),
            ),
            ("step 6", partial(self._repay_loan, state)),
            (
                "post-repayment wait",
                partial(self._settle, state, self.settings.post_repayment_wait),
            ),
            ("step 7", partial(self._get_contract_details, state)),
            ("step 8", partial(self._check_contract, state)),
        )

        for stage, action in stages:
            if (failure := await self._attempt(state, stage, action)) is not None:
                return failure

        success = state.closed_with_repayment
        return state.to_result(
            success=success,
            details=(
                "Test completed successfully"
                if success
                else "Test failed - loan is not closed with repayment"
            ),
        )

    async def _attempt(
        self,
        state: _RunState,
        stage: str,
        action: Callable[[], Awaitable[None]],
    ) -> TestResult | None:
        """Run one stage, returning a failed result if it errors."""
        try:
            await action()
        except RetryExhaustedError as e:
            return self._fail(
                state,
                f"Error in {stage} after {e.attempts} attempts: {e.last_error}",
            )
        except HarnessError as e:
            return self._fail(state, f"Error in {stage}: {e}")
        except Exception as e:
            state.log.exception("Unexpected error in %s", stage)
            return state.to_result(
                success=False, details=f"Unexpected error in {stage}: {e!r}"
            )
        return None

    def _fail(self, state: _RunState, details: str) -> TestResult:
        state.log.error("%s", details)
        return state.to_result(success=False, details=details)

    async def _generate_credentials(self, state: _RunState) -> None:
        state.log.info("Step 1: Generating or using provided credentials")

        credentials = build_credentials(state.mnemonic)
        state.credentials = credentials

        if credentials.generated:
            state.log.info("Generated mnemonic: %s", credentials.mnemonic)
        else:
            state.log.info("Using provided mnemonic: %s", credentials.mnemonic)
        state.log.info("Generated BTC address: %s", credentials.btc_address)
        state.log.info(
            "Using known working LavaUSD pubkey: %s", credentials.lava_pubkey
        )

        state.complete(STEP_CREDENTIALS)

    async def _call_faucets(self, state: _RunState, *, skip: bool) -> None:
        state.log.info("Step 2: Calling testnet faucet")
        credentials = self._credentials(state)

        if skip:
            state.log.info("Skipping faucet requests")
            state.complete(STEP_FAUCET)
            return

        try:
            btc_response = await self.faucet.request_btc(credentials.btc_address)
        except NetworkError as e:
            state.log.warning("BTC faucet request failed: %s", e)
        else:
            state.log.info("BTC faucet response %s", btc_response)

        async def request_lava_usd() -> None:
            response = await self.faucet.request_lava_usd(credentials.lava_pubkey)
            state.log.info("LavaUSD faucet response %s", response)
            if not response.ok:
                raise NetworkError(f"LavaUSD faucet returned {response.status}")

        try:
            await run_with_retry(
                request_lava_usd,
                self.settings.faucet_retry,
                action="LavaUSD faucet call",
                log=state.log,
                sleep=self.sleep,
            )
        except RetryExhaustedError as e:
            state.log.warning("Continuing without LavaUSD funding: %s", e)

        state.complete(STEP_FAUCET)

    async def _check_cli(self, state: _RunState) -> None:
        state.log.info("Step 3: Checking for CLI")
        settings = self.settings

        if not settings.cli_path.is_file():
            raise ProcessError(f"CLI not found at: {settings.cli_path}")
        ensure_executable(settings.cli_path)

        for directory in (settings.data_dir, settings.output_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IoError(f"Failed to create directory {directory}: {e}") from e

        probe = settings.work_dir / f".write_test_{state.id}"
        try:
            probe.touch()
            probe.unlink()
        except OSError as e:
            raise IoError(f"Working directory is not writable: {e}") from e

        state.complete(STEP_CLI)

    async def _create_loan(self, state: _RunState) -> None:
        contract_id = await run_with_retry(
            partial(self._create_loan_once, state),
            self.settings.loan_retry,
            action="loan creation",
            log=state.log,
            sleep=self.sleep,
        )
        state.contract_id = contract_id
        state.complete(STEP_CONTRACT_ID)
        state.complete(STEP_CREATE)

    async def _create_loan_once(self, state: _RunState) -> str:
        state.log.info("Step 4: Creating a new loan")
        settings = self.settings

        output = await self._run_cli(
            state,
            "Borrow init",
            "borrow",
            "init",
            "--loan-capital-asset",
            settings.loan_capital_asset,
            "--ltv-ratio-bp",
            str(settings.ltv_ratio_bp),
            "--loan-duration-days",
            str(settings.loan_duration_days),
            "--loan-amount",
            str(settings.loan_amount),
            "--finalize",
        )
        if not output.ok:
            raise ProcessError(f"Failed to create loan: exit code {output.exit_code}")

        state.log.info("Step 5: Capturing contract-id")
        try:
            contract_id = extract_contract_id(output.stdout, output.stderr)
        except ParsingError:
            state.log.info(
                "Searched stdout (%d chars) and stderr (%d chars)",
                len(output.stdout),
                len(output.stderr),
            )
            raise

        state.log.info("Captured contract-id: %s", contract_id)
        return contract_id

    async def _settle(self, state: _RunState, delay: float) -> None:
        state.log.info(
            "Waiting %g seconds before proceeding to the next step...", delay
        )
        await self.sleep(delay)

    async def _repay_loan(self, state: _RunState) -> None:
        await run_with_retry(
            partial(self._repay_loan_once, state),
            self.settings.loan_retry,
            action="loan repayment",
            log=state.log,
            sleep=self.sleep,
        )
        state.complete(STEP_REPAY)

    async def _repay_loan_once(self, state: _RunState) -> None:
        state.log.info("Step 6: Repaying the loan")
        contract_id = state.require_contract_id()

        output = await self._run_cli(
            state, "Repay", "borrow", "repay", "--contract-id", contract_id
        )
        if not output.ok:
            raise ProcessError(f"Failed to repay loan: exit code {output.exit_code}")

    async def _get_contract_details(self, state: _RunState) -> None:
        state.log.info("Step 7: Getting contract details")
        contract_id = state.require_contract_id()

        output = await self._run_cli(
            state,
            "Get contract",
            "get-contract",
            "--contract-id",
            contract_id,
            "--verbose",
            "--output-file",
            str(self._contract_file(contract_id)),
        )
        if not output.ok:
            raise ProcessError(
                f"Failed to get contract details: exit code {output.exit_code}"
            )

        state.complete(STEP_FETCH)

    async def _check_contract(self, state: _RunState) -> None:
        state.log.info("Step 8: Checking JSON file for closed status")
        path = self._contract_file(state.require_contract_id())

        if not path.exists():
            raise IoError(f"JSON file not found: {path}")
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise IoError(f"Failed to read {path}: {e}") from e

        state.log.info("JSON content length: %d bytes", len(content))
        state.log.info("First %d characters of JSON:", PREVIEW_CHARS)
        state.log.info("%s", content[:PREVIEW_CHARS])

        document = parse_contract(content)

        state.log.info("Step 9: Verifying loan is closed with repayment")
        is_closed = isinstance(document, Mapping) and CLOSED_KEY in document
        state.log.info("Is Closed object present: %s", is_closed)

        has_repayment = is_closed_with_repayment(document, state.log)
        state.log.info(
            "JSON pointer check result: %s",
            lookup_pointer(document, REPAYMENT_POINTER),
        )

        if has_repayment:
            state.log.info("Loan is closed with repayment - TEST PASSED")
            state.closed_with_repayment = True
            state.complete(STEP_VERIFY)
            return

        state.log.info(
            "Debug - is_closed: %s, has_repayment: %s", is_closed, has_repayment
        )
        state.log.info("Loan is not closed with repayment - TEST FAILED")

    async def _run_cli(
        self, state: _RunState, name: str, *args: str
    ) -> ProcessOutput:
        """Invoke the CLI with the run's mnemonic and log its output."""
        credentials = self._credentials(state)
        output = await invoke(
            self.settings.cli_path,
            [*BASE_CLI_ARGS, *args],
            {self.settings.mnemonic_env_var: credentials.mnemonic},
            log=state.log,
            timeout=self.settings.process_timeout,
        )

        state.log.info("%s stdout: %s", name, output.stdout)
        if output.stderr:
            state.log.info("%s stderr: %s", name, output.stderr)
        return output

    def _contract_file(self, contract_id: str) -> Path:
        return self.settings.output_dir / f"{contract_id}.json"

    @staticmethod
    def _credentials(state: _RunState) -> CredentialSet:
        if state.credentials is None:
            raise HarnessError("Credentials have not been generated")
        return state.credentials
