"""
Unit tests for the cursor checkpoint and the command-line entry point.

The JSON-RPC reader is patched with an in-memory ledger.
"""

import json
from unittest.mock import patch

import pytest

from ledger_crawler import cli
from ledger_crawler.checkpoint import CursorCheckpoint
from ledger_crawler.ledger.memory import InMemoryLedger, make_transaction
from ledger_crawler.types import CrawlOutcome, CrawlSummary, InstructionRecord


TARGET = "Target11111111111111111111111111111111111111"
PROGRAM = "Prog1111111111111111111111111111111111111111"


class ContextLedger(InMemoryLedger):
    """InMemoryLedger usable where a SolanaRpcReader is expected."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def get_stats(self):
        return {"fetch_calls": self.stats.fetch_calls}


def mint_tx(i):
    ix = InstructionRecord(PROGRAM, accounts=tuple(f"acct{i}_{n}" for n in range(6)))
    return make_transaction(f"sig{i}", TARGET, [ix], slot=i)


@pytest.fixture
def ledger():
    return ContextLedger([mint_tx(i) for i in range(5)])


@pytest.fixture
def job_file(tmp_path):
    path = tmp_path / "job.yaml"
    path.write_text(
        f"target: {TARGET}\n"
        f"rpc_url: http://unused\n"
        f"retry: {{attempts: 2, base_delay: 0}}\n"
        f"ix_filters:\n"
        f"  - {{type: program, program_id: {PROGRAM}}}\n"
        f"extract:\n"
        f"  - {{label: mint, position: 5}}\n"
    )
    return path


class TestCheckpoint:
    """CursorCheckpoint persistence."""

    def test_missing_file(self, tmp_path):
        assert CursorCheckpoint(tmp_path / "ckpt.json").load(TARGET) is None

    def test_save_and_load(self, tmp_path):
        checkpoint = CursorCheckpoint(tmp_path / "ckpt.json")
        checkpoint.save(TARGET, "sig42")

        assert checkpoint.load(TARGET) == "sig42"
        assert not (tmp_path / "ckpt.json.tmp").exists()

    def test_other_target_ignored(self, tmp_path):
        checkpoint = CursorCheckpoint(tmp_path / "ckpt.json")
        checkpoint.save("SomeoneElse", "sig42")
        assert checkpoint.load(TARGET) is None

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / "ckpt.json"
        path.write_text("{not json")
        assert CursorCheckpoint(path).load(TARGET) is None

    def test_save_none_is_noop(self, tmp_path):
        checkpoint = CursorCheckpoint(tmp_path / "ckpt.json")
        checkpoint.save(TARGET, None)
        assert not checkpoint.path.exists()

    def test_clear(self, tmp_path):
        checkpoint = CursorCheckpoint(tmp_path / "ckpt.json")
        checkpoint.save(TARGET, "sig1")
        checkpoint.clear()
        assert checkpoint.load(TARGET) is None


class TestExitCode:
    """Outcome -> process exit code."""

    def test_complete(self):
        assert cli.exit_code(CrawlOutcome({}, CrawlSummary())) == cli.EXIT_OK

    def test_terminal_error(self):
        summary = CrawlSummary(terminal_error="signature listing failed: boom")
        assert cli.exit_code(CrawlOutcome({}, summary)) == cli.EXIT_TERMINAL_ERROR

    def test_cancelled_wins(self):
        summary = CrawlSummary(cancelled=True, terminal_error="x")
        assert cli.exit_code(CrawlOutcome({}, summary)) == cli.EXIT_CANCELLED


class TestMain:
    """End-to-end runs of main() against a patched reader."""

    def test_resume_requires_checkpoint(self, job_file):
        assert cli.main([str(job_file), "--resume"]) == cli.EXIT_CONFIG_ERROR

    def test_missing_job_file(self, tmp_path):
        assert cli.main([str(tmp_path / "missing.yaml")]) == cli.EXIT_CONFIG_ERROR

    def test_invalid_override(self, job_file):
        assert cli.main([str(job_file), "--concurrency", "0"]) == cli.EXIT_CONFIG_ERROR

    def test_writes_output(self, job_file, ledger, tmp_path):
        out = tmp_path / "out.json"
        with patch.object(cli, "SolanaRpcReader", lambda config: ledger):
            code = cli.main([str(job_file), "--out", str(out)])

        assert code == cli.EXIT_OK
        data = json.loads(out.read_text())
        assert data["result"]["mint"] == [f"acct{i}_5" for i in reversed(range(5))]
        assert data["summary"]["processed"] == 5

    def test_checkpoint_then_resume(self, job_file, ledger, tmp_path):
        out = tmp_path / "out.json"
        ckpt = tmp_path / "crawl.ckpt"

        with patch.object(cli, "SolanaRpcReader", lambda config: ledger):
            assert cli.main([str(job_file), "--out", str(out), "--checkpoint", str(ckpt)]) == cli.EXIT_OK
            assert CursorCheckpoint(ckpt).load(TARGET) == "sig0"

            ledger.append(mint_tx(5))
            # Resuming below the oldest signature finds nothing new
            assert cli.main([
                str(job_file), "--out", str(out), "--checkpoint", str(ckpt), "--resume"
            ]) == cli.EXIT_OK

        data = json.loads(out.read_text())
        assert data["result"]["mint"] == []
        assert data["summary"]["processed"] == 0

    def test_listing_failure_exit_code(self, job_file, ledger, tmp_path):
        ledger.fail_listing(times=10)
        with patch.object(cli, "SolanaRpcReader", lambda config: ledger):
            code = cli.main([str(job_file), "--out", str(tmp_path / "out.json")])
        assert code == cli.EXIT_TERMINAL_ERROR
