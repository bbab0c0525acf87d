"""
Shared fixtures: an in-memory ledger, keypairs and ready-made contexts.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from solders.keypair import Keypair

from hookregistry.config import ProgramIds
from hookregistry.context import ClusterContext
from hookregistry.signer import KeypairSigner
from hookregistry.workflow import RegistryWorkflow

from fake_ledger import FakeLedger

THRESHOLD_BPS = 8_000
REVIEW_PERIOD = 3_600
MAX_RISK_SCORE = 70


@pytest.fixture
def programs() -> ProgramIds:
    return ProgramIds()


@pytest.fixture
def ledger(programs) -> FakeLedger:
    return FakeLedger(programs)


@pytest.fixture
def authority() -> Keypair:
    return Keypair()


@pytest.fixture
def make_ctx(ledger, programs):
    """Build a context for any keypair against the shared ledger."""
    def factory(keypair: Keypair, **overrides) -> ClusterContext:
        options = {"clock": ledger.clock, "poll_interval": 0.0, "confirm_timeout": 1.0}
        options.update(overrides)
        return ClusterContext(rpc=ledger, signer=KeypairSigner(keypair), programs=programs, **options)
    return factory


@pytest.fixture
def workflow(make_ctx, authority) -> RegistryWorkflow:
    return RegistryWorkflow(make_ctx(authority))


@pytest.fixture
def hook_program(ledger):
    program_id = Keypair().pubkey()
    ledger.add_program(program_id)
    return program_id


async def init_registry(workflow: RegistryWorkflow, threshold_bps: int = THRESHOLD_BPS,
                        review_period: int = REVIEW_PERIOD, max_risk: int = MAX_RISK_SCORE):
    return await workflow.initialize_registry(threshold_bps, review_period, max_risk)
