"""Validator stakes, governance, cross-chain swaps and deployed contracts."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from hyperchain.primitives import (
    CrossChainSwap,
    HyperDAGError,
    SmartContract,
    SwapState,
    keccak256,
)

__all__ = [
    "MIN_VALIDATOR_STAKE",
    "GovernanceProposal",
    "ChainRegistry",
]

MIN_VALIDATOR_STAKE = 50
PROPOSAL_STAKE_MULTIPLIER = 10

logger = logging.getLogger(__name__)


def _governance_error(detail: str) -> HyperDAGError:
    return HyperDAGError(f"Governance proposal failed: {detail}")


def _swap_error(detail: str) -> HyperDAGError:
    return HyperDAGError(f"Cross-chain atomic swap failed: {detail}")


@dataclass
class GovernanceProposal:
    proposal_id: str
    proposer: str
    description: str
    votes_for: int = 0
    votes_against: int = 0
    active: bool = True


class ChainRegistry:
    """Shared state of the DAG that is not blocks: stakes, votes, swaps, contracts."""

    def __init__(
        self,
        initial_validator: str | None = None,
        num_chains: int = 1,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.validators: dict[str, int] = {}
        self.governance_proposals: dict[str, GovernanceProposal] = {}
        self.cross_chain_swaps: dict[str, CrossChainSwap] = {}
        self.smart_contracts: dict[str, SmartContract] = {}
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock if clock is not None else time.time
        if initial_validator is not None:
            self.validators[initial_validator] = MIN_VALIDATOR_STAKE * num_chains * 2

    def _now(self) -> int:
        return int(self._clock())

    def add_validator(self, address: str, stake: int) -> None:
        """Register or update a validator; stakes below the minimum are raised to it."""
        self.validators[address] = max(stake, MIN_VALIDATOR_STAKE)

    def select_validator(self) -> str | None:
        """Pick a validator at random, weighted by stake."""
        if not self.validators:
            return None
        total_stake = sum(self.validators.values())
        if total_stake == 0:
            return self._rng.choice(list(self.validators))
        remaining = self._rng.randrange(total_stake)
        for address, stake in self.validators.items():
            if remaining < stake:
                return address
            remaining -= stake
        return next(iter(self.validators))

    def propose_governance(self, proposer: str, description: str) -> str:
        """Open a proposal; the proposer needs ten times the minimum stake."""
        stake = self.validators.get(proposer)
        if stake is None:
            raise _governance_error("Proposer not found or has no stake")
        if stake < MIN_VALIDATOR_STAKE * PROPOSAL_STAKE_MULTIPLIER:
            raise _governance_error("Insufficient stake to propose")
        proposal_id = keccak256(description.encode()).hex()
        self.governance_proposals[proposal_id] = GovernanceProposal(
            proposal_id=proposal_id,
            proposer=proposer,
            description=description,
        )
        return proposal_id

    def vote_governance(self, voter: str, proposal_id: str, vote_for: bool) -> None:
        """Cast a stake-weighted vote and close the proposal once decided."""
        stake = self.validators.get(voter)
        if stake is None:
            raise _governance_error("Voter not found or no stake")
        total_stake = sum(self.validators.values())

        proposal = self.governance_proposals.get(proposal_id)
        if proposal is None:
            raise _governance_error("Proposal not found")
        if not proposal.active:
            raise _governance_error("Proposal is not active")

        if vote_for:
            proposal.votes_for += stake
        else:
            proposal.votes_against += stake

        if total_stake == 0:
            logger.warning(
                "Total stake in the system is 0, governance vote cannot "
                "pass/fail based on stake percentage."
            )
            return

        if proposal.votes_for > total_stake * 2 // 3:
            logger.info("Governance proposal %s passed: %s", proposal_id, proposal.description)
            proposal.active = False
        elif proposal.votes_against > total_stake // 2:
            logger.info("Governance proposal %s rejected: %s", proposal_id, proposal.description)
            proposal.active = False

    def initiate_cross_chain_swap(
        self,
        source_chain: int,
        target_chain: int,
        source_block_id: str,
        amount: int,
        initiator: str,
        responder: str,
        timelock_duration: int,
    ) -> str:
        """Record a new swap in the initiated state and return its id."""
        now = self._now()
        swap_id = keccak256(
            f"swap_{initiator}_{responder}_{amount}_{now}".encode()
        ).hex()
        self.cross_chain_swaps[swap_id] = CrossChainSwap(
            swap_id=swap_id,
            source_chain=source_chain,
            target_chain=target_chain,
            source_block_id=source_block_id,
            target_block_id="",
            amount=amount,
            initiator=initiator,
            responder=responder,
            timelock=now + timelock_duration,
            state=SwapState.INITIATED,
        )
        return swap_id

    def accept_cross_chain_swap(self, swap_id: str, target_block_id: str) -> None:
        """Move an initiated swap to the accepted state."""
        swap = self.cross_chain_swaps.get(swap_id)
        if swap is None:
            raise _swap_error(f"Swap ID {swap_id} not found")
        if swap.state is not SwapState.INITIATED:
            raise _swap_error(
                f"Swap {swap_id} is not in Initiated state, "
                f"current state: {swap.state.value}"
            )
        swap.target_block_id = target_block_id
        swap.state = SwapState.ACCEPTED

    def deploy_smart_contract(self, code: str, owner: str) -> str:
        """Store a contract under the hash of its code and return that id."""
        contract_id = keccak256(code.encode()).hex()
        self.smart_contracts[contract_id] = SmartContract(
            contract_id=contract_id,
            code=code,
            owner=owner,
        )
        return contract_id