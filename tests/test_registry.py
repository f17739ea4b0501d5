import random

import pytest

from hyperchain.primitives import HyperDAGError, SwapState, keccak256
from hyperchain.registry import MIN_VALIDATOR_STAKE, ChainRegistry


def make_registry(**kwargs):
    return ChainRegistry(rng=random.Random(7), clock=lambda: 1000.0, **kwargs)


def test_initial_validator_stake_scales_with_chains():
    registry = make_registry(initial_validator="genesis", num_chains=3)
    assert registry.validators == {"genesis": MIN_VALIDATOR_STAKE * 3 * 2}


def test_add_validator_clamps_to_minimum():
    registry = make_registry()
    registry.add_validator("small", 5)
    registry.add_validator("large", 900)
    assert registry.validators["small"] == 50
    assert registry.validators["large"] == 900


def test_select_validator_empty():
    assert make_registry().select_validator() is None


def test_select_validator_only_picks_staked():
    registry = make_registry()
    registry.add_validator("staked", 100)
    registry.validators["zero"] = 0
    picks = {registry.select_validator() for _ in range(50)}
    assert picks == {"staked"}


def test_select_validator_zero_total_stake():
    registry = make_registry()
    registry.validators["a"] = 0
    registry.validators["b"] = 0
    for _ in range(20):
        assert registry.select_validator() in {"a", "b"}


def test_propose_requires_known_proposer():
    registry = make_registry()
    with pytest.raises(HyperDAGError, match="Proposer not found"):
        registry.propose_governance("nobody", "raise fees")


def test_propose_requires_enough_stake():
    registry = make_registry(initial_validator="genesis", num_chains=1)
    with pytest.raises(HyperDAGError, match="Insufficient stake to propose"):
        registry.propose_governance("genesis", "raise fees")


def test_propose_id_is_hash_of_description():
    registry = make_registry(initial_validator="genesis", num_chains=5)
    proposal_id = registry.propose_governance("genesis", "raise fees")
    assert proposal_id == keccak256(b"raise fees").hex()
    proposal = registry.governance_proposals[proposal_id]
    assert proposal.active
    assert (proposal.votes_for, proposal.votes_against) == (0, 0)
    assert proposal.proposer == "genesis"


def test_vote_passes_and_closes():
    registry = make_registry(initial_validator="genesis", num_chains=5)
    proposal_id = registry.propose_governance("genesis", "upgrade")
    registry.vote_governance("genesis", proposal_id, True)
    proposal = registry.governance_proposals[proposal_id]
    assert proposal.votes_for == 500
    assert not proposal.active
    with pytest.raises(HyperDAGError, match="not active"):
        registry.vote_governance("genesis", proposal_id, False)


def test_vote_rejects_with_majority_against():
    registry = make_registry()
    registry.add_validator("proposer", 500)
    registry.add_validator("opponent", 600)
    proposal_id = registry.propose_governance("proposer", "split chain")
    registry.vote_governance("opponent", proposal_id, False)
    proposal = registry.governance_proposals[proposal_id]
    assert proposal.votes_against == 600
    assert not proposal.active


def test_vote_below_threshold_stays_active():
    registry = make_registry()
    registry.add_validator("proposer", 500)
    registry.add_validator("other", 600)
    proposal_id = registry.propose_governance("proposer", "tweak")
    registry.vote_governance("proposer", proposal_id, True)
    assert registry.governance_proposals[proposal_id].active


def test_vote_errors():
    registry = make_registry(initial_validator="genesis", num_chains=5)
    with pytest.raises(HyperDAGError, match="Voter not found"):
        registry.vote_governance("ghost", "x", True)
    with pytest.raises(HyperDAGError, match="Proposal not found"):
        registry.vote_governance("genesis", "missing", True)


def test_swap_lifecycle():
    registry = make_registry()
    swap_id = registry.initiate_cross_chain_swap(0, 1, "block_a", 100, "alice", "bob", 60)
    assert swap_id == keccak256(b"swap_alice_bob_100_1000").hex()
    swap = registry.cross_chain_swaps[swap_id]
    assert swap.state is SwapState.INITIATED
    assert swap.timelock == 1000 + 60
    assert swap.target_block_id == ""

    registry.accept_cross_chain_swap(swap_id, "block_b")
    assert swap.state is SwapState.ACCEPTED
    assert swap.target_block_id == "block_b"

    with pytest.raises(HyperDAGError, match="not in Initiated state"):
        registry.accept_cross_chain_swap(swap_id, "block_c")


def test_accept_unknown_swap():
    registry = make_registry()
    with pytest.raises(HyperDAGError, match="Swap ID nope not found"):
        registry.accept_cross_chain_swap("nope", "block")


def test_deploy_smart_contract():
    registry = make_registry()
    code = "fn echo()"
    contract_id = registry.deploy_smart_contract(code, "owner")
    assert contract_id == keccak256(code.encode()).hex()
    contract = registry.smart_contracts[contract_id]
    assert contract.owner == "owner"
    assert contract.storage == {}
    assert contract.execute("hi") == "echo: hi"
    assert contract.storage["last_input"] == "hi"