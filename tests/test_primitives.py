import pytest

from hyperchain.primitives import (
    CrossChainSwap,
    HomomorphicEncrypted,
    HyperDAGError,
    LatticeSignature,
    SmartContract,
    SwapState,
    compute_merkle_root,
    keccak256,
    pow_hash,
    signing_digest,
)

EMPTY_KECCAK = "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_keccak256_of_empty_input():
    assert keccak256(b"").hex() == EMPTY_KECCAK


def test_merkle_root_of_no_transactions_is_empty_hash():
    assert compute_merkle_root([]) == EMPTY_KECCAK


def test_merkle_root_of_single_id_is_its_leaf():
    assert compute_merkle_root(["tx1"]) == keccak256(b"tx1").hex()


def test_merkle_root_pads_odd_levels_with_last_leaf():
    assert compute_merkle_root(["a", "b", "c"]) == compute_merkle_root(
        ["a", "b", "c", "c"]
    )


def test_merkle_root_depends_on_order():
    assert compute_merkle_root(["a", "b"]) != compute_merkle_root(["b", "a"])
    assert len(compute_merkle_root(["a", "b"])) == 64


def test_generate_takes_first_32_bytes_of_long_key():
    key = bytes(range(40))
    signer = LatticeSignature.generate(key)
    assert signer.public_key == key[:32]


def test_generate_base_signature_folds_key_modulo_64():
    assert LatticeSignature.generate(b"\x01" * 64).signature == b"\x01" * 64
    assert LatticeSignature.generate(b"\x01" * 128).signature == bytes(64)


def test_short_key_public_key_is_extended_to_32_bytes():
    signer = LatticeSignature.generate(b"\x07" * 8)
    assert len(signer.public_key) == 32
    assert signer.public_key[:8] == b"\x07" * 8
    assert signer.public_key[8:] == keccak256(b"\x07" * 8)[:24]


def test_sign_and_verify_round_trip():
    signer = LatticeSignature.generate(b"placeholder" * 4)
    signature = signer.sign(b"message")
    assert len(signature) == 64
    assert signer.verify(b"message", signature)


def test_verify_rejects_other_message_and_tampered_signature():
    signer = LatticeSignature.generate(b"placeholder" * 4)
    signature = signer.sign(b"message")
    assert not signer.verify(b"other", signature)
    tampered = bytes([signature[0] ^ 1]) + signature[1:]
    assert not signer.verify(b"message", tampered)


def test_encrypt_zero_without_key_material_decrypts():
    assert HomomorphicEncrypted.encrypt(0, b"").decrypt(b"") == 0


def test_decrypt_of_nonzero_amount_raises():
    encrypted = HomomorphicEncrypted.encrypt(5, b"")
    with pytest.raises(HyperDAGError, match="Placeholder decryption"):
        encrypted.decrypt(b"")


def test_encrypt_is_deterministic_and_key_dependent():
    first = HomomorphicEncrypted.encrypt(100, b"key")
    assert first == HomomorphicEncrypted.encrypt(100, b"key")
    assert first != HomomorphicEncrypted.encrypt(100, b"other")
    assert len(first.encrypted_amount) == 64


def test_add_combines_in_order():
    a = HomomorphicEncrypted.encrypt(1, b"k")
    b = HomomorphicEncrypted.encrypt(2, b"k")
    assert a.add(b) == a.add(b)
    assert a.add(b) != b.add(a)
    assert len(a.add(b).encrypted_amount) == 64


def test_signing_digest_is_deterministic_and_sensitive():
    args = dict(
        chain_id=0,
        merkle_root=EMPTY_KECCAK,
        parents=["p1", "p2"],
        timestamp=1000,
        nonce=0,
        difficulty=1,
        validator="v",
        miner="m",
    )
    digest = signing_digest(**args)
    assert len(digest) == 32
    assert digest == signing_digest(**args)
    assert digest != signing_digest(**{**args, "nonce": 1})
    assert digest != signing_digest(**{**args, "chain_id": 1})


def test_pow_hash_is_hex_and_nonce_sensitive():
    first = pow_hash(0, EMPTY_KECCAK, 1000, "m", ["p"], 1, 0)
    second = pow_hash(0, EMPTY_KECCAK, 1000, "m", ["p"], 1, 1)
    assert len(first) == 64
    assert int(first, 16) >= 0
    assert first != second


def test_echo_contract_records_input():
    contract = SmartContract(contract_id="c", code="echo", owner="o")
    assert contract.execute("hi") == "echo: hi"
    assert contract.storage["last_input"] == "hi"


def test_counter_contract_increments():
    contract = SmartContract(contract_id="c", code="increment_counter", owner="o")
    assert contract.execute("") == "counter updated to: 1"
    assert contract.execute("") == "counter updated to: 2"
    assert contract.storage["counter"] == "2"


def test_counter_contract_resumes_and_resets_unparsable_value():
    contract = SmartContract(
        contract_id="c", code="increment_counter", owner="o", storage={"counter": "41"}
    )
    assert contract.execute("") == "counter updated to: 42"
    contract.storage["counter"] = "junk"
    assert contract.execute("") == "counter updated to: 1"


def test_unsupported_contract_raises():
    contract = SmartContract(contract_id="c", code="noop", owner="o")
    with pytest.raises(HyperDAGError, match="Unsupported contract code"):
        contract.execute("x")


def test_cross_chain_swap_starts_initiated():
    swap = CrossChainSwap(
        swap_id="s",
        source_chain=0,
        target_chain=1,
        source_block_id="b",
        target_block_id="",
        amount=10,
        initiator="i",
        responder="r",
        timelock=100,
    )
    assert swap.state is SwapState.INITIATED
    assert SwapState("Accepted") is SwapState.ACCEPTED