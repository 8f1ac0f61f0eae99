#!/usr/bin/env python3
"""
Quick start guide for Voile exit notes.

Run this to see a complete workflow example.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voile import Delayed, EncryptionKey, ExitNote, ProofGenerator, ProofVerifier
from voile.config import configure_logging
from voile.core.zkproof import generate_owner_secret
from voile.exceptions import NullifierReusedError


def main():
    """Run a simple example of the exit-note workflow."""
    configure_logging()

    print("=" * 70)
    print("VOILE EXIT NOTE QUICK START")
    print("=" * 70)
    print()

    # Step 1: Account setup
    print("Step 1: Register the owner with a verifier")
    print("-" * 70)
    generator = ProofGenerator("voile_demo")
    secret = generate_owner_secret()
    verifier = ProofVerifier("voile_demo", owner_bindings=[generator.owner_binding(secret)])
    print("✓ Owner binding registered (the secret never leaves the device)")
    print()

    # Step 2: Create the note
    print("Step 2: Create an exit note")
    print("-" * 70)
    note = ExitNote.new(1_000_000, b"\x42" * 32, Delayed(blocks=720))
    print(f"✓ Note for {note.amount} units, terms {note.terms}")
    print(f"  Commitment: {note.commitment()}")
    print()

    # Step 3: Share it off-chain
    print("Step 3: Encrypt the note for a counterparty")
    print("-" * 70)
    key = EncryptionKey.generate()
    encrypted = note.encrypt(key)
    print(f"✓ {len(encrypted.to_bytes())} bytes, authenticated={encrypted.authenticated}")
    assert ExitNote.decrypt(encrypted, key) == note
    print("✓ Counterparty decrypted and reopened the commitment")
    print()

    # Step 4: Prove and verify
    print("Step 4: Submit the exit proof")
    print("-" * 70)
    proof = generator.generate(note, secret)
    print(f"  Proof: {proof.to_hex()[:42]}...")
    verifier.verify_and_consume(proof)
    print("✓ Proof accepted, nullifier recorded")
    print()

    # Step 5: Replay
    print("Step 5: Replay the same proof")
    print("-" * 70)
    try:
        verifier.verify_and_consume(proof)
    except NullifierReusedError as e:
        print(f"✓ Rejected: {e}")
    verifier.close()


if __name__ == "__main__":
    main()
