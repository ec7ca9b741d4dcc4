"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Recipient-side claiming.

A recipient with allocations in several phases submits one transaction per
phase. Phases are independent: a failure in one is reported in that phase's
outcome and never stops the others. Claim status is read from the derived
claim record, never from local submission history, so claiming again after an
uncertain result is always safe.
"""

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

from airdrop.chain.keys import Keypair, Pubkey
from airdrop.chain.programs.airdrop import claim_reward_message
from airdrop.chain.runtime import Runtime
from airdrop.core.assembler import TransactionAssembler
from airdrop.exceptions import AirdropError, AlreadyClaimedError
from airdrop.logging_config import correlation_context, get_logger, log_claim_attempt
from airdrop.merkle.artifact import PhaseClaim

logger = get_logger(__name__)


class ClaimStatus:
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    FAILED = "failed"


@dataclass
class ClaimOutcome:
    """
    Result of one phase's claim.

    Attributes:
        phase: Phase claimed
        status: One of ClaimStatus
        signature: Transaction signature when the claim committed
        error_kind: Stable error kind (e.g. "ProofInvalid") when it did not
        message: Human-readable error detail
    """
    phase: int
    status: str
    signature: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ClaimStatus.CLAIMED


def sign_claim_reward(
    owner: Keypair, proof: Sequence[bytes], receiver: Pubkey, expire_at: int
) -> bytes:
    """Owner's authorization for receiver to claim owner's allocation until expire_at."""
    return owner.sign(claim_reward_message(proof, receiver, expire_at))


class AirdropClaimClient:
    """
    Claims allocations for one token mint.

    Args:
        runtime: Runtime to submit to
        mint: Token mint of the airdrop
        lookup_tables: Phase -> lookup table address, from the pool creation
            artifacts
        assembler: Transaction assembler (a default one is created if omitted)
    """

    def __init__(
        self,
        runtime: Runtime,
        mint: Pubkey,
        lookup_tables: Mapping[int, Pubkey],
        assembler: Optional[TransactionAssembler] = None,
    ):
        self.runtime = runtime
        self.mint = mint
        self.lookup_tables = dict(lookup_tables)
        self.assembler = assembler or TransactionAssembler(runtime)

    def claim_record_address(self, phase: int, owner: Pubkey) -> Pubkey:
        address, _ = self.runtime.deriver.claim_record_address(phase, owner, self.mint)
        return address

    def check_claimed(self, phase: int, owner: Pubkey) -> bool:
        """True if owner's claim record for phase exists."""
        return self.runtime.store.exists(self.claim_record_address(phase, owner))

    def claim_phase(self, claimer: Keypair, claim: PhaseClaim) -> str:
        """
        Submit one phase's claim.

        Returns:
            Transaction signature

        Raises:
            AirdropError: The distinct failure kind (ProofInvalid, AlreadyClaimed,
                LookupTableUnavailable, InsufficientVaultBalance, ...)
        """
        transaction = self.assembler.build_claim(
            claimer,
            claim.phase,
            self.mint,
            claim.amount,
            claim.proof,
            self.lookup_tables.get(claim.phase),
        )
        return self.runtime.send_transaction(transaction)

    def claim(self, claimer: Keypair, claims: Iterable[PhaseClaim]) -> List[ClaimOutcome]:
        """
        Claim every phase independently.

        Phases already claimed are reported as already claimed without
        resubmitting.

        Returns:
            One ClaimOutcome per phase, in input order
        """
        outcomes = []
        for claim in claims:
            with correlation_context():
                outcomes.append(self._claim_one(claimer, claim))
        claimed = sum(1 for o in outcomes if o.succeeded)
        logger.info(f"Claimed {claimed}/{len(outcomes)} phases for {claimer.pubkey}")
        return outcomes

    def _claim_one(self, claimer: Keypair, claim: PhaseClaim) -> ClaimOutcome:
        owner = claimer.pubkey
        if self.check_claimed(claim.phase, owner):
            log_claim_attempt(
                logger, claim.phase, str(owner), claim.amount, success=False,
                error_kind=AlreadyClaimedError.kind, submitted=False,
            )
            return ClaimOutcome(
                phase=claim.phase,
                status=ClaimStatus.ALREADY_CLAIMED,
                error_kind=AlreadyClaimedError.kind,
                message=f"phase {claim.phase} has already been claimed",
            )

        try:
            signature = self.claim_phase(claimer, claim)
        except AlreadyClaimedError as e:
            log_claim_attempt(logger, claim.phase, str(owner), claim.amount, success=False, error_kind=e.kind)
            return ClaimOutcome(
                phase=claim.phase, status=ClaimStatus.ALREADY_CLAIMED, error_kind=e.kind, message=str(e)
            )
        except AirdropError as e:
            log_claim_attempt(logger, claim.phase, str(owner), claim.amount, success=False, error_kind=e.kind)
            # A concurrent identical submission can win; the record decides
            if self.check_claimed(claim.phase, owner):
                return ClaimOutcome(
                    phase=claim.phase,
                    status=ClaimStatus.ALREADY_CLAIMED,
                    error_kind=AlreadyClaimedError.kind,
                    message=f"phase {claim.phase} was claimed by another submission ({e})",
                )
            return ClaimOutcome(
                phase=claim.phase, status=ClaimStatus.FAILED, error_kind=e.kind, message=str(e)
            )

        log_claim_attempt(logger, claim.phase, str(owner), claim.amount, success=True, signature=signature)
        return ClaimOutcome(phase=claim.phase, status=ClaimStatus.CLAIMED, signature=signature)

    def claim_with_receiver(
        self,
        receiver: Keypair,
        owner: Pubkey,
        claim: PhaseClaim,
        expire_at: int,
        signature: bytes,
    ) -> str:
        """
        Claim owner's allocation into receiver's token account.

        Raises:
            AirdropError: As for claim_phase, plus InvalidClaimSignature and
                ClaimSignatureExpired
        """
        transaction = self.assembler.build_claim_with_receiver(
            receiver,
            owner,
            claim.phase,
            self.mint,
            claim.amount,
            claim.proof,
            expire_at,
            signature,
            self.lookup_tables.get(claim.phase),
        )
        with correlation_context():
            try:
                result = self.runtime.send_transaction(transaction)
            except AirdropError as e:
                log_claim_attempt(
                    logger, claim.phase, str(owner), claim.amount, success=False,
                    error_kind=e.kind, receiver=str(receiver.pubkey),
                )
                raise
            log_claim_attempt(
                logger, claim.phase, str(owner), claim.amount, success=True,
                receiver=str(receiver.pubkey), signature=result,
            )
        return result
