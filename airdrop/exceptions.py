"""
Copyright (C) 2026 Garudex Labs.  All Rights Reserved.
Merkle Airdrop, a product of Garudex Labs

Exception hierarchy for Merkle Airdrop.

All custom exceptions inherit from AirdropError base class. Every class
carries a stable ``kind`` string so outcomes can be reported without
collapsing distinct failures into a generic error.
"""


class AirdropError(Exception):
    """Base exception for all Merkle Airdrop errors."""
    kind = "AirdropError"


# Input Errors
class MalformedInputError(AirdropError):
    """Raised when allocation input is empty, negative, non-finite or overflows u64."""
    kind = "MalformedInput"


# Claim Errors
class ClaimError(AirdropError):
    """Base exception for claim-related errors."""
    kind = "ClaimError"


class ProofInvalidError(ClaimError):
    """Raised when a proof does not recompute the published root."""
    kind = "ProofInvalid"


class AlreadyClaimedError(ClaimError):
    """Raised when the claim record for (phase, recipient, token) already exists."""
    kind = "AlreadyClaimed"


class InsufficientVaultBalanceError(ClaimError):
    """Raised when the phase vault cannot cover the claimed amount."""
    kind = "InsufficientVaultBalance"


class LookupTableUnavailableError(ClaimError):
    """Raised when a phase's lookup table is missing or not yet active."""
    kind = "LookupTableUnavailable"


class DerivationMismatchError(ClaimError):
    """Raised when a supplied address disagrees with its derived address."""
    kind = "DerivationMismatch"


class ClaimSignatureError(ClaimError):
    """Base exception for signed claim authorization errors."""
    kind = "ClaimSignatureError"


class InvalidClaimSignatureError(ClaimSignatureError):
    """Raised when a claim authorization signature is missing or does not verify."""
    kind = "InvalidClaimSignature"


class ClaimSignatureExpiredError(ClaimSignatureError):
    """Raised when a claim authorization has expired."""
    kind = "ClaimSignatureExpired"


# Pool Errors
class PoolError(AirdropError):
    """Base exception for pool-related errors."""
    kind = "PoolError"


class PoolNotFoundError(PoolError):
    """Raised when no pool record exists for (phase, token)."""
    kind = "PoolNotFound"


class PoolAlreadyExistsError(PoolError):
    """Raised when creating a pool that already exists."""
    kind = "PoolAlreadyExists"


class PoolDrainedError(PoolError):
    """Raised when modifying a pool whose residual balance was withdrawn."""
    kind = "PoolDrained"


class UnauthorizedError(AirdropError):
    """Raised when an administrator-only operation is signed by someone else."""
    kind = "Unauthorized"


# Transaction Errors
class TransactionError(AirdropError):
    """Base exception for transaction processing errors."""
    kind = "TransactionError"


class TransactionTooLargeError(TransactionError):
    """Raised when a serialized transaction exceeds the size ceiling."""
    kind = "TransactionTooLarge"


class SignatureVerificationError(TransactionError):
    """Raised when a required transaction signature is missing or invalid."""
    kind = "SignatureVerification"


class BlockhashNotFoundError(TransactionError):
    """Raised when a transaction references an unknown blockhash."""
    kind = "BlockhashNotFound"


class AccountNotFoundError(TransactionError):
    """Raised when an instruction references an account that does not exist."""
    kind = "AccountNotFound"


class InsufficientFundsError(TransactionError):
    """Raised when a token transfer exceeds the source balance."""
    kind = "InsufficientFunds"


class InvalidInstructionError(TransactionError):
    """Raised when instruction data or accounts cannot be decoded."""
    kind = "InvalidInstruction"


# Configuration Errors
class ConfigurationError(AirdropError):
    """Base exception for configuration-related errors."""
    kind = "ConfigurationError"


class InvalidConfigurationError(ConfigurationError):
    """Raised when configuration is invalid or malformed."""
    kind = "InvalidConfiguration"


# Storage and Persistence Errors
class StorageError(AirdropError):
    """Base exception for storage-related errors."""
    kind = "StorageError"


class FileWriteError(StorageError):
    """Raised when writing to a file fails."""
    kind = "FileWrite"


class FileReadError(StorageError):
    """Raised when reading from a file fails."""
    kind = "FileRead"


class ArtifactError(StorageError):
    """Raised when a proof or pool artifact is malformed."""
    kind = "Artifact"
