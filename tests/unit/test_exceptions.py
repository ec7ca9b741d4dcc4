"""
Unit tests for exception hierarchy.
"""

import pytest

from airdrop.exceptions import (
    AccountNotFoundError,
    AirdropError,
    AlreadyClaimedError,
    ArtifactError,
    BlockhashNotFoundError,
    ClaimError,
    ClaimSignatureError,
    ClaimSignatureExpiredError,
    ConfigurationError,
    DerivationMismatchError,
    FileReadError,
    FileWriteError,
    InsufficientFundsError,
    InsufficientVaultBalanceError,
    InvalidClaimSignatureError,
    InvalidConfigurationError,
    InvalidInstructionError,
    LookupTableUnavailableError,
    MalformedInputError,
    PoolAlreadyExistsError,
    PoolDrainedError,
    PoolError,
    PoolNotFoundError,
    ProofInvalidError,
    SignatureVerificationError,
    StorageError,
    TransactionError,
    TransactionTooLargeError,
    UnauthorizedError,
)

ALL_ERRORS = [
    AccountNotFoundError, AlreadyClaimedError, ArtifactError, BlockhashNotFoundError,
    ClaimError, ClaimSignatureError, ClaimSignatureExpiredError, ConfigurationError,
    DerivationMismatchError, FileReadError, FileWriteError, InsufficientFundsError,
    InsufficientVaultBalanceError, InvalidClaimSignatureError, InvalidConfigurationError,
    InvalidInstructionError, LookupTableUnavailableError, MalformedInputError,
    PoolAlreadyExistsError, PoolDrainedError, PoolError, PoolNotFoundError,
    ProofInvalidError, SignatureVerificationError, StorageError, TransactionError,
    TransactionTooLargeError, UnauthorizedError,
]


class TestExceptionHierarchy:
    """Test that exception hierarchy is correctly defined."""

    def test_base_exception(self):
        """Test that AirdropError is the base exception."""
        error = AirdropError("test error")
        assert isinstance(error, Exception)
        assert str(error) == "test error"

    @pytest.mark.parametrize("error_class", ALL_ERRORS)
    def test_every_error_inherits_from_base(self, error_class):
        assert issubclass(error_class, AirdropError)

    def test_claim_errors(self):
        for error_class in (
            ProofInvalidError, AlreadyClaimedError, InsufficientVaultBalanceError,
            LookupTableUnavailableError, DerivationMismatchError, ClaimSignatureError,
        ):
            assert issubclass(error_class, ClaimError)
        assert issubclass(InvalidClaimSignatureError, ClaimSignatureError)
        assert issubclass(ClaimSignatureExpiredError, ClaimSignatureError)

    def test_pool_errors(self):
        assert issubclass(PoolNotFoundError, PoolError)
        assert issubclass(PoolAlreadyExistsError, PoolError)
        assert issubclass(PoolDrainedError, PoolError)

    def test_transaction_errors(self):
        for error_class in (
            TransactionTooLargeError, SignatureVerificationError, BlockhashNotFoundError,
            AccountNotFoundError, InsufficientFundsError, InvalidInstructionError,
        ):
            assert issubclass(error_class, TransactionError)

    def test_storage_errors(self):
        assert issubclass(FileReadError, StorageError)
        assert issubclass(FileWriteError, StorageError)
        assert issubclass(ArtifactError, StorageError)
        assert issubclass(InvalidConfigurationError, ConfigurationError)


class TestErrorKinds:
    """Test the stable kind strings reported in claim outcomes."""

    def test_kinds_are_unique(self):
        kinds = [error_class.kind for error_class in ALL_ERRORS + [AirdropError]]
        assert len(kinds) == len(set(kinds))

    @pytest.mark.parametrize(
        "error_class,kind",
        [
            (ProofInvalidError, "ProofInvalid"),
            (AlreadyClaimedError, "AlreadyClaimed"),
            (InsufficientVaultBalanceError, "InsufficientVaultBalance"),
            (LookupTableUnavailableError, "LookupTableUnavailable"),
            (DerivationMismatchError, "DerivationMismatch"),
            (MalformedInputError, "MalformedInput"),
        ],
    )
    def test_claim_failure_kinds(self, error_class, kind):
        assert error_class.kind == kind
        assert error_class("detail").kind == kind

    def test_can_catch_by_family(self):
        with pytest.raises(ClaimError):
            raise AlreadyClaimedError("phase 1 already claimed")
