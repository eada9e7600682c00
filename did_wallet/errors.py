"""
Error kinds for the DID Wallet engine

Every error carries the failing operation and entity id so callers can
diagnose without inspecting internals. `status_code` is the HTTP-class
mapping a transport layer should use (validation -> 400, not found -> 404,
everything else -> 500).
"""

from typing import Optional


class DIDWalletError(Exception):
    """Base class for all engine errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        entity_id: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.entity_id = entity_id

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.entity_id:
            context.append(f"id={self.entity_id}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class ValidationError(DIDWalletError):
    """Bad caller input, recoverable by correcting the request"""
    status_code = 400


class NotFoundError(DIDWalletError):
    """Referenced entity is absent"""
    status_code = 404


class StorageError(DIDWalletError):
    """Opaque failure from the persistence backend"""


class UnsupportedKeyTypeError(DIDWalletError):
    """Key type is not known to the crypto provider"""


class KeyNotFoundError(DIDWalletError):
    """Signing or verification key could not be resolved (or is corrupt)"""


class KeyGenerationError(DIDWalletError):
    """Key pair could not be created"""


# ==================== VERIFICATION PIPELINE ====================

class VerificationError(DIDWalletError):
    """
    Failure inside the presentation verification pipeline

    `stage` names the pipeline stage, `credential_index` the position of the
    offending embedded credential (stage 3 only).
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        credential_index: Optional[int] = None,
        operation: Optional[str] = None,
        entity_id: Optional[str] = None
    ):
        super().__init__(message, operation=operation, entity_id=entity_id)
        self.stage = stage
        self.credential_index = credential_index

    def __str__(self) -> str:
        prefix = ""
        if self.stage:
            prefix = f"[{self.stage}] "
        if self.credential_index is not None:
            prefix += f"VC index {self.credential_index}: "
        return prefix + super().__str__()


class MalformedPresentationError(VerificationError):
    pass


class MalformedCredentialError(VerificationError):
    pass


class InvalidSignatureError(VerificationError):
    pass


class ExpiredCredentialError(VerificationError):
    pass


class RevokedCredentialError(VerificationError):
    pass


class PolicyError(VerificationError):
    """A presentation policy rejected the revealed claim set"""


class StatusCheckError(VerificationError):
    """Credential status could not be determined"""
