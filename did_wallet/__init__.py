"""
DID Wallet
==========

Decentralized identity credential lifecycle engine following W3C DID Core 1.0
and the Verifiable Credentials Data Model 1.1

Components:
- DIDManager: Create and resolve DID Documents
- KeyManager: Custody of private keys
- CredentialIssuer: Issue and revoke Verifiable Credentials
- Wallet: Hold credentials, build Verifiable Presentations
- PresentationVerifier: Verify Verifiable Presentations
- DIDService: Main integration service

Standards:
- W3C DID Core 1.0: https://www.w3.org/TR/did-core/
- W3C Verifiable Credentials: https://www.w3.org/TR/vc-data-model/
"""

from .errors import (
    DIDWalletError,
    ValidationError,
    NotFoundError,
    StorageError,
    UnsupportedKeyTypeError,
    KeyNotFoundError,
    KeyGenerationError,
    VerificationError,
    MalformedPresentationError,
    MalformedCredentialError,
    InvalidSignatureError,
    ExpiredCredentialError,
    RevokedCredentialError,
    PolicyError,
    StatusCheckError,
)
from .models import (
    DIDDocument,
    VerificationMethod,
    Proof,
    CredentialStatus,
    VerifiableCredential,
    VerifiablePresentation,
    CredentialRequest,
    CredentialFilter,
    PresentationFilter,
)
from .storage import Store, MemoryStore, FileStore, create_store
from .crypto import CryptoProvider
from .canonical import canonicalize
from .key_manager import KeyManager, KeyRecord, DefaultKeyPolicy
from .did_manager import DIDManager, DIDMethod
from .credential_issuer import CredentialIssuer
from .wallet import Wallet
from .credential_verifier import (
    PresentationVerifier,
    VerificationResult,
    VerificationStatus,
    VerificationStage,
    PresentationPolicy,
    RequiredCredentialTypes,
    MinimumCredentialCount,
    RequiredClaims,
    TrustedIssuers,
    StatusChecker,
    NoStatusCheck,
    StoreStatusChecker,
)
from .did_service import DIDService

__version__ = "1.0.0"
__all__ = [
    # Errors
    "DIDWalletError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "UnsupportedKeyTypeError",
    "KeyNotFoundError",
    "KeyGenerationError",
    "VerificationError",
    "MalformedPresentationError",
    "MalformedCredentialError",
    "InvalidSignatureError",
    "ExpiredCredentialError",
    "RevokedCredentialError",
    "PolicyError",
    "StatusCheckError",

    # Data model
    "DIDDocument",
    "VerificationMethod",
    "Proof",
    "CredentialStatus",
    "VerifiableCredential",
    "VerifiablePresentation",
    "CredentialRequest",
    "CredentialFilter",
    "PresentationFilter",

    # Storage & crypto
    "Store",
    "MemoryStore",
    "FileStore",
    "create_store",
    "CryptoProvider",
    "canonicalize",

    # Keys & DIDs
    "KeyManager",
    "KeyRecord",
    "DefaultKeyPolicy",
    "DIDManager",
    "DIDMethod",

    # Engines
    "CredentialIssuer",
    "Wallet",
    "PresentationVerifier",
    "VerificationResult",
    "VerificationStatus",
    "VerificationStage",

    # Verification plug-ins
    "PresentationPolicy",
    "RequiredCredentialTypes",
    "MinimumCredentialCount",
    "RequiredClaims",
    "TrustedIssuers",
    "StatusChecker",
    "NoStatusCheck",
    "StoreStatusChecker",

    # Service
    "DIDService"
]
