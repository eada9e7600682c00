"""
Crypto Provider - key generation, canonical signing and verification

Supports:
- Ed25519: default for DID signing (W3C recommended)
- secp256k1: Ethereum-style recoverable signatures

Documents are signed over their canonical JSON form with the top-level
"proof" member removed, so the same logical content always produces the
same signed bytes whatever order its fields were built in.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys as eth_keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as EthKeysValidationError

from . import disclosure
from .canonical import b64url_decode, b64url_encode, canonicalize
from .errors import KeyNotFoundError, UnsupportedKeyTypeError, ValidationError
from .models import (
    DIDDocument,
    Proof,
    VerifiableCredential,
    VerifiablePresentation,
    VerificationMethod,
)
from .storage import Store

logger = logging.getLogger(__name__)

ED25519_2018 = "Ed25519VerificationKey2018"
ED25519_2020 = "Ed25519VerificationKey2020"
SECP256K1_2019 = "EcdsaSecp256k1VerificationKey2019"

ED25519_KEY_TYPES = (ED25519_2018, ED25519_2020)
SUPPORTED_KEY_TYPES = ED25519_KEY_TYPES + (SECP256K1_2019,)
DEFAULT_KEY_TYPE = ED25519_2020

# Raw private key sizes: Ed25519 is seed || public key
PRIVATE_KEY_SIZES = {
    ED25519_2018: 64,
    ED25519_2020: 64,
    SECP256K1_2019: 32,
}

PROOF_TYPES = {
    ED25519_2018: "Ed25519Signature2020",
    ED25519_2020: "Ed25519Signature2020",
    SECP256K1_2019: "EcdsaSecp256k1Signature2019",
}

Resolver = Callable[[str], VerificationMethod]


def _without_proof(payload: Any) -> Dict[str, Any]:
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()
    if not isinstance(payload, dict):
        raise ValidationError("Signed payload must be a JSON object", operation="canonicalize")
    return {k: v for k, v in payload.items() if k != "proof"}


def _check_key_type(key_type: str):
    if key_type not in SUPPORTED_KEY_TYPES:
        raise UnsupportedKeyTypeError(f"Unsupported key type: {key_type}", entity_id=key_type)


class CryptoProvider:
    """
    Generates key pairs, signs documents and verifies proofs

    Public keys are resolved from a proof's verification method through
    `resolver`. Without one, DID Documents are loaded from `store`.
    Plug a different resolver in to support external DID methods.
    """

    def __init__(self, store: Optional[Store] = None, resolver: Optional[Resolver] = None):
        self.store = store
        self._resolver = resolver

    # ==================== KEY GENERATION ====================

    def generate_key_pair(self, key_type: str = DEFAULT_KEY_TYPE) -> Tuple[bytes, Dict[str, Any]]:
        """
        Generate a fresh key pair

        Returns:
            (raw private key bytes, public key as JWK)
        """
        _check_key_type(key_type)

        if key_type in ED25519_KEY_TYPES:
            private_key = ed25519.Ed25519PrivateKey.generate()
            seed = private_key.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption()
            )
            public_bytes = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw
            )
            jwk = {"kty": "OKP", "crv": "Ed25519", "x": b64url_encode(public_bytes)}
            return seed + public_bytes, jwk

        account = Account.create()
        private_bytes = bytes(account.key)
        public_bytes = eth_keys.PrivateKey(private_bytes).public_key.to_bytes()
        jwk = {
            "kty": "EC",
            "crv": "secp256k1",
            "x": b64url_encode(public_bytes[:32]),
            "y": b64url_encode(public_bytes[32:])
        }
        return private_bytes, jwk

    @staticmethod
    def account_id(public_key_jwk: Dict[str, Any]) -> str:
        """CAIP-10 account id for a secp256k1 JWK"""
        public_bytes = b64url_decode(public_key_jwk["x"]) + b64url_decode(public_key_jwk["y"])
        address = eth_keys.PublicKey(public_bytes).to_checksum_address()
        return f"eip155:1:{address}"

    @staticmethod
    def proof_type(key_type: str) -> str:
        _check_key_type(key_type)
        return PROOF_TYPES[key_type]

    # ==================== SIGNING ====================

    def sign_document(self, document: Any, private_key: bytes, key_type: str = DEFAULT_KEY_TYPE) -> str:
        """
        Sign the canonical form of a document (its "proof" member excluded)

        Returns:
            base64url encoded signature
        """
        _check_key_type(key_type)
        if len(private_key) != PRIVATE_KEY_SIZES[key_type]:
            raise ValidationError(
                f"Invalid private key size ({len(private_key)}) for {key_type}",
                operation="sign_document"
            )

        message = canonicalize(_without_proof(document))

        if key_type in ED25519_KEY_TYPES:
            signer = ed25519.Ed25519PrivateKey.from_private_bytes(private_key[:32])
            return b64url_encode(signer.sign(message))

        signed = Account.sign_message(encode_defunct(primitive=message), private_key=private_key)
        return b64url_encode(bytes(signed.signature))

    # ==================== VERIFICATION ====================

    def resolve_verification_method(self, method_id: str) -> VerificationMethod:
        if self._resolver:
            return self._resolver(method_id)

        if self.store is None:
            raise KeyNotFoundError(
                "No resolver or store configured",
                operation="resolve_verification_method",
                entity_id=method_id
            )

        did = method_id.split("#", 1)[0]
        doc = DIDDocument.from_dict(self.store.load(did))
        vm = doc.get_verification_method(method_id)
        if vm is None:
            raise KeyNotFoundError(
                "Verification method not found in DID Document",
                operation="resolve_verification_method",
                entity_id=method_id
            )
        return vm

    def verify_signature(self, proof: Optional[Proof], payload: Any) -> bool:
        """
        Verify a proof against its payload

        Returns False for tampered payloads, wrong keys or malformed
        signatures. Raises KeyNotFoundError / NotFoundError when the
        verification method cannot be resolved.
        """
        if proof is None or not proof.proof_value:
            return False

        vm = self.resolve_verification_method(proof.verification_method)
        message = canonicalize(_without_proof(payload))

        try:
            signature = b64url_decode(proof.proof_value)
        except ValueError:
            logger.debug("Malformed signature encoding for %s", proof.verification_method)
            return False

        if vm.type in ED25519_KEY_TYPES:
            return self._verify_ed25519(vm, message, signature)
        if vm.type == SECP256K1_2019:
            return self._verify_secp256k1(vm, message, signature)

        raise UnsupportedKeyTypeError(f"Unsupported key type: {vm.type}", entity_id=vm.id)

    def _verify_ed25519(self, vm: VerificationMethod, message: bytes, signature: bytes) -> bool:
        try:
            public_key = ed25519.Ed25519PublicKey.from_public_bytes(b64url_decode(vm.public_key_jwk["x"]))
            public_key.verify(signature, message)
            return True
        except (InvalidSignature, ValueError, KeyError):
            return False

    def _verify_secp256k1(self, vm: VerificationMethod, message: bytes, signature: bytes) -> bool:
        try:
            expected = vm.blockchain_account_id or self.account_id(vm.public_key_jwk)
            recovered = Account.recover_message(encode_defunct(primitive=message), signature=signature)
        except (BadSignature, EthKeysValidationError, ValueError, TypeError, KeyError):
            return False
        return expected.split(":")[-1].lower() == recovered.lower()

    def verify_credential(self, vc: VerifiableCredential) -> bool:
        """Check disclosed claims against the signed digests, then the issuer signature"""
        if vc.proof is None:
            return False
        if not disclosure.check_disclosures(vc):
            return False
        return self.verify_signature(vc.proof, disclosure.signing_payload(vc))

    def verify_presentation(self, vp: VerifiablePresentation) -> bool:
        return self.verify_signature(vp.proof, vp.to_dict())
