"""
Verifiable Presentation Verifier
================================

Verifies presentations as an ordered pipeline with no partial credit:

1. Structure: proof present, at least one credential, expected nonce
2. Holder authentication: the presentation's own proof
3. Credentials: for each embedded VC in order, its issuer proof, expiration
   and status; the first failing index is reported
4. Policy: caller-supplied sufficiency rules over the revealed claims
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .credential_issuer import REVOCATION_ENTRY_TYPE
from .crypto import CryptoProvider
from .errors import (
    DIDWalletError,
    ExpiredCredentialError,
    InvalidSignatureError,
    MalformedCredentialError,
    MalformedPresentationError,
    NotFoundError,
    PolicyError,
    RevokedCredentialError,
    StatusCheckError,
    VerificationError,
)
from .models import (
    PURPOSE_ASSERTION,
    PURPOSE_AUTHENTICATION,
    VerifiableCredential,
    VerifiablePresentation,
    format_timestamp,
    utcnow,
)
from .storage import Store

logger = logging.getLogger(__name__)


class VerificationStage(Enum):
    STRUCTURE = "structure"
    HOLDER_AUTHENTICATION = "holder_authentication"
    CREDENTIALS = "credentials"
    POLICY = "policy"


class VerificationStatus(Enum):
    """Presentation / credential verification status"""
    VALID = "valid"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    REVOKED = "revoked"
    POLICY_FAILED = "policy_failed"
    STATUS_UNAVAILABLE = "status_unavailable"
    ERROR = "error"


_STATUS_BY_ERROR = [
    (MalformedPresentationError, VerificationStatus.MALFORMED),
    (MalformedCredentialError, VerificationStatus.MALFORMED),
    (InvalidSignatureError, VerificationStatus.INVALID_SIGNATURE),
    (ExpiredCredentialError, VerificationStatus.EXPIRED),
    (RevokedCredentialError, VerificationStatus.REVOKED),
    (PolicyError, VerificationStatus.POLICY_FAILED),
    (StatusCheckError, VerificationStatus.STATUS_UNAVAILABLE),
]


@dataclass
class VerificationResult:
    """Result of presentation or credential verification"""
    is_valid: bool
    status: VerificationStatus
    checks: Dict[str, bool]
    errors: List[str] = field(default_factory=list)
    stage: Optional[str] = None
    credential_index: Optional[int] = None
    error: Optional[DIDWalletError] = None
    verified_at: str = ""

    def __post_init__(self):
        if not self.verified_at:
            self.verified_at = format_timestamp(utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "status": self.status.value,
            "stage": self.stage,
            "credentialIndex": self.credential_index,
            "checks": self.checks,
            "errors": self.errors,
            "verifiedAt": self.verified_at
        }


# ==================== STATUS CHECKERS ====================

class StatusChecker(ABC):
    """Revocation lookup for credentials carrying a credentialStatus"""

    @abstractmethod
    def check(self, vc: VerifiableCredential):
        """Raise RevokedCredentialError if the credential is revoked"""


class NoStatusCheck(StatusChecker):
    """Accepts every credential; status references are not resolved"""

    def check(self, vc: VerifiableCredential):
        return None


class StoreStatusChecker(StatusChecker):
    """
    Reads revocation entries written by CredentialIssuer.revoke_credential

    Status types other than the store entry type are not resolved and pass.
    """

    def __init__(self, store: Store, status_type: str = REVOCATION_ENTRY_TYPE):
        self.store = store
        self.status_type = status_type

    def check(self, vc: VerifiableCredential):
        status = vc.credential_status
        if status is None:
            return
        if status.type != self.status_type:
            logger.debug("Unresolved status type %s for %s", status.type, vc.id)
            return

        try:
            entry = self.store.load(status.id)
        except NotFoundError:
            return

        if entry.get("revoked"):
            raise RevokedCredentialError(
                f"Credential has been revoked: {entry.get('reason') or 'no reason given'}",
                entity_id=vc.id
            )


# ==================== POLICIES ====================

class PresentationPolicy(ABC):
    """Sufficiency rule evaluated after all proofs have passed"""

    @abstractmethod
    def evaluate(self, vp: VerifiablePresentation):
        """Raise PolicyError if the presentation does not satisfy the rule"""


class RequiredCredentialTypes(PresentationPolicy):
    def __init__(self, types: Iterable[str]):
        self.types = list(types)

    def evaluate(self, vp: VerifiablePresentation):
        presented = {t for vc in vp.verifiable_credential for t in vc.type}
        missing = [t for t in self.types if t not in presented]
        if missing:
            raise PolicyError(f"Missing required credential types: {', '.join(missing)}")


class MinimumCredentialCount(PresentationPolicy):
    def __init__(self, count: int):
        self.count = count

    def evaluate(self, vp: VerifiablePresentation):
        if len(vp.verifiable_credential) < self.count:
            raise PolicyError(
                f"Insufficient credentials: {len(vp.verifiable_credential)} presented, {self.count} required"
            )


class RequiredClaims(PresentationPolicy):
    """
    Claims that must be revealed

    With `credential_type` set, the claims must come from a credential of
    that type.
    """

    def __init__(self, claims: Iterable[str], credential_type: Optional[str] = None):
        self.claims = list(claims)
        self.credential_type = credential_type

    def evaluate(self, vp: VerifiablePresentation):
        revealed = set()
        for vc in vp.verifiable_credential:
            if self.credential_type and self.credential_type not in vc.type:
                continue
            revealed.update(vc.credential_subject)

        missing = [c for c in self.claims if c not in revealed]
        if missing:
            raise PolicyError(f"Required claims not revealed: {', '.join(missing)}")


class TrustedIssuers(PresentationPolicy):
    def __init__(self, issuers: Iterable[str]):
        self.issuers = set(issuers)

    def add(self, issuer_did: str):
        self.issuers.add(issuer_did)

    def evaluate(self, vp: VerifiablePresentation):
        for vc in vp.verifiable_credential:
            if vc.issuer not in self.issuers:
                raise PolicyError(f"Issuer {vc.issuer} is not trusted", entity_id=vc.id)


# ==================== VERIFIER ====================

def _owner(method_id: str) -> str:
    return method_id.split("#", 1)[0]


class PresentationVerifier:
    """
    Verifies Verifiable Presentations and their embedded credentials

    Policies are evaluated after the proof checks in the order added;
    new rules plug in through add_policy() without touching the earlier
    stages.
    """

    def __init__(
        self,
        crypto: CryptoProvider,
        status_checker: Optional[StatusChecker] = None,
        policies: Optional[Iterable[PresentationPolicy]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.crypto = crypto
        self.status_checker = status_checker or NoStatusCheck()
        self.policies: List[PresentationPolicy] = list(policies or [])
        self.clock = clock or utcnow

    def add_policy(self, policy: PresentationPolicy):
        self.policies.append(policy)

    # ==================== PIPELINE ====================

    def verify(self, vp: VerifiablePresentation, expected_nonce: Optional[str] = None, checks: Optional[Dict[str, bool]] = None):
        """
        Run the full pipeline, raising the first VerificationError

        `checks` (if given) is filled with the stages that passed.
        """
        checks = checks if checks is not None else {}

        self._check_structure(vp, expected_nonce)
        checks[VerificationStage.STRUCTURE.value] = True

        self._authenticate_holder(vp)
        checks[VerificationStage.HOLDER_AUTHENTICATION.value] = True

        now = self.clock()
        for index, vc in enumerate(vp.verifiable_credential):
            try:
                self._verify_embedded(vc, now)
            except VerificationError as e:
                e.stage = VerificationStage.CREDENTIALS.value
                e.credential_index = index
                raise
        checks[VerificationStage.CREDENTIALS.value] = True

        for policy in self.policies:
            try:
                policy.evaluate(vp)
            except PolicyError as e:
                e.stage = VerificationStage.POLICY.value
                raise
        checks[VerificationStage.POLICY.value] = True

    def verify_presentation(self, vp: VerifiablePresentation, expected_nonce: Optional[str] = None) -> VerificationResult:
        """
        Verify a presentation

        Returns:
            VerificationResult, valid only if every stage passed
        """
        checks = {stage.value: False for stage in VerificationStage}
        try:
            self.verify(vp, expected_nonce=expected_nonce, checks=checks)
        except VerificationError as e:
            logger.info("Presentation %s rejected: %s", vp.nonce, e)
            return self._failure(e, checks)

        return VerificationResult(is_valid=True, status=VerificationStatus.VALID, checks=checks)

    def verify_credential(self, vc: VerifiableCredential) -> VerificationResult:
        """Run the per-credential checks on a single credential"""
        checks = {VerificationStage.CREDENTIALS.value: False}
        try:
            self._verify_embedded(vc, self.clock())
        except VerificationError as e:
            e.stage = VerificationStage.CREDENTIALS.value
            return self._failure(e, checks)

        checks[VerificationStage.CREDENTIALS.value] = True
        return VerificationResult(is_valid=True, status=VerificationStatus.VALID, checks=checks)

    @staticmethod
    def _failure(error: VerificationError, checks: Dict[str, bool]) -> VerificationResult:
        status = VerificationStatus.ERROR
        for error_type, mapped in _STATUS_BY_ERROR:
            if isinstance(error, error_type):
                status = mapped
                break

        return VerificationResult(
            is_valid=False,
            status=status,
            checks=checks,
            errors=[str(error)],
            stage=error.stage,
            credential_index=error.credential_index,
            error=error
        )

    # ==================== STAGES ====================

    def _check_structure(self, vp: VerifiablePresentation, expected_nonce: Optional[str]):
        stage = VerificationStage.STRUCTURE.value
        if vp.proof is None:
            raise MalformedPresentationError("Missing Verifiable Presentation proof", stage=stage)
        if not vp.verifiable_credential:
            raise MalformedPresentationError("No Verifiable Credentials attached", stage=stage)
        if expected_nonce is not None and vp.nonce != expected_nonce:
            raise MalformedPresentationError("Nonce does not match the expected challenge", stage=stage)

    def _authenticate_holder(self, vp: VerifiablePresentation):
        stage = VerificationStage.HOLDER_AUTHENTICATION.value
        proof = vp.proof

        if proof.proof_purpose != PURPOSE_AUTHENTICATION:
            raise InvalidSignatureError(f"Unexpected proof purpose: {proof.proof_purpose}", stage=stage)
        if _owner(proof.verification_method) != vp.holder:
            raise InvalidSignatureError(
                "Verification method does not belong to the holder",
                stage=stage,
                entity_id=proof.verification_method
            )

        if not self._verify_proof(lambda: self.crypto.verify_presentation(vp), stage):
            raise InvalidSignatureError("VP signature is invalid", stage=stage, entity_id=vp.holder)

    def _verify_embedded(self, vc: VerifiableCredential, now: datetime):
        if vc.proof is None:
            raise MalformedCredentialError("Missing VC proof", entity_id=vc.id)

        # Issuer signature
        if vc.proof.proof_purpose != PURPOSE_ASSERTION:
            raise InvalidSignatureError(f"Unexpected proof purpose: {vc.proof.proof_purpose}", entity_id=vc.id)
        if _owner(vc.proof.verification_method) != vc.issuer:
            raise InvalidSignatureError("Verification method does not belong to the issuer", entity_id=vc.id)
        if not self._verify_proof(lambda: self.crypto.verify_credential(vc), None):
            raise InvalidSignatureError("VC signature or disclosed claims are invalid", entity_id=vc.id)

        # Expiration
        if vc.expiration_date is not None and now > vc.expiration_date:
            raise ExpiredCredentialError(
                f"Credential expired at {format_timestamp(vc.expiration_date)}",
                entity_id=vc.id
            )

        # Status
        try:
            self.status_checker.check(vc)
        except VerificationError:
            raise
        except DIDWalletError as e:
            raise StatusCheckError(f"Cannot check credential status: {e}", entity_id=vc.id) from e

    @staticmethod
    def _verify_proof(check: Callable[[], bool], stage: Optional[str]) -> bool:
        """Key resolution failures count as signature failures"""
        try:
            return check()
        except VerificationError:
            raise
        except DIDWalletError as e:
            raise InvalidSignatureError(
                f"Cannot resolve verification key: {e}",
                stage=stage,
                entity_id=e.entity_id
            ) from e
