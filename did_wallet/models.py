"""
Data model for DIDs, Verifiable Credentials and Verifiable Presentations
=======================================================================

JSON shapes follow W3C DID Core 1.0 and the VC Data Model 1.1.
Every record converts to and from its camelCase JSON form without loss.

Reference:
- https://www.w3.org/TR/did-core/
- https://www.w3.org/TR/vc-data-model/
"""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

BASE_CREDENTIAL_TYPE = "VerifiableCredential"
BASE_PRESENTATION_TYPE = "VerifiablePresentation"
SUBJECT_ID_KEY = "id"

DID_CONTEXT = ["https://www.w3.org/ns/did/v1"]
CREDENTIALS_CONTEXT = ["https://www.w3.org/2018/credentials/v1"]

PURPOSE_ASSERTION = "assertionMethod"
PURPOSE_AUTHENTICATION = "authentication"

DID_PREFIX = "did:"
VC_PREFIX = "vc:"
VP_PREFIX = "vp:"


# ==================== TIMESTAMPS ====================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a Z suffix; microseconds only when present"""
    value = value.astimezone(timezone.utc)
    if value.microsecond:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_optional(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


# ==================== DID DOCUMENT ====================

@dataclass
class VerificationMethod:
    """Verification method entry of a DID Document"""
    id: str
    type: str
    controller: str
    public_key_jwk: Dict[str, Any] = field(default_factory=dict)
    blockchain_account_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
            "publicKeyJwk": self.public_key_jwk
        }
        if self.blockchain_account_id:
            result["blockchainAccountId"] = self.blockchain_account_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationMethod":
        return cls(
            id=data["id"],
            type=data["type"],
            controller=data.get("controller", ""),
            public_key_jwk=data.get("publicKeyJwk", {}),
            blockchain_account_id=data.get("blockchainAccountId")
        )


@dataclass
class DIDDocument:
    """
    W3C DID Document

    Immutable once created: adding a key means minting a new identifier.
    """
    id: str
    context: List[str] = field(default_factory=lambda: list(DID_CONTEXT))
    verification_method: List[VerificationMethod] = field(default_factory=list)
    authentication: List[str] = field(default_factory=list)
    assertion_method: List[str] = field(default_factory=list)
    created: Optional[datetime] = None

    def get_verification_method(self, method_id: str) -> Optional[VerificationMethod]:
        for vm in self.verification_method:
            if vm.id == method_id:
                return vm
        return None

    def to_dict(self) -> Dict[str, Any]:
        doc = {
            "@context": self.context,
            "id": self.id,
            "verificationMethod": [vm.to_dict() for vm in self.verification_method],
            "authentication": self.authentication,
            "assertionMethod": self.assertion_method
        }
        if self.created:
            doc["created"] = format_timestamp(self.created)
        return doc

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DIDDocument":
        return cls(
            id=data["id"],
            context=data.get("@context", []),
            verification_method=[
                VerificationMethod.from_dict(vm) for vm in data.get("verificationMethod", [])
            ],
            authentication=data.get("authentication", []),
            assertion_method=data.get("assertionMethod", []),
            created=_parse_optional(data.get("created"))
        )


# ==================== PROOF ====================

@dataclass
class Proof:
    """Signature block attached to a VC (assertionMethod) or VP (authentication)"""
    type: str
    created: datetime
    proof_purpose: str
    verification_method: str
    proof_value: str
    # Signed salted claim digests, credentials only
    claim_digests: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "created": format_timestamp(self.created),
            "proofPurpose": self.proof_purpose,
            "verificationMethod": self.verification_method,
            "proofValue": self.proof_value
        }
        if self.claim_digests is not None:
            result["claimDigests"] = self.claim_digests
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proof":
        return cls(
            type=data.get("type", ""),
            created=parse_timestamp(data["created"]),
            proof_purpose=data.get("proofPurpose", ""),
            verification_method=data.get("verificationMethod", ""),
            proof_value=data.get("proofValue", ""),
            claim_digests=data.get("claimDigests")
        )


@dataclass
class CredentialStatus:
    """Pointer used by a status checker to look up revocation"""
    id: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialStatus":
        return cls(id=data["id"], type=data["type"])


# ==================== VERIFIABLE CREDENTIAL ====================

@dataclass
class VerifiableCredential:
    """
    W3C Verifiable Credential

    `credential_subject` is an ordered mapping of claim name to any JSON
    value and always carries the subject DID under "id".
    `disclosures` maps each disclosed claim to the salt its signed digest
    was computed with.
    """
    id: str
    issuer: str
    issuance_date: datetime
    credential_subject: Dict[str, Any]
    type: List[str] = field(default_factory=lambda: [BASE_CREDENTIAL_TYPE])
    context: List[str] = field(default_factory=lambda: list(CREDENTIALS_CONTEXT))
    expiration_date: Optional[datetime] = None
    credential_status: Optional[CredentialStatus] = None
    proof: Optional[Proof] = None
    disclosures: Dict[str, str] = field(default_factory=dict)

    @property
    def subject_id(self) -> str:
        return self.credential_subject.get(SUBJECT_ID_KEY, "")

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """No expiration, or expiration strictly in the future"""
        if self.expiration_date is None:
            return True
        return self.expiration_date > (now or utcnow())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Expiration declared and reached"""
        if self.expiration_date is None:
            return False
        return self.expiration_date <= (now or utcnow())

    def copy(self) -> "VerifiableCredential":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        vc = {
            "@context": self.context,
            "id": self.id,
            "type": self.type,
            "issuer": self.issuer,
            "issuanceDate": format_timestamp(self.issuance_date),
            "credentialSubject": self.credential_subject
        }

        if self.expiration_date:
            vc["expirationDate"] = format_timestamp(self.expiration_date)
        if self.credential_status:
            vc["credentialStatus"] = self.credential_status.to_dict()
        if self.disclosures:
            vc["disclosures"] = self.disclosures
        if self.proof:
            vc["proof"] = self.proof.to_dict()

        return vc

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifiableCredential":
        status = data.get("credentialStatus")
        proof = data.get("proof")
        return cls(
            context=data.get("@context", []),
            id=data.get("id", ""),
            type=data.get("type", []),
            issuer=data.get("issuer", ""),
            issuance_date=parse_timestamp(data["issuanceDate"]),
            expiration_date=_parse_optional(data.get("expirationDate")),
            credential_subject=data.get("credentialSubject", {}),
            credential_status=CredentialStatus.from_dict(status) if status else None,
            proof=Proof.from_dict(proof) if proof else None,
            disclosures=data.get("disclosures", {})
        )


# ==================== VERIFIABLE PRESENTATION ====================

@dataclass
class VerifiablePresentation:
    """
    W3C Verifiable Presentation

    Stored under `vp:<nonce>`; a presentation is never updated, a new nonce
    means a new presentation.
    """
    holder: str
    nonce: str
    created: datetime
    verifiable_credential: List[VerifiableCredential] = field(default_factory=list)
    type: List[str] = field(default_factory=lambda: [BASE_PRESENTATION_TYPE])
    context: List[str] = field(default_factory=lambda: list(CREDENTIALS_CONTEXT))
    proof: Optional[Proof] = None

    @property
    def storage_key(self) -> str:
        return presentation_key(self.nonce)

    def to_dict(self) -> Dict[str, Any]:
        vp = {
            "@context": self.context,
            "type": self.type,
            "verifiableCredential": [vc.to_dict() for vc in self.verifiable_credential],
            "holder": self.holder,
            "nonce": self.nonce,
            "created": format_timestamp(self.created)
        }
        if self.proof:
            vp["proof"] = self.proof.to_dict()
        return vp

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifiablePresentation":
        proof = data.get("proof")
        return cls(
            context=data.get("@context", []),
            type=data.get("type", []),
            verifiable_credential=[
                VerifiableCredential.from_dict(vc) for vc in data.get("verifiableCredential", [])
            ],
            holder=data.get("holder", ""),
            nonce=data.get("nonce", ""),
            created=parse_timestamp(data["created"]),
            proof=Proof.from_dict(proof) if proof else None
        )


def presentation_key(id_or_nonce: str) -> str:
    """Storage key for a presentation given its nonce or its full key"""
    if id_or_nonce.startswith(VP_PREFIX):
        return id_or_nonce
    return VP_PREFIX + id_or_nonce


# ==================== REQUESTS & FILTERS ====================

@dataclass
class CredentialRequest:
    """Input for CredentialIssuer.issue_credential"""
    issuer_did: str
    subject_did: str
    credential_type: List[str] = field(default_factory=list)
    claims: Dict[str, Any] = field(default_factory=dict)
    validity_days: int = 0
    options: Dict[str, Any] = field(default_factory=dict)
    revocable: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialRequest":
        return cls(
            issuer_did=data.get("issuerDID", ""),
            subject_did=data.get("subjectDID", ""),
            credential_type=data.get("credentialType", []),
            claims=data.get("claims", {}),
            validity_days=data.get("validityDays", 0),
            options=data.get("options", {}),
            revocable=data.get("revocable", False)
        )


@dataclass
class CredentialFilter:
    """Listing filter for stored credentials; unset fields match everything"""
    issuer: str = ""
    subject_id: str = ""
    cred_type: str = ""
    active_only: bool = False
    expired_only: bool = False

    def matches(self, vc: VerifiableCredential, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.issuer and vc.issuer != self.issuer:
            return False
        if self.subject_id and vc.subject_id != self.subject_id:
            return False
        if self.cred_type and self.cred_type not in vc.type:
            return False
        if self.active_only and not vc.is_active(now):
            return False
        if self.expired_only and not vc.is_expired(now):
            return False
        return True


@dataclass
class PresentationFilter:
    """
    Listing filter for stored presentations

    Credential criteria match when any embedded credential matches;
    `active_only` requires every embedded credential to be active,
    `expired_only` requires at least one to be expired.
    """
    holder: str = ""
    issuer: str = ""
    subject_id: str = ""
    cred_type: str = ""
    active_only: bool = False
    expired_only: bool = False

    def matches(self, vp: VerifiablePresentation, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        credentials = vp.verifiable_credential

        if self.holder and vp.holder != self.holder:
            return False
        if self.issuer and not any(vc.issuer == self.issuer for vc in credentials):
            return False
        if self.subject_id and not any(vc.subject_id == self.subject_id for vc in credentials):
            return False
        if self.cred_type and not any(self.cred_type in vc.type for vc in credentials):
            return False
        if self.active_only and not all(vc.is_active(now) for vc in credentials):
            return False
        if self.expired_only and not any(vc.is_expired(now) for vc in credentials):
            return False
        return True
