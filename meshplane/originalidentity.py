"""Resolution of the original end-user identity carried in call metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .model import InvocationContext, MetadataEntry

METADATA_USER_ID = "x-service-mesh-original-user-id"
METADATA_SUBJECT = "x-service-mesh-original-user-subject"
METADATA_ISSUER = "x-service-mesh-original-user-issuer"
METADATA_TRUST = "x-service-mesh-original-user-trust"

SOURCE_NONE = "none"
SOURCE_METADATA = "metadata"

TRUST_ABSENT = "absent"
TRUST_LOCAL = "local"
TRUST_UNVERIFIED = "unverified"

PRINCIPAL_NONE = "none"
PRINCIPAL_CALLER = "caller"
PRINCIPAL_ORIGINAL_USER = "original_user"


@dataclass(frozen=True)
class Identity:
    """Original end-user identity fields."""

    user_id: str = ""
    subject: str = ""
    issuer: str = ""

    def present(self) -> bool:
        """True if any identity field is set."""
        return bool(self.user_id.strip() or self.subject.strip() or self.issuer.strip())

    def identified(self) -> bool:
        """True if the identity names a user (user id or subject)."""
        return bool(self.user_id.strip() or self.subject.strip())


@dataclass(frozen=True)
class CallerScope:
    """The calling service and its scope."""

    service: str = ""
    namespace: str = ""
    env: str = ""


@dataclass(frozen=True)
class Principal:
    """The principal a request is effectively made on behalf of."""

    kind: str = PRINCIPAL_NONE
    subject: str = ""
    trust: str = TRUST_ABSENT


@dataclass(frozen=True)
class Effective:
    """Identity, caller and trust resolved for one call."""

    identity: Identity = field(default_factory=Identity)
    caller: CallerScope = field(default_factory=CallerScope)
    source: str = SOURCE_NONE
    trust: str = TRUST_ABSENT

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def subject(self) -> str:
        return self.identity.subject

    @property
    def issuer(self) -> str:
        return self.identity.issuer

    def principal(self) -> Principal:
        """Pick the original user if identified, else the caller, else nobody."""
        if self.identity.identified():
            subject = self.subject.strip() or self.user_id.strip()
            return Principal(kind=PRINCIPAL_ORIGINAL_USER, subject=subject, trust=self.trust)
        if self.caller.service.strip():
            return Principal(kind=PRINCIPAL_CALLER, subject=self.caller.service, trust=TRUST_LOCAL)
        return Principal(kind=PRINCIPAL_NONE, trust=TRUST_ABSENT)

    def context_extensions(self) -> Dict[str, str]:
        """Flatten the resolved identity into authorization context extensions."""
        principal = self.principal()
        extensions = {
            "original_user_source": self.source,
            "original_user_trust": self.trust,
            "effective_principal_kind": principal.kind,
            "effective_principal_trust": principal.trust,
        }
        if self.caller.service.strip():
            extensions["caller_service"] = self.caller.service
        if self.caller.namespace.strip():
            extensions["caller_namespace"] = self.caller.namespace
        if self.caller.env.strip():
            extensions["caller_env"] = self.caller.env
        if self.identity.present():
            extensions["original_user_id"] = self.user_id
            extensions["original_user_subject"] = self.subject
            extensions["original_user_issuer"] = self.issuer
        if principal.subject.strip():
            extensions["effective_principal_subject"] = principal.subject
        return extensions


def _usable(entries: Optional[Iterable[Optional[MetadataEntry]]]):
    for entry in entries or ():
        if entry is None or not entry.values:
            continue
        yield entry.key.strip().lower(), entry.values[0].strip()


def extract(entries: Optional[Iterable[Optional[MetadataEntry]]]) -> Identity:
    """Read the original identity headers from metadata; later entries win."""
    values = {METADATA_USER_ID: "", METADATA_SUBJECT: "", METADATA_ISSUER: ""}
    for key, value in _usable(entries):
        if key in values:
            values[key] = value
    return Identity(
        user_id=values[METADATA_USER_ID],
        subject=values[METADATA_SUBJECT],
        issuer=values[METADATA_ISSUER],
    )


def extract_trust(entries: Optional[Iterable[Optional[MetadataEntry]]]) -> str:
    """Return the declared trust level, defaulting to unverified."""
    for key, value in _usable(entries):
        if key != METADATA_TRUST:
            continue
        level = value.lower()
        if level in (TRUST_LOCAL, TRUST_UNVERIFIED):
            return level
    return TRUST_UNVERIFIED


def resolve(ctx: Optional[InvocationContext]) -> Effective:
    """Resolve the effective identity of an invocation context."""
    if ctx is None:
        return Effective()
    caller = CallerScope()
    if ctx.caller is not None:
        caller = CallerScope(
            service=ctx.caller.service.strip(),
            namespace=ctx.caller.namespace.strip(),
            env=ctx.caller.env.strip(),
        )
    identity = extract(ctx.metadata)
    if identity.present():
        return Effective(
            identity=identity,
            caller=caller,
            source=SOURCE_METADATA,
            trust=extract_trust(ctx.metadata),
        )
    return Effective(identity=identity, caller=caller)