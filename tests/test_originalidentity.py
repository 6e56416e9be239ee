from meshplane.model import Caller, InvocationContext, MetadataEntry
from meshplane.originalidentity import (
    METADATA_ISSUER,
    METADATA_SUBJECT,
    METADATA_TRUST,
    METADATA_USER_ID,
    PRINCIPAL_CALLER,
    PRINCIPAL_NONE,
    PRINCIPAL_ORIGINAL_USER,
    SOURCE_METADATA,
    SOURCE_NONE,
    TRUST_ABSENT,
    TRUST_LOCAL,
    TRUST_UNVERIFIED,
    Identity,
    extract,
    extract_trust,
    resolve,
)


def test_extract():
    identity = extract(
        [
            MetadataEntry(key=METADATA_USER_ID, values=["user-1"]),
            MetadataEntry(key=METADATA_SUBJECT, values=["alice@example.com"]),
            MetadataEntry(key=METADATA_ISSUER, values=["gateway"]),
        ]
    )
    assert identity.user_id == "user-1"
    assert identity.subject == "alice@example.com"
    assert identity.issuer == "gateway"
    assert identity.present()


def test_extract_skips_empty_and_none_entries():
    identity = extract([None, MetadataEntry(key=METADATA_USER_ID, values=[])])
    assert identity == Identity()
    assert not identity.present()


def test_extract_normalizes_key_case():
    identity = extract([MetadataEntry(key="  X-Service-Mesh-Original-User-Id ", values=[" user-1 "])])
    assert identity.user_id == "user-1"


def test_resolve():
    effective = resolve(
        InvocationContext(
            caller=Caller(service="gateway", namespace="default", env="dev"),
            metadata=[MetadataEntry(key=METADATA_SUBJECT, values=["alice@example.com"])],
        )
    )
    assert effective.source == SOURCE_METADATA
    assert effective.trust == TRUST_UNVERIFIED
    assert effective.caller.service == "gateway"
    principal = effective.principal()
    assert principal.kind == PRINCIPAL_ORIGINAL_USER
    assert principal.subject == "alice@example.com"
    extensions = effective.context_extensions()
    assert extensions["caller_service"] == "gateway"
    assert extensions["original_user_trust"] == TRUST_UNVERIFIED
    assert extensions["effective_principal_kind"] == PRINCIPAL_ORIGINAL_USER


def test_resolve_falls_back_to_caller_principal():
    effective = resolve(InvocationContext(caller=Caller(service="orders")))
    principal = effective.principal()
    assert principal.kind == PRINCIPAL_CALLER
    assert principal.subject == "orders"
    assert principal.trust == TRUST_LOCAL


def test_resolve_issuer_only_falls_back_to_caller_principal():
    effective = resolve(
        InvocationContext(
            caller=Caller(service="gateway"),
            metadata=[MetadataEntry(key=METADATA_ISSUER, values=["edge-gateway"])],
        )
    )
    assert effective.identity.present()
    assert not effective.identity.identified()
    principal = effective.principal()
    assert principal.kind == PRINCIPAL_CALLER
    assert principal.subject == "gateway"
    extensions = effective.context_extensions()
    assert extensions["effective_principal_kind"] == PRINCIPAL_CALLER
    assert extensions["original_user_issuer"] == "edge-gateway"


def test_resolve_none_context():
    effective = resolve(None)
    assert effective.source == SOURCE_NONE
    assert effective.trust == TRUST_ABSENT
    assert effective.principal().kind == PRINCIPAL_NONE
    extensions = effective.context_extensions()
    assert "effective_principal_subject" not in extensions
    assert "original_user_id" not in extensions


def test_principal_uses_user_id_when_subject_missing():
    effective = resolve(
        InvocationContext(metadata=[MetadataEntry(key=METADATA_USER_ID, values=["user-1"])])
    )
    assert effective.principal().subject == "user-1"


def test_extract_trust_levels():
    assert extract_trust([MetadataEntry(key=METADATA_TRUST, values=["LOCAL"])]) == TRUST_LOCAL
    assert extract_trust([MetadataEntry(key=METADATA_TRUST, values=["bogus"])]) == TRUST_UNVERIFIED
    assert extract_trust([]) == TRUST_UNVERIFIED