import pytest

from deliverhub.config import DELIVERABLES_BUCKET, PAYMENT_PROOFS_BUCKET
from deliverhub.services.object_store import LocalObjectStore, ObjectNotFound, SignedUrlError
from deliverhub.utils.errors import StorageError


def test_upload_read_delete(object_store):
    stored = object_store.upload(PAYMENT_PROOFS_BUCKET, "1/receipt.png", b"abc", content_type="image/png")

    assert stored.size == 3
    assert stored.url == "http://test/storage/v1/object/payment-proofs/1/receipt.png"
    assert object_store.read(PAYMENT_PROOFS_BUCKET, "1/receipt.png") == b"abc"

    object_store.delete(PAYMENT_PROOFS_BUCKET, "1/receipt.png")
    assert not object_store.exists(PAYMENT_PROOFS_BUCKET, "1/receipt.png")
    # Deleting twice is harmless.
    object_store.delete(PAYMENT_PROOFS_BUCKET, "1/receipt.png")


def test_upload_never_overwrites(object_store):
    object_store.upload(DELIVERABLES_BUCKET, "1/1/a.png", b"one", content_type="image/png")
    with pytest.raises(StorageError) as excinfo:
        object_store.upload(DELIVERABLES_BUCKET, "1/1/a.png", b"two", content_type="image/png")
    assert excinfo.value.code == "OBJECT_EXISTS"


@pytest.mark.parametrize("path", ["../escape.png", "1/../../escape.png", ""])
def test_paths_cannot_escape_bucket(object_store, path):
    with pytest.raises(StorageError) as excinfo:
        object_store.upload(DELIVERABLES_BUCKET, path, b"x", content_type="image/png")
    assert excinfo.value.code == "INVALID_OBJECT_PATH"


def test_unknown_bucket(object_store):
    with pytest.raises(StorageError):
        object_store.upload("public", "a.png", b"x", content_type="image/png")


def test_missing_object(object_store):
    with pytest.raises(ObjectNotFound):
        object_store.read(DELIVERABLES_BUCKET, "nope.png")
    with pytest.raises(ObjectNotFound):
        object_store.create_signed_url(DELIVERABLES_BUCKET, "nope.png", expires_in=60)


def test_signed_token_round_trip_and_foreign_secret(object_store, tmp_path):
    object_store.upload(DELIVERABLES_BUCKET, "1/1/a.pdf", b"%PDF-", content_type="application/pdf")
    token = object_store.create_signed_url(DELIVERABLES_BUCKET, "1/1/a.pdf", expires_in=60).rsplit("/", 1)[1]

    signed = object_store.resolve_signed_token(token)
    assert (signed.bucket, signed.path, signed.content_type) == (DELIVERABLES_BUCKET, "1/1/a.pdf", "application/pdf")

    other = LocalObjectStore(object_store.root, secret_key="another-secret", public_base_url="http://test")
    with pytest.raises(SignedUrlError):
        other.resolve_signed_token(token)


def test_list_objects(object_store):
    object_store.upload(PAYMENT_PROOFS_BUCKET, "2/b.png", b"bb", content_type="image/png")
    object_store.upload(PAYMENT_PROOFS_BUCKET, "1/a.png", b"a", content_type="image/png")

    items = object_store.list_objects(PAYMENT_PROOFS_BUCKET)

    assert [(item.path, item.size) for item in items] == [("1/a.png", 1), ("2/b.png", 2)]
