import pytest

from asclepius.config import Settings
from asclepius.upload import UploadedImage

from conftest import FakeModel, make_image


def _records(store):
    return store._collections.get("predictions", {})


def test_oversized_payload_is_rejected_before_inference(client, model, store):
    payload = b"\xff" * 2_000_000
    r = client.post("/predict", files={"image": ("big.jpg", payload, "image/jpeg")})

    assert r.status_code == 413
    assert r.json() == {
        "status": "fail",
        "message": "Payload content length greater than maximum allowed: 1000000",
    }
    assert model.calls == 0
    assert _records(store) == {}


def test_file_over_limit_within_envelope_is_rejected(client_factory, settings, store):
    model = FakeModel(0.2)
    small = settings.model_copy(update={"max_upload_bytes": 1000})
    client = client_factory(model=model, store=store, app_settings=small)

    r = client.post("/predict", files={"image": ("a.png", b"\x89" * 1500, "image/png")})

    assert r.status_code == 413
    assert r.json()["message"].endswith(": 1000")
    assert model.calls == 0


def test_file_at_limit_passes_the_gate(client_factory, settings, store):
    model = FakeModel(0.2)
    small = settings.model_copy(update={"max_upload_bytes": 1000})
    client = client_factory(model=model, store=store, app_settings=small)

    r = client.post("/predict", files={"image": ("a.png", b"\x89" * 1000, "image/png")})

    # the gate lets it through; the bytes then fail to decode
    assert r.status_code == 400
    assert r.json()["message"] == "There was an error during the prediction process."


def test_missing_file(client, model):
    r = client.post("/predict", files={"other": ("a.png", make_image(), "image/png")})

    assert r.status_code == 400
    assert r.json() == {"status": "fail", "message": "No image file uploaded."}
    assert model.calls == 0


def test_empty_body(client):
    r = client.post("/predict")
    assert r.status_code == 400


def test_image_field_must_be_a_file(client, model):
    r = client.post("/predict", data={"image": "not-a-file"})

    assert r.status_code == 400
    assert model.calls == 0


def test_only_one_image_allowed(client, model):
    data = make_image()
    r = client.post(
        "/predict",
        files=[
            ("image", ("a.png", data, "image/png")),
            ("image", ("b.png", data, "image/png")),
        ],
    )

    assert r.status_code == 400
    assert r.json()["message"] == "Only one image file may be uploaded."
    assert model.calls == 0


def test_broken_multipart_is_an_internal_error(client, model):
    r = client.post(
        "/predict",
        content=b"garbage",
        headers={"Content-Type": "multipart/form-data"},
    )

    assert r.status_code == 500
    assert r.json() == {"status": "fail", "message": "Something went wrong during the upload."}
    assert model.calls == 0


@pytest.mark.parametrize(
    "filename, extension",
    [("lesion.JPG", ".jpg"), ("scan.png", ".png"), ("noext", ""), (None, "")],
)
def test_uploaded_image_extension(filename, extension):
    image = UploadedImage(content=b"abc", filename=filename)
    assert image.extension == extension
    assert image.size == 3


def test_default_limit_is_one_megabyte():
    assert Settings(model_url="x", _env_file=None).max_upload_bytes == 1_000_000


def test_small_file_with_huge_dimensions_is_rejected(client_factory, settings, store):
    model = FakeModel(0.2)
    capped = settings.model_copy(update={"max_image_pixels": 1000 * 1000})
    client = client_factory(model=model, store=store, app_settings=capped)
    payload = make_image(size=(4000, 4000))
    assert len(payload) < capped.max_upload_bytes

    r = client.post("/predict", files={"image": ("flat.png", payload, "image/png")})

    assert r.status_code == 400
    assert r.json()["message"] == "There was an error during the prediction process."
    assert model.calls == 0
    assert _records(store) == {}
