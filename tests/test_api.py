import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from conftest import image_size, make_image
from metransfer.errors import StorageFailure
from metransfer.main import create_app

ADMIN = {"X-Admin-Password": "secret"}


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def created(client):
    response = client.post(
        "/api/gallery/create",
        headers=ADMIN,
        data={"eventName": "Summer Party"},
        files=[
            ("photos", ("a.jpg", make_image(color="red"), "image/jpeg")),
            ("photos", ("b.jpg", make_image(color="blue"), "image/jpeg")),
        ],
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestAuth:
    def test_admin_routes_require_password(self, client):
        assert client.get("/api/galleries").status_code == 401
        response = client.get("/api/galleries", headers={"X-Admin-Password": "wrong"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_query_password(self, client):
        assert client.get("/api/galleries", params={"password": "secret"}).status_code == 200

    def test_verify(self, client):
        assert client.post("/api/auth/verify", json={"password": "secret"}).json() == {"success": True}
        assert client.post("/api/auth/verify", json={"password": "nope"}).status_code == 401

    def test_unset_password_rejects_everyone(self, settings):
        settings.admin_password = ""
        with TestClient(create_app(settings)) as client:
            assert client.post("/api/auth/verify", json={"password": ""}).status_code == 401
            assert client.get("/api/galleries", headers={"X-Admin-Password": ""}).status_code == 401


class TestCreateAndUpload:
    def test_create(self, app, client, created):
        gallery_id = created["galleryId"]
        assert created["success"] is True
        assert created["fileCount"] == 2
        assert created["downloadUrl"].endswith(f"/api/gallery/{gallery_id}/download")
        archive = client.get(created["downloadUrl"])
        assert archive.status_code == 200
        assert archive.headers["content-type"] == "application/zip"

        store = app.state.context.store
        assert store.read_thumbnail(gallery_id, "a.jpg") is not None
        assert store.read_thumbnail(gallery_id, "b.jpg") is not None

    def test_create_without_files(self, client, app):
        response = client.post("/api/gallery/create", headers=ADMIN, data={"eventName": "Empty"})
        assert response.status_code == 400
        assert "No photos" in response.json()["error"]
        assert list(app.state.context.store.uploads_dir.iterdir()) == []

    def test_create_rejects_non_images(self, client):
        response = client.post(
            "/api/gallery/create",
            headers=ADMIN,
            files=[("photos", ("notes.txt", b"hello", "text/plain"))],
        )
        assert response.status_code == 415

    def test_upload_more(self, client, created):
        gallery_id = created["galleryId"]
        response = client.post(
            f"/api/gallery/{gallery_id}/upload",
            headers=ADMIN,
            files=[("photos", ("c d.png", make_image(fmt="PNG"), "image/png"))],
        )
        assert response.json() == {"success": True, "fileCount": 3}
        names = [entry["filename"] for entry in client.get(f"/api/gallery/{gallery_id}/photos").json()]
        assert names == ["a.jpg", "b.jpg", "c_d.png"]

    def test_upload_to_unknown_gallery(self, client):
        response = client.post(
            "/api/gallery/0b9c8a62-5f6e-4c3d-8b2a-1e0f9d8c7b6a/upload",
            headers=ADMIN,
            files=[("photos", ("a.jpg", make_image(), "image/jpeg"))],
        )
        assert response.status_code == 404


class TestAdmin:
    def test_list_and_rename(self, client, created):
        gallery_id = created["galleryId"]
        response = client.post(f"/api/gallery/{gallery_id}/rename", headers=ADMIN, json={"eventName": "  Renamed "})
        assert response.json() == {"success": True, "eventName": "Renamed"}

        listing = client.get("/api/galleries", headers=ADMIN).json()
        assert [item["id"] for item in listing] == [gallery_id]
        assert listing[0]["eventName"] == "Renamed"
        assert listing[0]["fileCount"] == 2
        assert listing[0]["hasBackground"] is False
        assert listing[0]["downloadUrl"] == f"http://testserver/api/gallery/{gallery_id}/download"

    def test_background(self, client, created):
        gallery_id = created["galleryId"]
        response = client.post(
            f"/api/gallery/{gallery_id}/background",
            headers=ADMIN,
            files={"background": ("bg.png", make_image((3000, 1500), fmt="PNG"), "image/png")},
        )
        assert response.json() == {"success": True, "background": f"{gallery_id}.jpg"}

        image = client.get(f"/api/gallery/{gallery_id}/background")
        assert image.headers["content-type"] == "image/jpeg"
        assert image_size(image.content) == (2400, 1200)

        info = client.get(f"/api/gallery/{gallery_id}/info").json()
        assert info["background"] == f"/api/gallery/{gallery_id}/background"

    def test_delete(self, client, created):
        gallery_id = created["galleryId"]
        assert client.delete(f"/api/gallery/{gallery_id}", headers=ADMIN).json() == {"success": True}
        assert client.get(f"/api/gallery/{gallery_id}/photos").status_code == 404
        assert client.get("/api/galleries", headers=ADMIN).json() == []
        assert client.delete(f"/api/gallery/{gallery_id}", headers=ADMIN).status_code == 404

    def test_logo(self, client):
        assert client.get("/api/logo").status_code == 404
        response = client.post("/api/logo", headers=ADMIN, files={"logo": ("brand.png", make_image(fmt="PNG"), "image/png")})
        assert response.status_code == 200
        logo = client.get("/api/logo")
        assert logo.headers["content-type"] == "image/png"
        assert client.delete("/api/logo", headers=ADMIN).status_code == 200
        assert client.get("/api/logo").status_code == 404


class TestPublicDelivery:
    def test_photo_listing(self, client, created):
        gallery_id = created["galleryId"]
        entries = client.get(f"/api/gallery/{gallery_id}/photos").json()
        assert entries[0] == {
            "filename": "a.jpg",
            "url": f"/api/gallery/{gallery_id}/photo/a.jpg",
            "thumbnailUrl": f"/api/gallery/{gallery_id}/photo/a.jpg?thumb=1",
            "downloadUrl": f"/api/gallery/{gallery_id}/download/a.jpg",
        }

    def test_original_and_thumbnail(self, client, created):
        gallery_id = created["galleryId"]
        original = client.get(f"/api/gallery/{gallery_id}/photo/a.jpg")
        assert original.status_code == 200
        assert image_size(original.content) == (800, 600)

        thumb = client.get(f"/api/gallery/{gallery_id}/photo/a.jpg", params={"thumb": "1"})
        assert thumb.headers["content-type"] == "image/jpeg"
        assert image_size(thumb.content) == (400, 300)

    def test_single_download(self, client, created):
        gallery_id = created["galleryId"]
        response = client.get(f"/api/gallery/{gallery_id}/download/b.jpg")
        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert 'filename="b.jpg"' in response.headers["content-disposition"]

    def test_zip_download(self, client, created):
        gallery_id = created["galleryId"]
        response = client.get(f"/api/gallery/{gallery_id}/download")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert response.headers["content-disposition"] == 'attachment; filename="Summer-Party.zip"'
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert archive.namelist() == ["a.jpg", "b.jpg"]

    def test_social_preview(self, client, created):
        response = client.get(f"/api/gallery/{created['galleryId']}/og-image")
        assert response.headers["content-type"] == "image/jpeg"
        assert image_size(response.content) == (1200, 630)

    def test_info(self, client, created):
        info = client.get(f"/api/gallery/{created['galleryId']}/info").json()
        assert info == {
            "galleryId": created["galleryId"],
            "eventName": "Summer Party",
            "background": None,
            "fileCount": 2,
        }

    def test_info_for_unknown_gallery(self, client):
        gallery_id = "0b9c8a62-5f6e-4c3d-8b2a-1e0f9d8c7b6a"
        info = client.get(f"/api/gallery/{gallery_id}/info").json()
        assert info["eventName"] == "Your Photos"
        assert info["fileCount"] == 0


class TestErrors:
    def test_invalid_identifier(self, client):
        response = client.get("/api/gallery/not-a-uuid/photos")
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid gallery ID"}

    @pytest.mark.parametrize("filename", ["a;b.jpg", ".hidden", "semi colon.jpg"])
    def test_invalid_filename(self, client, created, filename):
        response = client.get(f"/api/gallery/{created['galleryId']}/photo/{filename}")
        assert response.status_code == 400

    def test_missing_photo(self, client, created):
        response = client.get(f"/api/gallery/{created['galleryId']}/photo/zzz.jpg")
        assert response.status_code == 404

    def test_empty_gallery_download(self, client):
        response = client.get("/api/gallery/0b9c8a62-5f6e-4c3d-8b2a-1e0f9d8c7b6a/download")
        assert response.status_code == 404

    def test_storage_failure_is_opaque(self, app, client, created, monkeypatch):
        def broken(gallery_id):
            raise StorageFailure("reading background from /srv/secret/path")

        monkeypatch.setattr(app.state.context.galleries, "background", broken)
        response = client.get(f"/api/gallery/{created['galleryId']}/background")
        assert response.status_code == 500
        assert response.json() == {"error": "Internal storage error"}


def test_healthcheck(client):
    assert client.get("/healthz").json() == {"status": "ok"}
