"""Tests for web API."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from apps.web.main import app

MANIFEST = """<Project>
  <ItemGroup>
    <PackageVersion Include="Newtonsoft.Json" Version="13.0.1" />
    <PackageVersion Include="Bar" Version="6.0.0" Condition="'$(TargetFramework)' == 'net6.0'" />
    <PackageVersion Include="Frozen" Version="1.0.0" FreezeVersion="true" />
  </ItemGroup>
</Project>
"""

LATEST = {"Newtonsoft.Json": "13.0.3", "Bar": "6.0.1", "Frozen": "2.0.0"}


def fake_resolver(latest=LATEST):
    resolver = AsyncMock()

    async def check(entries, include_prerelease=False, disable_framework_check=False, on_progress=None):
        for entry in entries:
            entry.latest_version = latest.get(entry.id)
        return [entry for entry in entries if entry.latest_version is None]

    resolver.check_for_updates.side_effect = check
    return resolver


class TestWebAPI:
    """Test FastAPI endpoints."""

    def setup_method(self):
        self.client = TestClient(app)

    def test_home_page(self):
        """Should serve the landing page."""
        response = self.client.get("/")
        assert response.status_code == 200
        assert "cpmup" in response.text

    def test_check_reports_packages(self):
        """Should report the latest version of each package."""
        with patch("apps.web.main.get_resolver", return_value=fake_resolver()):
            response = self.client.post(
                "/api/check",
                json={"content": MANIFEST, "frameworks": ["net6.0", "net8.0"]},
            )

        assert response.status_code == 200
        data = response.json()
        packages = {p["id"]: p for p in data["packages"]}
        assert packages["Newtonsoft.Json"]["has_update"]
        assert packages["Bar"]["target_frameworks"] == ["net6.0"]
        assert packages["Frozen"]["is_excluded"]
        assert data["has_updates"]
        assert data["unresolved"] == []

    def test_check_empty_content(self):
        """Should reject empty content."""
        response = self.client.post("/api/check", json={"content": "   "})
        assert response.status_code == 400

    def test_check_malformed_manifest(self):
        """Should map parse errors to 400."""
        response = self.client.post("/api/check", json={"content": "<Project>"})
        assert response.status_code == 400
        assert "Error parsing" in response.json()["detail"]

    def test_update_all(self):
        """Should rewrite every updatable, non-frozen package."""
        with patch("apps.web.main.get_resolver", return_value=fake_resolver()):
            response = self.client.post("/api/update", json={"content": MANIFEST})

        assert response.status_code == 200
        data = response.json()
        assert data["has_changes"]
        assert {c["id"] for c in data["changes"]} == {"Newtonsoft.Json", "Bar"}
        assert 'Include="Newtonsoft.Json" Version="13.0.3"' in data["updated_content"]
        assert 'Include="Frozen" Version="1.0.0"' in data["updated_content"]

    def test_update_selected(self):
        """Should only rewrite the selected packages."""
        with patch("apps.web.main.get_resolver", return_value=fake_resolver()):
            response = self.client.post("/api/update", json={"content": MANIFEST, "selected": ["bar"]})

        data = response.json()
        assert [c["id"] for c in data["changes"]] == ["Bar"]
        assert 'Include="Newtonsoft.Json" Version="13.0.1"' in data["updated_content"]
        assert 'Include="Bar" Version="6.0.1"' in data["updated_content"]

    def test_upload(self):
        """Should check an uploaded manifest."""
        with patch("apps.web.main.get_resolver", return_value=fake_resolver()):
            response = self.client.post(
                "/api/upload",
                files={"file": ("Directory.Packages.props", MANIFEST.encode("utf-8-sig"), "application/xml")},
                data={"frameworks": "net6.0, net8.0"},
            )

        assert response.status_code == 200
        packages = {p["id"]: p for p in response.json()["packages"]}
        assert packages["Bar"]["target_frameworks"] == ["net6.0"]

    def test_upload_invalid_encoding(self):
        """Should reject files that are not UTF-8."""
        response = self.client.post(
            "/api/upload",
            files={"file": ("Directory.Packages.props", b"\xff\xfe\x00bad", "application/xml")},
        )
        assert response.status_code == 400
