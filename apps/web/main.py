"""FastAPI web application for cpmup."""

from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from cpmup.exceptions import CpmError
from cpmup.manifest import ManifestParser
from cpmup.models import PackageEntry, ProjectRecord, SolutionRecord
from cpmup.resolve import RegistryResolver
from cpmup.sources import NuGetConfig

app = FastAPI(
    title="cpmup",
    description="Update centrally managed NuGet package versions",
    version="0.1.0",
)


class CheckRequest(BaseModel):
    """Request model for checking a manifest."""
    content: str
    frameworks: list[str] = []
    include_prerelease: bool = False
    disable_framework_check: bool = False


class UpdateRequest(CheckRequest):
    """Request model for applying updates; ``selected`` None means all."""
    selected: Optional[list[str]] = None


class PackageReport(BaseModel):
    id: str
    current_version: str
    latest_version: Optional[str] = None
    has_update: bool
    condition: Optional[str] = None
    is_global: bool
    is_excluded: bool
    is_analyzer_package: bool
    target_frameworks: list[str]


class CheckResponse(BaseModel):
    """Response model for a manifest check."""
    packages: list[PackageReport]
    unresolved: list[str]
    has_updates: bool


class UpdateResponse(BaseModel):
    """Response model for applied updates."""
    original_content: str
    updated_content: str
    changes: list[dict]
    has_changes: bool


def get_resolver() -> RegistryResolver:
    """Resolver over the default nuget.org feed."""
    return RegistryResolver.from_config(NuGetConfig())


def _solution_for(frameworks: list[str]) -> SolutionRecord:
    project = ProjectRecord(path="<request>", name="request", target_frameworks=tuple(frameworks))
    return SolutionRecord(path="<request>", projects=[project])


def _report(entry: PackageEntry) -> PackageReport:
    return PackageReport(
        id=entry.id,
        current_version=entry.current_version,
        latest_version=entry.latest_version,
        has_update=entry.has_update,
        condition=entry.condition,
        is_global=entry.is_global,
        is_excluded=entry.is_excluded,
        is_analyzer_package=entry.is_analyzer_package,
        target_frameworks=entry.target_frameworks,
    )


async def _check(request: CheckRequest) -> tuple[list[PackageEntry], list[PackageEntry]]:
    content = request.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="No content provided")

    entries = ManifestParser().parse_content(content, _solution_for(request.frameworks))
    if not entries:
        raise HTTPException(status_code=400, detail="No packages found in manifest")

    unresolved = await get_resolver().check_for_updates(
        entries,
        request.include_prerelease,
        request.disable_framework_check,
    )
    return entries, unresolved


@app.get("/", response_class=HTMLResponse)
async def home():
    """Serve the main application page."""
    return get_index_html()


@app.post("/api/check", response_model=CheckResponse)
async def check_packages(request: CheckRequest):
    """Report the latest version of every package in a manifest."""
    try:
        entries, unresolved = await _check(request)
        return CheckResponse(
            packages=[_report(entry) for entry in entries],
            unresolved=[entry.id for entry in unresolved],
            has_updates=any(entry.has_update and not entry.is_excluded for entry in entries),
        )
    except HTTPException:
        raise
    except CpmError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error checking packages: {str(e)}")


@app.post("/api/update", response_model=UpdateResponse)
async def update_packages(request: UpdateRequest):
    """Apply available updates to manifest text and return the result."""
    try:
        entries, _ = await _check(request)

        wanted = {package_id.lower() for package_id in request.selected} if request.selected is not None else None
        for entry in entries:
            entry.is_selected = wanted is None or entry.id.lower() in wanted

        updated_content = ManifestParser().rewrite_content(request.content, entries)
        changes = [
            {
                "id": entry.id,
                "current_version": entry.current_version,
                "new_version": entry.latest_version,
                "condition": entry.condition,
            }
            for entry in entries
            if entry.is_updatable
        ]
        return UpdateResponse(
            original_content=request.content,
            updated_content=updated_content,
            changes=changes,
            has_changes=bool(changes),
        )
    except HTTPException:
        raise
    except CpmError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error updating packages: {str(e)}")


@app.post("/api/upload", response_model=CheckResponse)
async def upload_file(
    file: UploadFile = File(...),
    frameworks: Optional[str] = Form(None),
    include_prerelease: bool = Form(False),
):
    """Upload and check a Directory.Packages.props file."""
    try:
        if not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        content = await file.read()
        text_content = content.decode("utf-8-sig")

        request = CheckRequest(
            content=text_content,
            frameworks=[tf.strip() for tf in (frameworks or "").split(",") if tf.strip()],
            include_prerelease=include_prerelease,
        )
        return await check_packages(request)

    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be valid UTF-8 text")
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error processing file: {str(e)}")


def get_index_html() -> str:
    """Return the main HTML page."""
    return """
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>cpmup - Central Package Updater</title>
        <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css" rel="stylesheet">
        <style>
            .manifest { font-family: 'Courier New', monospace; min-height: 20rem; }
            .has-update { background-color: #d4edda; }
            .unresolved { color: #856404; }
        </style>
    </head>
    <body>
        <div class="container py-4">
            <div class="text-center mb-4">
                <h1 class="display-5 fw-bold text-primary">cpmup</h1>
                <p class="lead text-muted">Check Directory.Packages.props for newer NuGet package versions</p>
            </div>

            <div class="row">
                <div class="col-lg-6 mb-4">
                    <label class="form-label" for="content">Directory.Packages.props</label>
                    <textarea id="content" class="form-control manifest"></textarea>
                    <label class="form-label mt-3" for="frameworks">Target frameworks (comma separated)</label>
                    <input id="frameworks" class="form-control" placeholder="net8.0, netstandard2.0">
                    <div class="form-check mt-2">
                        <input id="prerelease" class="form-check-input" type="checkbox">
                        <label class="form-check-label" for="prerelease">Include prerelease versions</label>
                    </div>
                    <button id="check" class="btn btn-primary mt-3">Check</button>
                    <button id="update" class="btn btn-success mt-3">Apply all updates</button>
                </div>
                <div class="col-lg-6 mb-4">
                    <table class="table table-sm">
                        <thead><tr><th>Package</th><th>Current</th><th>Latest</th></tr></thead>
                        <tbody id="results"></tbody>
                    </table>
                    <pre id="updated" class="manifest"></pre>
                </div>
            </div>
        </div>

        <script>
            function payload() {
                return {
                    content: document.getElementById('content').value,
                    frameworks: document.getElementById('frameworks').value
                        .split(',').map(s => s.trim()).filter(Boolean),
                    include_prerelease: document.getElementById('prerelease').checked
                };
            }

            async function post(url, body) {
                const response = await fetch(url, {
                    method: 'POST',
                    headers: {'Content-Type': 'application/json'},
                    body: JSON.stringify(body)
                });
                const data = await response.json();
                if (!response.ok) { throw new Error(data.detail); }
                return data;
            }

            document.getElementById('check').addEventListener('click', async () => {
                const rows = document.getElementById('results');
                rows.innerHTML = '';
                try {
                    const data = await post('/api/check', payload());
                    for (const pkg of data.packages) {
                        const row = rows.insertRow();
                        if (pkg.has_update) { row.className = 'has-update'; }
                        row.insertCell().textContent = pkg.id;
                        row.insertCell().textContent = pkg.current_version;
                        const latest = row.insertCell();
                        latest.textContent = pkg.latest_version || 'unresolved';
                        if (!pkg.latest_version) { latest.className = 'unresolved'; }
                    }
                } catch (error) {
                    alert(error.message);
                }
            });

            document.getElementById('update').addEventListener('click', async () => {
                try {
                    const data = await post('/api/update', payload());
                    document.getElementById('updated').textContent = data.updated_content;
                } catch (error) {
                    alert(error.message);
                }
            });
        </script>
    </body>
    </html>
    """
