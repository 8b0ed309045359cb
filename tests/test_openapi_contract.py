import json
from pathlib import Path

from stockroom.main import app


def test_openapi_paths_snapshot():
    snapshot_path = Path(__file__).parent / "snapshots" / "openapi_paths_snapshot.json"
    expected_paths = json.loads(snapshot_path.read_text(encoding="utf-8"))
    actual_paths = sorted(app.openapi()["paths"].keys())
    assert actual_paths == expected_paths


def test_write_endpoints_document_error_envelope():
    paths = app.openapi()["paths"]
    for path, method in (
        ("/transactions/transfers", "post"),
        ("/transactions/transfers/{transfer_id}/void", "post"),
        ("/transactions/adjustments", "post"),
        ("/items/{item_id}/variants", "post"),
    ):
        responses = paths[path][method]["responses"]
        assert "409" in responses, f"{method.upper()} {path}"
        schema_ref = responses["409"]["content"]["application/json"]["schema"]["$ref"]
        assert schema_ref.endswith("/ErrorOut")


def test_transfer_create_documents_reason_codes():
    responses = app.openapi()["paths"]["/transactions/transfers"]["post"]["responses"]
    assert "`same_branch`" in responses["400"]["description"]
    assert "`duplicate_line`" in responses["409"]["description"]
    example = responses["400"]["content"]["application/json"]["example"]
    assert example["error"]["code"] == "same_branch"
