import csv
import io
import json

import pytest

from app.exceptions import RenderError
from app.models.logo_generation import GeneratedLogo, LogoGeneration
from app.schemas.options import ExportSettings, ExportTemplate
from app.services.export_renderer import ExportRenderer
from app.utils.clock import utcnow


@pytest.fixture
def target():
    now = utcnow()
    generation = LogoGeneration(
        id=7,
        user_id=1,
        business_name="TechFlow Solutions",
        business_description=None,
        status="completed",
        domain_available=False,
        domain_checked_at=None,
        created_at=now,
        updated_at=now,
    )
    generation.generated_logos = [
        GeneratedLogo(id=1, style="minimalist", variation_number=1, image_width=1024, image_height=1024,
                      file_size=2048, created_at=now),
    ]
    return generation


@pytest.fixture
def renderer():
    return ExportRenderer()


def test_csv_quotes_every_field_and_fills_missing_values(renderer, target):
    artifact = renderer.render("csv", target, ExportSettings(include_domains=True))
    text = artifact.content.decode("utf-8")

    assert artifact.content_type == "text/csv"
    assert artifact.byte_count == len(artifact.content)
    assert text.splitlines()[0] == (
        '"Business Name","Description","Status","Created At","Domain Available","Domain Checked"'
    )
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[1][0] == "TechFlow Solutions"
    assert rows[1][1] == "N/A"
    assert rows[1][4] == "No"
    assert rows[1][5] == "N/A"


def test_csv_without_domains_has_four_columns(renderer, target):
    rows = list(csv.reader(io.StringIO(renderer.render("csv", target, ExportSettings()).content.decode())))
    assert len(rows) == 2
    assert len(rows[0]) == 4


def test_json_always_carries_export_metadata(renderer, target):
    artifact = renderer.render("json", target, ExportSettings(), requested_by="owner@example.com")
    payload = json.loads(artifact.content)

    assert artifact.content_type == "application/json"
    assert payload["logo_generation"]["business_name"] == "TechFlow Solutions"
    assert payload["logo_generation"]["business_description"] is None
    assert "domain_available" not in payload["logo_generation"]
    assert "generated_logos" not in payload
    metadata = payload["export_metadata"]
    assert metadata["export_version"] == "1.0"
    assert metadata["exported_by"] == "owner@example.com"
    assert metadata["total_records"] == 1


def test_json_includes_logo_metadata_on_request(renderer, target):
    payload = json.loads(renderer.render("json", target, ExportSettings(include_logos=True, include_domains=True)).content)
    assert payload["generated_logos"][0]["style"] == "minimalist"
    assert payload["logo_generation"]["domain_available"] is False


@pytest.mark.parametrize("template", [ExportTemplate.DEFAULT, ExportTemplate.PROFESSIONAL])
def test_pdf_renders_for_each_template(renderer, target, template):
    settings = ExportSettings(
        template=template, include_domains=True, include_logos=True, include_metadata=True, include_branding=True
    )
    artifact = renderer.render("pdf", target, settings)
    assert artifact.content_type == "application/pdf"
    assert artifact.content.startswith(b"%PDF")


def test_unknown_format_is_a_render_error(renderer, target):
    with pytest.raises(RenderError):
        renderer.render("docx", target, ExportSettings())


def test_blank_business_name_is_a_render_error(renderer, target):
    target.business_name = "   "
    with pytest.raises(RenderError):
        renderer.render("pdf", target, ExportSettings())
