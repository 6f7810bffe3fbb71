"""Tests for request and option models."""

import pytest
from pydantic import ValidationError

from app.schemas import DEFAULT_MARGIN, FontDescriptor, MarginOptions, PdfRenderOptions, PdfRequest


class TestPdfRenderOptions:
    def test_defaults(self):
        options = PdfRenderOptions()

        assert options.format is None
        assert options.effective_format == "A4"
        assert options.landscape is False
        assert options.scale == 1.0
        assert options.print_background is False
        assert options.prefer_css_page_size is False
        assert options.timeout == 60000
        assert options.wait_until == "networkidle"
        assert options.margin == MarginOptions(top=DEFAULT_MARGIN, right=DEFAULT_MARGIN, bottom=DEFAULT_MARGIN, left=DEFAULT_MARGIN)

    def test_camel_case_keys(self):
        options = PdfRenderOptions.model_validate(
            {
                "printBackground": True,
                "displayHeaderFooter": True,
                "headerTemplate": "<span class='title'></span>",
                "footerTemplate": "<span class='pageNumber'></span>",
                "preferCSSPageSize": True,
                "waitUntil": "load",
            }
        )

        assert options.print_background is True
        assert options.display_header_footer is True
        assert options.header_template == "<span class='title'></span>"
        assert options.footer_template == "<span class='pageNumber'></span>"
        assert options.prefer_css_page_size is True
        assert options.wait_until == "load"

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError, match="extra"):
            PdfRenderOptions.model_validate({"path": "/tmp/out.pdf"})

    def test_format_and_dimensions_rejected(self):
        with pytest.raises(ValidationError, match="Cannot specify both format and width/height"):
            PdfRenderOptions.model_validate({"format": "A4", "width": 800, "height": 600})

    @pytest.mark.parametrize("payload", [{"width": 800}, {"height": 600}])
    def test_single_dimension_rejected(self, payload):
        with pytest.raises(ValidationError, match="width and height must be used together"):
            PdfRenderOptions.model_validate(payload)

    def test_dimensions_disable_default_format(self):
        options = PdfRenderOptions.model_validate({"width": 800, "height": 600})
        assert options.effective_format is None

    def test_named_format(self):
        assert PdfRenderOptions.model_validate({"format": "Letter"}).effective_format == "Letter"

    def test_unknown_format_rejected(self):
        with pytest.raises(ValidationError):
            PdfRenderOptions.model_validate({"format": "B5"})

    @pytest.mark.parametrize("scale", [0.05, 2.5])
    def test_scale_range(self, scale):
        with pytest.raises(ValidationError):
            PdfRenderOptions.model_validate({"scale": scale})

    @pytest.mark.parametrize("timeout", [999, 999.9, 60000.5, 60001])
    def test_timeout_range(self, timeout):
        with pytest.raises(ValidationError):
            PdfRenderOptions.model_validate({"timeout": timeout})

    def test_fractional_timeout(self):
        assert PdfRenderOptions.model_validate({"timeout": 1500.5}).timeout == 1500.5

    def test_partial_margin(self):
        options = PdfRenderOptions.model_validate({"margin": {"top": "1cm", "left": 20}})
        assert options.margin.model_dump(exclude_none=True) == {"top": "1cm", "left": 20}

    @pytest.mark.parametrize("margin", ["1 cm", "-1cm", "1pt", "abc"])
    def test_invalid_margin(self, margin):
        with pytest.raises(ValidationError):
            PdfRenderOptions.model_validate({"margin": {"top": margin}})


class TestFontDescriptor:
    def test_complete_descriptor(self):
        font = FontDescriptor.model_validate({"family": "Inter", "url": "https://fonts.example.com/inter.woff2"})

        assert font.is_complete
        assert font.format == "woff2"
        assert font.weight == 400
        assert font.style == "normal"

    def test_empty_descriptor_is_incomplete(self):
        assert not FontDescriptor().is_complete

    @pytest.mark.parametrize("payload", [{"family": "Inter"}, {"url": "https://fonts.example.com/inter.woff2"}])
    def test_family_and_url_together(self, payload):
        with pytest.raises(ValidationError, match="Font family and URL must be used together"):
            FontDescriptor.model_validate(payload)

    def test_invalid_url(self):
        with pytest.raises(ValidationError):
            FontDescriptor.model_validate({"family": "Inter", "url": "not a url"})

    def test_family_cannot_break_out_of_css(self):
        with pytest.raises(ValidationError):
            FontDescriptor.model_validate({"family": "Inter'; } body { color: red", "url": "https://fonts.example.com/inter.woff2"})

    def test_weight_keyword_and_number(self):
        assert FontDescriptor.model_validate({"weight": "bold"}).weight == "bold"
        assert FontDescriptor.model_validate({"weight": 700}).weight == 700
        with pytest.raises(ValidationError):
            FontDescriptor.model_validate({"weight": 1001})


class TestPdfRequest:
    def test_minimal_request(self):
        request = PdfRequest.model_validate({"pages": ["<p>PAGE-0</p>"]})

        assert request.pages == ["<p>PAGE-0</p>"]
        assert request.filename == "document.pdf"
        assert request.options == PdfRenderOptions()
        assert request.font is None

    def test_empty_pages_rejected(self):
        with pytest.raises(ValidationError, match="Pages array must contain at least one HTML string"):
            PdfRequest.model_validate({"pages": []})

    def test_empty_page_rejected(self):
        with pytest.raises(ValidationError):
            PdfRequest.model_validate({"pages": ["<p>x</p>", ""]})

    def test_page_ceiling_from_context(self):
        payload = {"pages": ["<p>x</p>"] * 4}

        with pytest.raises(ValidationError, match="Maximum 3 pages allowed."):
            PdfRequest.model_validate(payload, context={"max_pages": 3})

        assert len(PdfRequest.model_validate(payload, context={"max_pages": 4}).pages) == 4

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ValidationError):
            PdfRequest.model_validate({"pages": ["<p>x</p>"], "html": "<p>y</p>"})

    def test_pages_must_be_strings(self):
        with pytest.raises(ValidationError):
            PdfRequest.model_validate({"pages": [1, 2]})
