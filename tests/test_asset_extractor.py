"""Tests for local asset extraction and link rewriting."""

import pytest

from blockshare.converters.asset_extractor import AssetExtractor, extract_assets


class TestExtract:
    def test_image_kept_remote_link_ignored(self):
        markdown = "![x](assets/a.png) and [doc](http://ext.com/b.pdf)"
        assert extract_assets(markdown) == {"assets/a.png"}

    def test_links_and_leading_slash(self):
        markdown = "[report](/assets/report.pdf) ![img](assets/img-1.png \"Title\")"
        assert extract_assets(markdown) == {"/assets/report.pdf", "assets/img-1.png"}

    def test_html_img_tag(self):
        markdown = 'Intro\n\n<img src="assets/diagram.svg" width="300">\n'
        assert extract_assets(markdown) == {"assets/diagram.svg"}

    def test_data_and_remote_sources_ignored(self):
        markdown = (
            "![a](data:image/png;base64,AAAA) "
            "![b](https://cdn.example.com/assets/b.png) "
            '<img src="http://example.com/c.png">'
        )
        assert extract_assets(markdown) == set()

    def test_duplicates_collapse(self):
        markdown = "![a](assets/a.png)\n\n[again](assets/a.png)"
        assert extract_assets(markdown) == {"assets/a.png"}

    def test_custom_prefixes(self):
        extractor = AssetExtractor(asset_prefixes=["files/"])
        markdown = "![a](files/a.png) ![b](assets/b.png)"
        assert extractor.extract(markdown) == {"files/a.png"}

    @pytest.mark.parametrize("markdown", ["", "plain text only", "[label] without target"])
    def test_nothing_to_extract(self, markdown):
        assert extract_assets(markdown) == set()


class TestRewrite:
    def test_all_occurrences_rewritten(self):
        extractor = AssetExtractor()
        markdown = "![a](assets/a.png)\n\n[download](assets/a.png)"
        result = extractor.rewrite(markdown, {"assets/a.png": "https://cdn.example.com/k/a.png"})
        assert result == (
            "![a](https://cdn.example.com/k/a.png)\n\n[download](https://cdn.example.com/k/a.png)"
        )

    def test_longer_path_not_clobbered(self):
        extractor = AssetExtractor()
        markdown = "![a](assets/a.png) [backup](assets/a.png.bak)"
        result = extractor.rewrite(markdown, {"assets/a.png": "https://cdn/x.png"})
        assert result == "![a](https://cdn/x.png) [backup](assets/a.png.bak)"

    def test_slash_prefixed_path_is_separate(self):
        extractor = AssetExtractor()
        markdown = "![a](/assets/a.png) ![b](assets/a.png)"
        result = extractor.rewrite(markdown, {
            "/assets/a.png": "https://cdn/one.png",
            "assets/a.png": "https://cdn/two.png",
        })
        assert result == "![a](https://cdn/one.png) ![b](https://cdn/two.png)"

    def test_unmapped_paths_untouched(self):
        extractor = AssetExtractor()
        markdown = "![a](assets/a.png) ![b](assets/b.png)"
        result = extractor.rewrite(markdown, {"assets/b.png": "https://cdn/b.png"})
        assert result == "![a](assets/a.png) ![b](https://cdn/b.png)"

    def test_empty_map_returns_input(self):
        assert AssetExtractor().rewrite("![a](assets/a.png)", {}) == "![a](assets/a.png)"
