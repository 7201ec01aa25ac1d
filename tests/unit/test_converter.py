"""
Unit tests for the HTML → content block converter and link resolution.
"""

import pytest

from audiofast_migration.content.blocks import (
    BlockStyle,
    ImagePlaceholder,
    ImageSliderBlock,
    KeyGenerator,
    ListItem,
    TextBlock,
    VideoBlock,
    VideoProvider,
    blocks_to_sanity,
)
from audiofast_migration.content.converter import (
    HeadingPromoter,
    HtmlConverter,
    extract_vimeo_id,
    extract_youtube_id,
    strip_html,
    text_to_blocks,
)
from audiofast_migration.content.links import LinkResolver, SiteTreeEntry, absolutize_asset_url


def _kinds(blocks) -> list[str]:
    out = []
    for b in blocks:
        if isinstance(b, TextBlock):
            out.append(b.style.value)
        elif isinstance(b, ImagePlaceholder):
            out.append("image")
        elif isinstance(b, VideoBlock):
            out.append(b.provider.value)
        else:
            out.append(type(b).__name__)
    return out


class TestHelpers:
    @pytest.mark.unit
    def test_strip_html(self) -> None:
        assert strip_html("<p>Ala&nbsp;ma <strong>kota</strong><br/>i psa</p>") == "Ala ma kota i psa"
        assert strip_html(None) == ""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value",
        [
            "dQw4w9WgXcQ",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "//www.youtube.com/embed/dQw4w9WgXcQ?rel=0",
        ],
    )
    def test_extract_youtube_id(self, value: str) -> None:
        assert extract_youtube_id(value) == "dQw4w9WgXcQ"

    @pytest.mark.unit
    def test_extract_youtube_id_rejects_garbage(self) -> None:
        assert extract_youtube_id("NULL") is None
        assert extract_youtube_id("https://example.com/video") is None
        assert extract_vimeo_id("https://vimeo.com/123456") == "123456"

    @pytest.mark.unit
    def test_text_to_blocks_splits_paragraphs(self) -> None:
        blocks = text_to_blocks("First line\n\n  Second\nline ")
        assert [b.text for b in blocks] == ["First line", "Second line"]

    @pytest.mark.unit
    def test_keys_are_deterministic(self) -> None:
        html = "<h2>Title</h2><p>Body <a href='https://x.pl'>link</a></p>"
        first = blocks_to_sanity(HtmlConverter().convert(html, KeyGenerator("doc")).blocks)
        second = blocks_to_sanity(HtmlConverter().convert(html, KeyGenerator("doc")).blocks)
        assert first == second


class TestBlockOrdering:
    @pytest.mark.unit
    def test_order_follows_source_offsets(self) -> None:
        html = (
            "<p>Intro</p>"
            '[image src="assets/a.jpg" class="left"]'
            "<h2>Section</h2>"
            '<iframe src="https://www.youtube.com/embed/dQw4w9WgXcQ" width="560"></iframe>'
            "<ul><li>One</li><li>Two</li></ul>"
            "<blockquote>Quote</blockquote>"
        )
        result = HtmlConverter().convert(html)
        blocks = result.blocks

        assert _kinds(blocks) == ["normal", "image", "h2", "youtube", "normal", "normal", "blockquote"]
        assert [b for b in blocks if isinstance(b, ImagePlaceholder)] == [blocks[1]]
        assert blocks[1].auto_width is True
        assert blocks[1].src == "https://www.audiofast.pl/assets/a.jpg"
        assert [b.list_item for b in blocks[4:6]] == [ListItem.BULLET, ListItem.BULLET]

    @pytest.mark.unit
    def test_inline_image_precedes_paragraph_text(self) -> None:
        blocks = HtmlConverter().convert('<p><img src="/assets/x.png" alt="X">Caption</p>').blocks
        assert _kinds(blocks) == ["image", "normal"]
        assert blocks[1].text == "Caption"

    @pytest.mark.unit
    def test_heading_text_precedes_its_images(self) -> None:
        blocks = HtmlConverter().convert('<h3>Title<img src="assets/h.png"></h3><p>x</p>').blocks
        assert _kinds(blocks) == ["h2", "image", "normal"]

    @pytest.mark.unit
    def test_vimeo_iframe(self) -> None:
        blocks = HtmlConverter().convert('<iframe src="https://player.vimeo.com/video/76979871"></iframe>').blocks
        assert blocks == [VideoBlock(key=blocks[0].key, provider=VideoProvider.VIMEO, video_id="76979871")]

    @pytest.mark.unit
    def test_numbered_list(self) -> None:
        blocks = HtmlConverter().convert("<ol><li>a</li><li><strong>b</strong></li></ol>").blocks
        assert [b.list_item for b in blocks] == [ListItem.NUMBER, ListItem.NUMBER]
        assert blocks_to_sanity(blocks)[0]["listItem"] == "number"


class TestHeadings:
    @pytest.mark.unit
    def test_shallowest_heading_becomes_h2(self) -> None:
        blocks = HtmlConverter().convert("<h4>A</h4><p>x</p><h5>B</h5><h6>C</h6>").blocks
        assert _kinds(blocks) == ["h2", "normal", "h3", "h3"]

    @pytest.mark.unit
    def test_h1_without_promotion(self) -> None:
        blocks = HtmlConverter().convert("<h1>Top</h1><h3>Sub</h3>").blocks
        assert [(b.text, b.style) for b in blocks] == [("Top", BlockStyle.H2), ("Sub", BlockStyle.H3)]

    @pytest.mark.unit
    def test_first_h1_promoted(self) -> None:
        converter = HtmlConverter(heading_promoter=HeadingPromoter())
        result = converter.convert("<h1>About the brand</h1><h3>History</h3><p>Text</p><h1>Again</h1>")

        assert result.promoted_heading == "About the brand"
        assert [(b.text, b.style.value) for b in result.blocks] == [
            ("History", "h3"),
            ("Text", "normal"),
            ("Again", "h2"),
        ]

    @pytest.mark.unit
    def test_promotion_by_class(self) -> None:
        converter = HtmlConverter(heading_promoter=HeadingPromoter(promote_first_h1=False))
        result = converter.convert('<h2>Plain</h2><h3 class="left-border">Lead</h3><h4>Deep</h4>')

        assert result.promoted_heading == "Lead"
        assert _kinds(result.blocks) == ["h2", "h3"]

    @pytest.mark.unit
    def test_empty_heading_is_not_promoted(self) -> None:
        converter = HtmlConverter(heading_promoter=HeadingPromoter())
        result = converter.convert("<h1>&nbsp;</h1><h1>Real</h1>")
        assert result.promoted_heading == "Real"


class TestInline:
    @pytest.mark.unit
    def test_emphasis_discarded_and_links_marked(self) -> None:
        block = HtmlConverter().convert(
            '<p><strong>Bold</strong> and <em>italic</em> see <a href="https://audio.pl">our <b>site</b></a>.</p>'
        ).blocks[0]

        assert block.text == "Bold and italic see our site."
        linked = [s for s in block.spans if s.marks]
        assert len(linked) == 1
        assert linked[0].text == "our site"
        assert block.mark_defs[0].url == "https://audio.pl"
        assert linked[0].marks == [block.mark_defs[0].key]
        for span in block.spans:
            assert all(m == block.mark_defs[0].key for m in span.marks)

    @pytest.mark.unit
    def test_empty_paragraphs_dropped(self) -> None:
        blocks = HtmlConverter().convert("<p>&nbsp;</p><p>  </p><p>Kept</p><p><br></p>").blocks
        assert [b.text for b in blocks] == ["Kept"]

    @pytest.mark.unit
    def test_link_with_empty_text_skipped(self) -> None:
        block = HtmlConverter().convert('<p>Before <a href="https://x.pl"> </a>after</p>').blocks[0]
        assert block.mark_defs == []
        assert block.text == "Before after"

    @pytest.mark.unit
    def test_fallback_to_plain_text(self) -> None:
        blocks = HtmlConverter().convert("Just text with <span>no block tags</span>").blocks
        assert len(blocks) == 1
        assert blocks[0].text == "Just text with no block tags"

    @pytest.mark.unit
    def test_empty_input(self) -> None:
        result = HtmlConverter().convert("   ")
        assert result.blocks == []
        assert result.promoted_heading is None

    @pytest.mark.unit
    def test_comments_removed(self) -> None:
        blocks = HtmlConverter().convert("<p>A</p><!-- pagebreak --><p>B<!-- hidden --></p>").blocks
        assert [b.text for b in blocks] == ["A", "B"]


class TestSlider:
    @pytest.mark.unit
    def test_slider_requires_four_images(self) -> None:
        with pytest.raises(ValueError):
            ImageSliderBlock(key="s", asset_refs=["a", "b", "c"])
        slider = ImageSliderBlock(key="s", asset_refs=["a", "b", "c", "d"])
        assert [i["_key"] for i in slider.to_sanity()["images"]] == ["s-0", "s-1", "s-2", "s-3"]


class TestLinkResolver:
    @pytest.fixture
    def resolver(self) -> LinkResolver:
        return LinkResolver(
            product_paths={"42": "produkty/acme-amp"},
            site_tree={
                "7": SiteTreeEntry(url_segment="kontakt", class_name="Page"),
                "8": SiteTreeEntry(url_segment="old", class_name="ProductLink", linked_product_id="42"),
            },
            site_url="https://www.audiofast.pl",
        )

    @pytest.mark.unit
    def test_product_shortcode(self, resolver: LinkResolver) -> None:
        assert resolver.resolve("[product_link,id=42]") == "https://www.audiofast.pl/produkty/acme-amp"

    @pytest.mark.unit
    def test_sitetree_shortcode(self, resolver: LinkResolver) -> None:
        assert resolver.resolve("[sitetree_link,id=7]") == "https://www.audiofast.pl/kontakt"
        assert resolver.resolve("[sitetree_link,id=8]") == "https://www.audiofast.pl/produkty/acme-amp"

    @pytest.mark.unit
    def test_unresolved_shortcode(self, resolver: LinkResolver) -> None:
        assert resolver.resolve("[product_link,id=999]") == "#"
        assert resolver.unresolved == [("product", "999")]

    @pytest.mark.unit
    def test_external_and_relative(self, resolver: LinkResolver) -> None:
        assert resolver.resolve("https://example.com/a") == "https://example.com/a"
        assert resolver.resolve("mailto:info@audiofast.pl") == "mailto:info@audiofast.pl"
        assert resolver.resolve("www.audiofast.pl/marki") == "https://www.audiofast.pl/marki"
        assert resolver.resolve("//cdn.example.com/x") == "https://cdn.example.com/x"
        assert resolver.resolve("/blog/post") == "https://www.audiofast.pl/blog/post"
        assert resolver.resolve("") == "#"

    @pytest.mark.unit
    def test_absolutize_asset_url(self) -> None:
        base = "https://audiofast.pl/assets/"
        assert absolutize_asset_url("assets/Uploads/a.jpg", base) == "https://audiofast.pl/assets/Uploads/a.jpg"
        assert absolutize_asset_url("/assets/a.jpg", base) == "https://audiofast.pl/assets/a.jpg"
        assert absolutize_asset_url("Uploads/a.jpg", base) == "https://audiofast.pl/assets/Uploads/a.jpg"
        assert absolutize_asset_url("https://cdn.pl/a.jpg", base) == "https://cdn.pl/a.jpg"
