from __future__ import annotations

import json

import httpx
import pytest
from bs4 import BeautifulSoup

from mise.services.blog import (
    BLOG_HEADERS,
    extract_jsonld_recipe,
    extract_with_readability,
    fetch_blog,
    format_jsonld_recipe,
)
from mise.services.errors import ContentFetchError

RECIPE = {
    "@context": "https://schema.org",
    "@type": "Recipe",
    "name": "Lemon Pasta",
    "description": "Bright and quick.",
    "recipeYield": ["4", "4 servings"],
    "prepTime": "PT10M",
    "cookTime": "PT15M",
    "image": [{"@type": "ImageObject", "url": "https://example.com/pasta.jpg"}],
    "author": {"@type": "Person", "name": "Ana"},
    "nutrition": {"calories": "520 kcal", "proteinContent": "18 g"},
    "recipeIngredient": ["200 g spaghetti", " 1 lemon ", ""],
    "recipeInstructions": [
        {"@type": "HowToStep", "text": "Boil the pasta."},
        {
            "@type": "HowToSection",
            "name": "Sauce",
            "itemListElement": [
                {"@type": "HowToStep", "text": "Zest the lemon."},
                "Toss everything together.",
            ],
        },
    ],
}

ARTICLE_BODY = " ".join(
    ["Start by bringing a large pot of salted water to a rolling boil for the pasta."] * 12
)


def _page(*blocks: object, extra_head: str = "", body: str = "<p>Hi</p>") -> str:
    scripts = "".join(
        f'<script type="application/ld+json">{block if isinstance(block, str) else json.dumps(block)}</script>'
        for block in blocks
    )
    return f"<html><head><title>Page</title>{extra_head}{scripts}</head><body>{body}</body></html>"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class TestExtractJsonLd:
    def test_graph_form(self) -> None:
        block = {"@context": "https://schema.org", "@graph": [{"@type": "WebPage"}, RECIPE]}
        assert extract_jsonld_recipe(_soup(_page(block)))["name"] == "Lemon Pasta"

    def test_direct_object(self) -> None:
        assert extract_jsonld_recipe(_soup(_page(RECIPE)))["name"] == "Lemon Pasta"

    def test_top_level_array(self) -> None:
        blocks = [{"@type": "Organization"}, {**RECIPE, "@type": ["Recipe", "NewsArticle"]}]
        assert extract_jsonld_recipe(_soup(_page(blocks)))["name"] == "Lemon Pasta"

    def test_invalid_block_skipped(self) -> None:
        assert extract_jsonld_recipe(_soup(_page("{broken", RECIPE)))["name"] == "Lemon Pasta"

    def test_first_recipe_in_document_order(self) -> None:
        other = {**RECIPE, "name": "Second"}
        assert extract_jsonld_recipe(_soup(_page(RECIPE, other)))["name"] == "Lemon Pasta"

    def test_no_recipe(self) -> None:
        assert extract_jsonld_recipe(_soup(_page({"@type": "Article"}))) is None


class TestFormatJsonLd:
    def test_sections_and_order(self) -> None:
        text = format_jsonld_recipe(RECIPE)

        assert text.startswith("RECIPE TITLE: Lemon Pasta")
        assert "DESCRIPTION: Bright and quick." in text
        assert "SERVINGS: 4 / 4 servings" in text
        assert "PREP TIME: PT10M" in text
        assert "COOK TIME: PT15M" in text
        assert "NUTRITION (per serving):\n- Calories: 520 kcal\n- Protein: 18 g" in text
        assert "INGREDIENTS:\n- 200 g spaghetti\n- 1 lemon\n" in text
        assert text.endswith(
            "INSTRUCTIONS:\n1. Boil the pasta.\n2. Zest the lemon.\n3. Toss everything together."
        )

    def test_minimal(self) -> None:
        text = format_jsonld_recipe({"@type": "Recipe"})
        assert text == "RECIPE TITLE: Untitled"


class TestReadabilityFallback:
    def test_extracts_main_text_and_meta(self) -> None:
        html = _page(
            extra_head=(
                '<meta property="og:image" content="https://example.com/og.jpg">'
                '<meta name="author" content="Sam">'
            ),
            body=f"<nav>Home | About</nav><article><h1>Pasta Night</h1><p>{ARTICLE_BODY}</p></article>",
        )
        content = extract_with_readability(html, _soup(html))

        assert content is not None
        assert "rolling boil" in content.content
        assert content.thumbnail_url == "https://example.com/og.jpg"
        assert content.author == "Sam"

    def test_twitter_image_fallback(self) -> None:
        html = _page(
            extra_head='<meta name="twitter:image" content="https://example.com/tw.jpg">',
            body=f"<article><p>{ARTICLE_BODY}</p></article>",
        )
        content = extract_with_readability(html, _soup(html))

        assert content is not None
        assert content.thumbnail_url == "https://example.com/tw.jpg"


class TestFetchBlog:
    @pytest.mark.asyncio
    async def test_prefers_jsonld(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["user-agent"] == BLOG_HEADERS["User-Agent"]
            return httpx.Response(200, text=_page(RECIPE, body=f"<article><p>{ARTICLE_BODY}</p></article>"))

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            content = await fetch_blog("https://example.com/lemon-pasta", client)

        assert content.title == "Lemon Pasta"
        assert content.content.startswith("RECIPE TITLE: Lemon Pasta")
        assert content.thumbnail_url == "https://example.com/pasta.jpg"
        assert content.author == "Ana"

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ContentFetchError):
                await fetch_blog("https://example.com/missing", client)
