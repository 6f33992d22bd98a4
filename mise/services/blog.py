"""
Blog content source.

Turns a recipe page into plain text for the extraction model. Two strategies,
tried in order:

1. Schema.org ``Recipe`` JSON-LD embedded in the page, reformatted as text.
2. Readability main-content extraction when no recipe markup exists.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable, Optional

import httpx
from bs4 import BeautifulSoup
from readability import Document

from mise.services.errors import ContentFetchError, FetchFailedError
from mise.services.http import DEFAULT_TIMEOUT_SECONDS, get_ok, open_client
from mise.services.types import BlogContent

logger = logging.getLogger(__name__)

BLOG_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; RecipeExtractor/1.0; +https://mise-en-place.app)",
    "Accept": "text/html,application/xhtml+xml",
}
RECIPE_TYPE = "Recipe"
NUTRITION_FIELDS = (
    ("calories", "Calories"),
    ("proteinContent", "Protein"),
    ("carbohydrateContent", "Carbs"),
    ("fatContent", "Fat"),
    ("fiberContent", "Fiber"),
)


def _clean_string(value: object) -> str | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        return None
    stripped = " ".join(value.split())
    return stripped or None


def _is_recipe(item: object) -> bool:
    if not isinstance(item, dict):
        return False
    declared = item.get("@type")
    if isinstance(declared, list):
        return RECIPE_TYPE in declared
    return declared == RECIPE_TYPE


def _find_recipe(data: object) -> dict[str, Any] | None:
    if isinstance(data, dict):
        graph = data.get("@graph")
        if isinstance(graph, list):
            found = next((item for item in graph if _is_recipe(item)), None)
            if found:
                return found
        if _is_recipe(data):
            return data
    if isinstance(data, list):
        return next((item for item in data if _is_recipe(item)), None)
    return None


def extract_jsonld_recipe(soup: BeautifulSoup) -> dict[str, Any] | None:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            continue
        recipe = _find_recipe(data)
        if recipe is not None:
            return recipe
    return None


def _as_list(value: object) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _instruction_texts(instructions: object) -> Iterable[str]:
    for entry in _as_list(instructions):
        if isinstance(entry, str):
            text = _clean_string(entry)
            if text:
                yield text
        elif isinstance(entry, dict):
            if entry.get("itemListElement") is not None:
                yield from _instruction_texts(entry.get("itemListElement"))
                continue
            text = _clean_string(entry.get("text")) or _clean_string(entry.get("name"))
            if text:
                yield text


def _format_yield(value: object) -> str | None:
    parts = [text for text in (_clean_string(item) for item in _as_list(value)) if text]
    return " / ".join(dict.fromkeys(parts)) or None


def format_jsonld_recipe(recipe: dict[str, Any]) -> str:
    """Render the structured recipe as a plain-text block for the model."""
    lines = [f"RECIPE TITLE: {_clean_string(recipe.get('name')) or 'Untitled'}"]

    description = _clean_string(recipe.get("description"))
    if description:
        lines.append(f"\nDESCRIPTION: {description}")

    servings = _format_yield(recipe.get("recipeYield"))
    if servings:
        lines.append(f"\nSERVINGS: {servings}")

    prep_time = _clean_string(recipe.get("prepTime"))
    if prep_time:
        lines.append(f"PREP TIME: {prep_time}")

    cook_time = _clean_string(recipe.get("cookTime"))
    if cook_time:
        lines.append(f"COOK TIME: {cook_time}")

    nutrition = recipe.get("nutrition")
    if isinstance(nutrition, dict):
        facts = [
            f"- {label}: {value}"
            for key, label in NUTRITION_FIELDS
            if (value := _clean_string(nutrition.get(key)))
        ]
        if facts:
            lines.append("\nNUTRITION (per serving):")
            lines.extend(facts)

    ingredients = [text for text in (_clean_string(item) for item in _as_list(recipe.get("recipeIngredient"))) if text]
    if ingredients:
        lines.append("\nINGREDIENTS:")
        lines.extend(f"- {item}" for item in ingredients)

    instructions = list(_instruction_texts(recipe.get("recipeInstructions")))
    if instructions:
        lines.append("\nINSTRUCTIONS:")
        lines.extend(f"{index}. {text}" for index, text in enumerate(instructions, start=1))

    return "\n".join(lines)


def _image_url(image: object) -> str | None:
    for entry in _as_list(image):
        if isinstance(entry, str) and entry.strip():
            return entry.strip()
        if isinstance(entry, dict):
            url = _clean_string(entry.get("url"))
            if url:
                return url
    return None


def _author_name(author: object) -> str | None:
    for entry in _as_list(author):
        if isinstance(entry, str) and entry.strip():
            return entry.strip()
        if isinstance(entry, dict):
            name = _clean_string(entry.get("name"))
            if name:
                return name
    return None


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    return _clean_string(tag.get("content"))


def extract_with_readability(page_html: str, soup: BeautifulSoup) -> BlogContent | None:
    try:
        document = Document(page_html)
        summary_html = document.summary(html_partial=True)
        title = _clean_string(document.short_title())
    except Exception as error:  # readability raises its own Unparseable and lxml errors
        logger.warning("Readability failed to parse page: %s", error)
        return None

    text = BeautifulSoup(summary_html, "html.parser").get_text("\n", strip=True)
    if not text:
        return None

    return BlogContent(
        title=title or "Untitled",
        content=text,
        thumbnail_url=_meta_content(soup, property="og:image") or _meta_content(soup, name="twitter:image"),
        author=_meta_content(soup, name="author"),
    )


async def fetch_blog(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> BlogContent:
    started = time.perf_counter()

    async with open_client(client, timeout) as http_client:
        try:
            response = await get_ok(http_client, url, headers=BLOG_HEADERS)
        except FetchFailedError as error:
            raise ContentFetchError(f"Failed to fetch page {url}: {error}") from error

    page_html = response.text
    soup = BeautifulSoup(page_html, "html.parser")

    recipe = extract_jsonld_recipe(soup)
    if recipe is not None:
        content = format_jsonld_recipe(recipe)
        logger.info(
            "Blog content extracted via JSON-LD: url=%s chars=%d duration_ms=%d",
            url,
            len(content),
            (time.perf_counter() - started) * 1000,
        )
        return BlogContent(
            title=_clean_string(recipe.get("name")) or "Untitled",
            content=content,
            thumbnail_url=_image_url(recipe.get("image")),
            author=_author_name(recipe.get("author")),
        )

    logger.debug("No JSON-LD recipe on %s, falling back to readability", url)
    extracted = extract_with_readability(page_html, soup)
    if extracted is None:
        raise ContentFetchError(f"Could not extract content from page: {url}")

    logger.info(
        "Blog content extracted via readability: url=%s chars=%d duration_ms=%d",
        url,
        len(extracted.content),
        (time.perf_counter() - started) * 1000,
    )
    return extracted
