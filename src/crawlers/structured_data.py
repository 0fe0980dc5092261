"""Structured data extractors for recipe pages.

Extracts a recipe from JSON-LD, Microdata, and OpenGraph.
JSON-LD should be the first choice as it's the most reliable.
Falls back to an OpenGraph title plus list heuristics when no structured
data is found.
"""

import json
import logging
import re
from typing import Any, Optional
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Recipe"


@dataclass
class ExtractedRecipe:
    """Recipe extracted from a page."""
    title: str
    image: Optional[str] = None
    ingredients: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    total_time: Optional[str] = None
    servings: Optional[str] = None
    author: Optional[str] = None
    cuisine_type: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialise with the camelCase keys the app expects."""
        return {
            "title": self.title,
            "image": self.image,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
            "prepTime": self.prep_time,
            "cookTime": self.cook_time,
            "totalTime": self.total_time,
            "servings": self.servings,
            "author": self.author,
            "cuisineType": self.cuisine_type,
        }


class RecipeExtractor:
    """
    Extracts a recipe from structured data on web pages.

    Supports:
    - JSON-LD (Schema.org Recipe, including @graph containers)
    - Microdata (itemtype Recipe)
    - OpenGraph title/image plus ingredient/instruction list heuristics

    Usage:
        extractor = RecipeExtractor()
        recipe = extractor.extract(html_content, "https://example.com/pasta")
    """

    MAX_INGREDIENT_LENGTH = 200
    MAX_INSTRUCTION_LENGTH = 1000

    INGREDIENT_SELECTORS = "ul li, .ingredient, .ingredients li, [class*='ingredient'] li"
    INSTRUCTION_SELECTORS = (
        "ol li, .instruction, .instructions li, .step, .steps li, "
        "[class*='instruction'] li, [class*='direction'] li, [class*='step'] li"
    )

    def extract(self, html: str, source_url: str) -> Optional[ExtractedRecipe]:
        """
        Extract a recipe from HTML using all available methods.

        Priority:
        1. JSON-LD (most reliable)
        2. Microdata
        3. OpenGraph + list heuristic

        Args:
            html: HTML content of the page
            source_url: URL the HTML was fetched from

        Returns:
            The extracted recipe, or None if the page has no usable recipe
        """
        soup = BeautifulSoup(html, 'lxml')

        recipe = self._extract_jsonld(soup)
        if recipe:
            logger.info(f"Extracted recipe from JSON-LD: {source_url}")
            return recipe

        recipe = self._extract_microdata(soup)
        if recipe:
            logger.info(f"Extracted recipe from Microdata: {source_url}")
            return recipe

        recipe = self._extract_opengraph(soup)
        if recipe:
            logger.info(f"Extracted recipe from OpenGraph heuristic: {source_url}")
            return recipe

        logger.debug(f"No recipe data found on {source_url}")
        return None

    # ------------------------------------------------------------------ #
    #  JSON-LD                                                            #
    # ------------------------------------------------------------------ #

    def _extract_jsonld(self, soup: BeautifulSoup) -> Optional[ExtractedRecipe]:
        """Extract the first usable Recipe from JSON-LD scripts."""
        for script in soup.find_all('script', type='application/ld+json'):
            content = script.string
            if not content:
                continue
            try:
                data = json.loads(content)
            except json.JSONDecodeError as e:
                logger.debug(f"Failed to parse JSON-LD: {e}")
                continue

            recipe = self._find_jsonld_recipe(data)
            if recipe:
                return recipe

        return None

    def _find_jsonld_recipe(self, data: Any) -> Optional[ExtractedRecipe]:
        """Walk arrays and @graph containers looking for a Recipe object."""
        if isinstance(data, list):
            for item in data:
                recipe = self._find_jsonld_recipe(item)
                if recipe:
                    return recipe
            return None

        if not isinstance(data, dict):
            return None

        graph = data.get('@graph')
        if isinstance(graph, list):
            for item in graph:
                recipe = self._find_jsonld_recipe(item)
                if recipe:
                    return recipe

        item_type = data.get('@type')
        is_recipe = item_type == 'Recipe' or (isinstance(item_type, list) and 'Recipe' in item_type)
        if not is_recipe:
            return None

        return self._parse_jsonld_recipe(data)

    def _parse_jsonld_recipe(self, data: dict) -> Optional[ExtractedRecipe]:
        """Parse a single JSON-LD Recipe."""
        ingredients = self._string_list(data.get('recipeIngredient'))
        instructions = self._instructions(data.get('recipeInstructions'))
        if not ingredients and not instructions:
            return None

        return ExtractedRecipe(
            title=self._text(data.get('name')) or UNTITLED,
            image=self._image(data.get('image')),
            ingredients=ingredients,
            instructions=instructions,
            prep_time=self._text(data.get('prepTime')),
            cook_time=self._text(data.get('cookTime')),
            total_time=self._text(data.get('totalTime')),
            servings=self._servings(data.get('recipeYield')),
            author=self._named(data.get('author')),
            cuisine_type=self._named(data.get('recipeCuisine')),
        )

    def _image(self, image: Any) -> Optional[str]:
        """Image can be a URL string, an ImageObject, or a list of either."""
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, str):
            return image or None
        if isinstance(image, dict):
            url = image.get('url')
            return url if isinstance(url, str) and url else None
        return None

    def _string_list(self, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []

        result = []
        for item in value:
            if isinstance(item, dict):
                item = item.get('text') or item.get('name') or ''
            text = self._text(item)
            if text:
                result.append(text)
        return result

    def _instructions(self, value: Any) -> list[str]:
        """Instructions: a newline-separated string, HowToSteps, or HowToSections."""
        if isinstance(value, str):
            return [line.strip() for line in re.split(r'\n+', value) if line.strip()]
        if not isinstance(value, list):
            return []

        steps = []
        for item in value:
            if isinstance(item, str):
                text = item.strip()
                if text:
                    steps.append(text)
            elif isinstance(item, dict):
                if item.get('@type') == 'HowToSection' and isinstance(item.get('itemListElement'), list):
                    for step in item['itemListElement']:
                        if isinstance(step, dict):
                            step = step.get('text') or ''
                        text = self._text(step)
                        if text:
                            steps.append(text)
                else:
                    text = self._text(item.get('text') or item.get('name'))
                    if text:
                        steps.append(text)
        return steps

    def _servings(self, value: Any) -> Optional[str]:
        if isinstance(value, list):
            value = value[0] if value else None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return self._text(value)

    def _named(self, value: Any) -> Optional[str]:
        """Author/cuisine: a string, a {name: ...} object, or a list of either."""
        if isinstance(value, list):
            names = [self._named(v) for v in value]
            joined = ', '.join(n for n in names if n)
            return joined or None
        if isinstance(value, dict):
            return self._text(value.get('name'))
        return self._text(value)

    @staticmethod
    def _text(value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        text = value.strip()
        return text or None

    # ------------------------------------------------------------------ #
    #  Microdata                                                          #
    # ------------------------------------------------------------------ #

    def _extract_microdata(self, soup: BeautifulSoup) -> Optional[ExtractedRecipe]:
        """Extract a recipe from Microdata (itemtype schema.org/Recipe)."""
        item = soup.find(itemtype=lambda t: bool(t) and 'schema.org/Recipe' in t)
        if not item:
            return None

        name_el = item.find(itemprop='name')
        title = name_el.get_text(strip=True) if name_el else ''

        image = None
        image_el = item.find(itemprop='image')
        if image_el:
            image = image_el.get('src') or image_el.get('content') or None

        ingredients = [
            el.get_text(strip=True)
            for el in item.select('[itemprop="recipeIngredient"], [itemprop="ingredients"]')
            if el.get_text(strip=True)
        ]
        instructions = [
            el.get_text(strip=True)
            for el in item.select(
                '[itemprop="recipeInstructions"] [itemprop="text"], '
                '[itemprop="recipeInstructions"] li'
            )
            if el.get_text(strip=True)
        ]

        if not ingredients and not instructions:
            return None

        return ExtractedRecipe(
            title=title or UNTITLED,
            image=image,
            ingredients=ingredients,
            instructions=instructions,
        )

    # ------------------------------------------------------------------ #
    #  OpenGraph + heuristic lists (last resort)                          #
    # ------------------------------------------------------------------ #

    def _extract_opengraph(self, soup: BeautifulSoup) -> Optional[ExtractedRecipe]:
        og_title = soup.find('meta', attrs={'property': 'og:title'})
        title = (og_title.get('content') or '').strip() if og_title else ''
        if not title and soup.title:
            title = soup.title.get_text(strip=True)
        if not title:
            return None

        og_image = soup.find('meta', attrs={'property': 'og:image'})
        image = (og_image.get('content') or None) if og_image else None

        ingredients = [
            text for text in (el.get_text(strip=True) for el in soup.select(self.INGREDIENT_SELECTORS))
            if text and len(text) < self.MAX_INGREDIENT_LENGTH
        ]
        instructions = [
            text for text in (el.get_text(strip=True) for el in soup.select(self.INSTRUCTION_SELECTORS))
            if text and len(text) < self.MAX_INSTRUCTION_LENGTH
        ]

        if not ingredients and not instructions:
            return None

        return ExtractedRecipe(
            title=title,
            image=image,
            ingredients=ingredients,
            instructions=instructions,
        )


_default_extractor = RecipeExtractor()


def extract(html: str, source_url: str) -> Optional[ExtractedRecipe]:
    """Module-level convenience wrapper around a shared RecipeExtractor."""
    return _default_extractor.extract(html, source_url)
