# Crawlers

from .errors import ScrapeError, ErrorKind
from .ssrf_guard import HostGuard, ResolvedHost, is_blocked_ip, validate_target_url
from .safe_fetch import SafeFetcher
from .body_reader import read_capped
from .structured_data import RecipeExtractor, ExtractedRecipe
from .render_fallback import CloudflareRenderer
from .recipe_scraper import RecipeScraper, extract_recipe

__all__ = [
    'ScrapeError',
    'ErrorKind',
    'HostGuard',
    'ResolvedHost',
    'is_blocked_ip',
    'validate_target_url',
    'SafeFetcher',
    'read_capped',
    'RecipeExtractor',
    'ExtractedRecipe',
    'CloudflareRenderer',
    'RecipeScraper',
    'extract_recipe',
]
