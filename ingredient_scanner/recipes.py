"""Client for the external recipe / ingredient JSON service."""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from ingredient_scanner.config import RECIPE_API_TIMEOUT, RECIPE_API_URL
from ingredient_scanner.errors import RecipeServiceError

logger = logging.getLogger(__name__)


class RecipeClient:
    """
    Thin wrapper around the recipe service endpoints.

    Pagination follows the service: `offset = (page - 1) * per_page`.
    """

    def __init__(
        self,
        base_url: str = RECIPE_API_URL,
        timeout: float = RECIPE_API_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.info("GET %s params=%s", url, params)
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise RecipeServiceError(f"Recipe service request failed: {url} ({e})") from e
        except ValueError as e:
            raise RecipeServiceError(f"Recipe service returned invalid JSON: {url}") from e

    @staticmethod
    def _offset(page: int, per_page: int) -> int:
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        return (page - 1) * per_page

    def list_ingredients(self, limit: int = 42) -> List[Dict[str, Any]]:
        return self._get("/ingredients", {"limit": limit})

    def search_ingredient(self, name: str) -> List[Dict[str, Any]]:
        """Canonical ingredient records matching a detected label."""
        return self._get("/searchIngredient", {"ingredient": name})

    def recipes(self, page: int = 1, per_page: int = 8) -> List[Dict[str, Any]]:
        return self._get(
            "/recipes",
            {"offset": self._offset(page, per_page), "limit": per_page},
        )

    def search_recipes(self, query: str) -> List[Dict[str, Any]]:
        return self._get("/searchRecipes", {"recipe": query})

    def recipes_by_ingredients(
        self,
        ingredients: Iterable[str],
        page: int = 1,
        per_page: int = 16,
    ) -> List[Dict[str, Any]]:
        """Recipes matching the selected ingredients; an empty page means end of data."""
        names = [name for name in ingredients if name]
        if not names:
            return []
        return self._get(
            "/recipesByIngredients",
            {
                "offset": self._offset(page, per_page),
                "limit": per_page,
                "ingredients": ",".join(names),
            },
        )

    def recipe(self, recipe_id: int) -> Dict[str, Any]:
        return self._get(f"/recipes/{recipe_id}")
