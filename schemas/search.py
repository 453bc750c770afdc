from typing import List, Optional

from pydantic import BaseModel


class ProductSuggestion(BaseModel):
    id: int
    name: str
    slug: str
    price: float
    image: Optional[str] = None
    brand: str


class BrandSuggestion(BaseModel):
    id: int
    name: str
    slug: str
    logo_url: Optional[str] = None
    product_count: int


class CategorySuggestion(BaseModel):
    value: str
    label: str


class SuggestionsOut(BaseModel):
    products: List[ProductSuggestion] = []
    brands: List[BrandSuggestion] = []
    categories: List[CategorySuggestion] = []


class FacetCount(BaseModel):
    value: str
    label: str
    count: int


class PriceRange(BaseModel):
    min: float
    max: float


class FacetsOut(BaseModel):
    brands: List[FacetCount]
    categories: List[FacetCount]
    types: List[FacetCount]
    price_range: PriceRange
