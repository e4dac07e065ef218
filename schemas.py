from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Storefront Schemas

DEFAULT_PRODUCT_COLORS = [
    "#FF0000",  # red
    "#0000FF",  # blue
    "#008000",  # green
    "#FFFF00",  # yellow
    "#800080",  # purple
    "#FFA500",  # orange
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SpecificationItem(CamelModel):
    name: str = ""
    value: str = ""


class Product(CamelModel):
    """Catalog entry as the application sees it (camelCase on the wire)."""

    id: str
    name: str
    description: str = ""
    price: float = 0
    category: str = ""
    image_url: str = ""
    stock: int = 0
    featured: bool = False
    discount: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    description_images: List[str] = Field(default_factory=list)
    specification_images: List[str] = Field(default_factory=list)
    delivery_images: List[str] = Field(default_factory=list)
    allow_customization: bool = False
    allow_custom_name: bool = False
    allow_custom_modality: bool = False
    allow_custom_color_selection: bool = False
    colors: List[str] = Field(default_factory=list)
    specifications: List[SpecificationItem] = Field(default_factory=list)

    @property
    def final_price(self) -> float:
        if not self.discount:
            return self.price
        return self.price - self.price * self.discount / 100

    def available_colors(self) -> List[str]:
        return list(self.colors) if self.colors else list(DEFAULT_PRODUCT_COLORS)


class ProductIn(CamelModel):
    """Create/edit form payload. Everything is optional so that missing
    required fields can be reported as a 400 by the route."""

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None
    discount: Optional[int] = Field(None, ge=0, le=100)
    created_at: Optional[datetime] = None
    description_images: Optional[List[str]] = None
    specification_images: Optional[List[str]] = None
    delivery_images: Optional[List[str]] = None
    allow_customization: Optional[bool] = None
    allow_custom_name: Optional[bool] = None
    allow_custom_modality: Optional[bool] = None
    allow_custom_color_selection: Optional[bool] = None
    colors: Optional[List[str]] = None
    specifications: Optional[List[SpecificationItem]] = None

    def missing_required(self) -> List[str]:
        missing = []
        for field in ("name", "price", "category", "stock"):
            value = getattr(self, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field)
        return missing


class CartItem(CamelModel):
    product_id: str
    quantity: int = Field(ge=1)
    product: Product
    custom_name: Optional[str] = None
    custom_modality: Optional[str] = None
    selected_color: Optional[str] = None

    def line_key(self):
        return (self.product_id, self.custom_name, self.custom_modality, self.selected_color)


class ErrorOut(BaseModel):
    message: str
    error: str = ""
