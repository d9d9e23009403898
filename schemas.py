"""
Database Schemas

MongoDB collection schemas defined as Pydantic models.
Model name is converted to lowercase for the collection name:
- Product -> "product" collection
- Stock -> "stock" collection
- Order -> "order" collection

Request payloads and the tagged results returned by store operations live
at the bottom of this file.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Base64Bytes, BaseModel, EmailStr, Field, field_validator

# ---------- Shared ----------

Season = Literal["All seasons", "Summer", "Winter", "Spring/Fall"]
DiscountType = Literal["percentage", "fixed_amount"]
PaymentMethod = Literal["cmi", "delivery", "pickup"]
PaymentStatus = Literal["pending", "processing", "paid", "failed", "refunded"]
DeliveryStatus = Literal["processing", "shipped", "delivered", "cancelled"]
Role = Literal["customer", "admin", "guest"]

SECTIONS = ["Helmets", "Riding Style", "Riding Gear", "Motorcycle Parts", "Motorcycles"]


class Icon(BaseModel):
    public_id: str
    secure_url: str
    resource_type: str = "raw"


class ProductImage(BaseModel):
    url: str
    alt_text: Optional[str] = None
    public_id: Optional[str] = None


class Spec(BaseModel):
    title: str
    body: str


class SizeQuantity(BaseModel):
    size: str = Field(..., min_length=1, description="Size label, e.g. XS, M, 58")
    quantity: int = Field(..., ge=0)

    @field_validator("size")
    @classmethod
    def normalize_size(cls, v: str) -> str:
        return v.strip().upper()


class DeliveryInformation(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    email: EmailStr
    city: str
    address: str
    zipcode: Optional[int] = None
    extra_directions: Optional[str] = None


# ---------- Collections ----------

class Category(BaseModel):
    name: str
    slug: str
    section: str
    icon: Icon
    applicable_types: List[Any] = Field(default_factory=list)


class Type(BaseModel):
    name: str
    slug: str
    category: Any = Field(..., description="Parent category id")


class Sale(BaseModel):
    name: str
    color: str = "#d32f2f"
    banner: Optional[ProductImage] = None
    description: Optional[str] = None
    discount_type: DiscountType = "percentage"
    discount_value: float = Field(..., ge=0)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    # empty lists mean "no restriction"
    applicable_products: List[Any] = Field(default_factory=list)
    applicable_categories: List[Any] = Field(default_factory=list)


class Stock(BaseModel):
    product_id: Any
    sizes: List[SizeQuantity] = Field(..., min_length=1)


class Product(BaseModel):
    title: str
    slug: str
    sku: str
    barcode: str
    product_model: str
    brand: str
    description: str
    season: Season = "All seasons"
    retail_price: float = Field(..., ge=0)
    wholesale_price: Optional[float] = Field(None, ge=0)
    sale_info: Optional[Any] = None
    stock: Optional[Any] = None
    category: Any
    type: Any
    specs: List[Spec] = Field(default_factory=list)
    images: List[ProductImage] = Field(..., min_length=1)
    likes: int = Field(0, ge=0)


class OrderItem(BaseModel):
    product_id: Any
    size: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    total_price: float = Field(..., ge=0)
    added_at: Optional[datetime] = None


class Order(BaseModel):
    tracking_number: str
    user_id: Any
    products: List[OrderItem]
    quantity: int = Field(..., ge=0)
    delivery_fee: float = Field(..., ge=0)
    order_total_price: float = Field(..., ge=0)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    delivery_status: DeliveryStatus = "processing"
    delivery_information: DeliveryInformation
    notes: Optional[str] = None
    ordered_at: datetime


class CartItem(BaseModel):
    product_id: Any
    size: str
    quantity: int = Field(1, ge=1)
    unit_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)
    added_at: Optional[datetime] = None


class Cart(BaseModel):
    user_id: Any
    products: List[CartItem] = Field(default_factory=list)
    quantity: int = Field(0, ge=0)
    total_amount: float = Field(0, ge=0)


class User(BaseModel):
    name: str
    email: EmailStr
    image: Optional[str] = None
    role: Role = "customer"
    wishlist: List[Any] = Field(default_factory=list)
    cart: Optional[Any] = None
    orders: List[Any] = Field(default_factory=list)
    delivery_information: Optional[Dict[str, Any]] = None


# ---------- Requests ----------

class AssetFile(BaseModel):
    """A file sent inline as base64, the way the dashboard forms post it."""
    filename: str
    content_type: str
    data: Base64Bytes


class OrderLineInput(BaseModel):
    product_id: str
    size: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class OrderInput(BaseModel):
    user_id: Optional[str] = None
    products: List[OrderLineInput] = Field(..., min_length=1)
    delivery_fee: float = Field(0, ge=0)
    order_total_price: Optional[float] = Field(None, description="Client-claimed total, checked but never persisted")
    payment_method: PaymentMethod
    delivery_information: DeliveryInformation
    notes: Optional[str] = None


class TypeInput(BaseModel):
    id: Optional[str] = Field(None, description="Present for types that already exist")
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)


class CategoryInput(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    section: str
    types: List[TypeInput] = Field(default_factory=list)
    icon: Optional[AssetFile] = None


class ProductInput(BaseModel):
    title: str = Field(..., min_length=1)
    slug: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    product_model: str
    brand: str
    description: str
    season: Season = "All seasons"
    retail_price: float = Field(..., ge=0)
    wholesale_price: Optional[float] = Field(None, ge=0)
    category: str
    type: str
    specs: List[Spec] = Field(default_factory=list)
    sizes: List[SizeQuantity] = Field(..., min_length=1)
    images: List[ProductImage] = Field(default_factory=list, description="Images already hosted and kept")
    new_images: List[AssetFile] = Field(default_factory=list)


class CartItemInput(BaseModel):
    product_id: str
    size: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class SaleLinkInput(BaseModel):
    sale_id: str


class SeedRequest(BaseModel):
    force: bool = False


# ---------- Results ----------

class OrderSuccess(BaseModel):
    status: Literal["success"] = "success"
    order: Dict[str, Any]


class OrderFailure(BaseModel):
    status: Literal["failed"] = "failed"
    reason: str
    message: str


class MutationResult(BaseModel):
    success: bool
    message: str
    reason: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def failed(cls, reason: str, message: str) -> "MutationResult":
        return cls(success=False, reason=reason, message=message)


class ActionResult(MutationResult):
    """Result of a cart or wishlist action."""
    changed: Optional[bool] = None
