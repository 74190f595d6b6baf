"""
Database Schemas for Green Haven Nursery

Each Pydantic model represents a collection in MongoDB.
Class name lowercased = collection name (e.g., Product -> "product").
"""
from pydantic import BaseModel, ConfigDict, Field, EmailStr, model_validator
from typing import Optional, List, Literal

PLACEHOLDER_IMAGE = "/placeholder.svg?height=200&width=200"

PaymentMethod = Literal["COD", "STRIPE"]
PaymentStatus = Literal["PENDING", "PAID", "FAILED"]
OrderStatus = Literal["PENDING", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"]


class Category(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50, description="Unique category name")
    description: Optional[str] = Field(None, max_length=200)
    image: str = Field(PLACEHOLDER_IMAGE, description="Image URL")


class Product(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0, description="Price in dollars")
    quantity: int = Field(0, ge=0, description="Units in stock")
    rating: float = Field(0, ge=0, le=5)
    image: str = Field(..., min_length=1, description="Image URL")
    category: str = Field(..., description="Referenced category _id as string")
    in_stock: bool = True

    @model_validator(mode="after")
    def derive_in_stock(self):
        self.in_stock = self.quantity > 0
        return self


class Address(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)


class OrderItem(BaseModel):
    product: str = Field(..., description="Referenced product _id as string")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")


class Order(BaseModel):
    customer_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: Address
    items: List[OrderItem] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    payment_method: PaymentMethod = "COD"
    payment_status: PaymentStatus = "PENDING"
    order_status: OrderStatus = "PENDING"
    payment_intent_id: Optional[str] = None


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    cart_id: str
    items: List[CartItem] = []
