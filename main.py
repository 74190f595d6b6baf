import os
import re
import math
import logging
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any, Literal

from fastapi import FastAPI, HTTPException, Header, Query, Request, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, EmailStr, ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from bson import ObjectId
from bson.errors import InvalidId

import imagehost
import payments
from database import db, create_document, get_documents, ensure_indexes
from schemas import (
    Address,
    Cart,
    CartItem,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    yield

app = FastAPI(title="Green Haven Nursery API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ADMIN_KEY = os.getenv("ADMIN_KEY")
BULK_UPLOAD_WORKERS = 4

# ---------------------- Utilities ----------------------

def oid(id_str: str) -> ObjectId:
    if not id_str:
        raise HTTPException(status_code=400, detail="Invalid ID")
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID")

def maybe_oid(id_str: Optional[str]) -> Optional[ObjectId]:
    # ObjectId(None) mints a fresh id
    if not id_str:
        return None
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None

def now_utc():
    return datetime.now(timezone.utc)

def check_admin(x_admin_key: Optional[str]):
    if ADMIN_KEY and x_admin_key != ADMIN_KEY:
        raise HTTPException(401, "Unauthorized")

def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        elif isinstance(v, ObjectId):
            out[k] = str(v)
        elif hasattr(v, "isoformat"):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out

def validation_failed(exc: ValidationError):
    return HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))

def page_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }

def attach_categories(products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace each product's category id with {id, name}."""
    ids = {maybe_oid(p.get("category")) for p in products} - {None}
    names = {}
    if ids:
        for c in db["category"].find({"_id": {"$in": list(ids)}}, {"name": 1}):
            names[str(c["_id"])] = c.get("name")
    for p in products:
        cid = p.get("category")
        p["category"] = {"id": cid, "name": names.get(cid)}
    return products

def attach_order_products(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = {maybe_oid(it.get("product")) for o in orders for it in o.get("items", [])} - {None}
    found = {}
    if ids:
        for p in db["product"].find({"_id": {"$in": list(ids)}}, {"title": 1, "price": 1, "image": 1}):
            found[str(p["_id"])] = {"id": str(p["_id"]), "title": p.get("title"),
                                   "price": p.get("price"), "image": p.get("image")}
    for o in orders:
        for it in o.get("items", []):
            pid = it.get("product")
            it["product"] = found.get(pid, {"id": pid})
    return orders

# ---------------------- Error Handling ----------------------

@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

# ---------------------- Models ----------------------

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None

class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[int] = None
    rating: Optional[float] = None
    image: Optional[str] = None
    category: Optional[str] = None

class OrderLine(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)

class OrderBody(BaseModel):
    customer_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: Address
    items: List[OrderLine] = Field(..., min_length=1)
    payment_method: PaymentMethod = "COD"
    cart_id: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None

class PaymentIntentBody(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str = "usd"
    metadata: Dict[str, str] = {}

class ConfirmPaymentBody(BaseModel):
    payment_intent_id: str = Field(..., alias="paymentIntentId", pattern=r"^pi_[A-Za-z0-9_]+$")
    order_id: str = Field(..., alias="orderId", min_length=1)

class CartUpdateBody(BaseModel):
    product_id: str
    quantity: int

class CartRemoveBody(BaseModel):
    product_id: str

# ---------------------- Root & Health ----------------------

@app.get("/")
def read_root():
    return {"message": "Green Haven Nursery API running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response

# ---------------------- Schemas Endpoint ----------------------

@app.get("/schema")
def get_schema():
    def model_fields(m):
        return {k: str(v.annotation) for k, v in m.model_fields.items()}
    return {
        "models": {
            "category": model_fields(Category),
            "product": model_fields(Product),
            "order": model_fields(Order),
            "cart": model_fields(Cart),
        }
    }

# ---------------------- Categories ----------------------

@app.get("/api/categories")
def list_categories():
    cats = db["category"].find({}).sort("name", 1)
    return {"success": True, "categories": [serialize_doc(c) for c in cats]}

@app.get("/api/categories/{cid}")
def get_category(cid: str):
    cat = db["category"].find_one({"_id": oid(cid)})
    if not cat:
        raise HTTPException(404, "Category not found")
    return {"success": True, "category": serialize_doc(cat)}

@app.post("/api/categories", status_code=201)
def create_category(body: Category, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    if db["category"].find_one({"name": body.name}):
        raise HTTPException(400, "Category name already exists")
    try:
        new_id = create_document("category", body)
    except DuplicateKeyError:
        raise HTTPException(400, "Category name already exists")
    cat = db["category"].find_one({"_id": ObjectId(new_id)})
    return {"success": True, "category": serialize_doc(cat), "message": "Category created successfully"}

@app.put("/api/categories/{cid}")
def update_category(cid: str, body: CategoryUpdate, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    _id = oid(cid)
    existing = db["category"].find_one({"_id": _id})
    if not existing:
        raise HTTPException(404, "Category not found")
    changes = body.model_dump(exclude_unset=True)
    merged = {k: existing.get(k) for k in Category.model_fields if existing.get(k) is not None}
    merged.update(changes)
    try:
        validated = Category(**merged)
    except ValidationError as exc:
        raise validation_failed(exc)
    if validated.name != existing.get("name") and db["category"].find_one({"name": validated.name, "_id": {"$ne": _id}}):
        raise HTTPException(400, "Category name already exists")
    try:
        db["category"].update_one({"_id": _id}, {"$set": {**validated.model_dump(), "updated_at": now_utc()}})
    except DuplicateKeyError:
        raise HTTPException(400, "Category name already exists")
    cat = db["category"].find_one({"_id": _id})
    return {"success": True, "category": serialize_doc(cat), "message": "Category updated successfully"}

@app.delete("/api/categories/{cid}")
def delete_category(cid: str, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    _id = oid(cid)
    if db["product"].count_documents({"category": cid}) > 0:
        raise HTTPException(400, "Cannot delete category with existing products")
    res = db["category"].delete_one({"_id": _id})
    if res.deleted_count == 0:
        raise HTTPException(404, "Category not found")
    return {"success": True, "message": "Category deleted successfully"}

# ---------------------- Products ----------------------

SORT_FIELDS = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "price": "price",
    "title": "title",
    "rating": "rating",
    "quantity": "quantity",
}

@app.get("/api/products")
def list_products(page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100),
                  category: Optional[str] = None, search: Optional[str] = None,
                  sort_by: str = Query("createdAt", alias="sortBy"),
                  sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder")):
    field = SORT_FIELDS.get(sort_by)
    if field is None:
        raise HTTPException(400, f"Unsupported sort key: {sort_by}")
    filt: Dict[str, Any] = {}
    if category:
        filt["category"] = category
    if search:
        pattern = re.escape(search.strip())
        filt["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    direction = 1 if sort_order == "asc" else -1
    total = db["product"].count_documents(filt)
    cur = (db["product"].find(filt)
           .sort([(field, direction), ("_id", direction)])
           .skip((page - 1) * limit)
           .limit(limit))
    products = attach_categories([serialize_doc(p) for p in cur])
    return {"success": True, "products": products, "totalProducts": total, **page_meta(page, limit, total)}

@app.get("/api/products/{pid}")
def get_product(pid: str):
    prod = db["product"].find_one({"_id": oid(pid)})
    if not prod:
        raise HTTPException(404, "Product not found")
    return {"success": True, "product": attach_categories([serialize_doc(prod)])[0]}

def require_category(cid: str):
    _id = maybe_oid(cid)
    if _id is None or not db["category"].find_one({"_id": _id}):
        raise HTTPException(400, "Category not found")

@app.post("/api/products", status_code=201)
def create_product(body: Product, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    require_category(body.category)
    new_id = create_document("product", body)
    prod = db["product"].find_one({"_id": ObjectId(new_id)})
    return {"success": True, "product": attach_categories([serialize_doc(prod)])[0],
            "message": "Product created successfully"}

@app.patch("/api/products/{pid}")
def update_product(pid: str, body: ProductUpdate, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    _id = oid(pid)
    existing = db["product"].find_one({"_id": _id})
    if not existing:
        raise HTTPException(404, "Product not found")
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    merged = {k: existing.get(k) for k in Product.model_fields if k in existing}
    merged.update(changes)
    try:
        validated = Product(**merged)
    except ValidationError as exc:
        raise validation_failed(exc)
    if validated.category != existing.get("category"):
        require_category(validated.category)
    db["product"].update_one({"_id": _id}, {"$set": {**validated.model_dump(), "updated_at": now_utc()}})
    prod = db["product"].find_one({"_id": _id})
    return {"success": True, "product": attach_categories([serialize_doc(prod)])[0],
            "message": "Product updated successfully"}

@app.delete("/api/products/{pid}")
def delete_product(pid: str, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    res = db["product"].delete_one({"_id": oid(pid)})
    if res.deleted_count == 0:
        raise HTTPException(404, "Product not found")
    return {"success": True, "message": "Product deleted successfully"}

# ---------------------- Orders ----------------------

def sync_in_stock(_id: ObjectId):
    """Write in_stock for the quantity currently stored, retrying if it moves underneath."""
    while True:
        doc = db["product"].find_one({"_id": _id}, {"quantity": 1})
        if doc is None:
            return
        qty = doc.get("quantity", 0)
        res = db["product"].update_one({"_id": _id, "quantity": qty}, {"$set": {"in_stock": qty > 0}})
        if res.matched_count:
            return

def release_stock(reserved):
    for pid, qty in reserved:
        _id = ObjectId(pid)
        db["product"].update_one({"_id": _id}, {"$inc": {"quantity": qty}, "$set": {"updated_at": now_utc()}})
        sync_in_stock(_id)

def reserve_stock(requested: Dict[str, int], titles: Dict[str, str]):
    """Decrement stock only where enough remains; undo everything on the first miss."""
    reserved = []
    for pid, qty in requested.items():
        updated = db["product"].find_one_and_update(
            {"_id": ObjectId(pid), "quantity": {"$gte": qty}},
            {"$inc": {"quantity": -qty}, "$set": {"updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.warning("Stock changed while ordering %s, releasing %d reservations", pid, len(reserved))
            release_stock(reserved)
            raise HTTPException(400, f"Insufficient stock for {titles.get(pid, pid)}")
        reserved.append((pid, qty))
        sync_in_stock(updated["_id"])
    return reserved

@app.post("/api/orders", status_code=201)
def create_order(body: OrderBody):
    requested: Dict[str, int] = {}
    for line in body.items:
        requested[line.product] = requested.get(line.product, 0) + line.quantity

    products: Dict[str, Dict[str, Any]] = {}
    for pid, qty in requested.items():
        _id = maybe_oid(pid)
        prod = db["product"].find_one({"_id": _id}) if _id else None
        if not prod:
            raise HTTPException(400, f"Product not found: {pid}")
        if prod.get("quantity", 0) < qty:
            raise HTTPException(400, f"Insufficient stock for {prod.get('title', 'product')}")
        products[pid] = prod

    items = [
        OrderItem(product=line.product, quantity=line.quantity, price=float(products[line.product].get("price", 0)))
        for line in body.items
    ]
    total = round(sum(it.price * it.quantity for it in items), 2)

    reserved = reserve_stock(requested, {pid: p.get("title") for pid, p in products.items()})
    try:
        order = Order(
            customer_name=body.customer_name,
            email=body.email,
            phone=body.phone,
            address=body.address,
            items=items,
            total_amount=total,
            payment_method=body.payment_method,
        )
        order_id = create_document("order", order)
    except Exception:
        release_stock(reserved)
        raise

    if body.cart_id:
        db["cart"].delete_one({"cart_id": body.cart_id})

    logger.info("Order %s created: %d lines, total %.2f, %s", order_id, len(items), total, body.payment_method)
    created = db["order"].find_one({"_id": ObjectId(order_id)})
    return {"success": True, "order": serialize_doc(created), "message": "Order created successfully"}

@app.get("/api/orders")
def list_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                order_status: Optional[OrderStatus] = Query(None, alias="orderStatus")):
    filt: Dict[str, Any] = {}
    if order_status:
        filt["order_status"] = order_status
    total = db["order"].count_documents(filt)
    cur = db["order"].find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    orders = attach_order_products([serialize_doc(o) for o in cur])
    meta = page_meta(page, limit, total)
    return {"success": True, "orders": orders, "totalOrders": total,
            "currentPage": meta["currentPage"], "totalPages": meta["totalPages"]}

@app.get("/api/orders/{order_id}")
def get_order(order_id: str):
    o = db["order"].find_one({"_id": oid(order_id)})
    if not o:
        raise HTTPException(404, "Order not found")
    return {"success": True, "order": attach_order_products([serialize_doc(o)])[0]}

@app.patch("/api/orders/{order_id}")
def update_order_status(order_id: str, body: OrderStatusUpdate, x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    o = db["order"].find_one_and_update(
        {"_id": oid(order_id)},
        {"$set": {**changes, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not o:
        raise HTTPException(404, "Order not found")
    return {"success": True, "order": serialize_doc(o)}

# ---------------------- Payments (Stripe) ----------------------

@app.post("/api/payment/create-payment-intent")
def create_payment_intent(body: PaymentIntentBody):
    try:
        intent = payments.create_payment_intent(body.amount, body.currency, body.metadata)
    except payments.PaymentGatewayError as e:
        raise HTTPException(502, str(e))
    order_oid = maybe_oid(body.metadata.get("orderId"))
    if order_oid:
        db["order"].update_one({"_id": order_oid},
                               {"$set": {"payment_intent_id": intent.get("id"), "updated_at": now_utc()}})
    return {"success": True, "data": {"clientSecret": intent.get("client_secret"), "paymentIntentId": intent.get("id")}}

@app.post("/api/confirm-payment")
def confirm_payment(body: ConfirmPaymentBody):
    order_oid = oid(body.order_id)
    try:
        intent = payments.retrieve_payment_intent(body.payment_intent_id)
    except payments.PaymentGatewayError as e:
        raise HTTPException(502, str(e))

    status = intent.get("status")
    if status != "succeeded":
        logger.info("Payment %s for order %s not completed: %s", body.payment_intent_id, body.order_id, status)
        raise HTTPException(400, {"error": "Payment not completed", "paymentStatus": status})

    existing = db["order"].find_one({"_id": order_oid})
    if not existing:
        raise HTTPException(404, "Order not found")
    # the intent must name this order, or this order must already hold the intent
    linked_order = (intent.get("metadata") or {}).get("orderId")
    stored_intent = existing.get("payment_intent_id")
    if (intent.get("id") != body.payment_intent_id
            or (linked_order and linked_order != body.order_id)
            or (stored_intent and stored_intent != body.payment_intent_id)
            or not (linked_order or stored_intent)):
        logger.warning("Payment %s does not belong to order %s", body.payment_intent_id, body.order_id)
        raise HTTPException(400, "Payment does not match order")

    order = db["order"].find_one_and_update(
        {"_id": order_oid},
        {"$set": {"payment_status": "PAID", "order_status": "PROCESSING",
                  "payment_intent_id": body.payment_intent_id, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise HTTPException(404, "Order not found")
    logger.info("Payment %s confirmed for order %s", body.payment_intent_id, body.order_id)
    return {"success": True, "order": serialize_doc(order), "paymentStatus": status}

# ---------------------- Uploads (ImgBB) ----------------------

@app.post("/api/upload")
def upload_image(image: Optional[UploadFile] = File(None), x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    if image is None:
        raise HTTPException(400, "No file provided")
    content = imagehost.read_capped(image.file)
    try:
        imagehost.validate_image(image.filename, image.content_type, len(content))
    except imagehost.ImageValidationError as e:
        raise HTTPException(400, str(e))
    try:
        hosted = imagehost.upload_image(content, image.filename)
    except imagehost.ImageHostError as e:
        raise HTTPException(502, str(e))
    return {"success": True, "url": hosted["url"], "deleteUrl": hosted["delete_url"], "filename": image.filename}

def _upload_one(entry):
    filename, content_type, content = entry
    try:
        imagehost.validate_image(filename, content_type, len(content))
        hosted = imagehost.upload_image(content, filename)
    except (imagehost.ImageValidationError, imagehost.ImageHostError) as e:
        logger.warning("Bulk upload failed for %s: %s", filename, e)
        return {"filename": filename, "status": "error", "error": str(e)}
    return {"filename": filename, "status": "success", "url": hosted["url"], "deleteUrl": hosted["delete_url"]}

@app.post("/api/upload/bulk")
def bulk_upload(images: List[UploadFile] = File(...), x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    results: List[Optional[Dict[str, Any]]] = [None] * len(images)
    pending = []
    for i, f in enumerate(images):
        if not (f.content_type or "").startswith("image/"):
            results[i] = {"filename": f.filename, "status": "skipped", "error": "File must be an image"}
            continue
        pending.append((i, (f.filename, f.content_type, imagehost.read_capped(f.file))))

    if pending:
        with ThreadPoolExecutor(max_workers=min(BULK_UPLOAD_WORKERS, len(pending))) as pool:
            outcomes = pool.map(_upload_one, [entry for _, entry in pending])
            for (i, _), outcome in zip(pending, outcomes):
                results[i] = outcome

    uploaded = sum(1 for r in results if r["status"] == "success")
    failed = sum(1 for r in results if r["status"] == "error")
    skipped = len(results) - uploaded - failed
    return {"success": failed == 0 and uploaded > 0, "uploaded": uploaded, "failed": failed,
            "skipped": skipped, "results": results}

# ---------------------- Cart ----------------------

def cart_view(cart_id: str):
    cart = db["cart"].find_one({"cart_id": cart_id}) or {"cart_id": cart_id, "items": []}
    ids = [maybe_oid(it["product_id"]) for it in cart.get("items", [])]
    prods = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": [i for i in ids if i]}})}
    items = []
    for it in cart.get("items", []):
        prod = prods.get(it["product_id"])
        if prod:
            items.append({"product": serialize_doc(prod), "quantity": it["quantity"]})
    return {
        "cart_id": cart_id,
        "items": items,
        "total_items": sum(it["quantity"] for it in items),
        "total_amount": round(sum(it["product"].get("price", 0) * it["quantity"] for it in items), 2),
    }

def save_cart(cart_id: str, items):
    cart = Cart(cart_id=cart_id, items=items)
    db["cart"].update_one({"cart_id": cart_id}, {"$set": {"items": cart.model_dump()["items"], "updated_at": now_utc()}}, upsert=True)

@app.get("/api/cart")
def get_cart(cart_id: str = Query(...)):
    return cart_view(cart_id)

@app.post("/api/cart/add")
def add_to_cart(item: CartItem, cart_id: str = Query(...)):
    prod = db["product"].find_one({"_id": oid(item.product_id)})
    if not prod:
        raise HTTPException(404, "Product not found")
    stock = prod.get("quantity", 0)
    cart = db["cart"].find_one({"cart_id": cart_id}) or {"items": []}
    items = cart.get("items", [])
    line = next((it for it in items if it["product_id"] == item.product_id), None)
    new_qty = (line["quantity"] if line else 0) + item.quantity
    if not prod.get("in_stock", stock > 0) or new_qty > stock:
        raise HTTPException(400, f"Insufficient stock for {prod.get('title', 'product')}")
    if line:
        line["quantity"] = new_qty
    else:
        items.append(item.model_dump())
    save_cart(cart_id, items)
    return cart_view(cart_id)

@app.post("/api/cart/update")
def update_cart_item(item: CartUpdateBody, cart_id: str = Query(...)):
    cart = db["cart"].find_one({"cart_id": cart_id}) or {"items": []}
    items = cart.get("items", [])
    line = next((it for it in items if it["product_id"] == item.product_id), None)
    if not line:
        raise HTTPException(404, "Item not in cart")
    prod = db["product"].find_one({"_id": oid(item.product_id)})
    if not prod:
        raise HTTPException(404, "Product not found")
    if item.quantity <= 0 or item.quantity > prod.get("quantity", 0):
        raise HTTPException(400, "Invalid quantity")
    line["quantity"] = item.quantity
    save_cart(cart_id, items)
    return cart_view(cart_id)

@app.post("/api/cart/remove")
def remove_from_cart(item: CartRemoveBody, cart_id: str = Query(...)):
    cart = db["cart"].find_one({"cart_id": cart_id}) or {"items": []}
    items = [it for it in cart.get("items", []) if it["product_id"] != item.product_id]
    save_cart(cart_id, items)
    return cart_view(cart_id)

@app.post("/api/cart/clear")
def clear_cart(cart_id: str = Query(...)):
    save_cart(cart_id, [])
    return cart_view(cart_id)

# ---------------------- Seed Demo Data ----------------------

@app.post("/api/seed")
def seed(x_admin_key: Optional[str] = Header(None)):
    check_admin(x_admin_key)
    if db["category"].count_documents({}) == 0:
        for name, description in [
            ("Indoor Plants", "Easy-care greenery for every room"),
            ("Succulents", "Drought-tolerant and sculptural"),
            ("Garden Tools", "Trowels, pruners and more"),
        ]:
            create_document("category", Category(name=name, description=description))
    if db["product"].count_documents({}) == 0:
        cats = {c["name"]: str(c["_id"]) for c in get_documents("category")}
        demo = [
            ("Monstera Deliciosa", "Split-leaf favourite for bright indirect light.", 34.99, 25, 4.8, "Indoor Plants"),
            ("Snake Plant", "Tolerates low light and irregular watering.", 19.5, 40, 4.7, "Indoor Plants"),
            ("Echeveria Trio", "Three rosette succulents in terracotta pots.", 15.0, 60, 4.6, "Succulents"),
            ("Aloe Vera", "Soothing gel and striking spikes.", 12.0, 0, 4.4, "Succulents"),
            ("Pruning Shears", "Bypass pruners with carbon steel blades.", 22.0, 30, 4.5, "Garden Tools"),
        ]
        for i, (title, description, price, quantity, rating, cat) in enumerate(demo, start=1):
            if cat not in cats:
                continue
            create_document("product", Product(
                title=title,
                description=description,
                price=price,
                quantity=quantity,
                rating=rating,
                image=f"https://picsum.photos/seed/nursery{i}/600/400",
                category=cats[cat],
            ))
    return {"ok": True, "categories": db["category"].count_documents({}), "products": db["product"].count_documents({})}

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
